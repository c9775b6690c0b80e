"""Storehost application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``DATABASE_PATH`` →
``database_path``).

Typical usage::

    from storehost.core.settings import Settings

    settings = Settings()                 # loads from env + .env
    print(settings.database_path_resolved)
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    database_path: str = Field(
        default="data/storehost.db",
        description="Path to the SQLite database file.",
    )

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------
    booking_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per booking when the capacity update loses a race.",
    )
    booking_retry_wait_max: float = Field(
        default=0.05,
        ge=0.0,
        description="Upper bound in seconds of the random wait between booking attempts.",
    )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    search_max_results: int = Field(
        default=0,
        ge=0,
        description="Maximum ranked results returned (0 = unlimited).",
    )
    search_max_distance_km: float = Field(
        default=0.0,
        ge=0.0,
        description="Drop results further than this many km (0 = unlimited).",
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def database_path_resolved(self) -> Path:
        """Return the database path as a resolved :class:`~pathlib.Path`."""
        return Path(self.database_path).resolve()

    @property
    def result_limit(self) -> int | None:
        """``search_max_results`` with the ``0 = unlimited`` convention applied."""
        return self.search_max_results or None

    @property
    def radius_km(self) -> float | None:
        """``search_max_distance_km`` with the ``0 = unlimited`` convention applied."""
        return self.search_max_distance_km or None
