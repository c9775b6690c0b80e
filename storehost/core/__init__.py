"""Core domain models, settings, logging configuration, and shared utilities."""

from storehost.core.criteria import SearchFilter
from storehost.core.exceptions import (
    CapacityError,
    ConcurrencyConflict,
    ConfigError,
    NotFoundError,
    RentalStateError,
    SearchError,
    StorageError,
    StorehostError,
    ValidationError,
)
from storehost.core.geo import DistanceUnit, distance
from storehost.core.logging_config import JsonFormatter, configure_logging, request_scope
from storehost.core.models import HostProfile, Listing, Rental, RentalStatus, SearchResult
from storehost.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "request_scope",
    "JsonFormatter",
    # Geometry
    "distance",
    "DistanceUnit",
    # Domain models
    "HostProfile",
    "Listing",
    "Rental",
    "RentalStatus",
    "SearchResult",
    "SearchFilter",
    # Settings
    "Settings",
    # Exceptions
    "StorehostError",
    "ConfigError",
    "ValidationError",
    "NotFoundError",
    "CapacityError",
    "ConcurrencyConflict",
    "RentalStateError",
    "StorageError",
    "SearchError",
]
