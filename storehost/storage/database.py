"""SQLite storage client for Storehost.

This module is responsible for:

* Opening (or creating) the SQLite file and configuring PRAGMAs (WAL journal
  mode, foreign keys).
* Bootstrapping the schema via ``CREATE TABLE IF NOT EXISTS`` — safe to call
  on every startup.
* Exposing :class:`StorageClient`, the persistence collaborator handed to
  every store: ``fetch_one`` / ``fetch_all`` for reads and
  :meth:`StorageClient.transaction` for atomic multi-statement writes.

There is no module-level connection.  Callers open a client with
:func:`open_db` and pass it explicitly into each store's constructor.

Typical usage::

    from storehost.storage.database import open_db

    async def main() -> None:
        client = await open_db()          # creates file + schema if absent
        # ... pass client to ListingStore / RentalStore / UserDirectory ...
        await client.close()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from storehost.core.exceptions import StorageError
from storehost.core.models import ensure_utc

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "StorageClient",
    "create_schema",
    "format_ts",
    "open_db",
    "parse_ts",
    "utc_now",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("storehost.db")

#: Pass as ``path`` to :func:`open_db` for a throwaway in-memory database.
MEMORY_DB: str = ":memory:"

# Fixed-width UTC layout (four-digit year) so that string comparison in SQL
# orders the same way as datetime comparison in Python.  Used for parsing;
# see format_ts for writing.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: ``users`` backs the identity lookup.  Only profile fields live here.
_DDL_USERS = """\
CREATE TABLE IF NOT EXISTS users (
    id          TEXT     NOT NULL PRIMARY KEY,
    first_name  TEXT     NOT NULL DEFAULT '',
    last_name   TEXT     NOT NULL DEFAULT '',
    email       TEXT     NOT NULL DEFAULT '',
    phone       TEXT,
    created_at  TEXT     NOT NULL
)"""

#: ``listings``: one row per offer of storage.
#:
#: Column notes
#: ------------
#: seq         Insertion counter.  Result sets are ordered by it so that
#:             ties in distance or end_date resolve in insertion order.
#: rem_space   Stored remaining boxes.  The CHECK constraints keep it inside
#:             ``[0, capacity]`` even if a write path misbehaves.
#: start_date, end_date, created_at, updated_at
#:             Fixed-width UTC strings (see :func:`format_ts`).
_DDL_LISTINGS = """\
CREATE TABLE IF NOT EXISTS listings (
    seq         INTEGER  PRIMARY KEY AUTOINCREMENT,
    id          TEXT     NOT NULL UNIQUE,
    host_id     TEXT     NOT NULL REFERENCES users (id),
    lat         REAL     NOT NULL,
    lon         REAL     NOT NULL,
    capacity    INTEGER  NOT NULL CHECK (capacity >= 1),
    rem_space   INTEGER  NOT NULL CHECK (rem_space >= 0 AND rem_space <= capacity),
    start_date  TEXT     NOT NULL,
    end_date    TEXT     NOT NULL,
    price       REAL     NOT NULL CHECK (price >= 0),
    image       TEXT,
    created_at  TEXT     NOT NULL,
    updated_at  TEXT     NOT NULL
)"""

#: ``rentals``: bookings.  Cancelled rows are kept with ``status='cancelled'``.
_DDL_RENTALS = """\
CREATE TABLE IF NOT EXISTS rentals (
    seq          INTEGER  PRIMARY KEY AUTOINCREMENT,
    id           TEXT     NOT NULL UNIQUE,
    listing_id   TEXT     NOT NULL REFERENCES listings (id),
    renter_id    TEXT     NOT NULL REFERENCES users (id),
    boxes        INTEGER  NOT NULL CHECK (boxes >= 1),
    dropoff      TEXT     NOT NULL,
    pickup       TEXT     NOT NULL,
    status       TEXT     NOT NULL DEFAULT 'active',
    created_at   TEXT     NOT NULL,
    cancelled_at TEXT
)"""

_DDL_INDEXES = (
    "CREATE INDEX IF NOT EXISTS ix_listings_host ON listings (host_id)",
    "CREATE INDEX IF NOT EXISTS ix_rentals_listing ON rentals (listing_id)",
    "CREATE INDEX IF NOT EXISTS ix_rentals_renter ON rentals (renter_id)",
)

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def format_ts(value: datetime) -> str:
    """Serialise a datetime as a fixed-width UTC string for storage.

    The year is zero-padded by hand: ``%Y`` is not padded below 1000 on
    every platform, and a short year would break string ordering in SQL.
    """
    v = ensure_utc(value)
    return f"{v.year:04d}-{v:%m-%dT%H:%M:%S.%f}Z"


def parse_ts(value: str | None) -> datetime | None:
    """Inverse of :func:`format_ts`; ``None`` passes through."""
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class StorageClient:
    """Thin persistence collaborator over one :class:`aiosqlite.Connection`.

    All access is serialised by one :class:`asyncio.Lock`.  Writes go through
    :meth:`transaction`, which holds the lock for the whole unit of work, so
    coroutines sharing this client never interleave statements of different
    transactions (single writer) and never read another coroutine's
    uncommitted rows.

    Every :class:`aiosqlite.Error` is logged and re-raised as
    :exc:`~storehost.core.exceptions.StorageError`.

    Args:
        conn: Open, configured connection (see :func:`open_db`).
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._lock = asyncio.Lock()

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    async def close(self) -> None:
        await self._conn.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Row | None:
        """Run a query and return its first row, or ``None``."""
        try:
            async with self._lock:
                cursor = await self._conn.execute(sql, params)
                return await cursor.fetchone()
        except aiosqlite.Error as exc:
            logger.error("Query failed: %s", exc)
            raise StorageError(f"Query failed: {exc}") from exc

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        """Run a query and return every row."""
        try:
            async with self._lock:
                cursor = await self._conn.execute(sql, params)
                return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            logger.error("Query failed: %s", exc)
            raise StorageError(f"Query failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a block of writes atomically.

        Commits when the block exits normally.  On *any* exception the
        transaction is rolled back and the exception re-raised, so callers can
        abort a unit of work by raising a domain error from inside the block.

        Yields:
            The underlying connection, for ``execute`` calls inside the block.

        Raises:
            StorageError: If SQLite itself fails (including on commit).
        """
        async with self._lock:
            try:
                await self._conn.execute("BEGIN IMMEDIATE")
                yield self._conn
                await self._conn.commit()
            except aiosqlite.Error as exc:
                await self._safe_rollback()
                logger.error("Transaction failed and was rolled back: %s", exc)
                raise StorageError(f"Transaction failed: {exc}") from exc
            except BaseException:
                await self._safe_rollback()
                raise

    async def _safe_rollback(self) -> None:
        try:
            await self._conn.rollback()
        except aiosqlite.Error as exc:
            logger.warning("Rollback failed: %s", exc)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def open_db(path: Path | str | None = None) -> StorageClient:
    """Open (or create) the SQLite database and return a :class:`StorageClient`.

    Steps performed on every call:

    1. Create parent directories for the DB file if they do not exist
       (skipped for :data:`MEMORY_DB`).
    2. Open the ``aiosqlite`` connection with ``row_factory = aiosqlite.Row``.
    3. Enable WAL journal mode and foreign-key enforcement.
    4. Call :func:`create_schema` (idempotent).

    Args:
        path: Filesystem path for the SQLite file, or :data:`MEMORY_DB`.
            Defaults to :data:`DEFAULT_DB_PATH`.

    Returns:
        An open client.  The caller is responsible for closing it.

    Raises:
        StorageError: If the database cannot be opened or initialised.
    """
    target: Path | str
    if path == MEMORY_DB:
        target = MEMORY_DB
    else:
        target = Path(path or DEFAULT_DB_PATH)
        target.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", target)

    try:
        # Transactions are managed explicitly via BEGIN IMMEDIATE.
        conn: aiosqlite.Connection = await aiosqlite.connect(target, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await _configure_pragmas(conn)
        await create_schema(conn)
    except aiosqlite.Error as exc:
        logger.error("Could not open database at %s: %s", target, exc)
        raise StorageError(f"Could not open database at {target}: {exc}") from exc

    logger.info("SQLite database ready at %s", target)
    return StorageClient(conn)


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create all required tables and indexes if they do not already exist.

    Args:
        conn: An open :class:`aiosqlite.Connection`.
    """
    statements: Iterable[str] = (_DDL_USERS, _DDL_LISTINGS, _DDL_RENTALS, *_DDL_INDEXES)
    for statement in statements:
        await conn.execute(statement)
    await conn.commit()
    logger.debug("Schema bootstrap complete (users, listings, rentals verified)")


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Apply PRAGMA settings that must be set immediately after opening.

    * ``journal_mode=WAL``: concurrent readers alongside the single writer.
    * ``foreign_keys=ON``: SQLite leaves FK enforcement off by default.
    """
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.debug(
            "Requested WAL journal mode but SQLite reported %r "
            "(expected for in-memory databases).",
            mode,
        )
    else:
        logger.debug("SQLite journal_mode set to WAL")

    await conn.execute("PRAGMA foreign_keys=ON")
