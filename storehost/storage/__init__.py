"""SQLite-backed stores for listings, rentals and user profiles."""

from storehost.storage.database import (
    DEFAULT_DB_PATH,
    MEMORY_DB,
    StorageClient,
    create_schema,
    open_db,
)
from storehost.storage.listings import ListingStore
from storehost.storage.rentals import RentalStore
from storehost.storage.users import UserDirectory

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "open_db",
    "create_schema",
    "StorageClient",
    "ListingStore",
    "RentalStore",
    "UserDirectory",
]
