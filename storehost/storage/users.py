"""Identity lookup used to resolve host and renter references.

The marketplace core never edits users; it only needs to turn a user id into
a :class:`~storehost.core.models.HostProfile` (name and contact details).
:meth:`UserDirectory.register` exists so that seed data and the CLI can
create profiles to refer to.

Typical usage::

    users = UserDirectory(client)
    profile = await users.get(listing.host_id)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import aiosqlite

from storehost.core.exceptions import NotFoundError
from storehost.core.ids import new_id
from storehost.core.models import HostProfile
from storehost.storage.database import StorageClient, format_ts, utc_now

__all__ = ["UserDirectory"]

logger = logging.getLogger(__name__)

_PROFILE_COLUMNS = "id, first_name, last_name, email, phone"

#: Ids per ``IN (...)`` query, well under SQLite's bound-parameter limit.
LOOKUP_BATCH_SIZE = 500


def _row_to_profile(row: aiosqlite.Row) -> HostProfile:
    return HostProfile(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        phone=row["phone"],
    )


class UserDirectory:
    """Lookup-by-id access to user profiles.

    Args:
        client: Shared :class:`~storehost.storage.database.StorageClient`.
    """

    def __init__(self, client: StorageClient) -> None:
        self._client = client

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str = "",
        phone: str | None = None,
    ) -> HostProfile:
        """Insert a new user profile and return it with its generated id."""
        profile = HostProfile(
            id=new_id(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
        )
        async with self._client.transaction() as conn:
            await conn.execute(
                f"INSERT INTO users ({_PROFILE_COLUMNS}, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    profile.id,
                    profile.first_name,
                    profile.last_name,
                    profile.email,
                    profile.phone,
                    format_ts(utc_now()),
                ),
            )
        logger.debug("Registered user %s (%s)", profile.id, profile.full_name)
        return profile

    async def find(self, user_id: str) -> HostProfile | None:
        """Return the profile for *user_id*, or ``None`` if there is none."""
        row = await self._client.fetch_one(
            f"SELECT {_PROFILE_COLUMNS} FROM users WHERE id = ?",
            (user_id,),
        )
        return _row_to_profile(row) if row is not None else None

    async def get(self, user_id: str) -> HostProfile:
        """Return the profile for *user_id*.

        Raises:
            NotFoundError: If no such user exists.
        """
        profile = await self.find(user_id)
        if profile is None:
            raise NotFoundError("user", user_id)
        return profile

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, HostProfile]:
        """Resolve several ids, one query per batch of :data:`LOOKUP_BATCH_SIZE`.

        Unknown ids are simply absent from the returned mapping.
        """
        ids = sorted(set(user_ids))
        profiles: dict[str, HostProfile] = {}
        for start in range(0, len(ids), LOOKUP_BATCH_SIZE):
            batch = ids[start : start + LOOKUP_BATCH_SIZE]
            placeholders = ",".join("?" * len(batch))
            rows = await self._client.fetch_all(
                f"SELECT {_PROFILE_COLUMNS} FROM users WHERE id IN ({placeholders})",
                batch,
            )
            profiles.update((row["id"], _row_to_profile(row)) for row in rows)
        return profiles
