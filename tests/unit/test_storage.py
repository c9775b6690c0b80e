"""Unit tests for the storage layer (in-memory SQLite).

Covers:
- :func:`~storehost.storage.database.open_db` schema bootstrap and timestamp helpers.
- :class:`~storehost.storage.users.UserDirectory` lookups.
- :class:`~storehost.storage.listings.ListingStore` create / find operations.
- :class:`~storehost.storage.rentals.RentalStore` ordering and filters.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from storehost.core.criteria import SearchFilter
from storehost.core.exceptions import NotFoundError, StorageError, ValidationError
from storehost.core.models import LISTING_DEFAULT_END, HostProfile, Listing, RentalStatus
from storehost.marketplace import Marketplace
from storehost.storage.database import format_ts, open_db, parse_ts

START = datetime(2024, 1, 1, tzinfo=UTC)
END = datetime(2024, 12, 31, tzinfo=UTC)


def _filter(**kwargs: object) -> SearchFilter:
    kwargs.setdefault("start_date", datetime(2024, 2, 1, tzinfo=UTC))
    kwargs.setdefault("end_date", datetime(2024, 3, 1, tzinfo=UTC))
    return SearchFilter(**kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Database client
# ---------------------------------------------------------------------------


class TestDatabase:
    def test_timestamp_format_is_fixed_width(self) -> None:
        early = format_ts(datetime(2024, 1, 1, tzinfo=UTC))
        late = format_ts(datetime(2024, 1, 1, 0, 0, 0, 1, tzinfo=UTC))
        assert len(early) == len(late)
        assert early < late
        assert early.endswith("Z")

    @pytest.mark.parametrize("year", [1, 42, 999])
    def test_early_years_are_zero_padded(self, year: int) -> None:
        early = datetime(year, 6, 1, tzinfo=UTC)
        stamp = format_ts(early)
        assert stamp.startswith(f"{year:04d}-06-01T")
        assert len(stamp) == len(format_ts(datetime(2024, 1, 1, tzinfo=UTC)))
        assert stamp < format_ts(datetime(2024, 1, 1, tzinfo=UTC))
        assert parse_ts(stamp) == early

    async def test_find_nearby_with_early_start_date(
        self, market: Marketplace, listing_a: Listing
    ) -> None:
        flt = SearchFilter(
            start_date=datetime(999, 1, 1, tzinfo=UTC),
            end_date=datetime(2024, 6, 1, tzinfo=UTC),
        )
        assert await market.listings.find_nearby(flt) == []

    def test_parse_round_trips_and_handles_null(self) -> None:
        value = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=UTC)
        assert parse_ts(format_ts(value)) == value
        assert parse_ts(None) is None

    async def test_open_db_creates_file_and_parent(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "store.db"
        client = await open_db(path)
        try:
            rows = await client.fetch_all(
                "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
            )
        finally:
            await client.close()
        assert path.exists()
        assert {"listings", "rentals", "users"} <= {row["name"] for row in rows}

    async def test_open_db_is_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "store.db"
        for _ in range(2):
            client = await open_db(path)
            await client.close()

    async def test_bad_sql_raises_storage_error(self, market: Marketplace) -> None:
        with pytest.raises(StorageError):
            await market.client.fetch_all("SELECT * FROM no_such_table")

    async def test_transaction_rolls_back_on_domain_error(
        self, market: Marketplace, listing_a: Listing
    ) -> None:
        with pytest.raises(RuntimeError):
            async with market.client.transaction() as conn:
                await conn.execute(
                    "UPDATE listings SET rem_space = 0 WHERE id = ?", (listing_a.id,)
                )
                raise RuntimeError("abort")
        assert (await market.listings.find_by_id(listing_a.id)).rem_space == 10

    async def test_check_constraint_surfaces_as_storage_error(
        self, market: Marketplace, listing_a: Listing
    ) -> None:
        with pytest.raises(StorageError):
            async with market.client.transaction() as conn:
                await conn.execute(
                    "UPDATE listings SET rem_space = 11 WHERE id = ?", (listing_a.id,)
                )
        assert (await market.listings.find_by_id(listing_a.id)).rem_space == 10


# ---------------------------------------------------------------------------
# UserDirectory
# ---------------------------------------------------------------------------


class TestUserDirectory:
    async def test_register_and_get(self, market: Marketplace, host: HostProfile) -> None:
        fetched = await market.users.get(host.id)
        assert fetched == host
        assert fetched.full_name == "Hana Host"
        assert fetched.phone == "555-0100"

    async def test_find_unknown_returns_none(self, market: Marketplace) -> None:
        assert await market.users.find("nobody") is None

    async def test_get_unknown_raises(self, market: Marketplace) -> None:
        with pytest.raises(NotFoundError) as info:
            await market.users.get("nobody")
        assert info.value.entity == "user"

    async def test_get_many_skips_unknown(
        self, market: Marketplace, host: HostProfile, renter: HostProfile
    ) -> None:
        found = await market.users.get_many([host.id, renter.id, "nobody", host.id])
        assert set(found) == {host.id, renter.id}

    async def test_get_many_empty(self, market: Marketplace) -> None:
        assert await market.users.get_many([]) == {}

    async def test_get_many_spans_batches(
        self, market: Marketplace, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("storehost.storage.users.LOOKUP_BATCH_SIZE", 2)
        registered = [await market.users.register(f"User{i}", "Test") for i in range(5)]
        found = await market.users.get_many([p.id for p in registered] + ["nobody"])
        assert found == {p.id: p for p in registered}

    async def test_get_many_beyond_parameter_limit(
        self, market: Marketplace, host: HostProfile
    ) -> None:
        ids = [f"missing-{i}" for i in range(40_000)] + [host.id]
        assert await market.users.get_many(ids) == {host.id: host}


# ---------------------------------------------------------------------------
# ListingStore.create
# ---------------------------------------------------------------------------


class TestListingCreate:
    async def test_create_sets_rem_space_and_host(self, listing_a: Listing, host: HostProfile) -> None:
        assert listing_a.rem_space == listing_a.capacity == 10
        assert listing_a.host == host
        assert listing_a.id
        assert listing_a.created_at is not None
        assert listing_a.created_at == listing_a.updated_at

    async def test_ids_are_unique(self, market: Marketplace, host: HostProfile) -> None:
        ids = {
            (await market.listings.create(host.id, 0, 0, 1, START, END, price=1)).id
            for _ in range(5)
        }
        assert len(ids) == 5

    async def test_default_window(self, market: Marketplace, host: HostProfile) -> None:
        before = datetime.now(UTC)
        listing = await market.listings.create(host.id, 10, 10, 3, price=5)
        assert before <= listing.start_date <= datetime.now(UTC)
        assert listing.end_date == LISTING_DEFAULT_END

    @pytest.mark.parametrize(
        ("lat", "lon", "capacity", "price"),
        [
            (33.78, -84.39, 0, 50),
            (33.78, -84.39, -3, 50),
            (33.78, -84.39, 10, -1),
            (91.0, -84.39, 10, 50),
            (33.78, 181.0, 10, 50),
        ],
    )
    async def test_invalid_input_rejected(
        self,
        market: Marketplace,
        host: HostProfile,
        lat: float,
        lon: float,
        capacity: int,
        price: float,
    ) -> None:
        with pytest.raises(ValidationError):
            await market.listings.create(host.id, lat, lon, capacity, START, END, price=price)
        assert await market.listings.find_by_host(host.id) == []

    async def test_inverted_window_rejected(self, market: Marketplace, host: HostProfile) -> None:
        with pytest.raises(ValidationError):
            await market.listings.create(host.id, 0, 0, 1, END, START, price=1)

    async def test_unknown_host_rejected(self, market: Marketplace) -> None:
        with pytest.raises(NotFoundError) as info:
            await market.listings.create("ghost", 0, 0, 1, START, END, price=1)
        assert info.value.entity == "user"

    async def test_zero_price_allowed(self, market: Marketplace, host: HostProfile) -> None:
        listing = await market.listings.create(host.id, 0, 0, 1, START, END, price=0)
        assert listing.price == 0


# ---------------------------------------------------------------------------
# ListingStore reads
# ---------------------------------------------------------------------------


class TestListingReads:
    async def test_find_by_id(self, market: Marketplace, listing_a: Listing) -> None:
        fetched = await market.listings.find_by_id(listing_a.id)
        assert fetched == listing_a
        assert fetched.host is not None
        assert fetched.host.full_name == "Hana Host"

    async def test_find_by_id_unknown(self, market: Marketplace) -> None:
        with pytest.raises(NotFoundError) as info:
            await market.listings.find_by_id("missing")
        assert info.value.entity == "listing"

    async def test_find_by_host_latest_end_first(
        self, market: Marketplace, host: HostProfile, renter: HostProfile
    ) -> None:
        early = await market.listings.create(host.id, 0, 0, 1, START, END, price=1)
        late = await market.listings.create(
            host.id, 0, 0, 1, START, END + timedelta(days=30), price=1
        )
        tie = await market.listings.create(host.id, 0, 0, 1, START, END, price=1)
        await market.listings.create(renter.id, 0, 0, 1, START, END, price=1)

        found = await market.listings.find_by_host(host.id)
        assert [listing.id for listing in found] == [late.id, early.id, tie.id]

    async def test_find_by_host_unknown_is_empty(self, market: Marketplace) -> None:
        assert await market.listings.find_by_host("nobody") == []


class TestFindNearby:
    async def test_every_result_satisfies_filter(
        self, market: Marketplace, host: HostProfile
    ) -> None:
        specs = [
            (10, 50, START, END),  # matches
            (2, 50, START, END),  # too small
            (10, 80, START, END),  # too expensive
            (10, 50, datetime(2024, 2, 15, tzinfo=UTC), END),  # opens too late
            (10, 50, START, datetime(2024, 2, 15, tzinfo=UTC)),  # closes too early
            (10, 60, START, END),  # matches at the price bound
        ]
        created = [
            await market.listings.create(host.id, 33.78, -84.39, cap, start, end, price=price)
            for cap, price, start, end in specs
        ]
        flt = _filter(min_capacity=4, max_price=60)

        found = await market.listings.find_nearby(flt)

        assert [listing.id for listing in found] == [created[0].id, created[5].id]
        assert all(flt.matches(listing) for listing in found)
        assert all(listing.host == host for listing in found)

    async def test_without_price_bound(self, market: Marketplace, host: HostProfile) -> None:
        await market.listings.create(host.id, 0, 0, 5, START, END, price=1_000)
        assert len(await market.listings.find_nearby(_filter())) == 1

    async def test_uses_remaining_space_not_capacity(
        self, market: Marketplace, listing_a: Listing
    ) -> None:
        async with market.client.transaction() as conn:
            assert await market.listings.try_reserve(conn, listing_a.id, 7)
        assert await market.listings.find_nearby(_filter(min_capacity=4)) == []
        assert len(await market.listings.find_nearby(_filter(min_capacity=3))) == 1

    async def test_no_listings(self, market: Marketplace) -> None:
        assert await market.listings.find_nearby(_filter()) == []


class TestConditionalUpdates:
    async def test_try_reserve_guard(self, market: Marketplace, listing_a: Listing) -> None:
        async with market.client.transaction() as conn:
            assert await market.listings.try_reserve(conn, listing_a.id, 10)
            assert not await market.listings.try_reserve(conn, listing_a.id, 1)
        assert (await market.listings.find_by_id(listing_a.id)).rem_space == 0

    async def test_release_never_exceeds_capacity(
        self, market: Marketplace, listing_a: Listing
    ) -> None:
        async with market.client.transaction() as conn:
            assert not await market.listings.release(conn, listing_a.id, 1)
            assert await market.listings.try_reserve(conn, listing_a.id, 3)
            assert await market.listings.release(conn, listing_a.id, 3)
        assert (await market.listings.find_by_id(listing_a.id)).rem_space == 10

    async def test_set_rem_space_is_compare_and_swap(
        self, market: Marketplace, listing_a: Listing
    ) -> None:
        async with market.client.transaction() as conn:
            assert not await market.listings.set_rem_space(conn, listing_a.id, 4, expected=9)
            assert await market.listings.set_rem_space(conn, listing_a.id, 4, expected=10)
        assert (await market.listings.find_by_id(listing_a.id)).rem_space == 4


# ---------------------------------------------------------------------------
# RentalStore
# ---------------------------------------------------------------------------


class TestRentalStore:
    async def test_list_by_renter_most_recent_dropoff_first(
        self, market: Marketplace, listing_a: Listing, renter: HostProfile
    ) -> None:
        dropoffs = [
            datetime(2024, 3, 1, tzinfo=UTC),
            datetime(2024, 6, 1, tzinfo=UTC),
            datetime(2024, 1, 15, tzinfo=UTC),
        ]
        for dropoff in dropoffs:
            await market.allocator.book(
                listing_a.id, renter.id, 1, dropoff, dropoff + timedelta(days=10)
            )

        history = await market.rentals.list_by_renter(renter.id)

        assert [rental.dropoff for rental in history] == sorted(dropoffs, reverse=True)
        assert all(rental.renter_id == renter.id for rental in history)

    async def test_list_by_renter_includes_cancelled(
        self, market: Marketplace, listing_a: Listing, renter: HostProfile
    ) -> None:
        rental = await market.allocator.book(
            listing_a.id, renter.id, 2, datetime(2024, 2, 1, tzinfo=UTC), datetime(2024, 3, 1, tzinfo=UTC)
        )
        await market.allocator.cancel(rental.id)
        history = await market.rentals.list_by_renter(renter.id)
        assert [r.status for r in history] == [RentalStatus.CANCELLED]

    async def test_list_by_renter_unknown_is_empty(self, market: Marketplace) -> None:
        assert await market.rentals.list_by_renter("nobody") == []

    async def test_list_by_listing(
        self,
        market: Marketplace,
        listing_a: Listing,
        renter: HostProfile,
        host: HostProfile,
    ) -> None:
        dropoff, pickup = datetime(2024, 2, 1, tzinfo=UTC), datetime(2024, 3, 1, tzinfo=UTC)
        first = await market.allocator.book(listing_a.id, renter.id, 1, dropoff, pickup)
        second = await market.allocator.book(listing_a.id, host.id, 2, dropoff, pickup)
        await market.allocator.cancel(first.id)

        everything = await market.rentals.list_by_listing(listing_a.id)
        active = await market.rentals.list_by_listing(listing_a.id, active_only=True)

        assert [r.id for r in everything] == [first.id, second.id]
        assert [r.id for r in active] == [second.id]

    async def test_get_unknown(self, market: Marketplace) -> None:
        with pytest.raises(NotFoundError) as info:
            await market.rentals.get("missing")
        assert info.value.entity == "rental"
