"""Storehost command-line entry-point.

Usage:
    python -m storehost [--db PATH] [--log-level LEVEL] [--log-format FORMAT] COMMAND ...

Commands:
    init-db         Create the database file and schema.
    add-user        Register a user profile.
    add-listing     Create a listing for a host.
    show-listing    Print one listing with its host.
    host-listings   Print a host's listings, latest end date first.
    search          Rank available listings by distance from a point.
    book            Book boxes on a listing.
    cancel          Cancel a rental and return its boxes.
    history         Print a renter's bookings, most recent dropoff first.
    reconcile       Recompute a listing's remaining space from its rentals.

Every command prints JSON on stdout.  Errors go to stderr; the exit code is
2 for caller errors (validation, unknown ids, not enough space) and 1 for
configuration or storage failures.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any

import pydantic

from storehost.core import configure_logging, request_scope
from storehost.core.exceptions import (
    CapacityError,
    ConcurrencyConflict,
    ConfigError,
    NotFoundError,
    RentalStateError,
    StorehostError,
    ValidationError,
)
from storehost.core.settings import Settings
from storehost.marketplace import Marketplace, open_marketplace

logger = logging.getLogger(__name__)

_CALLER_ERRORS = (ValidationError, NotFoundError, CapacityError, RentalStateError)


def _dump(payload: Any) -> str:
    if isinstance(payload, list):
        return json.dumps([item.model_dump(mode="json") for item in payload], indent=2)
    if isinstance(payload, pydantic.BaseModel):
        return json.dumps(payload.model_dump(mode="json"), indent=2)
    return json.dumps(payload, indent=2)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storehost",
        description="Storage-space marketplace: search listings and book boxes.",
    )
    parser.add_argument("--db", default=None, metavar="PATH", help="Override DATABASE_PATH.")
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database file and schema.")

    p = sub.add_parser("add-user", help="Register a user profile.")
    p.add_argument("first_name")
    p.add_argument("last_name")
    p.add_argument("--email", default="")
    p.add_argument("--phone", default=None)

    p = sub.add_parser("add-listing", help="Create a listing.")
    p.add_argument("host_id")
    p.add_argument("--lat", type=float, required=True)
    p.add_argument("--lon", type=float, required=True)
    p.add_argument("--capacity", type=int, required=True)
    p.add_argument("--price", type=float, required=True)
    p.add_argument("--start", type=datetime.fromisoformat, default=None, metavar="ISO-DATE")
    p.add_argument("--end", type=datetime.fromisoformat, default=None, metavar="ISO-DATE")
    p.add_argument("--image", default=None)

    p = sub.add_parser("show-listing", help="Print one listing.")
    p.add_argument("listing_id")

    p = sub.add_parser("host-listings", help="Print a host's listings.")
    p.add_argument("host_id")

    p = sub.add_parser("search", help="Rank available listings by distance.")
    p.add_argument("--lat", type=float, required=True)
    p.add_argument("--lon", type=float, required=True)
    p.add_argument("--min-capacity", type=int, default=None)
    p.add_argument("--max-price", type=float, default=None)
    p.add_argument("--start", type=datetime.fromisoformat, default=None, metavar="ISO-DATE")
    p.add_argument("--end", type=datetime.fromisoformat, default=None, metavar="ISO-DATE")

    p = sub.add_parser("book", help="Book boxes on a listing.")
    p.add_argument("listing_id")
    p.add_argument("renter_id")
    p.add_argument("--boxes", type=int, required=True)
    p.add_argument("--dropoff", type=datetime.fromisoformat, required=True, metavar="ISO-DATE")
    p.add_argument("--pickup", type=datetime.fromisoformat, required=True, metavar="ISO-DATE")

    p = sub.add_parser("cancel", help="Cancel a rental.")
    p.add_argument("rental_id")

    p = sub.add_parser("history", help="Print a renter's bookings.")
    p.add_argument("renter_id")

    p = sub.add_parser("reconcile", help="Recompute a listing's remaining space.")
    p.add_argument("listing_id")

    return parser


async def _dispatch(market: Marketplace, args: argparse.Namespace) -> Any:
    """Run one parsed command and return what should be printed."""
    match args.command:
        case "init-db":
            return {"status": "ok"}
        case "add-user":
            return await market.users.register(
                args.first_name, args.last_name, email=args.email, phone=args.phone
            )
        case "add-listing":
            return await market.listings.create(
                args.host_id,
                args.lat,
                args.lon,
                args.capacity,
                args.start,
                args.end,
                price=args.price,
                image=args.image,
            )
        case "show-listing":
            return await market.listings.find_by_id(args.listing_id)
        case "host-listings":
            return await market.listings.find_by_host(args.host_id)
        case "search":
            return await market.search.search(
                args.lat,
                args.lon,
                min_capacity=args.min_capacity,
                max_price=args.max_price,
                start_date=args.start,
                end_date=args.end,
            )
        case "book":
            return await market.allocator.book(
                args.listing_id, args.renter_id, args.boxes, args.dropoff, args.pickup
            )
        case "cancel":
            return await market.allocator.cancel(args.rental_id)
        case "history":
            return await market.rentals.list_by_renter(args.renter_id)
        case "reconcile":
            return await market.allocator.reconcile(args.listing_id)
    raise ConfigError(f"Unknown command {args.command!r}")


async def _run(settings: Settings, args: argparse.Namespace) -> Any:
    with request_scope():
        async with open_marketplace(settings, db_path=args.db) as market:
            return await _dispatch(market, args)


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args(argv)

    try:
        settings = Settings()
    except pydantic.ValidationError as exc:
        print(f"storehost: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    try:
        configure_logging(
            level=args.log_level or settings.log_level,
            fmt=args.log_format or settings.log_format,
        )
    except ValueError as exc:
        print(f"storehost: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    try:
        result = asyncio.run(_run(settings, args))
    except _CALLER_ERRORS as exc:
        print(f"storehost: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(2)
    except ConcurrencyConflict as exc:
        print(f"storehost: {exc}; try again", file=sys.stderr)  # noqa: T201
        sys.exit(1)
    except StorehostError as exc:
        logger.critical("%s: %s", type(exc).__name__, exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted — exiting.")
        sys.exit(130)

    print(_dump(result))  # noqa: T201


if __name__ == "__main__":
    main()
