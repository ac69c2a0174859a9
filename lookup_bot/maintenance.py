from __future__ import annotations

import argparse
import asyncio
import logging

from .config import Settings
from .storage.store import LookupStore

logger = logging.getLogger("lookup_bot")


async def _migrate(store: LookupStore) -> int:
    version = await store.init()
    print(f"Schema at version {version} ({store.db_path})")
    return 0


async def _clear_history(store: LookupStore) -> int:
    await store.init()
    removed = await store.clear_search_history()
    print(f"Deleted {removed} search record(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lookup bot database maintenance.")
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path (defaults to SQLITE_PATH from .env).",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("migrate", help="Apply pending schema migrations.")
    subcommands.add_parser("clear-history", help="Delete every stored search record.")
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    args = build_parser().parse_args(argv)
    db_path = args.db or Settings.from_env().sqlite_path
    store = LookupStore(db_path)
    if args.command == "migrate":
        return asyncio.run(_migrate(store))
    return asyncio.run(_clear_history(store))


if __name__ == "__main__":
    raise SystemExit(main())
