# leadcapture/cli.py
"""
Administrative CLI for the lead store: schema setup, counts, lookups and
compliance erasure.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional

from leadcapture.core.config import Settings
from leadcapture.core.exceptions import BaseAPIException, NotFoundError
from leadcapture.core.logging import configure_structlog
from leadcapture.db.session import create_database_engine, create_schema, create_session_factory
from leadcapture.services.lead_store import LeadStore
from leadcapture.services.retrieval import is_valid_lead_id, parse_date_range


def _supports_color() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}")


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}")


@asynccontextmanager
async def open_store(settings: Settings) -> AsyncIterator[LeadStore]:
    engine = create_database_engine(settings)
    try:
        yield LeadStore(create_session_factory(engine), timeout_seconds=settings.store_timeout_seconds)
    finally:
        await engine.dispose()


# Command functions
async def cmd_init_db(args: argparse.Namespace, settings: Settings) -> int:
    """Command: Create tables and indexes."""
    engine = create_database_engine(settings)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()
    print_success("Lead store schema is ready")
    return 0


async def cmd_count(args: argparse.Namespace, settings: Settings) -> int:
    """Command: Count leads, optionally within a date range."""
    params = {"startDate": args.start_date, "endDate": args.end_date}
    start_date, end_date = parse_date_range({k: v for k, v in params.items() if v})
    async with open_store(settings) as store:
        total = await store.count(start_date, end_date)
    print_info(f"{total} leads")
    return 0


async def cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    """Command: Print one lead as JSON."""
    async with open_store(settings) as store:
        lead = await store.get_by_id(args.lead_id)
    print(json.dumps(lead.to_wire(), indent=2, sort_keys=True))
    return 0


async def cmd_erase(args: argparse.Namespace, settings: Settings) -> int:
    """Command: Permanently delete a lead."""
    if not is_valid_lead_id(args.lead_id):
        print_error(f"Not a valid lead id: {args.lead_id}")
        return 1
    async with open_store(settings) as store:
        await store.delete(args.lead_id)
    print_success(f"Lead {args.lead_id} erased")
    return 0


# Command registry
COMMANDS: Dict[str, Callable] = {
    'init-db': cmd_init_db,
    'count': cmd_count,
    'show': cmd_show,
    'erase': cmd_erase,
}


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='leadcapture-admin',
        description='Lead capture administration',
    )
    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    subparsers.add_parser('init-db', help='Create the lead store schema')

    count_parser = subparsers.add_parser('count', help='Count stored leads')
    count_parser.add_argument('--start-date', help='ISO 8601 lower bound (inclusive)')
    count_parser.add_argument('--end-date', help='ISO 8601 upper bound (inclusive)')

    show_parser = subparsers.add_parser('show', help='Show one lead')
    show_parser.add_argument('lead_id')

    erase_parser = subparsers.add_parser('erase', help='Erase one lead (compliance requests)')
    erase_parser.add_argument('lead_id')

    return parser


def main(args: Optional[list] = None, settings: Optional[Settings] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    settings = settings or Settings()
    configure_structlog(settings)
    command_func = COMMANDS[parsed_args.command]

    try:
        return asyncio.run(command_func(parsed_args, settings))
    except NotFoundError as e:
        print_error(e.message)
        return 1
    except BaseAPIException as e:
        print_error(f"{e.code}: {e.message}")
        if os.getenv('DEBUG'):
            print_error(json.dumps(e.details, default=str))
        return 1
    except KeyboardInterrupt:
        print_error("Interrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
