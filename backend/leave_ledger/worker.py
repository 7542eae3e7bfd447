"""One-shot batch entry point for the ledger's periodic jobs.

There is no scheduler in here: cron (or any external trigger) runs one
command per invocation::

    python -m leave_ledger.worker carry-forward --tenant <id> --fiscal-year 2025
    python -m leave_ledger.worker backfill --tenant <id> [--employee <id>] [--dry-run]
    python -m leave_ledger.worker expire --tenant <id> [--as-of 2026-04-01]

SIGINT/SIGTERM stop a running batch between employees or leaves; work that
already committed stays committed.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import uuid
from datetime import date
from typing import TYPE_CHECKING

from leave_ledger.config import get_settings
from leave_ledger.db import dispose_engine, get_session_factory
from leave_ledger.services.attendance_sync import sync_approved_leaves_to_attendance
from leave_ledger.services.audit import SYSTEM_ACTOR
from leave_ledger.services.carry_forward import execute_for_tenant, expire_carried_balances
from leave_ledger.services.tenant import get_tenant_resolver

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pydantic import BaseModel

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leave_ledger.worker", description="Leave ledger batch jobs")
    commands = parser.add_subparsers(dest="command", required=True)

    carry = commands.add_parser("carry-forward", help="Carry balances out of a closing fiscal year")
    carry.add_argument("--tenant", type=uuid.UUID, required=True)
    carry.add_argument("--fiscal-year", type=int, required=True, help="Start year of the closing fiscal year")

    backfill = commands.add_parser("backfill", help="Re-sync attendance for approved leaves")
    backfill.add_argument("--tenant", type=uuid.UUID, required=True)
    backfill.add_argument("--employee", type=uuid.UUID, default=None)
    backfill.add_argument("--dry-run", action="store_true")

    expire = commands.add_parser("expire", help="Expire carried balances past their validity window")
    expire.add_argument("--tenant", type=uuid.UUID, required=True)
    expire.add_argument("--as-of", type=date.fromisoformat, default=None)

    return parser


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _cancel(signame: str) -> None:
        logger.warning("Received %s, stopping after the current item", signame)
        cancel_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _cancel, sig.name)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable on this platform")


async def run(args: argparse.Namespace, cancel_event: asyncio.Event | None = None) -> BaseModel:
    """Run one batch command and return its report."""
    cancel_event = cancel_event or asyncio.Event()
    session_factory = get_session_factory()

    async with session_factory() as session:
        ctx = await get_tenant_resolver().resolve(session, args.tenant)
        if args.command == "carry-forward":
            return await execute_for_tenant(ctx, args.fiscal_year, SYSTEM_ACTOR, cancel_event=cancel_event)
        if args.command == "backfill":
            return await sync_approved_leaves_to_attendance(
                ctx, args.employee, dry_run=args.dry_run, cancel_event=cancel_event, actor_id=SYSTEM_ACTOR
            )
        return await expire_carried_balances(ctx, args.as_of, SYSTEM_ACTOR)


async def _main(args: argparse.Namespace) -> int:
    cancel_event = asyncio.Event()
    _install_signal_handlers(cancel_event)
    try:
        report = await run(args, cancel_event)
    finally:
        await dispose_engine()

    print(report.model_dump_json(indent=2))
    failed = getattr(report, "failed", 0) or len(getattr(report, "errors", []))
    return 1 if failed else 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the worker process."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
