"""Keeps attendance consistent with leave lifecycle transitions.

Attendance sync is a secondary effect of leave approval. Each day is its own
unit of work: a failing day is rolled back and reported in
``SyncResult.errors`` while the loop moves on, and nothing here raises past
the caller's already-committed leave transition. Re-running any sync for the
same leave converges to the same records.
"""

# ruff: noqa: TC003
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING

from leave_ledger.schemas.attendance import BackfillReport, SyncResult
from leave_ledger.services.attendance import DayOutcome, LeaveWindow
from leave_ledger.services.fiscal import iter_days

if TYPE_CHECKING:
    from collections.abc import Iterable

    from leave_ledger.models.attendance import AttendanceRecord
    from leave_ledger.models.leave import LeaveRequest
    from leave_ledger.services.tenant import TenantContext

logger = logging.getLogger(__name__)


def _count(result: SyncResult, outcome: DayOutcome) -> None:
    if outcome == DayOutcome.CREATED:
        result.created += 1
    elif outcome == DayOutcome.UPDATED:
        result.updated += 1
    elif outcome == DayOutcome.REMOVED:
        result.removed += 1
    else:
        result.skipped += 1


def _window(leave: LeaveRequest | LeaveWindow) -> LeaveWindow:
    return leave if isinstance(leave, LeaveWindow) else LeaveWindow.of(leave)


async def _apply_days(
    ctx: TenantContext,
    window: LeaveWindow,
    days: Iterable[date],
    result: SyncResult,
    actor_id: uuid.UUID | None,
) -> None:
    for day in days:
        try:
            outcome = await ctx.attendance.apply_leave_day(window, day, actor_id)
        except Exception as exc:
            logger.exception("Attendance sync failed for leave %s on %s", window.leave_id, day)
            result.errors.append({"date": day.isoformat(), "error": str(exc)})
            continue
        _count(result, outcome)


async def _revert_days(
    ctx: TenantContext,
    window: LeaveWindow,
    days: Iterable[date],
    result: SyncResult,
    actor_id: uuid.UUID | None,
) -> None:
    for day in days:
        try:
            outcome = await ctx.attendance.revert_leave_day(window, day, actor_id)
        except Exception as exc:
            logger.exception("Attendance revert failed for leave %s on %s", window.leave_id, day)
            result.errors.append({"date": day.isoformat(), "error": str(exc)})
            continue
        _count(result, outcome)


async def create_attendance_for_leave(
    ctx: TenantContext,
    leave: LeaveRequest | LeaveWindow,
    actor_id: uuid.UUID | None = None,
) -> SyncResult:
    """Mark every day of an approved leave as on-leave.

    Days where the employee clocked in or out keep their status and are only
    annotated with the leave.
    """
    window = _window(leave)
    result = SyncResult()
    await _apply_days(ctx, window, iter_days(window.start_date, window.end_date), result, actor_id)
    logger.info(
        "Attendance sync for leave %s: created=%d updated=%d skipped=%d errors=%d",
        window.leave_id,
        result.created,
        result.updated,
        result.skipped,
        len(result.errors),
    )
    return result


async def update_attendance_for_leave(
    ctx: TenantContext,
    leave: LeaveRequest | LeaveWindow,
    old_start: date,
    old_end: date,
    actor_id: uuid.UUID | None = None,
) -> SyncResult:
    """Move a leave's attendance from its old date range to its current one.

    Days only in the old range are reverted, then the whole new range is
    synced as on approval.
    """
    window = _window(leave)
    new_days = set(iter_days(window.start_date, window.end_date))
    dropped = [day for day in iter_days(old_start, old_end) if day not in new_days]

    result = SyncResult()
    await _revert_days(ctx, window, dropped, result, actor_id)
    await _apply_days(ctx, window, sorted(new_days), result, actor_id)
    logger.info(
        "Attendance resync for leave %s: created=%d updated=%d skipped=%d removed=%d errors=%d",
        window.leave_id,
        result.created,
        result.updated,
        result.skipped,
        result.removed,
        len(result.errors),
    )
    return result


async def remove_attendance_for_leave(
    ctx: TenantContext,
    leave: LeaveRequest | LeaveWindow,
    actor_id: uuid.UUID | None = None,
) -> SyncResult:
    """Detach a cancelled leave from its days. Rows are never deleted."""
    window = _window(leave)
    result = SyncResult()
    await _revert_days(ctx, window, iter_days(window.start_date, window.end_date), result, actor_id)
    logger.info(
        "Attendance removal for leave %s: removed=%d skipped=%d errors=%d",
        window.leave_id,
        result.removed,
        result.skipped,
        len(result.errors),
    )
    return result


async def sync_approved_leaves_to_attendance(
    ctx: TenantContext,
    employee_id: uuid.UUID | None = None,
    *,
    dry_run: bool = False,
    cancel_event: asyncio.Event | None = None,
    actor_id: uuid.UUID | None = None,
) -> BackfillReport:
    """Re-run approval sync for every approved leave of the tenant.

    A leave counts as failed when its sync raised or any of its days failed.
    With ``dry_run`` the approved leaves are only counted. Setting
    ``cancel_event`` stops the run between leaves.
    """
    leaves = await ctx.leaves.list_approved(employee_id)
    windows = [LeaveWindow.of(leave) for leave in leaves]
    report = BackfillReport(dry_run=dry_run)

    for window in windows:
        if cancel_event is not None and cancel_event.is_set():
            report.cancelled = True
            logger.info("Attendance backfill cancelled after %d leaves", report.processed)
            break

        report.processed += 1
        if dry_run:
            report.succeeded += 1
            continue

        try:
            result = await create_attendance_for_leave(ctx, window, actor_id)
        except Exception as exc:
            logger.exception("Attendance backfill failed for leave %s", window.leave_id)
            report.failed += 1
            report.errors.append(
                {"leave_id": str(window.leave_id), "employee_id": str(window.employee_id), "error": str(exc)}
            )
            continue

        if result.partial_failure:
            report.failed += 1
            report.errors.append(
                {
                    "leave_id": str(window.leave_id),
                    "employee_id": str(window.employee_id),
                    "error": f"{len(result.errors)} day(s) failed",
                    "days": result.errors,
                }
            )
        else:
            report.succeeded += 1

    logger.info(
        "Attendance backfill: processed=%d succeeded=%d failed=%d dry_run=%s cancelled=%s",
        report.processed,
        report.succeeded,
        report.failed,
        dry_run,
        report.cancelled,
    )
    return report


async def get_attendance_for_leave(ctx: TenantContext, leave_id: uuid.UUID) -> list[AttendanceRecord]:
    """Attendance records currently attributed to a leave, by date."""
    await ctx.leaves.get(leave_id)
    return await ctx.attendance.list_for_leave(leave_id)
