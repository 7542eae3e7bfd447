"""Leave requests and the approval workflow that drives the ledger and attendance.

Every transition commits the leave first. Ledger and attendance updates then
run as independent best-effort side effects: a failure is logged and
reported in ``LeaveActionResult.side_effects`` and never undoes the
transition. Backfill reconciles whatever a failed side effect left behind.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.exceptions import Conflict, NotFound
from leave_ledger.models.enums import AuditAction, AuditEntityType, LeaveCategory, LeaveStatus, TransactionType
from leave_ledger.models.leave import LeaveRequest
from leave_ledger.schemas.leave import LeaveActionResponse, LeaveListResponse, LeaveResponse, SideEffectReport
from leave_ledger.services.attendance import LeaveWindow
from leave_ledger.services.attendance_sync import (
    create_attendance_for_leave,
    remove_attendance_for_leave,
    update_attendance_for_leave,
)
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.fiscal import count_leave_days, label_for_date, validate_range
from leave_ledger.services.policy import parse_category

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.ledger import LeaveLedgerEntry
    from leave_ledger.schemas.attendance import SyncResult
    from leave_ledger.schemas.leave import SubmitLeavePayload
    from leave_ledger.services.tenant import TenantContext

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = [LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value]


def build_leave_response(leave: LeaveRequest) -> LeaveResponse:
    """Map a leave model to its response schema."""
    return LeaveResponse(
        id=leave.id,
        tenant_id=leave.tenant_id,
        employee_id=leave.employee_id,
        leave_category=LeaveCategory(leave.leave_category),
        start_date=leave.start_date,
        end_date=leave.end_date,
        is_half_day=leave.is_half_day,
        number_of_days=leave.number_of_days,
        reason=leave.reason,
        status=LeaveStatus(leave.status),
        approved_by=leave.approved_by,
        decided_at=leave.decided_at,
        decision_note=leave.decision_note,
        created_at=leave.created_at,
        updated_at=leave.updated_at,
    )


@dataclass
class LeaveActionResult:
    """A committed leave transition plus the outcome of each side effect."""

    leave: LeaveResponse
    side_effects: list[SideEffectReport] = field(default_factory=list)

    @property
    def fully_synced(self) -> bool:
        return all(effect.succeeded for effect in self.side_effects)

    def to_response(self) -> LeaveActionResponse:
        return LeaveActionResponse(leave=self.leave, side_effects=self.side_effects)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class LeaveStore:
    """Leave request persistence for one tenant."""

    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def get(self, leave_id: uuid.UUID, *, for_update: bool = False) -> LeaveRequest:
        """Fetch a leave by ID. Raises 404 if not found."""
        query = select(LeaveRequest).where(
            col(LeaveRequest.id) == leave_id,
            col(LeaveRequest.tenant_id) == self._tenant_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        leave = result.scalar_one_or_none()
        if leave is None:
            msg = f"Leave request {leave_id} not found"
            raise NotFound(msg)
        return leave

    async def check_overlap(
        self,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude_leave_id: uuid.UUID | None = None,
    ) -> None:
        """Raise 409 if a pending or approved leave of the employee overlaps the range."""
        query = select(LeaveRequest.id).where(
            col(LeaveRequest.tenant_id) == self._tenant_id,
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.status).in_(_ACTIVE_STATUSES),
            col(LeaveRequest.start_date) <= end_date,
            col(LeaveRequest.end_date) >= start_date,
        )
        if exclude_leave_id is not None:
            query = query.where(col(LeaveRequest.id) != exclude_leave_id)

        result = await self._session.execute(query.limit(1))
        if result.scalar_one_or_none() is not None:
            msg = "Leave overlaps with an existing pending or approved leave"
            raise Conflict(msg)

    async def create(
        self,
        employee_id: uuid.UUID,
        category: str | LeaveCategory,
        start_date: date,
        end_date: date,
        *,
        is_half_day: bool = False,
        reason: str | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> LeaveRequest:
        """Persist a new pending leave."""
        category = parse_category(category)
        number_of_days = count_leave_days(start_date, end_date, is_half_day)
        await self.check_overlap(employee_id, start_date, end_date)

        leave = LeaveRequest(
            tenant_id=self._tenant_id,
            employee_id=employee_id,
            leave_category=category.value,
            start_date=start_date,
            end_date=end_date,
            is_half_day=is_half_day,
            number_of_days=number_of_days,
            reason=reason,
            status=LeaveStatus.PENDING.value,
        )
        self._session.add(leave)
        await self._session.flush()

        await write_audit_log(
            self._session,
            tenant_id=self._tenant_id,
            actor_id=actor_id,
            entity_type=AuditEntityType.LEAVE_REQUEST,
            entity_id=leave.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(leave),
        )

        await self._session.commit()
        await self._session.refresh(leave)
        return leave

    async def list_leaves(
        self,
        status_filter: str | None = None,
        employee_id: uuid.UUID | None = None,
        category: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> LeaveListResponse:
        """List leaves with optional filters, ordered by start_date DESC."""
        filters: list[Any] = [col(LeaveRequest.tenant_id) == self._tenant_id]
        if status_filter is not None:
            filters.append(col(LeaveRequest.status) == status_filter)
        if employee_id is not None:
            filters.append(col(LeaveRequest.employee_id) == employee_id)
        if category is not None:
            filters.append(col(LeaveRequest.leave_category) == parse_category(category).value)

        count_result = await self._session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
        total = count_result.scalar_one()

        result = await self._session.execute(
            select(LeaveRequest)
            .where(*filters)
            .order_by(col(LeaveRequest.start_date).desc(), col(LeaveRequest.created_at).desc())
            .offset(offset)
            .limit(limit)
        )
        return LeaveListResponse(items=[build_leave_response(leave) for leave in result.scalars().all()], total=total)

    async def list_approved(self, employee_id: uuid.UUID | None = None) -> list[LeaveRequest]:
        """Approved leaves, oldest first."""
        query = select(LeaveRequest).where(
            col(LeaveRequest.tenant_id) == self._tenant_id,
            col(LeaveRequest.status) == LeaveStatus.APPROVED.value,
        )
        if employee_id is not None:
            query = query.where(col(LeaveRequest.employee_id) == employee_id)
        result = await self._session.execute(query.order_by(col(LeaveRequest.start_date)))
        return list(result.scalars().all())

    async def transition(
        self,
        leave: LeaveRequest,
        new_status: LeaveStatus,
        action: AuditAction,
        actor_id: uuid.UUID | None,
        decision_note: str | None = None,
    ) -> LeaveResponse:
        """Move ``leave`` to ``new_status``, audit and commit."""
        before = model_to_audit_dict(leave)
        now = datetime.now(UTC)

        leave.status = new_status.value
        leave.decided_at = now
        leave.updated_at = now
        if new_status == LeaveStatus.APPROVED:
            leave.approved_by = actor_id
        if decision_note is not None:
            leave.decision_note = decision_note
        await self._session.flush()

        await write_audit_log(
            self._session,
            tenant_id=self._tenant_id,
            actor_id=actor_id,
            entity_type=AuditEntityType.LEAVE_REQUEST,
            entity_id=leave.id,
            action=action,
            before_json=before,
            after_json=model_to_audit_dict(leave),
        )

        await self._session.commit()
        await self._session.refresh(leave)
        return build_leave_response(leave)


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------


async def _side_effect(
    ctx: TenantContext,
    name: str,
    effect: Callable[[], Awaitable[SideEffectReport]],
) -> SideEffectReport:
    """Run one side effect, turning any failure into a report."""
    try:
        return await effect()
    except Exception as exc:
        logger.warning("Side effect %s failed: %s", name, exc, exc_info=True)
        await ctx.session.rollback()
        return SideEffectReport(name=name, succeeded=False, error=str(exc))


def _ledger_report(entry: LeaveLedgerEntry | None, skip_reason: str = "") -> SideEffectReport:
    if entry is None:
        return SideEffectReport(name="ledger", succeeded=True, skipped=True, detail={"reason": skip_reason})
    return SideEffectReport(
        name="ledger",
        succeeded=True,
        detail={
            "entry_id": str(entry.id),
            "transaction_type": entry.transaction_type,
            "amount": str(entry.amount),
            "balance_after": str(entry.balance_after),
        },
    )


def _window_details(window: LeaveWindow, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "start_date": window.start_date.isoformat(),
        "end_date": window.end_date.isoformat(),
        **(extra or {}),
    }


def _ledger_effect(
    ctx: TenantContext,
    window: LeaveWindow,
    transaction_type: TransactionType,
    amount: Decimal,
    actor_id: uuid.UUID | None,
    description: str,
) -> Callable[[], Awaitable[SideEffectReport]]:
    async def _run() -> SideEffectReport:
        entry = await ctx.ledger.append_transaction(
            window.employee_id,
            window.leave_category,
            transaction_type,
            amount,
            related_leave_request_id=window.leave_id,
            details=_window_details(window),
            description=description,
            recorded_by=actor_id,
            fiscal_year=label_for_date(window.start_date),
        )
        return _ledger_report(entry)

    return _run


def _settle_effect(
    ctx: TenantContext,
    window: LeaveWindow,
    transaction_type: TransactionType,
    target_net: Decimal,
    actor_id: uuid.UUID | None,
    description: str,
    details: dict[str, Any] | None = None,
) -> Callable[[], Awaitable[SideEffectReport]]:
    """Post whatever brings the leave's ledger net to ``target_net``.

    A leave whose approval debit was never written (or was retracted) gets
    no credit; the report is marked skipped.
    """

    async def _run() -> SideEffectReport:
        entry = await ctx.ledger.settle_leave(
            window.employee_id,
            window.leave_category,
            window.leave_id,
            transaction_type,
            target_net,
            details=_window_details(window, details),
            description=description,
            recorded_by=actor_id,
            fiscal_year=label_for_date(window.start_date),
        )
        return _ledger_report(entry, "no outstanding ledger debit for this leave")

    return _run


def _attendance_effect(
    sync: Callable[[], Awaitable[Any]],
) -> Callable[[], Awaitable[SideEffectReport]]:
    async def _run() -> SideEffectReport:
        result = await sync()
        return SideEffectReport(
            name="attendance",
            succeeded=not result.partial_failure,
            error=f"{len(result.errors)} day(s) failed" if result.partial_failure else None,
            detail=result.model_dump(),
        )

    return _run


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


async def submit_leave(
    ctx: TenantContext,
    payload: SubmitLeavePayload,
    actor_id: uuid.UUID | None = None,
) -> LeaveResponse:
    leave = await ctx.leaves.create(
        payload.employee_id,
        payload.leave_category,
        payload.start_date,
        payload.end_date,
        is_half_day=payload.is_half_day,
        reason=payload.reason,
        actor_id=actor_id,
    )
    return build_leave_response(leave)


async def approve_leave(
    ctx: TenantContext,
    leave_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    note: str | None = None,
) -> LeaveActionResult:
    """Approve a pending leave, then debit the ledger and mark attendance."""
    leave = await ctx.leaves.get(leave_id, for_update=True)
    if leave.status != LeaveStatus.PENDING.value:
        msg = f"Only pending leaves can be approved (leave is {leave.status})"
        raise Conflict(msg)

    response = await ctx.leaves.transition(leave, LeaveStatus.APPROVED, AuditAction.APPROVE, actor_id, note)
    window = LeaveWindow.of(leave)
    days = leave.number_of_days

    side_effects = [
        await _side_effect(
            ctx,
            "ledger",
            _ledger_effect(ctx, window, TransactionType.USED, -days, actor_id, f"Leave approved ({days} day(s))"),
        ),
        await _side_effect(
            ctx,
            "attendance",
            _attendance_effect(lambda: create_attendance_for_leave(ctx, window, actor_id)),
        ),
    ]
    return LeaveActionResult(leave=response, side_effects=side_effects)


async def reject_leave(
    ctx: TenantContext,
    leave_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    note: str | None = None,
) -> LeaveActionResult:
    """Reject a pending leave. Nothing else changes."""
    leave = await ctx.leaves.get(leave_id, for_update=True)
    if leave.status != LeaveStatus.PENDING.value:
        msg = f"Only pending leaves can be rejected (leave is {leave.status})"
        raise Conflict(msg)

    response = await ctx.leaves.transition(leave, LeaveStatus.REJECTED, AuditAction.REJECT, actor_id, note)
    return LeaveActionResult(leave=response)


async def cancel_leave(
    ctx: TenantContext,
    leave_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    note: str | None = None,
) -> LeaveActionResult:
    """Cancel a pending or approved leave.

    Cancelling an approved leave credits back what the ledger actually
    debited for it and detaches it from attendance.
    """
    leave = await ctx.leaves.get(leave_id, for_update=True)
    if leave.status not in _ACTIVE_STATUSES:
        msg = f"Only pending or approved leaves can be cancelled (leave is {leave.status})"
        raise Conflict(msg)
    was_approved = leave.status == LeaveStatus.APPROVED.value

    response = await ctx.leaves.transition(leave, LeaveStatus.CANCELLED, AuditAction.CANCEL, actor_id, note)
    if not was_approved:
        return LeaveActionResult(leave=response)

    window = LeaveWindow.of(leave)
    days = leave.number_of_days
    side_effects = [
        await _side_effect(
            ctx,
            "ledger",
            _settle_effect(
                ctx, window, TransactionType.RESTORED, Decimal(0), actor_id, f"Leave cancelled ({days} day(s))"
            ),
        ),
        await _side_effect(
            ctx,
            "attendance",
            _attendance_effect(lambda: remove_attendance_for_leave(ctx, window, actor_id)),
        ),
    ]
    return LeaveActionResult(leave=response, side_effects=side_effects)


async def modify_leave_dates(
    ctx: TenantContext,
    leave_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    is_half_day: bool | None = None,
    actor_id: uuid.UUID | None = None,
) -> LeaveActionResult:
    """Move an approved leave to new dates.

    The ledger is adjusted so the leave's net debit matches the new day
    count, and attendance is re-synced from the old range to the new one.
    """
    validate_range(start_date, end_date)
    leave = await ctx.leaves.get(leave_id, for_update=True)
    if leave.status != LeaveStatus.APPROVED.value:
        msg = f"Only approved leaves can have their dates modified (leave is {leave.status})"
        raise Conflict(msg)

    half_day = leave.is_half_day if is_half_day is None else is_half_day
    new_days = count_leave_days(start_date, end_date, half_day)
    await ctx.leaves.check_overlap(leave.employee_id, start_date, end_date, exclude_leave_id=leave.id)

    old_start, old_end, old_days = leave.start_date, leave.end_date, leave.number_of_days
    before = model_to_audit_dict(leave)
    leave.start_date = start_date
    leave.end_date = end_date
    leave.is_half_day = half_day
    leave.number_of_days = new_days
    leave.updated_at = datetime.now(UTC)
    await ctx.session.flush()

    await write_audit_log(
        ctx.session,
        tenant_id=ctx.tenant_id,
        actor_id=actor_id,
        entity_type=AuditEntityType.LEAVE_REQUEST,
        entity_id=leave.id,
        action=AuditAction.MODIFY,
        before_json=before,
        after_json=model_to_audit_dict(leave),
    )
    await ctx.session.commit()
    await ctx.session.refresh(leave)
    response = build_leave_response(leave)
    window = LeaveWindow.of(leave)

    side_effects: list[SideEffectReport] = []
    delta = old_days - new_days
    if delta != 0:
        side_effects.append(
            await _side_effect(
                ctx,
                "ledger",
                _settle_effect(
                    ctx,
                    window,
                    TransactionType.ADJUSTMENT,
                    -new_days,
                    actor_id,
                    f"Leave dates changed ({old_days} -> {new_days} day(s))",
                    details={"old_start_date": old_start.isoformat(), "old_end_date": old_end.isoformat()},
                ),
            )
        )
    side_effects.append(
        await _side_effect(
            ctx,
            "attendance",
            _attendance_effect(lambda: update_attendance_for_leave(ctx, window, old_start, old_end, actor_id)),
        )
    )
    return LeaveActionResult(leave=response, side_effects=side_effects)


async def resync_leave_attendance(
    ctx: TenantContext,
    leave_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> SyncResult:
    """Re-run the approval sync for one leave. Raises 409 unless it is approved."""
    leave = await ctx.leaves.get(leave_id)
    if leave.status != LeaveStatus.APPROVED.value:
        msg = f"Only approved leaves can be synced to attendance (leave is {leave.status})"
        raise Conflict(msg)
    result = await create_attendance_for_leave(ctx, LeaveWindow.of(leave), actor_id)
    logger.info(
        "Attendance re-sync for leave %s: created=%d updated=%d skipped=%d errors=%d",
        leave_id,
        result.created,
        result.updated,
        result.skipped,
        len(result.errors),
    )
    return result
