# ruff: noqa: TC003
from __future__ import annotations

import datetime as dt
import enum
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.models.attendance import AttendanceRecord
from leave_ledger.models.enums import AttendanceStatus, AuditAction, AuditEntityType, LeaveCategory
from leave_ledger.schemas.attendance import AttendanceListResponse, AttendanceResponse
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.leave import LeaveRequest
    from leave_ledger.services.locks import KeyedLocks

logger = logging.getLogger(__name__)


class DayOutcome(enum.StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    REMOVED = "removed"


@dataclass(frozen=True)
class LeaveWindow:
    """Plain snapshot of the leave fields attendance sync works from."""

    leave_id: uuid.UUID
    employee_id: uuid.UUID
    leave_category: LeaveCategory
    start_date: dt.date
    end_date: dt.date

    @classmethod
    def of(cls, leave: LeaveRequest) -> LeaveWindow:
        return cls(
            leave_id=leave.id,
            employee_id=leave.employee_id,
            leave_category=LeaveCategory(leave.leave_category),
            start_date=leave.start_date,
            end_date=leave.end_date,
        )

    @property
    def note(self) -> str:
        return f"Leave: {self.leave_category.value}"


def build_attendance_response(record: AttendanceRecord) -> AttendanceResponse:
    return AttendanceResponse(
        id=record.id,
        employee_id=record.employee_id,
        date=record.date,
        status=AttendanceStatus(record.status),
        clock_in=record.clock_in,
        clock_out=record.clock_out,
        leave_id=record.leave_id,
        leave_category=LeaveCategory(record.leave_category) if record.leave_category else None,
        notes=record.notes,
    )


def _append_note(notes: str | None, note: str) -> str:
    if not notes:
        return note
    if note in notes:
        return notes
    return f"{notes}; {note}"


def _remove_note(notes: str | None, note: str) -> str | None:
    if not notes:
        return notes
    kept = [part for part in notes.split("; ") if part != note]
    return "; ".join(kept) or None


class AttendanceStore:
    """Per-day attendance reads and writes for one tenant.

    Every write path holds the (employee, date) lock, commits on its own and
    retries once as an update when an insert loses the unique-day race.
    """

    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID, locks: KeyedLocks) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._locks = locks

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get_day(self, employee_id: uuid.UUID, day: dt.date) -> AttendanceRecord | None:
        result = await self._session.execute(
            select(AttendanceRecord).where(
                col(AttendanceRecord.tenant_id) == self._tenant_id,
                col(AttendanceRecord.employee_id) == employee_id,
                col(AttendanceRecord.date) == day,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_leave(self, leave_id: uuid.UUID) -> list[AttendanceRecord]:
        result = await self._session.execute(
            select(AttendanceRecord)
            .where(
                col(AttendanceRecord.tenant_id) == self._tenant_id,
                col(AttendanceRecord.leave_id) == leave_id,
            )
            .order_by(col(AttendanceRecord.date))
        )
        return list(result.scalars().all())

    async def list_for_employee(
        self,
        employee_id: uuid.UUID,
        start_date: dt.date,
        end_date: dt.date,
    ) -> AttendanceListResponse:
        filters = [
            col(AttendanceRecord.tenant_id) == self._tenant_id,
            col(AttendanceRecord.employee_id) == employee_id,
            col(AttendanceRecord.date) >= start_date,
            col(AttendanceRecord.date) <= end_date,
        ]
        count_result = await self._session.execute(
            select(func.count()).select_from(AttendanceRecord).where(*filters)
        )
        result = await self._session.execute(
            select(AttendanceRecord).where(*filters).order_by(col(AttendanceRecord.date))
        )
        return AttendanceListResponse(
            items=[build_attendance_response(r) for r in result.scalars().all()],
            total=count_result.scalar_one(),
        )

    # -----------------------------------------------------------------------
    # Write helpers
    # -----------------------------------------------------------------------

    async def _run_day(
        self,
        employee_id: uuid.UUID,
        day: dt.date,
        apply: Callable[[AttendanceRecord | None], Awaitable[DayOutcome]],
    ) -> DayOutcome:
        """Run ``apply`` on the day's record and commit, holding the day lock."""
        attempt = 0
        async with self._locks.hold((employee_id, day)):
            while True:
                attempt += 1
                try:
                    record = await self.get_day(employee_id, day)
                    outcome = await apply(record)
                    await self._session.commit()
                except IntegrityError:
                    await self._session.rollback()
                    if attempt >= 2:
                        raise
                    logger.warning(
                        "Attendance for %s on %s created concurrently, retrying as update", employee_id, day
                    )
                    continue
                except Exception:
                    await self._session.rollback()
                    raise
                return outcome

    async def _audit(
        self,
        record: AttendanceRecord,
        action: AuditAction,
        before: dict[str, Any] | None,
        actor_id: uuid.UUID | None,
    ) -> None:
        await self._session.flush()
        await write_audit_log(
            self._session,
            tenant_id=self._tenant_id,
            actor_id=actor_id,
            entity_type=AuditEntityType.ATTENDANCE,
            entity_id=record.id,
            action=action,
            before_json=before,
            after_json=model_to_audit_dict(record),
        )

    # -----------------------------------------------------------------------
    # Leave sync primitives
    # -----------------------------------------------------------------------

    async def apply_leave_day(
        self,
        window: LeaveWindow,
        day: dt.date,
        actor_id: uuid.UUID | None = None,
    ) -> DayOutcome:
        """Mark ``day`` as covered by the leave.

        Records with clock data keep their status and are only annotated.
        """

        async def _apply(record: AttendanceRecord | None) -> DayOutcome:
            if record is None:
                record = AttendanceRecord(
                    tenant_id=self._tenant_id,
                    employee_id=window.employee_id,
                    date=day,
                    status=AttendanceStatus.ON_LEAVE.value,
                    leave_id=window.leave_id,
                    leave_category=window.leave_category.value,
                )
                self._session.add(record)
                await self._audit(record, AuditAction.SYNC, None, actor_id)
                return DayOutcome.CREATED

            before = model_to_audit_dict(record)
            if record.has_clock_data:
                notes = _append_note(record.notes, window.note)
                if (
                    record.leave_id != window.leave_id
                    or record.leave_category != window.leave_category.value
                    or record.notes != notes
                ):
                    record.leave_id = window.leave_id
                    record.leave_category = window.leave_category.value
                    record.notes = notes
                    record.updated_at = dt.datetime.now(dt.UTC)
                    await self._audit(record, AuditAction.SYNC, before, actor_id)
                return DayOutcome.SKIPPED

            if (
                record.status != AttendanceStatus.ON_LEAVE.value
                or record.leave_id != window.leave_id
                or record.leave_category != window.leave_category.value
            ):
                record.status = AttendanceStatus.ON_LEAVE.value
                record.leave_id = window.leave_id
                record.leave_category = window.leave_category.value
                record.updated_at = dt.datetime.now(dt.UTC)
                await self._audit(record, AuditAction.SYNC, before, actor_id)
            return DayOutcome.UPDATED

        return await self._run_day(window.employee_id, day, _apply)

    async def revert_leave_day(
        self,
        window: LeaveWindow,
        day: dt.date,
        actor_id: uuid.UUID | None = None,
    ) -> DayOutcome:
        """Detach the leave from ``day``. Rows are never deleted.

        Only records pointing at this leave are touched. Without clock data
        the record goes back to ``absent``; with clock data only the leave
        reference and its note are cleared.
        """

        async def _apply(record: AttendanceRecord | None) -> DayOutcome:
            if record is None or record.leave_id != window.leave_id:
                return DayOutcome.SKIPPED

            before = model_to_audit_dict(record)
            record.notes = _remove_note(record.notes, window.note)
            record.leave_id = None
            record.leave_category = None
            record.updated_at = dt.datetime.now(dt.UTC)
            if record.has_clock_data:
                await self._audit(record, AuditAction.SYNC, before, actor_id)
                return DayOutcome.SKIPPED

            record.status = AttendanceStatus.ABSENT.value
            await self._audit(record, AuditAction.SYNC, before, actor_id)
            return DayOutcome.REMOVED

        return await self._run_day(window.employee_id, day, _apply)

    # -----------------------------------------------------------------------
    # Clock-in/out write path
    # -----------------------------------------------------------------------

    async def record_clock_event(
        self,
        employee_id: uuid.UUID,
        day: dt.date,
        clock_in: dt.datetime | None = None,
        clock_out: dt.datetime | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> AttendanceRecord:
        """Record a real clock event; the day becomes ``present``.

        An existing leave annotation is kept so the overlap stays visible.
        """
        saved: list[AttendanceRecord] = []

        async def _apply(record: AttendanceRecord | None) -> DayOutcome:
            if record is None:
                record = AttendanceRecord(
                    tenant_id=self._tenant_id,
                    employee_id=employee_id,
                    date=day,
                    status=AttendanceStatus.PRESENT.value,
                    clock_in=clock_in,
                    clock_out=clock_out,
                )
                self._session.add(record)
                await self._audit(record, AuditAction.CREATE, None, actor_id)
                saved.append(record)
                return DayOutcome.CREATED

            before = model_to_audit_dict(record)
            if clock_in is not None:
                record.clock_in = clock_in
            if clock_out is not None:
                record.clock_out = clock_out
            record.status = AttendanceStatus.PRESENT.value
            record.updated_at = dt.datetime.now(dt.UTC)
            await self._audit(record, AuditAction.UPDATE, before, actor_id)
            saved.append(record)
            return DayOutcome.UPDATED

        await self._run_day(employee_id, day, _apply)
        return saved[-1]
