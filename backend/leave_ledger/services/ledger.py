"""Append-only leave ledger.

Balances are never stored as counters: the current balance of an
(employee, category) key is the ``balance_after`` of its latest non-deleted
entry. Appends for one key are serialized so the
``balance_before``/``balance_after`` chain never interleaves:

1. an in-process asyncio lock per key (owned by the tenant's lock registry),
2. ``SELECT ... FOR UPDATE`` on the key's latest row,
3. a unique ``(tenant, employee, category, sequence)`` constraint that turns a
   cross-process race into an IntegrityError, rolled back and retried.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import (
    ConcurrencyConflict,
    Conflict,
    DuplicateTransaction,
    NotFound,
    ValidationError,
)
from leave_ledger.models.enums import AuditAction, AuditEntityType, LeaveCategory, TransactionType
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.schemas.ledger import (
    BalanceSummaryItem,
    BalanceSummaryResponse,
    LedgerEntryResponse,
)
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.fiscal import label_for_date
from leave_ledger.services.policy import parse_category

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.services.locks import KeyedLocks
    from leave_ledger.services.policy import PolicyConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

LedgerKey = tuple[uuid.UUID, LeaveCategory]

_ZERO = Decimal(0)

# Required sign of ``amount`` per transaction type; None means either.
_AMOUNT_SIGN: dict[TransactionType, int | None] = {
    TransactionType.OPENING: None,
    TransactionType.ALLOCATED: 1,
    TransactionType.USED: -1,
    TransactionType.RESTORED: 1,
    TransactionType.CARRY_FORWARD: 1,
    TransactionType.ENCASHED: -1,
    TransactionType.ADJUSTMENT: None,
    TransactionType.EXPIRED: -1,
}

# Types that may be posted at most once per leave request.
_ONCE_PER_LEAVE = {TransactionType.USED, TransactionType.RESTORED}
_LEAVE_USAGE = {TransactionType.USED.value, TransactionType.RESTORED.value}


def parse_transaction_type(value: str | TransactionType) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        msg = f"Unknown transaction type: {value!r}"
        raise ValidationError(msg) from None


def build_ledger_entry_response(entry: LeaveLedgerEntry) -> LedgerEntryResponse:
    """Map a ledger entry model to its response schema."""
    return LedgerEntryResponse(
        id=entry.id,
        employee_id=entry.employee_id,
        leave_category=LeaveCategory(entry.leave_category),
        transaction_type=TransactionType(entry.transaction_type),
        sequence=entry.sequence,
        amount=entry.amount,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
        related_leave_request_id=entry.related_leave_request_id,
        occurred_at=entry.occurred_at,
        fiscal_year=entry.fiscal_year,
        description=entry.description,
        details=entry.details,
        recorded_by=entry.recorded_by,
        created_at=entry.created_at,
    )


class LedgerStore:
    """Ledger reads and serialized appends for one tenant."""

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: uuid.UUID,
        policies: PolicyConfig,
        locks: KeyedLocks,
        *,
        max_retries: int = 3,
    ) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._policies = policies
        self._locks = locks
        self._max_retries = max_retries

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _key_filter(self, employee_id: uuid.UUID, category: LeaveCategory) -> list[Any]:
        return [
            col(LeaveLedgerEntry.tenant_id) == self._tenant_id,
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.leave_category) == category.value,
        ]

    async def _latest_entry(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        *,
        for_update: bool = False,
    ) -> LeaveLedgerEntry | None:
        """Most recent non-deleted entry for the key."""
        query = (
            select(LeaveLedgerEntry)
            .where(*self._key_filter(employee_id, category), col(LeaveLedgerEntry.is_deleted).is_(False))
            .order_by(col(LeaveLedgerEntry.sequence).desc())
            .limit(1)
        )
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def _max_sequence(self, employee_id: uuid.UUID, category: LeaveCategory) -> int | None:
        """Highest sequence for the key, retracted entries included."""
        result = await self._session.execute(
            select(func.max(col(LeaveLedgerEntry.sequence))).where(*self._key_filter(employee_id, category))
        )
        return result.scalar_one_or_none()

    async def _find_leave_entry(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        leave_request_id: uuid.UUID,
        transaction_type: TransactionType,
    ) -> LeaveLedgerEntry | None:
        result = await self._session.execute(
            select(LeaveLedgerEntry)
            .where(
                *self._key_filter(employee_id, category),
                col(LeaveLedgerEntry.related_leave_request_id) == leave_request_id,
                col(LeaveLedgerEntry.transaction_type) == transaction_type.value,
                col(LeaveLedgerEntry.is_deleted).is_(False),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_fiscal_year_entry(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        transaction_type: TransactionType,
        fiscal_year: str,
    ) -> LeaveLedgerEntry | None:
        """Non-deleted entry of ``transaction_type`` tagged with ``fiscal_year``."""
        result = await self._session.execute(
            select(LeaveLedgerEntry)
            .where(
                *self._key_filter(employee_id, category),
                col(LeaveLedgerEntry.transaction_type) == transaction_type.value,
                col(LeaveLedgerEntry.fiscal_year) == fiscal_year,
                col(LeaveLedgerEntry.is_deleted).is_(False),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def stage_entry(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        transaction_type: TransactionType,
        amount: Decimal,
        *,
        related_leave_request_id: uuid.UUID | None = None,
        details: dict[str, Any] | None = None,
        description: str | None = None,
        recorded_by: uuid.UUID | None = None,
        occurred_at: datetime | None = None,
        fiscal_year: str | None = None,
        unique_per_fiscal_year: bool = False,
        allow_zero: bool = False,
    ) -> LeaveLedgerEntry:
        """Add one entry to the session without committing.

        Must run inside ``run_atomic`` holding the key's lock. Raises
        DuplicateTransaction when ``unique_per_fiscal_year`` finds an existing
        entry of the same type and fiscal-year tag.
        """
        amount = Decimal(amount)
        if amount == _ZERO and not allow_zero:
            msg = "Ledger transactions must have a non-zero amount"
            raise ValidationError(msg)
        sign = _AMOUNT_SIGN[transaction_type]
        if sign is not None and amount * sign < 0:
            expected = "positive" if sign > 0 else "negative"
            msg = f"{transaction_type.value} transactions must have a {expected} amount"
            raise ValidationError(msg)

        occurred_at = occurred_at or datetime.now(UTC)
        fiscal_year = fiscal_year or label_for_date(occurred_at.date())

        if unique_per_fiscal_year:
            existing = await self.find_fiscal_year_entry(employee_id, category, transaction_type, fiscal_year)
            if existing is not None:
                msg = f"{transaction_type.value} already recorded for {category.value} in {fiscal_year}"
                raise DuplicateTransaction(msg)

        latest = await self._latest_entry(employee_id, category, for_update=True)
        max_sequence = await self._max_sequence(employee_id, category)

        if max_sequence is None and transaction_type != TransactionType.OPENING:
            # Fresh key: open it at the policy allocation so the first debit
            # starts from the tenant default rather than zero.
            policy = await self._policies.get(category)
            if policy.annual_allocation != _ZERO:
                latest = await self.stage_entry(
                    employee_id,
                    category,
                    TransactionType.OPENING,
                    policy.annual_allocation,
                    description="Opening balance",
                    details={"source": "policy_allocation"},
                    occurred_at=occurred_at,
                    fiscal_year=fiscal_year,
                )
                max_sequence = latest.sequence

        balance_before = latest.balance_after if latest is not None else _ZERO
        entry = LeaveLedgerEntry(
            tenant_id=self._tenant_id,
            employee_id=employee_id,
            leave_category=category.value,
            transaction_type=transaction_type.value,
            sequence=(max_sequence or 0) + 1,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_before + amount,
            related_leave_request_id=related_leave_request_id,
            occurred_at=occurred_at,
            fiscal_year=fiscal_year,
            description=description,
            details=details,
            recorded_by=recorded_by,
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def run_atomic(self, keys: Sequence[LedgerKey], stage: Callable[[], Awaitable[T]]) -> T:
        """Run ``stage`` and commit it as one unit while holding the key locks.

        Lost races on the sequence constraint are rolled back and retried up
        to ``max_retries`` times before ConcurrencyConflict is raised. Any
        other failure rolls the unit back and propagates.
        """
        attempt = 0
        async with self._locks.hold(*keys):
            while True:
                attempt += 1
                try:
                    result = await stage()
                    await self._session.commit()
                except IntegrityError:
                    await self._session.rollback()
                    if attempt >= self._max_retries:
                        msg = f"Ledger append lost the race for {len(keys)} key(s) after {attempt} attempts"
                        raise ConcurrencyConflict(msg) from None
                    logger.warning("Ledger append conflict on attempt %d, retrying", attempt)
                    continue
                except Exception:
                    await self._session.rollback()
                    raise
                return result

    # -----------------------------------------------------------------------
    # Write path
    # -----------------------------------------------------------------------

    async def append_transaction(
        self,
        employee_id: uuid.UUID,
        category: str | LeaveCategory,
        transaction_type: str | TransactionType,
        amount: Decimal | int | str,
        *,
        related_leave_request_id: uuid.UUID | None = None,
        details: dict[str, Any] | None = None,
        description: str | None = None,
        recorded_by: uuid.UUID | None = None,
        occurred_at: datetime | None = None,
        fiscal_year: str | None = None,
    ) -> LeaveLedgerEntry:
        """Append one balance-affecting transaction and return it.

        ``used`` and ``restored`` transactions tied to a leave request are
        written at most once per request; a repeat returns the existing entry.
        """
        category = parse_category(category)
        transaction_type = parse_transaction_type(transaction_type)
        amount = Decimal(amount)

        async def _stage() -> LeaveLedgerEntry:
            if related_leave_request_id is not None and transaction_type in _ONCE_PER_LEAVE:
                existing = await self._find_leave_entry(
                    employee_id, category, related_leave_request_id, transaction_type
                )
                if existing is not None:
                    logger.info(
                        "Ledger %s for leave %s already recorded as %s",
                        transaction_type.value,
                        related_leave_request_id,
                        existing.id,
                    )
                    return existing
            return await self.stage_entry(
                employee_id,
                category,
                transaction_type,
                amount,
                related_leave_request_id=related_leave_request_id,
                details=details,
                description=description,
                recorded_by=recorded_by,
                occurred_at=occurred_at,
                fiscal_year=fiscal_year,
            )

        return await self.run_atomic([(employee_id, category)], _stage)

    async def leave_entries(
        self,
        employee_id: uuid.UUID,
        category: str | LeaveCategory,
        leave_request_id: uuid.UUID,
    ) -> list[LeaveLedgerEntry]:
        """Non-deleted entries tied to one leave request, in append order."""
        category = parse_category(category)
        result = await self._session.execute(
            select(LeaveLedgerEntry)
            .where(
                *self._key_filter(employee_id, category),
                col(LeaveLedgerEntry.related_leave_request_id) == leave_request_id,
                col(LeaveLedgerEntry.is_deleted).is_(False),
            )
            .order_by(col(LeaveLedgerEntry.sequence))
        )
        return list(result.scalars().all())

    async def settle_leave(
        self,
        employee_id: uuid.UUID,
        category: str | LeaveCategory,
        leave_request_id: uuid.UUID,
        transaction_type: str | TransactionType,
        target_net: Decimal,
        *,
        details: dict[str, Any] | None = None,
        description: str | None = None,
        recorded_by: uuid.UUID | None = None,
        fiscal_year: str | None = None,
    ) -> LeaveLedgerEntry | None:
        """Bring the net of a leave's entries to ``target_net``.

        The posted amount is ``target_net`` minus the sum of the leave's
        non-deleted entries, computed under the key lock. Returns None and
        writes nothing when the leave has no ``used`` debit or nothing is owed.
        """
        category = parse_category(category)
        transaction_type = parse_transaction_type(transaction_type)
        target_net = Decimal(target_net)

        async def _stage() -> LeaveLedgerEntry | None:
            entries = await self.leave_entries(employee_id, category, leave_request_id)
            if not any(e.transaction_type == TransactionType.USED.value for e in entries):
                logger.info("Leave %s has no used entry, nothing to settle", leave_request_id)
                return None
            amount = target_net - sum((e.amount for e in entries), _ZERO)
            sign = _AMOUNT_SIGN[transaction_type]
            if amount == _ZERO or (sign is not None and amount * sign < 0):
                logger.info("Leave %s already nets to %s, nothing to settle", leave_request_id, target_net)
                return None
            return await self.stage_entry(
                employee_id,
                category,
                transaction_type,
                amount,
                related_leave_request_id=leave_request_id,
                details=details,
                description=description,
                recorded_by=recorded_by,
                fiscal_year=fiscal_year,
            )

        return await self.run_atomic([(employee_id, category)], _stage)

    async def retract_entry(
        self,
        entry_id: uuid.UUID,
        reason: str,
        actor_id: uuid.UUID | None = None,
    ) -> LeaveLedgerEntry:
        """Retract an erroneous entry and return the correcting entry.

        Only the latest non-deleted entry of its key can be retracted: it is
        flagged deleted and a zero-amount adjustment restates the balance that
        preceded it. Older entries are corrected with a new adjustment.
        """
        entry = await self.get_entry(entry_id)
        if entry.is_deleted:
            msg = f"Ledger entry {entry_id} is already retracted"
            raise Conflict(msg)
        employee_id = entry.employee_id
        category = LeaveCategory(entry.leave_category)

        async def _stage() -> LeaveLedgerEntry:
            latest = await self._latest_entry(employee_id, category, for_update=True)
            if latest is None or latest.id != entry_id:
                msg = "Only the latest entry of a balance can be retracted; post an adjustment instead"
                raise ValidationError(msg)

            before = model_to_audit_dict(latest)
            latest.is_deleted = True
            await self._session.flush()

            correction = await self.stage_entry(
                employee_id,
                category,
                TransactionType.ADJUSTMENT,
                _ZERO,
                allow_zero=True,
                description=f"Retraction: {reason}",
                details={
                    "retracted_entry_id": str(latest.id),
                    "retracted_type": latest.transaction_type,
                    "retracted_amount": str(latest.amount),
                    "reason": reason,
                },
                recorded_by=actor_id,
            )
            await write_audit_log(
                self._session,
                tenant_id=self._tenant_id,
                actor_id=actor_id,
                entity_type=AuditEntityType.LEDGER_ENTRY,
                entity_id=latest.id,
                action=AuditAction.RETRACT,
                before_json=before,
                after_json=model_to_audit_dict(latest),
            )
            return correction

        return await self.run_atomic([(employee_id, category)], _stage)

    # -----------------------------------------------------------------------
    # Read path
    # -----------------------------------------------------------------------

    async def get_entry(self, entry_id: uuid.UUID) -> LeaveLedgerEntry:
        result = await self._session.execute(
            select(LeaveLedgerEntry).where(
                col(LeaveLedgerEntry.id) == entry_id,
                col(LeaveLedgerEntry.tenant_id) == self._tenant_id,
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            msg = f"Ledger entry {entry_id} not found"
            raise NotFound(msg)
        return entry

    async def current_balance(self, employee_id: uuid.UUID, category: str | LeaveCategory) -> Decimal:
        """Latest ``balance_after`` for the key, else the policy allocation."""
        category = parse_category(category)
        latest = await self._latest_entry(employee_id, category)
        if latest is not None:
            return latest.balance_after
        policy = await self._policies.get(category)
        return policy.annual_allocation

    def _history_filters(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory | None,
        fiscal_year: str | None,
        transaction_type: TransactionType | None,
    ) -> list[Any]:
        filters = [
            col(LeaveLedgerEntry.tenant_id) == self._tenant_id,
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.is_deleted).is_(False),
        ]
        if category is not None:
            filters.append(col(LeaveLedgerEntry.leave_category) == category.value)
        if fiscal_year is not None:
            filters.append(col(LeaveLedgerEntry.fiscal_year) == fiscal_year)
        if transaction_type is not None:
            filters.append(col(LeaveLedgerEntry.transaction_type) == transaction_type.value)
        return filters

    async def history(
        self,
        employee_id: uuid.UUID,
        category: str | LeaveCategory | None = None,
        fiscal_year: str | None = None,
        transaction_type: str | TransactionType | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[LeaveLedgerEntry]:
        """Non-deleted entries for an employee, newest first."""
        filters = self._history_filters(
            employee_id,
            parse_category(category) if category is not None else None,
            fiscal_year,
            parse_transaction_type(transaction_type) if transaction_type is not None else None,
        )
        query = (
            select(LeaveLedgerEntry)
            .where(*filters)
            .order_by(col(LeaveLedgerEntry.created_at).desc(), col(LeaveLedgerEntry.sequence).desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def count_history(
        self,
        employee_id: uuid.UUID,
        category: str | LeaveCategory | None = None,
        fiscal_year: str | None = None,
        transaction_type: str | TransactionType | None = None,
    ) -> int:
        filters = self._history_filters(
            employee_id,
            parse_category(category) if category is not None else None,
            fiscal_year,
            parse_transaction_type(transaction_type) if transaction_type is not None else None,
        )
        result = await self._session.execute(select(func.count()).select_from(LeaveLedgerEntry).where(*filters))
        return result.scalar_one()

    async def entries_of_type(
        self,
        transaction_type: TransactionType,
        employee_id: uuid.UUID | None = None,
        category: LeaveCategory | None = None,
    ) -> list[LeaveLedgerEntry]:
        """Non-deleted entries of one type across the tenant, oldest first."""
        filters = [
            col(LeaveLedgerEntry.tenant_id) == self._tenant_id,
            col(LeaveLedgerEntry.transaction_type) == transaction_type.value,
            col(LeaveLedgerEntry.is_deleted).is_(False),
        ]
        if employee_id is not None:
            filters.append(col(LeaveLedgerEntry.employee_id) == employee_id)
        if category is not None:
            filters.append(col(LeaveLedgerEntry.leave_category) == category.value)
        result = await self._session.execute(
            select(LeaveLedgerEntry).where(*filters).order_by(col(LeaveLedgerEntry.occurred_at))
        )
        return list(result.scalars().all())

    async def chain(self, employee_id: uuid.UUID, category: str | LeaveCategory) -> list[LeaveLedgerEntry]:
        """Non-deleted entries for one key in append order."""
        category = parse_category(category)
        result = await self._session.execute(
            select(LeaveLedgerEntry)
            .where(*self._key_filter(employee_id, category), col(LeaveLedgerEntry.is_deleted).is_(False))
            .order_by(col(LeaveLedgerEntry.sequence))
        )
        return list(result.scalars().all())

    async def balance_summary(
        self,
        employee_id: uuid.UUID,
        fiscal_year: str | None = None,
    ) -> BalanceSummaryResponse:
        """Per-category ``{total, used, balance, last_transaction_at}``.

        ``used`` counts ``used`` debits net of ``restored`` credits and of
        date-change adjustments tied to a leave, all tagged with the
        reporting fiscal year; ``total`` is ``balance + used``.
        """
        fiscal_year = fiscal_year or label_for_date(date.today())
        entries = await self.history(employee_id)

        latest: dict[str, LeaveLedgerEntry] = {}
        used: dict[str, Decimal] = {}
        for entry in entries:
            current = latest.get(entry.leave_category)
            if current is None or entry.sequence > current.sequence:
                latest[entry.leave_category] = entry
            if entry.fiscal_year != fiscal_year:
                continue
            if entry.transaction_type in _LEAVE_USAGE or (
                entry.transaction_type == TransactionType.ADJUSTMENT.value and entry.related_leave_request_id is not None
            ):
                used[entry.leave_category] = used.get(entry.leave_category, _ZERO) - entry.amount

        items: list[BalanceSummaryItem] = []
        for category in LeaveCategory:
            entry = latest.get(category.value)
            if entry is not None:
                balance = entry.balance_after
                last_at = entry.occurred_at
            else:
                balance = (await self._policies.get(category)).annual_allocation
                last_at = None
            category_used = used.get(category.value, _ZERO)
            items.append(
                BalanceSummaryItem(
                    leave_category=category,
                    total=balance + category_used,
                    used=category_used,
                    balance=balance,
                    last_transaction_at=last_at,
                )
            )

        return BalanceSummaryResponse(employee_id=employee_id, fiscal_year=fiscal_year, items=items)
