"""Fiscal year-end carry-forward and expiry of carried balances.

Carry-forward: externally triggered once per closing fiscal year.
Expiry: externally triggered (daily is enough) to debit carried days whose
validity window has passed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.exceptions import DuplicateTransaction
from leave_ledger.models.enums import LeaveCategory, TransactionType
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.schemas.carry_forward import (
    CarryForwardPreview,
    CarryForwardResult,
    CarryForwardStatus,
    CarryForwardSummaryItem,
    CarryForwardSummaryResponse,
    EmployeeCarryForwardResult,
    ExpiryReport,
    TenantCarryForwardReport,
)
from leave_ledger.services.employee import get_employee_service
from leave_ledger.services.fiscal import add_months, fiscal_year_label, fiscal_year_start, label_for_date

if TYPE_CHECKING:
    from leave_ledger.schemas.policy import CategoryPolicy
    from leave_ledger.services.employee import EmployeeService
    from leave_ledger.services.tenant import TenantContext

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_CENT = Decimal("0.01")


def expiry_date_for(fiscal_year_from: int, validity_months: int) -> date:
    """Day carried balance from ``fiscal_year_from`` stops being usable."""
    return add_months(fiscal_year_start(fiscal_year_from + 1), validity_months)


def _carry_amount(policy: CategoryPolicy, balance: Decimal) -> Decimal | None:
    """Days to carry for ``balance``, or None when the balance does not qualify."""
    if balance < policy.minimum_eligible_balance:
        return None
    amount = min(balance, policy.max_carryable_days)
    return amount if amount > 0 else None


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


async def calculate(
    ctx: TenantContext,
    employee_id: uuid.UUID,
    fiscal_year_from: int,
) -> list[CarryForwardPreview]:
    """Compute what ``execute`` would carry, without writing anything.

    Categories with carry-forward disabled, balances under the minimum and
    zero amounts are left out.
    """
    previews: list[CarryForwardPreview] = []
    for policy in await ctx.policies.carry_forward_categories():
        balance = await ctx.ledger.current_balance(employee_id, policy.leave_category)
        amount = _carry_amount(policy, balance)
        if amount is None:
            continue
        previews.append(
            CarryForwardPreview(
                leave_category=policy.leave_category,
                from_balance=balance,
                carry_forward_amount=amount,
                max_allowed=policy.max_carryable_days,
                validity_months=policy.validity_months,
                expiry_date=expiry_date_for(fiscal_year_from, policy.validity_months),
                fiscal_year=fiscal_year_label(fiscal_year_from),
            )
        )
    return previews


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def _carry_category(
    ctx: TenantContext,
    employee_id: uuid.UUID,
    policy: CategoryPolicy,
    fiscal_year_from: int,
    actor_id: uuid.UUID | None,
) -> CarryForwardResult:
    """Stage the carry-forward and new-year rebase for one category.

    Raises DuplicateTransaction if the closing year was already carried.
    """
    category = policy.leave_category
    closing = fiscal_year_label(fiscal_year_from)
    opening = fiscal_year_label(fiscal_year_from + 1)

    existing = await ctx.ledger.find_fiscal_year_entry(
        employee_id, category, TransactionType.CARRY_FORWARD, closing
    )
    if existing is not None:
        msg = f"{category.value} for employee {employee_id} already carried forward from {closing}"
        raise DuplicateTransaction(msg)

    balance = await ctx.ledger.current_balance(employee_id, category)
    amount = _carry_amount(policy, balance)
    if amount is None:
        return CarryForwardResult(leave_category=category, status=CarryForwardStatus.NOT_ELIGIBLE)

    now = datetime.now(UTC)
    expiry = expiry_date_for(fiscal_year_from, policy.validity_months)
    carried = await ctx.ledger.stage_entry(
        employee_id,
        category,
        TransactionType.CARRY_FORWARD,
        amount,
        fiscal_year=closing,
        occurred_at=now,
        unique_per_fiscal_year=True,
        description=f"Carry forward from {closing}",
        details={
            "from_balance": str(balance),
            "max_allowed": str(policy.max_carryable_days),
            "validity_months": policy.validity_months,
            "expiry_date": expiry.isoformat(),
            "to_fiscal_year": opening,
        },
        recorded_by=actor_id,
    )

    # Rebase the new year on the policy allocation plus the carried days.
    target = policy.annual_allocation + amount
    delta = target - carried.balance_after
    opening_entry_id = None
    if delta != 0:
        rebased = await ctx.ledger.stage_entry(
            employee_id,
            category,
            TransactionType.OPENING,
            delta,
            fiscal_year=opening,
            occurred_at=now,
            description=f"Opening balance for {opening}",
            details={
                "base_allocation": str(policy.annual_allocation),
                "carried_forward": str(amount),
                "carry_forward_entry_id": str(carried.id),
            },
            recorded_by=actor_id,
        )
        opening_entry_id = rebased.id

    return CarryForwardResult(
        leave_category=category,
        status=CarryForwardStatus.EXECUTED,
        amount=amount,
        ledger_entry_id=carried.id,
        opening_entry_id=opening_entry_id,
        new_balance=target,
    )


async def execute(
    ctx: TenantContext,
    employee_id: uuid.UUID,
    fiscal_year_from: int,
    actor_id: uuid.UUID | None = None,
) -> list[CarryForwardResult]:
    """Carry forward every eligible category of one employee.

    All categories commit together or not at all. Re-running for the same
    closing year reports ``already_processed`` and writes nothing.
    """
    policies = await ctx.policies.carry_forward_categories()
    if not policies:
        return []

    async def _stage() -> list[CarryForwardResult]:
        results: list[CarryForwardResult] = []
        for policy in policies:
            try:
                results.append(await _carry_category(ctx, employee_id, policy, fiscal_year_from, actor_id))
            except DuplicateTransaction as exc:
                logger.info("Carry-forward skipped: %s", exc.message)
                results.append(
                    CarryForwardResult(
                        leave_category=policy.leave_category,
                        status=CarryForwardStatus.ALREADY_PROCESSED,
                    )
                )
        return results

    keys = [(employee_id, policy.leave_category) for policy in policies]
    results = await ctx.ledger.run_atomic(keys, _stage)
    logger.info(
        "Carry-forward from %s for employee %s: %d executed",
        fiscal_year_label(fiscal_year_from),
        employee_id,
        sum(1 for r in results if r.status == CarryForwardStatus.EXECUTED),
    )
    return results


async def execute_for_tenant(
    ctx: TenantContext,
    fiscal_year_from: int,
    actor_id: uuid.UUID | None = None,
    *,
    cancel_event: asyncio.Event | None = None,
    employee_service: EmployeeService | None = None,
) -> TenantCarryForwardReport:
    """Run ``execute`` for every active employee of the tenant.

    One employee's failure is recorded and the run continues. Setting
    ``cancel_event`` stops the run between employees; finished employees
    stay committed.
    """
    service = employee_service or get_employee_service()
    employees = await service.list_active_employees(ctx.tenant_id)
    report = TenantCarryForwardReport(fiscal_year_from=fiscal_year_from, total_employees=len(employees))

    for employee in employees:
        if cancel_event is not None and cancel_event.is_set():
            report.cancelled = True
            logger.info("Carry-forward run cancelled after %d employees", report.processed)
            break

        report.processed += 1
        try:
            results = await execute(ctx, employee.id, fiscal_year_from, actor_id)
        except Exception as exc:
            logger.exception("Carry-forward failed for employee %s", employee.id)
            report.failed += 1
            report.results.append(EmployeeCarryForwardResult(employee_id=employee.id, error=str(exc)))
            continue
        report.succeeded += 1
        report.results.append(EmployeeCarryForwardResult(employee_id=employee.id, results=results))

    logger.info(
        "Carry-forward run for tenant %s from %s: processed=%d succeeded=%d failed=%d cancelled=%s",
        ctx.tenant_id,
        fiscal_year_label(fiscal_year_from),
        report.processed,
        report.succeeded,
        report.failed,
        report.cancelled,
    )
    return report


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


async def history(ctx: TenantContext, employee_id: uuid.UUID) -> list[LeaveLedgerEntry]:
    """Carry-forward entries of an employee, newest first."""
    return await ctx.ledger.history(employee_id, transaction_type=TransactionType.CARRY_FORWARD)


async def summary(ctx: TenantContext, fiscal_year: str) -> CarryForwardSummaryResponse:
    """Per-category totals of days carried out of ``fiscal_year``."""
    result = await ctx.session.execute(
        select(  # ty: ignore[no-matching-overload]
            LeaveLedgerEntry.leave_category,
            func.count(func.distinct(LeaveLedgerEntry.employee_id)),
            func.sum(LeaveLedgerEntry.amount),
        )
        .where(
            col(LeaveLedgerEntry.tenant_id) == ctx.tenant_id,
            col(LeaveLedgerEntry.transaction_type) == TransactionType.CARRY_FORWARD.value,
            col(LeaveLedgerEntry.fiscal_year) == fiscal_year,
            col(LeaveLedgerEntry.is_deleted).is_(False),
        )
        .group_by(LeaveLedgerEntry.leave_category)
        .order_by(LeaveLedgerEntry.leave_category)
    )

    items = []
    for category, employees, total in result.all():
        total_days = Decimal(str(total or 0))
        items.append(
            CarryForwardSummaryItem(
                leave_category=LeaveCategory(category),
                employees=employees,
                total_days=total_days,
                average_days=(total_days / employees).quantize(_CENT, rounding=ROUND_HALF_UP) if employees else _ZERO,
            )
        )
    return CarryForwardSummaryResponse(fiscal_year=fiscal_year, items=items)


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


async def expire_carried_balances(
    ctx: TenantContext,
    as_of: date | None = None,
    actor_id: uuid.UUID | None = None,
) -> ExpiryReport:
    """Debit carried days whose validity window ended on or before ``as_of``.

    Each carry-forward entry is expired at most once, by
    ``min(carried amount, current balance)``; days already spent are not
    clawed back.
    """
    as_of = as_of or date.today()
    report = ExpiryReport(as_of=as_of)

    due: list[tuple[uuid.UUID, uuid.UUID, LeaveCategory, Decimal, date]] = []
    for entry in await ctx.ledger.entries_of_type(TransactionType.CARRY_FORWARD):
        raw_expiry = (entry.details or {}).get("expiry_date")
        if raw_expiry is None:
            continue
        expiry = date.fromisoformat(raw_expiry)
        if expiry <= as_of:
            due.append((entry.id, entry.employee_id, LeaveCategory(entry.leave_category), entry.amount, expiry))

    for carry_id, employee_id, category, carried, expiry in due:

        async def _stage(
            carry_id: uuid.UUID = carry_id,
            employee_id: uuid.UUID = employee_id,
            category: LeaveCategory = category,
            carried: Decimal = carried,
            expiry: date = expiry,
        ) -> Decimal:
            expired = await ctx.ledger.entries_of_type(TransactionType.EXPIRED, employee_id, category)
            if any((e.details or {}).get("carry_forward_entry_id") == str(carry_id) for e in expired):
                return _ZERO
            balance = await ctx.ledger.current_balance(employee_id, category)
            amount = min(carried, balance)
            if amount <= 0:
                return _ZERO
            await ctx.ledger.stage_entry(
                employee_id,
                category,
                TransactionType.EXPIRED,
                -amount,
                fiscal_year=label_for_date(expiry),
                description=f"Carried balance expired on {expiry.isoformat()}",
                details={"carry_forward_entry_id": str(carry_id), "expiry_date": expiry.isoformat()},
                recorded_by=actor_id,
            )
            return amount

        try:
            amount = await ctx.ledger.run_atomic([(employee_id, category)], _stage)
        except Exception as exc:
            logger.exception("Expiry failed for carry-forward entry %s", carry_id)
            report.errors.append({"carry_forward_entry_id": str(carry_id), "error": str(exc)})
            continue
        if amount > 0:
            report.expired_entries += 1
            report.total_days += amount

    logger.info(
        "Carried balance expiry as of %s: expired=%d days=%s errors=%d",
        as_of,
        report.expired_entries,
        report.total_days,
        len(report.errors),
    )
    return report
