"""Tests for fiscal year-end carry-forward: caps, eligibility, idempotence,
new-year rebasing, tenant batches, reporting and expiry of carried days.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest

from leave_ledger.models.enums import LeaveCategory, TransactionType
from leave_ledger.schemas.carry_forward import CarryForwardStatus
from leave_ledger.schemas.policy import PolicyUpdate
from leave_ledger.services import carry_forward as carry_forward_service
from leave_ledger.services.carry_forward import (
    calculate,
    execute,
    execute_for_tenant,
    expire_carried_balances,
    expiry_date_for,
    history,
    summary,
)
from leave_ledger.services.employee import EmployeeInfo

if TYPE_CHECKING:
    from leave_ledger.models.tenant import Tenant
    from leave_ledger.schemas.carry_forward import CarryForwardResult
    from leave_ledger.services.employee import InMemoryEmployeeService
    from leave_ledger.services.tenant import TenantContext

EMPLOYEE_ID = uuid.uuid4()
ADMIN_ID = uuid.uuid4()
CLOSING = "FY2025-2026"
OPENING = "FY2026-2027"


def _by_category(results: list[CarryForwardResult]) -> dict[LeaveCategory, CarryForwardResult]:
    return {r.leave_category: r for r in results}


def _employee(tenant_id: uuid.UUID, name: str, **kwargs: Any) -> EmployeeInfo:
    return EmployeeInfo(id=uuid.uuid4(), tenant_id=tenant_id, first_name=name, last_name="Doe", **kwargs)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


def test_expiry_date_for() -> None:
    assert expiry_date_for(2025, 6) == date(2026, 7, 1)
    assert expiry_date_for(2025, 12) == date(2027, 1, 1)


async def test_calculate_enforces_cap(ctx: TenantContext) -> None:
    await ctx.ledger.append_transaction(EMPLOYEE_ID, "sick", "allocated", 2)
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == Decimal(12)

    previews = {p.leave_category: p for p in await calculate(ctx, EMPLOYEE_ID, 2025)}

    sick = previews[LeaveCategory.SICK]
    assert sick.from_balance == Decimal(12)
    assert sick.carry_forward_amount == Decimal(5)
    assert sick.max_allowed == Decimal(5)
    assert sick.expiry_date == date(2026, 7, 1)
    assert sick.fiscal_year == CLOSING


async def test_calculate_skips_ineligible_and_disabled(ctx: TenantContext) -> None:
    await ctx.ledger.append_transaction(EMPLOYEE_ID, "sick", "used", -8)

    categories = {p.leave_category for p in await calculate(ctx, EMPLOYEE_ID, 2025)}

    assert LeaveCategory.SICK not in categories
    assert LeaveCategory.MATERNITY not in categories
    assert LeaveCategory.EARNED in categories


async def test_calculate_writes_nothing(ctx: TenantContext) -> None:
    await calculate(ctx, EMPLOYEE_ID, 2025)
    assert await ctx.ledger.history(EMPLOYEE_ID) == []


async def test_calculate_uses_tenant_policy(ctx: TenantContext) -> None:
    await ctx.policies.upsert(
        LeaveCategory.SICK,
        PolicyUpdate(
            annual_allocation=Decimal(12),
            carry_forward_enabled=True,
            max_carryable_days=Decimal(4),
            validity_months=3,
        ),
    )
    previews = {p.leave_category: p for p in await calculate(ctx, EMPLOYEE_ID, 2025)}

    assert previews[LeaveCategory.SICK].from_balance == Decimal(12)
    assert previews[LeaveCategory.SICK].carry_forward_amount == Decimal(4)
    assert previews[LeaveCategory.SICK].expiry_date == date(2026, 4, 1)


# ---------------------------------------------------------------------------
# Execute
# ---------------------------------------------------------------------------


async def test_execute_carries_and_rebases(ctx: TenantContext) -> None:
    await ctx.ledger.append_transaction(EMPLOYEE_ID, "sick", "allocated", 2)
    await ctx.ledger.append_transaction(EMPLOYEE_ID, "earned", "used", -2)

    results = _by_category(await execute(ctx, EMPLOYEE_ID, 2025, ADMIN_ID))

    sick = results[LeaveCategory.SICK]
    assert sick.status == CarryForwardStatus.EXECUTED
    assert sick.amount == Decimal(5)
    assert sick.new_balance == Decimal(15)
    assert sick.opening_entry_id is not None
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == Decimal(15)

    earned = results[LeaveCategory.EARNED]
    assert earned.amount == Decimal(13)
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "earned") == Decimal(28)

    # Fresh casual key: 10 allocated, 3 carried, already at 13 so no rebase entry.
    casual = results[LeaveCategory.CASUAL]
    assert casual.amount == Decimal(3)
    assert casual.opening_entry_id is None
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "casual") == Decimal(13)

    carried = await ctx.ledger.find_fiscal_year_entry(
        EMPLOYEE_ID, LeaveCategory.SICK, TransactionType.CARRY_FORWARD, CLOSING
    )
    assert carried is not None
    assert carried.details is not None
    assert carried.details["expiry_date"] == "2026-07-01"
    assert carried.recorded_by == ADMIN_ID

    rebase = await ctx.ledger.get_entry(sick.opening_entry_id)
    assert rebase.fiscal_year == OPENING
    assert rebase.amount == Decimal(-2)

    for category in (LeaveCategory.SICK, LeaveCategory.EARNED, LeaveCategory.CASUAL):
        chain = await ctx.ledger.chain(EMPLOYEE_ID, category)
        for previous, current in zip(chain, chain[1:], strict=False):
            assert current.balance_before == previous.balance_after


async def test_execute_not_eligible(ctx: TenantContext) -> None:
    await ctx.ledger.append_transaction(EMPLOYEE_ID, "sick", "used", -8)

    results = _by_category(await execute(ctx, EMPLOYEE_ID, 2025))

    assert results[LeaveCategory.SICK].status == CarryForwardStatus.NOT_ELIGIBLE
    assert results[LeaveCategory.SICK].ledger_entry_id is None
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == Decimal(2)


async def test_execute_is_idempotent(ctx: TenantContext) -> None:
    await execute(ctx, EMPLOYEE_ID, 2025)
    balance = await ctx.ledger.current_balance(EMPLOYEE_ID, "sick")

    second = await execute(ctx, EMPLOYEE_ID, 2025)

    assert {r.status for r in second} == {CarryForwardStatus.ALREADY_PROCESSED}
    carried = await ctx.ledger.history(EMPLOYEE_ID, category="sick", transaction_type="carry_forward")
    assert len(carried) == 1
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == balance


async def test_execute_rolls_back_all_categories_on_failure(
    ctx: TenantContext,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original = ctx.ledger.stage_entry

    async def _failing_stage(
        employee_id: uuid.UUID,
        category: LeaveCategory,
        transaction_type: TransactionType,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        if category == LeaveCategory.EARNED and transaction_type == TransactionType.CARRY_FORWARD:
            msg = "disk full"
            raise RuntimeError(msg)
        return await original(employee_id, category, transaction_type, *args, **kwargs)

    monkeypatch.setattr(ctx.ledger, "stage_entry", _failing_stage)

    with pytest.raises(RuntimeError, match="disk full"):
        await execute(ctx, EMPLOYEE_ID, 2025)

    assert await ctx.ledger.history(EMPLOYEE_ID) == []


async def test_history_lists_carry_forward_entries(ctx: TenantContext) -> None:
    await execute(ctx, EMPLOYEE_ID, 2025)

    entries = await history(ctx, EMPLOYEE_ID)
    assert {e.leave_category for e in entries} == {"casual", "sick", "earned", "compensatory"}
    assert all(e.transaction_type == TransactionType.CARRY_FORWARD for e in entries)


# ---------------------------------------------------------------------------
# Tenant batch and summary
# ---------------------------------------------------------------------------


async def test_execute_for_tenant(
    ctx: TenantContext,
    tenant: Tenant,
    employee_service: InMemoryEmployeeService,
) -> None:
    alice = _employee(tenant.id, "Alice")
    bob = _employee(tenant.id, "Bob")
    employee_service.seed(alice)
    employee_service.seed(bob)
    employee_service.seed(_employee(tenant.id, "Carol", employment_status="Resigned"))
    employee_service.seed(_employee(uuid.uuid4(), "Dave"))

    report = await execute_for_tenant(ctx, 2025, ADMIN_ID)

    assert report.total_employees == 2
    assert (report.processed, report.succeeded, report.failed) == (2, 2, 0)
    assert {r.employee_id for r in report.results} == {alice.id, bob.id}

    again = await execute_for_tenant(ctx, 2025, ADMIN_ID)
    for employee_result in again.results:
        assert {r.status for r in employee_result.results} == {CarryForwardStatus.ALREADY_PROCESSED}

    result = await summary(ctx, CLOSING)
    items = {item.leave_category: item for item in result.items}
    assert items[LeaveCategory.SICK].employees == 2
    assert items[LeaveCategory.SICK].total_days == Decimal(10)
    assert items[LeaveCategory.SICK].average_days == Decimal(5)
    assert items[LeaveCategory.EARNED].total_days == Decimal(30)
    assert LeaveCategory.MATERNITY not in items


async def test_execute_for_tenant_continues_after_failure(
    ctx: TenantContext,
    tenant: Tenant,
    employee_service: InMemoryEmployeeService,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    alice = _employee(tenant.id, "Alice")
    bob = _employee(tenant.id, "Bob")
    employee_service.seed(alice)
    employee_service.seed(bob)

    original = carry_forward_service.execute

    async def _flaky(ctx: TenantContext, employee_id: uuid.UUID, *args: Any, **kwargs: Any) -> Any:
        if employee_id == alice.id:
            msg = "ledger offline"
            raise RuntimeError(msg)
        return await original(ctx, employee_id, *args, **kwargs)

    monkeypatch.setattr(carry_forward_service, "execute", _flaky)
    report = await execute_for_tenant(ctx, 2025)

    assert (report.processed, report.succeeded, report.failed) == (2, 1, 1)
    failed = next(r for r in report.results if r.employee_id == alice.id)
    assert failed.error == "ledger offline"
    assert await ctx.ledger.current_balance(bob.id, "sick") == Decimal(15)


async def test_execute_for_tenant_cancelled(
    ctx: TenantContext,
    tenant: Tenant,
    employee_service: InMemoryEmployeeService,
) -> None:
    employee_service.seed(_employee(tenant.id, "Alice"))
    cancel_event = asyncio.Event()
    cancel_event.set()

    report = await execute_for_tenant(ctx, 2025, cancel_event=cancel_event)

    assert report.cancelled is True
    assert report.processed == 0
    assert report.total_employees == 1


async def test_summary_empty_year(ctx: TenantContext) -> None:
    result = await summary(ctx, "FY1999-2000")
    assert result.items == []


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


async def test_expire_before_validity_ends(ctx: TenantContext) -> None:
    await execute(ctx, EMPLOYEE_ID, 2025)

    report = await expire_carried_balances(ctx, as_of=date(2026, 2, 28))

    assert report.expired_entries == 0
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == Decimal(15)


async def test_expire_debits_carried_days_once(ctx: TenantContext) -> None:
    await execute(ctx, EMPLOYEE_ID, 2025)

    # Casual (3 months), compensatory (2 months) and sick (6 months) are due; earned (12 months) is not.
    report = await expire_carried_balances(ctx, as_of=date(2026, 7, 1), actor_id=ADMIN_ID)

    assert report.expired_entries == 3
    assert report.total_days == Decimal(10)
    assert report.errors == []
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == Decimal(10)
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "casual") == Decimal(10)
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "earned") == Decimal(30)

    again = await expire_carried_balances(ctx, as_of=date(2026, 7, 1))
    assert again.expired_entries == 0
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == Decimal(10)


async def test_expire_does_not_claw_back_spent_days(ctx: TenantContext) -> None:
    await execute(ctx, EMPLOYEE_ID, 2025)
    await ctx.ledger.append_transaction(EMPLOYEE_ID, "sick", "used", -12)

    await expire_carried_balances(ctx, as_of=date(2026, 7, 1))

    expired = await ctx.ledger.history(EMPLOYEE_ID, category="sick", transaction_type="expired")
    assert len(expired) == 1
    assert expired[0].amount == Decimal(-3)
    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "sick") == Decimal(0)
