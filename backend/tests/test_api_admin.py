"""HTTP tests for balances, ledger, policies, attendance, carry-forward and tenants."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from leave_ledger.services.employee import EmployeeInfo

if TYPE_CHECKING:
    from httpx import AsyncClient

    from leave_ledger.models.tenant import Tenant
    from leave_ledger.services.employee import InMemoryEmployeeService

EMPLOYEE_ID = uuid.uuid4()
ADMIN_ID = uuid.uuid4()


@pytest.fixture
def admin_headers(tenant: Tenant) -> dict[str, str]:
    return {"X-Tenant-Id": str(tenant.id), "X-User-Id": str(ADMIN_ID), "X-Role": "admin"}


@pytest.fixture
def employee_headers(tenant: Tenant) -> dict[str, str]:
    return {"X-Tenant-Id": str(tenant.id), "X-User-Id": str(EMPLOYEE_ID), "X-Role": "employee"}


@pytest.fixture
def base_url(tenant: Tenant) -> str:
    return f"/tenants/{tenant.id}"


async def _post_transaction(
    client: AsyncClient,
    base_url: str,
    headers: dict[str, str],
    transaction_type: str,
    amount: str,
    category: str = "earned",
) -> dict[str, object]:
    response = await client.post(
        f"{base_url}/ledger/transactions",
        json={
            "employee_id": str(EMPLOYEE_ID),
            "leave_category": category,
            "transaction_type": transaction_type,
            "amount": amount,
            "description": "Manual correction",
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Ledger and balances
# ---------------------------------------------------------------------------


async def test_post_transaction_and_read_ledger(
    async_client: AsyncClient,
    base_url: str,
    admin_headers: dict[str, str],
    employee_headers: dict[str, str],
) -> None:
    entry = await _post_transaction(async_client, base_url, admin_headers, "allocated", "2")
    assert entry["transaction_type"] == "allocated"
    assert entry["recorded_by"] == str(ADMIN_ID)
    assert Decimal(str(entry["balance_after"])) == Decimal(17)

    response = await async_client.get(f"{base_url}/employees/{EMPLOYEE_ID}/ledger", headers=employee_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [item["transaction_type"] for item in data["items"]] == ["allocated", "opening"]

    filtered = await async_client.get(
        f"{base_url}/employees/{EMPLOYEE_ID}/ledger",
        params={"transaction_type": "opening", "limit": 1},
        headers=employee_headers,
    )
    assert filtered.json()["total"] == 1


async def test_post_transaction_requires_admin(
    async_client: AsyncClient,
    base_url: str,
    employee_headers: dict[str, str],
) -> None:
    response = await async_client.post(
        f"{base_url}/ledger/transactions",
        json={
            "employee_id": str(EMPLOYEE_ID),
            "leave_category": "earned",
            "transaction_type": "allocated",
            "amount": "2",
        },
        headers=employee_headers,
    )
    assert response.status_code == 403


async def test_post_transaction_wrong_sign_422(
    async_client: AsyncClient,
    base_url: str,
    admin_headers: dict[str, str],
) -> None:
    response = await async_client.post(
        f"{base_url}/ledger/transactions",
        json={
            "employee_id": str(EMPLOYEE_ID),
            "leave_category": "earned",
            "transaction_type": "encashed",
            "amount": "3",
        },
        headers=admin_headers,
    )
    assert response.status_code == 422
    assert "negative" in response.json()["detail"]


async def test_retract_entry(
    async_client: AsyncClient,
    base_url: str,
    admin_headers: dict[str, str],
    employee_headers: dict[str, str],
) -> None:
    entry = await _post_transaction(async_client, base_url, admin_headers, "encashed", "-4")

    response = await async_client.post(
        f"{base_url}/ledger/{entry['id']}/retract", json={"reason": "Wrong employee"}, headers=admin_headers
    )
    assert response.status_code == 201
    correction = response.json()
    assert correction["transaction_type"] == "adjustment"
    assert Decimal(correction["balance_after"]) == Decimal(15)

    again = await async_client.post(
        f"{base_url}/ledger/{entry['id']}/retract", json={"reason": "Again"}, headers=admin_headers
    )
    assert again.status_code == 409

    balances = await async_client.get(f"{base_url}/employees/{EMPLOYEE_ID}/balances", headers=employee_headers)
    earned = next(i for i in balances.json()["items"] if i["leave_category"] == "earned")
    assert Decimal(earned["balance"]) == Decimal(15)


async def test_balances_default_to_policy_allocation(
    async_client: AsyncClient,
    base_url: str,
    employee_headers: dict[str, str],
) -> None:
    response = await async_client.get(f"{base_url}/employees/{EMPLOYEE_ID}/balances", headers=employee_headers)
    assert response.status_code == 200
    items = {i["leave_category"]: i for i in response.json()["items"]}
    assert Decimal(items["earned"]["balance"]) == Decimal(15)
    assert Decimal(items["maternity"]["balance"]) == Decimal(90)
    assert items["earned"]["last_transaction_at"] is None


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


async def test_policy_defaults_and_override(
    async_client: AsyncClient,
    base_url: str,
    admin_headers: dict[str, str],
    employee_headers: dict[str, str],
) -> None:
    listing = await async_client.get(f"{base_url}/policies", headers=employee_headers)
    assert listing.status_code == 200
    assert listing.json()["total"] == 9

    response = await async_client.put(
        f"{base_url}/policies/sick",
        json={
            "annual_allocation": "12",
            "carry_forward_enabled": True,
            "max_carryable_days": "5",
            "validity_months": 6,
            "minimum_eligible_balance": "3",
        },
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["is_default"] is False

    policy = await async_client.get(f"{base_url}/policies/sick", headers=employee_headers)
    assert Decimal(policy.json()["annual_allocation"]) == Decimal(12)

    balances = await async_client.get(f"{base_url}/employees/{EMPLOYEE_ID}/balances", headers=employee_headers)
    sick = next(i for i in balances.json()["items"] if i["leave_category"] == "sick")
    assert Decimal(sick["balance"]) == Decimal(12)


async def test_policy_update_requires_admin(
    async_client: AsyncClient,
    base_url: str,
    employee_headers: dict[str, str],
) -> None:
    response = await async_client.put(
        f"{base_url}/policies/sick",
        json={"annual_allocation": "12"},
        headers=employee_headers,
    )
    assert response.status_code == 403


async def test_unknown_policy_category_422(
    async_client: AsyncClient,
    base_url: str,
    employee_headers: dict[str, str],
) -> None:
    response = await async_client.get(f"{base_url}/policies/vacation", headers=employee_headers)
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


async def test_clock_event_and_listing(
    async_client: AsyncClient,
    base_url: str,
    employee_headers: dict[str, str],
) -> None:
    response = await async_client.post(
        f"{base_url}/attendance/clock",
        json={
            "employee_id": str(EMPLOYEE_ID),
            "date": "2025-01-10",
            "clock_in": "2025-01-10T09:00:00Z",
        },
        headers=employee_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "present"

    listing = await async_client.get(
        f"{base_url}/attendance",
        params={"employee_id": str(EMPLOYEE_ID), "start_date": "2025-01-01", "end_date": "2025-01-31"},
        headers=employee_headers,
    )
    assert listing.json()["total"] == 1


async def test_attendance_listing_inverted_range_422(
    async_client: AsyncClient,
    base_url: str,
    employee_headers: dict[str, str],
) -> None:
    response = await async_client.get(
        f"{base_url}/attendance",
        params={"employee_id": str(EMPLOYEE_ID), "start_date": "2025-01-31", "end_date": "2025-01-01"},
        headers=employee_headers,
    )
    assert response.status_code == 422


async def test_backfill(
    async_client: AsyncClient,
    base_url: str,
    admin_headers: dict[str, str],
    employee_headers: dict[str, str],
) -> None:
    response = await async_client.post(f"{base_url}/attendance/backfill", headers=employee_headers)
    assert response.status_code == 403

    response = await async_client.post(
        f"{base_url}/attendance/backfill", params={"dry_run": "true"}, headers=admin_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["dry_run"] is True
    assert data["processed"] == 0


# ---------------------------------------------------------------------------
# Carry-forward
# ---------------------------------------------------------------------------


async def test_carry_forward_preview_execute_history(
    async_client: AsyncClient,
    base_url: str,
    admin_headers: dict[str, str],
    employee_headers: dict[str, str],
) -> None:
    await _post_transaction(async_client, base_url, admin_headers, "allocated", "2", category="sick")

    preview = await async_client.get(
        f"{base_url}/carry-forward/{EMPLOYEE_ID}/preview",
        params={"fiscal_year_from": 2025},
        headers=employee_headers,
    )
    assert preview.status_code == 200
    sick = next(i for i in preview.json()["items"] if i["leave_category"] == "sick")
    assert Decimal(sick["carry_forward_amount"]) == Decimal(5)

    executed = await async_client.post(
        f"{base_url}/carry-forward/{EMPLOYEE_ID}/execute",
        params={"fiscal_year_from": 2025},
        headers=admin_headers,
    )
    assert executed.status_code == 200
    assert {r["status"] for r in executed.json()} == {"executed"}

    again = await async_client.post(
        f"{base_url}/carry-forward/{EMPLOYEE_ID}/execute",
        params={"fiscal_year_from": 2025},
        headers=admin_headers,
    )
    assert {r["status"] for r in again.json()} == {"already_processed"}

    history = await async_client.get(f"{base_url}/carry-forward/{EMPLOYEE_ID}/history", headers=employee_headers)
    assert len(history.json()["items"]) == 4

    summary = await async_client.get(
        f"{base_url}/carry-forward/summary", params={"fiscal_year": "FY2025-2026"}, headers=employee_headers
    )
    items = {i["leave_category"]: i for i in summary.json()["items"]}
    assert items["sick"]["employees"] == 1
    assert Decimal(items["sick"]["total_days"]) == Decimal(5)


async def test_carry_forward_execute_for_tenant(
    async_client: AsyncClient,
    tenant: Tenant,
    base_url: str,
    admin_headers: dict[str, str],
    employee_service: InMemoryEmployeeService,
) -> None:
    employee_service.seed(EmployeeInfo(id=EMPLOYEE_ID, tenant_id=tenant.id, first_name="Test", last_name="Employee"))

    response = await async_client.post(
        f"{base_url}/carry-forward/execute", params={"fiscal_year_from": 2025}, headers=admin_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total_employees"] == 1
    assert data["succeeded"] == 1


async def test_carry_forward_expire(
    async_client: AsyncClient,
    base_url: str,
    admin_headers: dict[str, str],
) -> None:
    await async_client.post(
        f"{base_url}/carry-forward/{EMPLOYEE_ID}/execute",
        params={"fiscal_year_from": 2025},
        headers=admin_headers,
    )
    response = await async_client.post(
        f"{base_url}/carry-forward/expire", params={"as_of": "2027-06-30"}, headers=admin_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["expired_entries"] == 4
    assert Decimal(data["total_days"]) == Decimal(25)


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


async def test_create_and_get_tenant(
    async_client: AsyncClient,
    admin_headers: dict[str, str],
) -> None:
    tenant_id = uuid.uuid4()
    response = await async_client.post(
        "/tenants", json={"name": "Globex", "id": str(tenant_id)}, headers=admin_headers
    )
    assert response.status_code == 201
    assert response.json()["id"] == str(tenant_id)

    duplicate = await async_client.post(
        "/tenants", json={"name": "Globex", "id": str(tenant_id)}, headers=admin_headers
    )
    assert duplicate.status_code == 409

    headers = {"X-Tenant-Id": str(tenant_id), "X-User-Id": str(EMPLOYEE_ID)}
    fetched = await async_client.get(f"/tenants/{tenant_id}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Globex"
