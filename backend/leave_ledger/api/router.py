from fastapi import APIRouter

from leave_ledger.api.attendance import attendance_router
from leave_ledger.api.balances import employee_balance_router, employee_ledger_router, ledger_router
from leave_ledger.api.carry_forward import carry_forward_router
from leave_ledger.api.leaves import leaves_router
from leave_ledger.api.policies import router as policies_router
from leave_ledger.api.tenants import tenants_router

api_router = APIRouter()
api_router.include_router(tenants_router)
api_router.include_router(policies_router)
api_router.include_router(leaves_router)
api_router.include_router(employee_balance_router)
api_router.include_router(employee_ledger_router)
api_router.include_router(ledger_router)
api_router.include_router(attendance_router)
api_router.include_router(carry_forward_router)
