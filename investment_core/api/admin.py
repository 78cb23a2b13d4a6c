"""
Administrative endpoints: manual review queues and maintenance
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .deps import get_system
from .schemas import (
    ApproveWithdrawalRequest, RejectRequest, ResolveWithdrawalRequest,
    transaction_view, withdrawal_view,
)
from ..system import InvestmentSystem


router = APIRouter()


@router.get("/withdrawals/pending")
async def pending_withdrawals(system: InvestmentSystem = Depends(get_system)):
    return {"withdrawals": [withdrawal_view(r) for r in system.list_pending_withdrawals()]}


@router.post("/withdrawals/{request_id}/approve")
async def approve_withdrawal(
    request_id: str,
    request: ApproveWithdrawalRequest,
    system: InvestmentSystem = Depends(get_system)
):
    return withdrawal_view(system.resolve_withdrawal(request_id, "approve", tx_reference=request.tx_reference))


@router.post("/withdrawals/{request_id}/reject")
async def reject_withdrawal(
    request_id: str,
    request: Optional[RejectRequest] = None,
    system: InvestmentSystem = Depends(get_system)
):
    reason = request.reason if request else None
    return withdrawal_view(system.resolve_withdrawal(request_id, "reject", reason=reason))


@router.post("/withdrawals/{request_id}/resolve")
async def resolve_withdrawal(
    request_id: str,
    request: ResolveWithdrawalRequest,
    system: InvestmentSystem = Depends(get_system)
):
    withdrawal = system.resolve_withdrawal(
        request_id, request.decision, tx_reference=request.tx_reference, reason=request.reason
    )
    return withdrawal_view(withdrawal)


@router.get("/deposits/pending")
async def pending_deposits(system: InvestmentSystem = Depends(get_system)):
    return {"deposits": [transaction_view(t) for t in system.list_pending_deposits()]}


@router.post("/deposits/{transaction_id}/approve")
async def approve_deposit(transaction_id: str, system: InvestmentSystem = Depends(get_system)):
    return transaction_view(system.deposits.approve_deposit(transaction_id))


@router.post("/deposits/{transaction_id}/reject")
async def reject_deposit(
    transaction_id: str,
    request: Optional[RejectRequest] = None,
    system: InvestmentSystem = Depends(get_system)
):
    reason = request.reason if request else None
    return transaction_view(system.deposits.reject_deposit(transaction_id, reason))


@router.post("/accrual/run")
async def run_accrual(system: InvestmentSystem = Depends(get_system)):
    """Run the daily accrual pass now"""
    return system.scheduler.run_once().to_dict()


@router.get("/audit/verify")
async def verify_audit_trail(system: InvestmentSystem = Depends(get_system)):
    return system.audit_trail.verify_integrity()
