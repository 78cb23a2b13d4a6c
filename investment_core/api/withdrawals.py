"""
Withdrawal and deposit request endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .deps import get_system
from .schemas import RequestDepositRequest, SubmitWithdrawalRequest, transaction_view, withdrawal_view
from ..system import InvestmentSystem


router = APIRouter()
deposits_router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_withdrawal(
    request: SubmitWithdrawalRequest,
    system: InvestmentSystem = Depends(get_system)
):
    """Request a withdrawal; the amount is escrowed until an admin resolves it"""
    withdrawal = system.submit_withdrawal(
        account_id=request.account_id,
        amount=request.amount,
        source=request.source,
        address=request.address,
        password=request.password,
    )
    return withdrawal_view(withdrawal)


@router.get("/{request_id}")
async def get_withdrawal(
    request_id: str,
    account_id: Optional[str] = None,
    system: InvestmentSystem = Depends(get_system)
):
    return withdrawal_view(system.withdrawals.get_request(request_id, account_id))


@deposits_router.post("", status_code=status.HTTP_201_CREATED)
async def request_deposit(
    request: RequestDepositRequest,
    system: InvestmentSystem = Depends(get_system)
):
    """Report an on-chain deposit for admin confirmation"""
    deposit = system.deposits.request_deposit(request.account_id, request.amount, request.tx_hash)
    return transaction_view(deposit)
