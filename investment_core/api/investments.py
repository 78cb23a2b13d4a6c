"""
Investment endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .deps import get_system
from .schemas import ClaimRequest, CreateInvestmentRequest, investment_view, money
from ..system import InvestmentSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_investment(
    request: CreateInvestmentRequest,
    system: InvestmentSystem = Depends(get_system)
):
    """Invest the product's ticket amount from the account balance"""
    investment = system.investments.create_investment(request.account_id, request.product_id)
    return investment_view(investment)


@router.get("/{investment_id}")
async def get_investment(
    investment_id: str,
    account_id: Optional[str] = None,
    system: InvestmentSystem = Depends(get_system)
):
    """Investment with its live value and claimable profit"""
    investment = system.investments.get_investment(investment_id, account_id)
    return investment_view(
        investment,
        current_value=system.compute_current_value(investment),
        claimable=system.claims.calculate_claimable(investment_id, account_id=account_id),
    )


@router.get("/{investment_id}/claimable")
async def get_claimable(
    investment_id: str,
    account_id: Optional[str] = None,
    system: InvestmentSystem = Depends(get_system)
):
    claimable = system.claims.calculate_claimable(investment_id, account_id=account_id)
    return {"investment_id": investment_id, "claimable": money(claimable)}


@router.post("/{investment_id}/claim")
async def claim_profit(
    investment_id: str,
    request: Optional[ClaimRequest] = None,
    system: InvestmentSystem = Depends(get_system)
):
    account_id = request.account_id if request else None
    result = system.claim_profit(investment_id, account_id=account_id)
    return {
        "investment_id": result.investment_id,
        "amount": money(result.amount),
        "claimed_at": result.claimed_at.isoformat(),
        "transaction_id": result.transaction_id,
    }
