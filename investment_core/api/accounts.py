"""
Account endpoints
"""

from fastapi import APIRouter, Depends, status

from .deps import get_system
from .schemas import (
    ApplyReferralRequest, BindWalletRequest, CreateAccountRequest,
    account_view, investment_view, referral_view, transaction_view, withdrawal_view,
)
from ..system import InvestmentSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    system: InvestmentSystem = Depends(get_system)
):
    """Open a ledger account"""
    account = system.accounts.create_account(
        owner_name=request.owner_name,
        email=request.email,
        referral_code=request.referral_code,
    )
    return account_view(account)


@router.get("/{account_id}")
async def get_account(account_id: str, system: InvestmentSystem = Depends(get_system)):
    return account_view(system.get_account(account_id))


@router.post("/{account_id}/wallet")
async def bind_wallet(
    account_id: str,
    request: BindWalletRequest,
    system: InvestmentSystem = Depends(get_system)
):
    """Set the default withdrawal address and optional withdrawal password"""
    account = system.accounts.bind_wallet(account_id, request.address, request.withdrawal_password)
    return account_view(account)


@router.post("/{account_id}/referral")
async def apply_referral(
    account_id: str,
    request: ApplyReferralRequest,
    system: InvestmentSystem = Depends(get_system)
):
    account = system.accounts.apply_referral_code(account_id, request.code)
    return account_view(account)


@router.get("/{account_id}/eligibility")
async def get_eligibility(account_id: str, system: InvestmentSystem = Depends(get_system)):
    """Withdrawable amounts per bucket"""
    return system.compute_eligibility(account_id).to_dict()


@router.get("/{account_id}/transactions")
async def get_transactions(account_id: str, system: InvestmentSystem = Depends(get_system)):
    transactions = system.list_transactions(account_id)
    return {"transactions": [transaction_view(t) for t in transactions]}


@router.get("/{account_id}/referrals")
async def get_referrals(account_id: str, system: InvestmentSystem = Depends(get_system)):
    referrals = system.accounts.list_referrals(account_id)
    return {"referrals": [referral_view(r) for r in referrals]}


@router.get("/{account_id}/investments")
async def get_investments(
    account_id: str,
    active_only: bool = False,
    system: InvestmentSystem = Depends(get_system)
):
    system.get_account(account_id)
    if active_only:
        investments = system.get_active_investments(account_id)
    else:
        investments = system.investments.list_investments(account_id)
    return {
        "investments": [
            investment_view(i, current_value=system.compute_current_value(i)) for i in investments
        ]
    }


@router.get("/{account_id}/withdrawals")
async def get_withdrawals(account_id: str, system: InvestmentSystem = Depends(get_system)):
    system.get_account(account_id)
    requests = system.withdrawals.list_for_account(account_id)
    return {"withdrawals": [withdrawal_view(r) for r in requests]}
