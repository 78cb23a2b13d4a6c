"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..accounts import LedgerAccount, ReferralSummary
from ..currency import Money, Currency
from ..investments import Investment
from ..products import InvestmentProduct
from ..transactions import Transaction
from ..withdrawals import WithdrawalRequest


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (USDT, USD, EUR)")

    def to_money(self) -> Money:
        return Money(Decimal(self.amount), Currency.from_code(self.currency))

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


def money(value: Money) -> Dict[str, str]:
    return MoneyModel.from_money(value).model_dump()


# Account schemas
class CreateAccountRequest(BaseModel):
    owner_name: str
    email: str
    referral_code: Optional[str] = None


class BindWalletRequest(BaseModel):
    address: str = Field(..., description="TRC20 destination address")
    withdrawal_password: Optional[str] = None


class ApplyReferralRequest(BaseModel):
    code: str


# Product schemas
class CreateProductRequest(BaseModel):
    name: str
    amount: str = Field(..., description="Ticket size as decimal string")
    duration_days: int
    growth_rate: str = Field(..., description="Daily growth in percent, decimal string")
    risk: str = "medium"
    description: str = ""


class UpdateProductRequest(BaseModel):
    name: Optional[str] = None
    amount: Optional[str] = None
    duration_days: Optional[int] = None
    growth_rate: Optional[str] = None
    risk: Optional[str] = None
    description: Optional[str] = None


# Investment schemas
class CreateInvestmentRequest(BaseModel):
    account_id: str
    product_id: str


class ClaimRequest(BaseModel):
    account_id: Optional[str] = None


# Withdrawal and deposit schemas
class SubmitWithdrawalRequest(BaseModel):
    account_id: str
    amount: str = Field(..., description="Decimal amount as string")
    source: str = Field(..., description="profit or referral_bonus")
    address: Optional[str] = None
    password: Optional[str] = None


class ApproveWithdrawalRequest(BaseModel):
    tx_reference: str


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class ResolveWithdrawalRequest(BaseModel):
    decision: str = Field(..., description="approve or reject")
    tx_reference: Optional[str] = None
    reason: Optional[str] = None


class RequestDepositRequest(BaseModel):
    account_id: str
    amount: str = Field(..., description="Decimal amount as string")
    tx_hash: str


# Response views

def account_view(account: LedgerAccount) -> Dict[str, Any]:
    return {
        "id": account.id,
        "owner_name": account.owner_name,
        "email": account.email,
        "referral_code": account.referral_code,
        "referred_by": account.referred_by,
        "wallet_address": account.wallet_address,
        "has_withdrawal_password": account.has_withdrawal_password,
        "balance": money(account.balance),
        "total_invested": money(account.total_invested),
        "total_withdrawn": money(account.total_withdrawn),
        "referral_bonus": money(account.referral_bonus),
        "escrowed_amount": money(account.escrowed_amount),
        "created_at": account.created_at.isoformat(),
    }


def product_view(product: InvestmentProduct) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "amount": money(product.amount),
        "duration_days": product.duration_days,
        "growth_rate": str(product.growth_rate),
        "risk": product.risk.value,
        "description": product.description,
        "active": product.active,
    }


def investment_view(investment: Investment, current_value: Optional[Money] = None,
                    claimable: Optional[Money] = None) -> Dict[str, Any]:
    view = {
        "id": investment.id,
        "account_id": investment.account_id,
        "product_id": investment.product_id,
        "principal": money(investment.principal),
        "daily_growth_rate": str(investment.daily_growth_rate),
        "final_value_cap": money(investment.final_value_cap),
        "current_value": money(current_value or investment.current_value),
        "total_claimed": money(investment.total_claimed),
        "status": investment.status.value,
        "start_date": investment.start_date.isoformat(),
        "end_date": investment.end_date.isoformat(),
        "last_profit_claim_date": investment.last_profit_claim_date.isoformat(),
    }
    if claimable is not None:
        view["claimable"] = money(claimable)
    return view


def withdrawal_view(request: WithdrawalRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "account_id": request.account_id,
        "amount": money(request.amount),
        "fee_amount": money(request.fee_amount),
        "source": request.source.value,
        "destination_address": request.destination_address,
        "status": request.status.value,
        "tx_reference": request.tx_reference,
        "rejection_reason": request.rejection_reason,
        "created_at": request.created_at.isoformat(),
        "resolved_at": request.resolved_at.isoformat() if request.resolved_at else None,
    }


def transaction_view(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "account_id": transaction.account_id,
        "type": transaction.transaction_type.value,
        "amount": money(transaction.amount),
        "status": transaction.status.value,
        "description": transaction.description,
        "reference": transaction.reference,
        "related_id": transaction.related_id,
        "rejection_reason": transaction.rejection_reason,
        "date": transaction.date.isoformat(),
    }


def referral_view(summary: ReferralSummary) -> Dict[str, Any]:
    return {
        "account_id": summary.account_id,
        "owner_name": summary.owner_name,
        "total_invested": money(summary.total_invested),
        "bonus_generated": money(summary.bonus_generated),
    }
