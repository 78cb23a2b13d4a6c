"""
Withdrawal Eligibility

Derives the figures a user sees before requesting a withdrawal:

    profit_from_invested = max(0, balance - total_invested)
    available_withdrawal = max(0, balance + profit_from_invested + referral_bonus - escrowed)
    profit_amount        = max(0, available_withdrawal - referral_bonus)

profit_amount and referral_bonus are the two withdrawal buckets. The
calculation is read-only and always works from the latest account snapshot.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from .accounts import LedgerAccount
from .currency import Money
from .storage import StorageInterface

WITHDRAWAL_REQUESTS_TABLE = "withdrawal_requests"


@dataclass(frozen=True)
class EligibilityBreakdown:
    available_withdrawal: Money
    profit_amount: Money
    referral_bonus: Money
    escrowed_amount: Money
    pending_withdrawals: Money
    total_withdrawn: Money

    def bucket(self, source: str) -> Money:
        """Withdrawable amount for a source ("profit" or "referral_bonus")"""
        if source == "profit":
            return self.profit_amount
        if source == "referral_bonus":
            return self.referral_bonus
        raise ValueError(f"Unknown withdrawal source: {source}")

    def to_dict(self) -> Dict[str, dict]:
        return {
            "available_withdrawal": self.available_withdrawal.to_dict(),
            "profit_amount": self.profit_amount.to_dict(),
            "referral_bonus": self.referral_bonus.to_dict(),
            "escrowed_amount": self.escrowed_amount.to_dict(),
            "pending_withdrawals": self.pending_withdrawals.to_dict(),
            "total_withdrawn": self.total_withdrawn.to_dict(),
        }


def calculate_eligibility(account: LedgerAccount,
                          pending_withdrawals: Optional[Money] = None) -> EligibilityBreakdown:
    currency = account.balance.currency
    profit_from_invested = (account.balance - account.total_invested).floor_zero()
    available = (
        account.balance + profit_from_invested + account.referral_bonus - account.escrowed_amount
    ).floor_zero()
    profit_amount = (available - account.referral_bonus).floor_zero()

    return EligibilityBreakdown(
        available_withdrawal=available,
        profit_amount=profit_amount,
        referral_bonus=account.referral_bonus,
        escrowed_amount=account.escrowed_amount,
        pending_withdrawals=pending_withdrawals or Money.zero(currency),
        total_withdrawn=account.total_withdrawn,
    )


class WithdrawalEligibilityCalculator:
    """Eligibility with the pending-request total read from storage"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def pending_total(self, account: LedgerAccount) -> Money:
        total = Money.zero(account.balance.currency)
        for request in self.storage.find(WITHDRAWAL_REQUESTS_TABLE,
                                         {'account_id': account.id, 'status': 'pending'}):
            total = total + Money.from_dict(request['amount'])
        return total

    def eligibility(self, account: LedgerAccount) -> EligibilityBreakdown:
        return calculate_eligibility(account, self.pending_total(account))
