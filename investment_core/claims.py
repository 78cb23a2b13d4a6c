"""
Profit Claims

Turns accrued-but-unclaimed investment value into spendable balance. The
read of the investment, the claimable computation and both writes happen in
one atomic block, and the investment row is written with a version check, so
two concurrent claims for the same investment credit exactly once.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from .accounts import AccountManager
from .accrual import claimable_profit, current_value
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock, ensure_utc
from .currency import Money
from .errors import AlreadySettled, NothingToClaim, retry_on_conflict
from .investments import InvestmentManager
from .logging_config import log_action
from .storage import StorageInterface
from .transactions import TransactionLedger, TransactionType

logger = logging.getLogger(__name__)


@dataclass
class ClaimResult:
    investment_id: str
    amount: Money
    claimed_at: datetime
    transaction_id: str


class ClaimService:

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        accounts: AccountManager,
        investments: InvestmentManager,
        ledger: TransactionLedger,
        clock: Optional[Clock] = None,
        conflict_retries: int = 1,
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.investments = investments
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.conflict_retries = conflict_retries

    def calculate_claimable(self, investment_id: str, now: Optional[datetime] = None,
                            account_id: Optional[str] = None) -> Money:
        """Read-only preview of claim(); zero for settled investments"""
        investment = self.investments.get_investment(investment_id, account_id)
        if not investment.is_active:
            return Money.zero(investment.principal.currency)
        moment = ensure_utc(now) if now else self.clock.now()
        return claimable_profit(investment, moment).floor_zero()

    def claim(self, investment_id: str, now: Optional[datetime] = None,
              account_id: Optional[str] = None) -> ClaimResult:
        """
        Credit the investment's claimable profit to the owner's balance

        Args:
            investment_id: Investment to claim from
            now: Claim time (defaults to the service clock)
            account_id: When given, the investment must belong to this account

        Raises:
            NotFound: Unknown investment, or not owned by account_id
            AlreadySettled: Investment is not active
            NothingToClaim: Nothing has accrued since the last claim
        """
        return retry_on_conflict(self.conflict_retries)(self._claim)(investment_id, now, account_id)

    def _claim(self, investment_id: str, now: Optional[datetime],
               account_id: Optional[str]) -> ClaimResult:
        moment = ensure_utc(now) if now else self.clock.now()

        with self.storage.atomic():
            investment = self.investments.get_investment(investment_id, account_id)
            if not investment.is_active:
                log_action(logger, "warning", "Claim rejected: investment already settled",
                           user_id=investment.account_id, action="claim_profit",
                           resource=f"investment:{investment_id}")
                raise AlreadySettled(
                    f"Investment {investment_id} is {investment.status.value}; profit can no longer be claimed"
                )

            amount = claimable_profit(investment, moment)
            if not amount.is_positive():
                log_action(logger, "warning", "Claim rejected: nothing to claim",
                           user_id=investment.account_id, action="claim_profit",
                           resource=f"investment:{investment_id}")
                raise NothingToClaim(f"No profit to claim on investment {investment_id} yet")

            investment.total_claimed = investment.total_claimed + amount
            investment.current_value = current_value(investment, moment)
            investment.last_profit_claim_date = moment
            investment.updated_at = moment
            self.investments.save_investment(investment)

            account = self.accounts.get_account(investment.account_id)
            account.balance = account.balance + amount
            account.updated_at = moment
            self.accounts.save_account(account)

            transaction = self.ledger.record(
                account.id, TransactionType.RETURN, amount,
                description="Profit claim", related_id=investment.id
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.PROFIT_CLAIMED,
                entity_type="investment",
                entity_id=investment.id,
                metadata={"amount": amount.amount, "total_claimed": investment.total_claimed.amount},
                user_id=account.id
            )

        log_action(logger, "info", f"Claimed {amount.to_string()}",
                   user_id=account.id, action="claim_profit", resource=f"investment:{investment.id}")
        return ClaimResult(
            investment_id=investment.id,
            amount=amount,
            claimed_at=moment,
            transaction_id=transaction.id,
        )
