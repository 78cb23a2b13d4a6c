"""
Investment System

Composition root: builds storage, clock, audit trail and every service from
one configuration, and exposes the operations the surrounding application
calls.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from .accounts import AccountManager, LedgerAccount
from .accrual import AccrualEngine
from .audit import AuditTrail
from .claims import ClaimResult, ClaimService
from .clock import Clock, SystemClock
from .config import InvestmentConfig, get_config
from .currency import Money
from .deposits import DepositService
from .eligibility import EligibilityBreakdown, WithdrawalEligibilityCalculator
from .investments import Investment, InvestmentManager
from .products import ProductCatalog
from .scheduler import AccrualScheduler
from .storage import StorageInterface, create_storage
from .transactions import Transaction, TransactionLedger
from .withdrawals import WithdrawalDecision, WithdrawalRequest, WithdrawalService, WithdrawalSource


class InvestmentSystem:
    """Investment engine with all components initialized"""

    def __init__(self, config: Optional[InvestmentConfig] = None,
                 storage: Optional[StorageInterface] = None,
                 clock: Optional[Clock] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_path, self.config.database_timeout)
        self.clock = clock or SystemClock()
        retries = self.config.conflict_retries

        self.audit_trail = AuditTrail(self.storage, self.clock)
        self.ledger = TransactionLedger(self.storage, self.clock)
        self.accrual = AccrualEngine(self.clock)
        self.accounts = AccountManager(
            self.storage, self.audit_trail, self.clock,
            referral_bonus_rate=self.config.referral_bonus_rate_value,
            currency=self.config.currency,
        )
        self.products = ProductCatalog(self.storage, self.audit_trail, self.clock, self.config.currency)
        self.investments = InvestmentManager(
            self.storage, self.audit_trail, self.accounts, self.products, self.ledger, self.clock,
            payout_multiplier=self.config.payout_multiplier_value,
            referral_bonus_rate=self.config.referral_bonus_rate_value,
            conflict_retries=retries,
        )
        self.claims = ClaimService(
            self.storage, self.audit_trail, self.accounts, self.investments, self.ledger, self.clock,
            conflict_retries=retries,
        )
        self.eligibility = WithdrawalEligibilityCalculator(self.storage)
        self.withdrawals = WithdrawalService(
            self.storage, self.audit_trail, self.accounts, self.ledger, self.eligibility, self.clock,
            minimum_withdrawal=self.config.minimum_withdrawal_amount,
            withdrawal_fee=self.config.withdrawal_fee_amount,
            conflict_retries=retries,
        )
        self.deposits = DepositService(
            self.storage, self.audit_trail, self.accounts, self.ledger, self.clock,
            conflict_retries=retries,
        )
        self.scheduler = AccrualScheduler(
            self.storage, self.audit_trail, self.investments, self.clock,
            conflict_retries=retries,
        )

    # Reads

    def get_account(self, account_id: str) -> LedgerAccount:
        return self.accounts.get_account(account_id)

    def get_active_investments(self, account_id: str) -> List[Investment]:
        return self.investments.get_active_investments(account_id)

    def compute_current_value(self, investment: Union[Investment, str],
                              now: Optional[datetime] = None) -> Money:
        """Live value of an active investment; the settled value once it is closed"""
        if isinstance(investment, str):
            investment = self.investments.get_investment(investment)
        if not investment.is_active:
            return investment.current_value
        return self.accrual.current_value(investment, now)

    def compute_eligibility(self, account: Union[LedgerAccount, str]) -> EligibilityBreakdown:
        if isinstance(account, str):
            account = self.accounts.get_account(account)
        return self.eligibility.eligibility(account)

    def list_transactions(self, account_id: str) -> List[Transaction]:
        self.accounts.get_account(account_id)
        return self.ledger.list_for_account(account_id)

    def list_pending_withdrawals(self) -> List[WithdrawalRequest]:
        return self.withdrawals.list_pending()

    def list_pending_deposits(self) -> List[Transaction]:
        return self.deposits.list_pending_deposits()

    # Mutations

    def submit_withdrawal(self, account_id: str, amount: Union[str, int, Decimal],
                          source: Union[WithdrawalSource, str], address: Optional[str] = None,
                          password: Optional[str] = None) -> WithdrawalRequest:
        return self.withdrawals.submit(account_id, amount, source, address, password)

    def claim_profit(self, investment_id: str, account_id: Optional[str] = None,
                     now: Optional[datetime] = None) -> ClaimResult:
        return self.claims.claim(investment_id, now=now, account_id=account_id)

    def resolve_withdrawal(self, request_id: str, decision: Union[WithdrawalDecision, str],
                           tx_reference: Optional[str] = None,
                           reason: Optional[str] = None) -> WithdrawalRequest:
        return self.withdrawals.resolve(request_id, decision, tx_reference=tx_reference, reason=reason)

    def close(self) -> None:
        self.storage.close()
