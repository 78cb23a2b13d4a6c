"""
Investment Management Module

Places principal into products and settles investments once they mature.
Creating an investment debits the account balance, snapshots the product's
rate, and pays the referrer's bonus, all in one atomic block.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional
import logging
import uuid

from .accounts import AccountManager
from .accrual import current_value
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock, ensure_utc
from .currency import Money
from .errors import InsufficientFunds, NotFound, ValidationError, retry_on_conflict
from .logging_config import log_action
from .products import ProductCatalog
from .storage import StorageInterface, StorageRecord
from .transactions import TransactionLedger, TransactionType

logger = logging.getLogger(__name__)


class InvestmentStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class Investment(StorageRecord):
    """
    Principal placed into a product. principal, daily_growth_rate and
    final_value_cap are fixed at creation; current_value is a cached
    accrual result refreshed by the scheduler.
    """
    account_id: str
    product_id: str
    principal: Money
    start_date: datetime
    end_date: datetime
    daily_growth_rate: Decimal
    final_value_cap: Money
    current_value: Money
    last_profit_claim_date: datetime
    total_claimed: Money = field(default_factory=Money.zero)
    status: InvestmentStatus = InvestmentStatus.ACTIVE
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == InvestmentStatus.ACTIVE


class InvestmentManager:
    """
    Creates, queries and settles investments
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        accounts: AccountManager,
        products: ProductCatalog,
        ledger: TransactionLedger,
        clock: Optional[Clock] = None,
        payout_multiplier: Decimal = Decimal("2"),
        referral_bonus_rate: Decimal = Decimal("0.05"),
        conflict_retries: int = 1,
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.products = products
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.payout_multiplier = payout_multiplier
        self.referral_bonus_rate = referral_bonus_rate
        self.conflict_retries = conflict_retries
        self.table_name = "investments"

    def create_investment(self, account_id: str, product_id: str) -> Investment:
        """
        Invest the product's ticket amount from the account balance

        Raises:
            NotFound: Unknown account or product
            ValidationError: Product no longer offered
            InsufficientFunds: Balance below the ticket amount
        """
        return retry_on_conflict(self.conflict_retries)(self._create_investment)(account_id, product_id)

    def _create_investment(self, account_id: str, product_id: str) -> Investment:
        with self.storage.atomic():
            product = self.products.get_product(product_id)
            if not product.active:
                raise ValidationError(f"Product {product.name} is not available for investment")
            if product.growth_rate <= 0:
                raise ValidationError("Daily growth rate must be positive")

            account = self.accounts.get_account(account_id)
            principal = product.amount
            if account.balance.currency != principal.currency:
                raise ValidationError(
                    f"Product {product.name} is priced in {principal.currency.code}; "
                    f"account holds {account.balance.currency.code}"
                )
            if account.balance < principal:
                log_action(logger, "warning", "Investment rejected: insufficient balance",
                           user_id=account_id, action="create_investment",
                           resource=f"product:{product_id}")
                raise InsufficientFunds(
                    f"Investing {principal.to_string()} requires a balance of at least "
                    f"{principal.to_string()}; available {account.balance.to_string()}"
                )

            now = self.clock.now()
            investment = Investment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_id=account_id,
                product_id=product.id,
                principal=principal,
                start_date=now,
                end_date=now + timedelta(days=product.duration_days),
                daily_growth_rate=product.growth_rate,
                final_value_cap=principal * self.payout_multiplier,
                current_value=principal,
                last_profit_claim_date=now,
                total_claimed=Money.zero(principal.currency),
            )
            investment.current_value = current_value(investment, now)
            self.storage.save_record(self.table_name, investment)

            account.balance = account.balance - principal
            account.total_invested = account.total_invested + principal
            account.updated_at = now
            self.accounts.save_account(account)

            self.ledger.record(
                account_id, TransactionType.INVESTMENT, -principal,
                description=f"Investment in {product.name}", related_id=investment.id
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.INVESTMENT_CREATED,
                entity_type="investment",
                entity_id=investment.id,
                metadata={
                    "product_id": product.id,
                    "principal": principal.amount,
                    "daily_growth_rate": product.growth_rate,
                    "final_value_cap": investment.final_value_cap.amount,
                },
                user_id=account_id
            )

            if account.referred_by:
                self._credit_referrer(account.referred_by, account_id, investment)

        log_action(logger, "info", f"Investment of {principal.to_string()} created",
                   user_id=account_id, action="create_investment",
                   resource=f"investment:{investment.id}")
        return investment

    def _credit_referrer(self, referrer_id: str, investor_id: str, investment: Investment) -> None:
        bonus = investment.principal * self.referral_bonus_rate
        if not bonus.is_positive():
            return
        referrer = self.accounts.get_account(referrer_id)
        referrer.referral_bonus = referrer.referral_bonus + bonus
        referrer.updated_at = self.clock.now()
        self.accounts.save_account(referrer)

        self.ledger.record(
            referrer_id, TransactionType.REFERRAL, bonus,
            description="Referral bonus", related_id=investment.id
        )
        self.audit_trail.log_event(
            event_type=AuditEventType.REFERRAL_BONUS_CREDITED,
            entity_type="account",
            entity_id=referrer_id,
            metadata={"investor_id": investor_id, "investment_id": investment.id, "bonus": bonus.amount},
            user_id=referrer_id
        )

    def get_investment(self, investment_id: str, account_id: Optional[str] = None) -> Investment:
        """Load an investment, optionally requiring it to belong to account_id"""
        investment = self.storage.load_record(Investment, self.table_name, investment_id)
        if not investment or (account_id and investment.account_id != account_id):
            raise NotFound(f"Investment {investment_id} not found")
        return investment

    def save_investment(self, investment: Investment) -> None:
        self.storage.save_record(self.table_name, investment)

    def list_investments(self, account_id: str) -> List[Investment]:
        investments = self.storage.find_records(Investment, self.table_name, {'account_id': account_id})
        investments.sort(key=lambda i: i.start_date)
        return investments

    def get_active_investments(self, account_id: str) -> List[Investment]:
        return [i for i in self.list_investments(account_id) if i.is_active]

    def list_all_active(self) -> List[Investment]:
        return self.storage.find_records(
            Investment, self.table_name, {'status': InvestmentStatus.ACTIVE.value}
        )

    def complete_investment(self, investment: Investment, now: datetime) -> Money:
        """
        Move a mature investment to completed and credit whatever accrued
        profit was never claimed. Returns the amount credited.

        Must run inside the caller's atomic block.
        """
        now = ensure_utc(now)
        final_value = current_value(investment, now)
        unclaimed = (final_value - investment.principal - investment.total_claimed).floor_zero()

        investment.current_value = final_value
        investment.status = InvestmentStatus.COMPLETED
        investment.completed_at = now
        investment.updated_at = now
        if unclaimed.is_positive():
            investment.total_claimed = investment.total_claimed + unclaimed
        self.save_investment(investment)

        if unclaimed.is_positive():
            account = self.accounts.get_account(investment.account_id)
            account.balance = account.balance + unclaimed
            account.updated_at = now
            self.accounts.save_account(account)
            self.ledger.record(
                investment.account_id, TransactionType.RETURN, unclaimed,
                description="Investment completed", related_id=investment.id
            )

        self.audit_trail.log_event(
            event_type=AuditEventType.INVESTMENT_COMPLETED,
            entity_type="investment",
            entity_id=investment.id,
            metadata={"final_value": final_value.amount, "settled": unclaimed.amount},
            user_id=investment.account_id
        )
        log_action(logger, "info", f"Investment completed, settled {unclaimed.to_string()}",
                   user_id=investment.account_id, action="complete_investment",
                   resource=f"investment:{investment.id}")
        return unclaimed
