"""
Deposits

Users report an on-chain transfer; the deposit stays pending until an
administrator confirms it. Only approval credits the balance.
"""

from decimal import Decimal
from typing import List, Optional, Union
import logging

from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .currency import Money, check_precision, parse_decimal
from .errors import InvalidStateTransition, NotFound, ValidationError, retry_on_conflict
from .logging_config import log_action
from .storage import StorageInterface
from .transactions import Transaction, TransactionLedger, TransactionStatus, TransactionType

logger = logging.getLogger(__name__)


class DepositService:

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        accounts: AccountManager,
        ledger: TransactionLedger,
        clock: Optional[Clock] = None,
        conflict_retries: int = 1,
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.conflict_retries = conflict_retries

    def request_deposit(self, account_id: str, amount: Union[str, int, Decimal],
                        tx_hash: str) -> Transaction:
        """Record a pending deposit for admin review"""
        try:
            value = parse_decimal(amount, "amount")
        except ValueError as e:
            raise ValidationError(str(e))
        if value <= 0:
            raise ValidationError("Deposit amount must be positive")
        tx_hash = (tx_hash or "").strip()
        if not tx_hash:
            raise ValidationError("A transaction hash is required for deposits")

        with self.storage.atomic():
            account = self.accounts.get_account(account_id)
            try:
                check_precision(value, account.balance.currency)
            except ValueError as e:
                raise ValidationError(str(e))
            transaction = self.ledger.record(
                account.id, TransactionType.DEPOSIT, Money(value, account.balance.currency),
                status=TransactionStatus.PENDING, description="Deposit", reference=tx_hash
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.DEPOSIT_REQUESTED,
                entity_type="deposit",
                entity_id=transaction.id,
                metadata={"amount": value, "tx_hash": tx_hash},
                user_id=account.id
            )

        log_action(logger, "info", f"Deposit of {transaction.amount.to_string()} requested",
                   user_id=account_id, action="request_deposit", resource=f"deposit:{transaction.id}")
        return transaction

    def approve_deposit(self, transaction_id: str) -> Transaction:
        return retry_on_conflict(self.conflict_retries)(self._approve)(transaction_id)

    def _approve(self, transaction_id: str) -> Transaction:
        with self.storage.atomic():
            deposit = self._pending_deposit(transaction_id)
            self.ledger.finalize(deposit, TransactionStatus.COMPLETED)

            account = self.accounts.get_account(deposit.account_id)
            account.balance = account.balance + deposit.amount
            account.updated_at = self.clock.now()
            self.accounts.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.DEPOSIT_APPROVED,
                entity_type="deposit",
                entity_id=deposit.id,
                metadata={"amount": deposit.amount.amount},
                user_id=account.id
            )

        log_action(logger, "info", f"Deposit of {deposit.amount.to_string()} approved",
                   user_id=deposit.account_id, action="approve_deposit", resource=f"deposit:{deposit.id}")
        return deposit

    def reject_deposit(self, transaction_id: str, reason: Optional[str] = None) -> Transaction:
        return retry_on_conflict(self.conflict_retries)(self._reject)(transaction_id, reason)

    def _reject(self, transaction_id: str, reason: Optional[str]) -> Transaction:
        reason = (reason or "").strip() or "Rejected by admin"
        with self.storage.atomic():
            deposit = self._pending_deposit(transaction_id)
            self.ledger.finalize(deposit, TransactionStatus.REJECTED, rejection_reason=reason)
            self.audit_trail.log_event(
                event_type=AuditEventType.DEPOSIT_REJECTED,
                entity_type="deposit",
                entity_id=deposit.id,
                metadata={"amount": deposit.amount.amount, "reason": reason},
                user_id=deposit.account_id
            )

        log_action(logger, "info", f"Deposit rejected: {reason}",
                   user_id=deposit.account_id, action="reject_deposit", resource=f"deposit:{deposit.id}")
        return deposit

    def list_pending_deposits(self) -> List[Transaction]:
        return self.ledger.list_by_status(TransactionType.DEPOSIT, TransactionStatus.PENDING)

    def _pending_deposit(self, transaction_id: str) -> Transaction:
        transaction = self.ledger.get(transaction_id)
        if transaction.transaction_type != TransactionType.DEPOSIT:
            raise NotFound(f"Deposit {transaction_id} not found")
        if transaction.status.is_terminal:
            log_action(logger, "warning", f"Deposit already {transaction.status.value}",
                       user_id=transaction.account_id, action="resolve_deposit",
                       resource=f"deposit:{transaction_id}")
            raise InvalidStateTransition(
                f"Deposit {transaction_id} is already {transaction.status.value}"
            )
        return transaction
