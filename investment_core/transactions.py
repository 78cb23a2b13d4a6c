"""
Transaction Ledger Module

Append-only record of every balance-affecting event. Amounts are signed:
credits to the account are positive, debits (investments, withdrawals) are
negative. Only a pending deposit or withdrawal may move to a terminal status;
completed and rejected entries are never modified.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional
import uuid

from .clock import Clock, SystemClock
from .currency import Money
from .errors import InvalidStateTransition, NotFound
from .storage import StorageInterface, StorageRecord


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INVESTMENT = "investment"
    RETURN = "return"
    REFERRAL = "referral"


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self != TransactionStatus.PENDING


@dataclass
class Transaction(StorageRecord):
    """Single ledger entry for one account"""
    account_id: str
    transaction_type: TransactionType
    amount: Money
    status: TransactionStatus
    date: datetime
    description: str = ""
    reference: Optional[str] = None  # on-chain tx hash for deposits/withdrawals
    related_id: Optional[str] = None  # investment or withdrawal request id
    rejection_reason: Optional[str] = None


class TransactionLedger:
    """Writes and queries ledger entries"""

    def __init__(self, storage: StorageInterface, clock: Optional[Clock] = None):
        self.storage = storage
        self.clock = clock or SystemClock()
        self.table_name = "transactions"

    def record(
        self,
        account_id: str,
        transaction_type: TransactionType,
        amount: Money,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        description: str = "",
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
    ) -> Transaction:
        """Append a new entry"""
        now = self.clock.now()
        transaction = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            transaction_type=transaction_type,
            amount=amount,
            status=status,
            date=now,
            description=description,
            reference=reference,
            related_id=related_id,
        )
        self.storage.save_record(self.table_name, transaction)
        return transaction

    def get(self, transaction_id: str) -> Transaction:
        transaction = self.storage.load_record(Transaction, self.table_name, transaction_id)
        if not transaction:
            raise NotFound(f"Transaction {transaction_id} not found")
        return transaction

    def finalize(self, transaction: Transaction, status: TransactionStatus,
                 rejection_reason: Optional[str] = None) -> Transaction:
        """Move a pending entry to a terminal status"""
        if transaction.status.is_terminal:
            raise InvalidStateTransition(
                f"Transaction {transaction.id} is already {transaction.status.value}"
            )
        if not status.is_terminal:
            raise InvalidStateTransition("A transaction can only be finalized to a terminal status")

        transaction.status = status
        transaction.rejection_reason = rejection_reason
        transaction.updated_at = self.clock.now()
        self.storage.save_record(self.table_name, transaction)
        return transaction

    def list_for_account(self, account_id: str,
                         transaction_type: Optional[TransactionType] = None) -> List[Transaction]:
        """Statement for one account, newest first"""
        filters = {'account_id': account_id}
        if transaction_type:
            filters['transaction_type'] = transaction_type.value
        transactions = self.storage.find_records(Transaction, self.table_name, filters)
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    def list_by_status(self, transaction_type: TransactionType,
                       status: TransactionStatus) -> List[Transaction]:
        """Oldest first, the order an admin queue is worked in"""
        transactions = self.storage.find_records(Transaction, self.table_name, {
            'transaction_type': transaction_type.value,
            'status': status.value,
        })
        transactions.sort(key=lambda t: t.date)
        return transactions
