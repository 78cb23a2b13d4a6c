"""
Withdrawal Requests

State machine: pending -> approved | rejected. Both outcomes are terminal.

Submitting moves the amount out of the source bucket's backing field
(balance for "profit", referral_bonus for "referral_bonus") into
escrowed_amount. Approval releases the escrow as a completed withdrawal.
Rejection releases it back into balance, whichever bucket it came from.
Each request is resolved exactly once.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union
import logging
import uuid

from .accounts import AccountManager, LedgerAccount
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .currency import Money, check_precision, parse_decimal
from .eligibility import WITHDRAWAL_REQUESTS_TABLE, WithdrawalEligibilityCalculator
from .errors import InsufficientFunds, InvalidStateTransition, NotFound, ValidationError, retry_on_conflict
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord
from .transactions import TransactionLedger, TransactionStatus, TransactionType

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Rejected by admin"


class WithdrawalSource(Enum):
    PROFIT = "profit"
    REFERRAL_BONUS = "referral_bonus"


class WithdrawalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalDecision(Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass
class WithdrawalRequest(StorageRecord):
    account_id: str
    amount: Money
    source: WithdrawalSource
    destination_address: str
    fee_amount: Money = field(default_factory=Money.zero)
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    tx_reference: Optional[str] = None
    rejection_reason: Optional[str] = None
    resolved_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == WithdrawalStatus.PENDING

    @property
    def net_amount(self) -> Money:
        return self.amount - self.fee_amount


class WithdrawalService:
    """
    Submits and resolves withdrawal requests
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        accounts: AccountManager,
        ledger: TransactionLedger,
        calculator: WithdrawalEligibilityCalculator,
        clock: Optional[Clock] = None,
        minimum_withdrawal: Decimal = Decimal("10"),
        withdrawal_fee: Decimal = Decimal("0"),
        conflict_retries: int = 1,
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.ledger = ledger
        self.calculator = calculator
        self.clock = clock or SystemClock()
        self.minimum_withdrawal = minimum_withdrawal
        self.withdrawal_fee = withdrawal_fee
        self.conflict_retries = conflict_retries
        self.table_name = WITHDRAWAL_REQUESTS_TABLE

    # Submission

    def submit(
        self,
        account_id: str,
        amount: Union[str, int, Decimal],
        source: Union[WithdrawalSource, str],
        address: Optional[str] = None,
        password: Optional[str] = None,
    ) -> WithdrawalRequest:
        """
        Create a pending withdrawal request and escrow its amount

        Args:
            account_id: Requesting account
            amount: Requested amount
            source: "profit" or "referral_bonus"
            address: Destination wallet; defaults to the account's bound wallet
            password: Withdrawal password, required when the account has one

        Raises:
            ValidationError: Below minimum, missing address, bad password
            InsufficientFunds: Amount exceeds the selected bucket
            NotFound: Unknown account
        """
        try:
            value = parse_decimal(amount, "amount")
            source = WithdrawalSource(source)
        except ValueError as e:
            raise ValidationError(str(e))
        return retry_on_conflict(self.conflict_retries)(self._submit)(
            account_id, value, source, address, password
        )

    def _submit(self, account_id: str, value: Decimal, source: WithdrawalSource,
                address: Optional[str], password: Optional[str]) -> WithdrawalRequest:
        with self.storage.atomic():
            account = self.accounts.get_account(account_id)
            try:
                check_precision(value, account.balance.currency)
            except ValueError as e:
                raise ValidationError(str(e))
            amount = Money(value, account.balance.currency)
            minimum = Money(self.minimum_withdrawal, amount.currency)

            if not amount.is_positive():
                raise ValidationError("Withdrawal amount must be positive")
            if amount < minimum:
                self._reject_submission(account_id, "below minimum")
                raise ValidationError(
                    f"Requested {amount.to_string()} is below minimum withdrawal of {minimum.to_string()}"
                )

            destination = (address or account.wallet_address or "").strip()
            if not destination:
                self._reject_submission(account_id, "missing address")
                raise ValidationError("A destination wallet address is required")

            if account.has_withdrawal_password:
                if not password:
                    self._reject_submission(account_id, "missing password")
                    raise ValidationError("Withdrawal password is required")
                if not self.accounts.verify_withdrawal_password(account, password):
                    self._reject_submission(account_id, "wrong password")
                    raise ValidationError("Withdrawal password is incorrect")

            # Re-validated against the committed snapshot, not the caller's view
            breakdown = self.calculator.eligibility(account)
            bucket = breakdown.bucket(source.value)
            if amount > bucket:
                self._reject_submission(account_id, "insufficient funds")
                raise InsufficientFunds(
                    f"Requested {amount.to_string()} exceeds available "
                    f"{source.value.replace('_', ' ')} of {bucket.to_string()}"
                )
            self._move_to_escrow(account, amount, source)

            now = self.clock.now()
            request = WithdrawalRequest(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_id=account_id,
                amount=amount,
                source=source,
                destination_address=destination,
                fee_amount=Money(self.withdrawal_fee, amount.currency),
            )
            self.storage.save_record(self.table_name, request)

            self.audit_trail.log_event(
                event_type=AuditEventType.WITHDRAWAL_SUBMITTED,
                entity_type="withdrawal",
                entity_id=request.id,
                metadata={
                    "amount": amount.amount,
                    "source": source.value,
                    "destination_address": destination,
                },
                user_id=account_id
            )

        log_action(logger, "info", f"Withdrawal of {amount.to_string()} submitted",
                   user_id=account_id, action="submit_withdrawal", resource=f"withdrawal:{request.id}")
        return request

    def _move_to_escrow(self, account: LedgerAccount, amount: Money, source: WithdrawalSource) -> None:
        if source == WithdrawalSource.PROFIT:
            if amount > account.balance:
                self._reject_submission(account.id, "insufficient balance")
                raise InsufficientFunds(
                    f"Requested {amount.to_string()} exceeds balance of {account.balance.to_string()}"
                )
            account.balance = account.balance - amount
        else:
            account.referral_bonus = account.referral_bonus - amount
        account.escrowed_amount = account.escrowed_amount + amount
        account.updated_at = self.clock.now()
        self.accounts.save_account(account)

    def _reject_submission(self, account_id: str, reason: str) -> None:
        log_action(logger, "warning", f"Withdrawal rejected: {reason}",
                   user_id=account_id, action="submit_withdrawal")

    # Resolution

    def approve(self, request_id: str, tx_reference: str) -> WithdrawalRequest:
        """Settle a pending request as paid out under tx_reference"""
        tx_reference = (tx_reference or "").strip()
        if not tx_reference:
            raise ValidationError("A transaction reference is required to approve a withdrawal")
        return retry_on_conflict(self.conflict_retries)(self._approve)(request_id, tx_reference)

    def _approve(self, request_id: str, tx_reference: str) -> WithdrawalRequest:
        with self.storage.atomic():
            request = self._pending_request(request_id)
            account = self.accounts.get_account(request.account_id)
            now = self.clock.now()

            account.escrowed_amount = account.escrowed_amount - request.amount
            account.total_withdrawn = account.total_withdrawn + request.amount
            account.updated_at = now
            self.accounts.save_account(account)

            transaction = self.ledger.record(
                account.id, TransactionType.WITHDRAWAL, -request.amount,
                status=TransactionStatus.COMPLETED,
                description=f"Withdrawal to {request.destination_address}",
                reference=tx_reference, related_id=request.id
            )

            request.status = WithdrawalStatus.APPROVED
            request.tx_reference = tx_reference
            request.transaction_id = transaction.id
            request.resolved_at = now
            request.updated_at = now
            self.storage.save_record(self.table_name, request)

            self.audit_trail.log_event(
                event_type=AuditEventType.WITHDRAWAL_APPROVED,
                entity_type="withdrawal",
                entity_id=request.id,
                metadata={"amount": request.amount.amount, "tx_reference": tx_reference},
                user_id=account.id
            )

        log_action(logger, "info", f"Withdrawal of {request.amount.to_string()} approved",
                   user_id=request.account_id, action="approve_withdrawal",
                   resource=f"withdrawal:{request.id}")
        return request

    def reject(self, request_id: str, reason: Optional[str] = None) -> WithdrawalRequest:
        """Refund a pending request into the account balance"""
        reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
        return retry_on_conflict(self.conflict_retries)(self._reject)(request_id, reason)

    def _reject(self, request_id: str, reason: str) -> WithdrawalRequest:
        with self.storage.atomic():
            request = self._pending_request(request_id)
            account = self.accounts.get_account(request.account_id)
            now = self.clock.now()

            account.escrowed_amount = account.escrowed_amount - request.amount
            account.balance = account.balance + request.amount
            account.updated_at = now
            self.accounts.save_account(account)

            request.status = WithdrawalStatus.REJECTED
            request.rejection_reason = reason
            request.resolved_at = now
            request.updated_at = now
            self.storage.save_record(self.table_name, request)

            self.audit_trail.log_event(
                event_type=AuditEventType.WITHDRAWAL_REJECTED,
                entity_type="withdrawal",
                entity_id=request.id,
                metadata={"amount": request.amount.amount, "reason": reason},
                user_id=account.id
            )

        log_action(logger, "info", f"Withdrawal of {request.amount.to_string()} rejected: {reason}",
                   user_id=request.account_id, action="reject_withdrawal",
                   resource=f"withdrawal:{request.id}")
        return request

    def resolve(self, request_id: str, decision: Union[WithdrawalDecision, str],
                tx_reference: Optional[str] = None, reason: Optional[str] = None) -> WithdrawalRequest:
        try:
            decision = WithdrawalDecision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision: {decision}")
        if decision == WithdrawalDecision.APPROVE:
            return self.approve(request_id, tx_reference)
        return self.reject(request_id, reason)

    def _pending_request(self, request_id: str) -> WithdrawalRequest:
        request = self.get_request(request_id)
        if not request.is_pending:
            log_action(logger, "warning", f"Withdrawal already {request.status.value}",
                       user_id=request.account_id, action="resolve_withdrawal",
                       resource=f"withdrawal:{request_id}")
            raise InvalidStateTransition(
                f"Withdrawal {request_id} is already {request.status.value}"
            )
        return request

    # Queries

    def get_request(self, request_id: str, account_id: Optional[str] = None) -> WithdrawalRequest:
        request = self.storage.load_record(WithdrawalRequest, self.table_name, request_id)
        if not request or (account_id and request.account_id != account_id):
            raise NotFound(f"Withdrawal request {request_id} not found")
        return request

    def list_pending(self) -> List[WithdrawalRequest]:
        requests = self.storage.find_records(
            WithdrawalRequest, self.table_name, {'status': WithdrawalStatus.PENDING.value}
        )
        requests.sort(key=lambda r: r.created_at)
        return requests

    def list_for_account(self, account_id: str) -> List[WithdrawalRequest]:
        requests = self.storage.find_records(WithdrawalRequest, self.table_name, {'account_id': account_id})
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests
