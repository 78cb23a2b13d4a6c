"""
Account Management Module

LedgerAccount holds the per-user balance fields the engine reads and writes.
AccountManager covers the account lifecycle around them: opening, wallet and
withdrawal password binding, and referral links. Balance fields are only
changed by the engine services (deposits, investments, claims, withdrawals).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
import hashlib
import logging
import secrets
import uuid

from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .currency import Currency, Money
from .errors import NotFound, ValidationError
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord

logger = logging.getLogger(__name__)

REFERRAL_CODE_BYTES = 4


@dataclass
class LedgerAccount(StorageRecord):
    """
    Per-user balances.

    balance: funds available for investing or withdrawal
    total_invested / total_withdrawn: monotonically increasing totals
    referral_bonus: bonus earned from referred users, withdrawable on its own
    escrowed_amount: sum of pending withdrawal requests
    """
    owner_name: str
    email: str
    referral_code: str
    balance: Money = field(default_factory=Money.zero)
    total_invested: Money = field(default_factory=Money.zero)
    total_withdrawn: Money = field(default_factory=Money.zero)
    referral_bonus: Money = field(default_factory=Money.zero)
    escrowed_amount: Money = field(default_factory=Money.zero)
    referred_by: Optional[str] = None  # referrer account id
    wallet_address: Optional[str] = None
    withdrawal_password_hash: Optional[str] = None
    withdrawal_password_salt: Optional[str] = None

    @property
    def has_withdrawal_password(self) -> bool:
        return bool(self.withdrawal_password_hash)


@dataclass
class ReferralSummary:
    account_id: str
    owner_name: str
    total_invested: Money
    bonus_generated: Money


def _hash_password(password: str, salt: str) -> str:
    return hashlib.scrypt(
        password.encode(),
        salt=salt.encode(),
        n=16384, r=8, p=1
    ).hex()


class AccountManager:
    """
    Manages ledger accounts and their referral relationships
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 clock: Optional[Clock] = None,
                 referral_bonus_rate: Decimal = Decimal("0.05"),
                 currency: Currency = Currency.USDT):
        self.storage = storage
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.referral_bonus_rate = referral_bonus_rate
        self.currency = currency
        self.accounts_table = "accounts"

    def create_account(self, owner_name: str, email: str,
                       referral_code: Optional[str] = None) -> LedgerAccount:
        """
        Open a new ledger account with zero balances

        Args:
            owner_name: Display name of the account holder
            email: Contact email, unique per account
            referral_code: Optional code of the user who referred this one

        Returns:
            Created LedgerAccount
        """
        owner_name = (owner_name or "").strip()
        email = (email or "").strip().lower()
        if not owner_name:
            raise ValidationError("Owner name is required")
        if "@" not in email:
            raise ValidationError(f"Invalid email address: {email}")

        with self.storage.atomic():
            if self.storage.find(self.accounts_table, {'email': email}):
                raise ValidationError(f"An account with email {email} already exists")

            referrer = self._find_by_code(referral_code) if referral_code else None
            if referral_code and not referrer:
                raise ValidationError(f"Referral code {referral_code.upper()} does not exist")

            now = self.clock.now()
            zero = Money.zero(self.currency)
            account = LedgerAccount(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                owner_name=owner_name,
                email=email,
                referral_code=self._generate_referral_code(),
                referred_by=referrer.id if referrer else None,
                balance=zero,
                total_invested=zero,
                total_withdrawn=zero,
                referral_bonus=zero,
                escrowed_amount=zero,
            )
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "email": email,
                    "referral_code": account.referral_code,
                    "referred_by": account.referred_by,
                },
                user_id=account.id
            )

        log_action(logger, "info", f"Account created for {email}",
                   user_id=account.id, action="create_account", resource=f"account:{account.id}")
        return account

    def get_account(self, account_id: str) -> LedgerAccount:
        account = self.storage.load_record(LedgerAccount, self.accounts_table, account_id)
        if not account:
            raise NotFound(f"Account {account_id} not found")
        return account

    def save_account(self, account: LedgerAccount) -> None:
        """Persist with an optimistic version check"""
        self.storage.save_record(self.accounts_table, account)

    def list_accounts(self) -> List[LedgerAccount]:
        return self.storage.load_all_records(LedgerAccount, self.accounts_table)

    def bind_wallet(self, account_id: str, address: str,
                    withdrawal_password: Optional[str] = None) -> LedgerAccount:
        """
        Store the default withdrawal destination and, optionally, a withdrawal
        password that every later withdrawal must present.
        """
        address = (address or "").strip()
        if not address:
            raise ValidationError("Wallet address is required")
        if withdrawal_password is not None and len(withdrawal_password) < 6:
            raise ValidationError("Withdrawal password must be at least 6 characters")

        with self.storage.atomic():
            account = self.get_account(account_id)
            account.wallet_address = address
            if withdrawal_password is not None:
                salt = secrets.token_hex(16)
                account.withdrawal_password_salt = salt
                account.withdrawal_password_hash = _hash_password(withdrawal_password, salt)
            account.updated_at = self.clock.now()
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.WALLET_BOUND,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "wallet_address": address,
                    "password_set": withdrawal_password is not None,
                },
                user_id=account.id
            )

        log_action(logger, "info", "Withdrawal wallet bound",
                   user_id=account.id, action="bind_wallet", resource=f"account:{account.id}")
        return account

    def verify_withdrawal_password(self, account: LedgerAccount, password: Optional[str]) -> bool:
        """True when no password is configured or the given one matches"""
        if not account.has_withdrawal_password:
            return True
        if not password:
            return False
        candidate = _hash_password(password, account.withdrawal_password_salt)
        return secrets.compare_digest(candidate, account.withdrawal_password_hash)

    def apply_referral_code(self, account_id: str, code: str) -> LedgerAccount:
        """Link an account to its referrer; allowed once, never to oneself"""
        code = (code or "").strip().upper()
        if not code:
            raise ValidationError("Referral code is required")

        with self.storage.atomic():
            account = self.get_account(account_id)
            if account.referred_by:
                raise ValidationError("A referral code has already been applied to this account")
            if account.referral_code == code:
                raise ValidationError("You cannot use your own referral code")

            referrer = self._find_by_code(code)
            if not referrer:
                raise ValidationError(f"Referral code {code} does not exist")

            account.referred_by = referrer.id
            account.updated_at = self.clock.now()
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.REFERRAL_APPLIED,
                entity_type="account",
                entity_id=account.id,
                metadata={"referrer_id": referrer.id, "code": code},
                user_id=account.id
            )

        log_action(logger, "info", f"Referral code {code} applied",
                   user_id=account.id, action="apply_referral", resource=f"account:{account.id}")
        return account

    def list_referrals(self, account_id: str) -> List[ReferralSummary]:
        """Accounts referred by this one with the bonus each has generated"""
        self.get_account(account_id)
        downlines = self.storage.find_records(
            LedgerAccount, self.accounts_table, {'referred_by': account_id}
        )
        return [
            ReferralSummary(
                account_id=downline.id,
                owner_name=downline.owner_name,
                total_invested=downline.total_invested,
                bonus_generated=downline.total_invested * self.referral_bonus_rate,
            )
            for downline in downlines
        ]

    def _find_by_code(self, code: str) -> Optional[LedgerAccount]:
        matches = self.storage.find_records(
            LedgerAccount, self.accounts_table, {'referral_code': code.strip().upper()}
        )
        return matches[0] if matches else None

    def _generate_referral_code(self) -> str:
        while True:
            code = secrets.token_hex(REFERRAL_CODE_BYTES).upper()
            if not self._find_by_code(code):
                return code
