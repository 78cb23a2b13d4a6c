"""
Test suite for withdrawal requests

Submission escrows the amount, approval pays it out, rejection refunds it.
"""

import os
import shutil
import tempfile
import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from datetime import datetime, timezone

from investment_core.clock import FixedClock
from investment_core.config import InvestmentConfig
from investment_core.currency import Money
from investment_core.errors import InsufficientFunds, InvalidStateTransition, ValidationError
from investment_core.storage import InMemoryStorage, SQLiteStorage
from investment_core.system import InvestmentSystem
from investment_core.transactions import TransactionStatus, TransactionType
from investment_core.withdrawals import (
    DEFAULT_REJECTION_REASON, WithdrawalSource, WithdrawalStatus
)


def usdt(value: str) -> Money:
    return Money(Decimal(value))


class TestWithdrawalService:

    def setup_method(self):
        self.clock = FixedClock(datetime(2024, 1, 1, 12, tzinfo=timezone.utc))
        config = InvestmentConfig(database_path=":memory:", scheduler_enabled=False)
        self.system = InvestmentSystem(config=config, storage=InMemoryStorage(), clock=self.clock)

        account = self.system.accounts.create_account("Alice", "alice@example.com")
        account.balance = usdt("50")
        account.total_invested = usdt("100")
        account.referral_bonus = usdt("20")
        self.system.accounts.save_account(account)
        self.account_id = account.id
        self.address = "TXdestination01"

    def account(self):
        return self.system.get_account(self.account_id)

    def submit(self, amount="30", source="profit", **kwargs):
        kwargs.setdefault("address", self.address)
        return self.system.submit_withdrawal(self.account_id, amount, source, **kwargs)

    def test_submit_escrows_amount(self):
        request = self.submit()

        assert request.status == WithdrawalStatus.PENDING
        assert request.amount == usdt("30")
        assert request.source == WithdrawalSource.PROFIT
        assert request.destination_address == self.address

        account = self.account()
        assert account.balance == usdt("20")
        assert account.escrowed_amount == usdt("30")
        assert self.system.list_pending_withdrawals()[0].id == request.id
        assert self.system.compute_eligibility(account).pending_withdrawals == usdt("30")

    def test_reject_refunds_balance(self):
        request = self.submit()
        rejected = self.system.resolve_withdrawal(request.id, "reject")

        assert rejected.status == WithdrawalStatus.REJECTED
        assert rejected.rejection_reason == DEFAULT_REJECTION_REASON
        assert rejected.resolved_at == self.clock.now()

        account = self.account()
        assert account.balance == usdt("50")
        assert account.escrowed_amount.is_zero()
        assert account.total_withdrawn.is_zero()
        assert self.system.list_pending_withdrawals() == []

    def test_reject_with_reason(self):
        request = self.submit()
        rejected = self.system.resolve_withdrawal(request.id, "reject", reason="Address flagged")
        assert rejected.rejection_reason == "Address flagged"

    def test_approve_pays_out(self):
        request = self.submit()
        approved = self.system.resolve_withdrawal(request.id, "approve", tx_reference="0xpaid")

        assert approved.status == WithdrawalStatus.APPROVED
        assert approved.tx_reference == "0xpaid"

        account = self.account()
        assert account.balance == usdt("20")
        assert account.escrowed_amount.is_zero()
        assert account.total_withdrawn == usdt("30")
        # Money leaving the balance equals money recorded as withdrawn
        assert account.balance + account.total_withdrawn == usdt("50")

        entries = self.system.ledger.list_for_account(self.account_id, TransactionType.WITHDRAWAL)
        assert len(entries) == 1
        assert entries[0].amount == usdt("-30")
        assert entries[0].status == TransactionStatus.COMPLETED
        assert entries[0].reference == "0xpaid"
        assert approved.transaction_id == entries[0].id

    def test_approve_requires_reference(self):
        request = self.submit()
        with pytest.raises(ValidationError):
            self.system.resolve_withdrawal(request.id, "approve", tx_reference="  ")
        assert self.system.withdrawals.get_request(request.id).is_pending

    def test_resolved_exactly_once(self):
        request = self.submit()
        self.system.resolve_withdrawal(request.id, "approve", tx_reference="0xpaid")

        with pytest.raises(InvalidStateTransition):
            self.system.resolve_withdrawal(request.id, "reject")
        with pytest.raises(InvalidStateTransition):
            self.system.resolve_withdrawal(request.id, "approve", tx_reference="0xagain")

        account = self.account()
        assert account.balance == usdt("20")
        assert account.total_withdrawn == usdt("30")

    def test_unknown_decision(self):
        request = self.submit()
        with pytest.raises(ValidationError):
            self.system.resolve_withdrawal(request.id, "maybe")

    def test_exceeding_bucket_changes_nothing(self):
        with pytest.raises(InsufficientFunds):
            self.submit(amount="60")
        with pytest.raises(InsufficientFunds):
            self.submit(amount="25", source="referral_bonus")

        account = self.account()
        assert account.balance == usdt("50")
        assert account.referral_bonus == usdt("20")
        assert account.escrowed_amount.is_zero()
        assert self.system.withdrawals.list_for_account(self.account_id) == []

    def test_below_minimum(self):
        with pytest.raises(ValidationError, match="below minimum withdrawal of 10"):
            self.submit(amount="5")

    def test_amount_rounding_up_to_minimum_is_rejected(self):
        with pytest.raises(ValidationError, match="decimal places"):
            self.submit(amount="9.995")

        account = self.account()
        assert account.balance == usdt("50")
        assert account.escrowed_amount.is_zero()
        assert self.system.withdrawals.list_for_account(self.account_id) == []

    def test_trailing_zeros_are_accepted(self):
        request = self.submit(amount="10.000")
        assert request.amount == usdt("10")

    def test_non_positive_amount(self):
        with pytest.raises(ValidationError):
            self.submit(amount="0")
        with pytest.raises(ValidationError):
            self.submit(amount="abc")

    def test_unknown_source(self):
        with pytest.raises(ValidationError):
            self.submit(source="salary")

    def test_address_required(self):
        with pytest.raises(ValidationError, match="address"):
            self.submit(address=None)

    def test_bound_wallet_is_default_address(self):
        self.system.accounts.bind_wallet(self.account_id, "TXbound")
        request = self.submit(address=None)
        assert request.destination_address == "TXbound"

    def test_withdrawal_password(self):
        self.system.accounts.bind_wallet(self.account_id, "TXbound", withdrawal_password="s3cret!")

        with pytest.raises(ValidationError, match="required"):
            self.submit()
        with pytest.raises(ValidationError, match="incorrect"):
            self.submit(password="wrong-one")

        request = self.submit(password="s3cret!")
        assert request.is_pending

    def test_referral_source_refunds_into_balance(self):
        request = self.submit(amount="15", source="referral_bonus")
        account = self.account()
        assert account.referral_bonus == usdt("5")
        assert account.balance == usdt("50")
        assert account.escrowed_amount == usdt("15")

        self.system.resolve_withdrawal(request.id, "reject")
        account = self.account()
        assert account.referral_bonus == usdt("5")
        assert account.balance == usdt("65")
        assert account.escrowed_amount.is_zero()

    def test_escrow_limits_follow_up_requests(self):
        self.submit(amount="30")
        # balance 20, escrow 30: available = 20 + 0 + 20 - 30 = 10, profit bucket 0
        with pytest.raises(InsufficientFunds):
            self.submit(amount="10")

    def test_fee_is_recorded(self):
        config = InvestmentConfig(database_path=":memory:", scheduler_enabled=False, withdrawal_fee="1.50")
        system = InvestmentSystem(config=config, storage=InMemoryStorage(), clock=self.clock)
        account = system.accounts.create_account("Bob", "bob@example.com")
        account.balance = usdt("40")
        system.accounts.save_account(account)

        request = system.submit_withdrawal(account.id, "20", "profit", address=self.address)
        assert request.fee_amount == usdt("1.50")
        assert request.net_amount == usdt("18.50")

    def test_lifecycle_is_audited(self):
        request = self.submit()
        self.system.resolve_withdrawal(request.id, "approve", tx_reference="0xpaid")
        events = self.system.audit_trail.get_events_for_entity("withdrawal", request.id)
        assert [e.event_type.value for e in events] == ["withdrawal_submitted", "withdrawal_approved"]


class TestConcurrentWithdrawals:
    """Submissions and resolutions racing on the same account"""

    def setup_method(self):
        self.clock = FixedClock(datetime(2024, 1, 1, 12, tzinfo=timezone.utc))
        self.temp_dir = tempfile.mkdtemp()
        self.address = "TXdestination01"

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def build_system(self, backend: str) -> InvestmentSystem:
        if backend == "sqlite":
            storage = SQLiteStorage(os.path.join(self.temp_dir, "withdrawals.db"))
        else:
            storage = InMemoryStorage()
        config = InvestmentConfig(database_path=":memory:", scheduler_enabled=False)
        return InvestmentSystem(config=config, storage=storage, clock=self.clock)

    def open_account(self, system: InvestmentSystem, referral_bonus: str = "0") -> str:
        account = system.accounts.create_account("Alice", "alice@example.com")
        account.balance = usdt("50")
        account.total_invested = usdt("100")
        account.referral_bonus = usdt(referral_bonus)
        system.accounts.save_account(account)
        return account.id

    def race(self, calls, expected_error):
        def attempt(call):
            try:
                return call()
            except expected_error:
                return None

        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            results = list(pool.map(attempt, calls))
        return [r for r in results if r is not None]

    def submit_race(self, system: InvestmentSystem, account_id: str, source: str, attempts: int = 8):
        calls = [
            lambda: system.submit_withdrawal(account_id, "10", source, address=self.address)
            for _ in range(attempts)
        ]
        return self.race(calls, InsufficientFunds)

    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_profit_submissions_stop_at_bucket(self, backend):
        system = self.build_system(backend)
        try:
            account_id = self.open_account(system)

            successes = self.submit_race(system, account_id, "profit")

            # Profit bucket shrinks 50 -> 30 -> 10 -> 0 as escrow grows, so three fit
            assert len(successes) == 3
            account = system.get_account(account_id)
            assert not account.balance.is_negative()
            assert account.balance == usdt("20")
            assert account.escrowed_amount == usdt("30")
            assert len(system.withdrawals.list_for_account(account_id)) == 3
            assert system.compute_eligibility(account).profit_amount.is_zero()
        finally:
            system.close()

    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_referral_submissions_stop_at_bucket(self, backend):
        system = self.build_system(backend)
        try:
            account_id = self.open_account(system, referral_bonus="35")

            successes = self.submit_race(system, account_id, "referral_bonus")

            assert len(successes) == 3
            account = system.get_account(account_id)
            assert account.referral_bonus == usdt("5")
            assert account.balance == usdt("50")
            assert account.escrowed_amount == usdt("30")
        finally:
            system.close()

    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_resolution_applies_once(self, backend):
        system = self.build_system(backend)
        try:
            account_id = self.open_account(system)
            request = system.submit_withdrawal(account_id, "30", "profit", address=self.address)
            calls = []
            for i in range(4):
                calls.append(lambda i=i: system.resolve_withdrawal(request.id, "approve",
                                                                   tx_reference=f"0xpaid{i}"))
                calls.append(lambda: system.resolve_withdrawal(request.id, "reject"))

            successes = self.race(calls, InvalidStateTransition)

            assert len(successes) == 1
            resolved = system.withdrawals.get_request(request.id)
            assert resolved.status == successes[0].status
            account = system.get_account(account_id)
            assert account.escrowed_amount.is_zero()
            withdrawals = system.ledger.list_for_account(account_id, TransactionType.WITHDRAWAL)
            if resolved.status == WithdrawalStatus.APPROVED:
                assert account.balance == usdt("20")
                assert account.total_withdrawn == usdt("30")
                assert len(withdrawals) == 1
            else:
                assert account.balance == usdt("50")
                assert account.total_withdrawn.is_zero()
                assert withdrawals == []
        finally:
            system.close()
