"""
Test suite for transactions module

Ledger entries, their terminal states, and statement ordering.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from investment_core.clock import FixedClock
from investment_core.currency import Money
from investment_core.errors import InvalidStateTransition, NotFound
from investment_core.storage import InMemoryStorage
from investment_core.transactions import TransactionLedger, TransactionStatus, TransactionType


class TestTransactionLedger:

    def setup_method(self):
        self.clock = FixedClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        self.ledger = TransactionLedger(InMemoryStorage(), self.clock)

    def test_record_defaults_to_completed(self):
        entry = self.ledger.record("ACC001", TransactionType.REFERRAL, Money(Decimal("5")))
        assert entry.status == TransactionStatus.COMPLETED
        assert entry.date == self.clock.now()
        assert self.ledger.get(entry.id) == entry

    def test_signed_amounts(self):
        entry = self.ledger.record("ACC001", TransactionType.INVESTMENT, -Money(Decimal("100")))
        assert entry.amount.is_negative()

    def test_finalize_pending(self):
        entry = self.ledger.record("ACC001", TransactionType.DEPOSIT, Money(Decimal("50")),
                                   status=TransactionStatus.PENDING)
        self.ledger.finalize(entry, TransactionStatus.REJECTED, rejection_reason="Wrong network")

        stored = self.ledger.get(entry.id)
        assert stored.status == TransactionStatus.REJECTED
        assert stored.rejection_reason == "Wrong network"

    def test_terminal_entries_cannot_change(self):
        entry = self.ledger.record("ACC001", TransactionType.DEPOSIT, Money(Decimal("50")))
        with pytest.raises(InvalidStateTransition):
            self.ledger.finalize(entry, TransactionStatus.REJECTED)

    def test_cannot_finalize_to_pending(self):
        entry = self.ledger.record("ACC001", TransactionType.DEPOSIT, Money(Decimal("50")),
                                   status=TransactionStatus.PENDING)
        with pytest.raises(InvalidStateTransition):
            self.ledger.finalize(entry, TransactionStatus.PENDING)

    def test_statement_is_newest_first(self):
        first = self.ledger.record("ACC001", TransactionType.DEPOSIT, Money(Decimal("50")))
        self.clock.advance(hours=1)
        second = self.ledger.record("ACC001", TransactionType.INVESTMENT, -Money(Decimal("50")))
        self.ledger.record("ACC002", TransactionType.DEPOSIT, Money(Decimal("10")))

        assert [t.id for t in self.ledger.list_for_account("ACC001")] == [second.id, first.id]
        assert [t.id for t in self.ledger.list_for_account("ACC001", TransactionType.DEPOSIT)] == [first.id]

    def test_pending_queue_is_oldest_first(self):
        first = self.ledger.record("ACC001", TransactionType.DEPOSIT, Money(Decimal("50")),
                                   status=TransactionStatus.PENDING)
        self.clock.advance(hours=1)
        second = self.ledger.record("ACC002", TransactionType.DEPOSIT, Money(Decimal("20")),
                                    status=TransactionStatus.PENDING)

        queue = self.ledger.list_by_status(TransactionType.DEPOSIT, TransactionStatus.PENDING)
        assert [t.id for t in queue] == [first.id, second.id]

    def test_unknown_entry(self):
        with pytest.raises(NotFound):
            self.ledger.get("missing")
