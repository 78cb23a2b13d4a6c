"""
Test suite for structured logging
"""

import io
import json
import logging
from datetime import datetime, timezone

from investment_core.clock import FixedClock
from investment_core.config import InvestmentConfig
from investment_core.logging_config import JSONFormatter, log_action
from investment_core.storage import InMemoryStorage
from investment_core.system import InvestmentSystem


class TestJSONLogging:

    def setup_method(self):
        self.stream = io.StringIO()
        self.handler = logging.StreamHandler(self.stream)
        self.handler.setFormatter(JSONFormatter())
        self.logger = logging.getLogger("investment_core")
        self.previous_level = self.logger.level
        self.logger.addHandler(self.handler)
        self.logger.setLevel(logging.INFO)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)
        self.logger.setLevel(self.previous_level)

    def records(self):
        return [json.loads(line) for line in self.stream.getvalue().splitlines()]

    def test_entry_fields(self):
        log_action(self.logger, "info", "Profit claimed", user_id="ACC001",
                   action="claim_profit", resource="investment:INV001", extra={"amount": "30.00"})

        entry = self.records()[-1]
        assert entry["module"] == "test_logging_config"
        assert "logger" not in entry
        assert entry["level"] == "INFO"
        assert entry["message"] == "Profit claimed"
        assert entry["user_id"] == "ACC001"
        assert entry["action"] == "claim_profit"
        assert entry["resource"] == "investment:INV001"
        assert entry["extra"] == {"amount": "30.00"}
        assert "timestamp" in entry

    def test_missing_fields_are_dropped(self):
        log_action(self.logger, "warning", "Scheduler idle")

        entry = self.records()[-1]
        assert entry["level"] == "WARNING"
        assert set(entry) == {"timestamp", "level", "module", "message"}

    def test_module_names_the_calling_service(self):
        clock = FixedClock(datetime(2024, 1, 1, 12, tzinfo=timezone.utc))
        config = InvestmentConfig(database_path=":memory:", scheduler_enabled=False)
        system = InvestmentSystem(config=config, storage=InMemoryStorage(), clock=clock)
        account = system.accounts.create_account("Alice", "alice@example.com")

        system.deposits.request_deposit(account.id, "100", "0xfund")

        entries = [e for e in self.records() if e.get("action") == "request_deposit"]
        assert entries[0]["module"] == "deposits"
        assert entries[0]["user_id"] == account.id
