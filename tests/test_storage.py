"""
Tests for storage backends, optimistic versioning and atomic blocks
"""

import pytest
import tempfile
import os
from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from investment_core.currency import Money, Currency
from investment_core.errors import ConcurrencyConflict
from investment_core.storage import (
    InMemoryStorage, SQLiteStorage, StorageRecord, create_storage
)


class Colour(Enum):
    RED = "red"
    BLUE = "blue"


@dataclass
class SampleRecord(StorageRecord):
    name: str
    amount: Money
    colour: Colour
    rate: Decimal
    settled_at: Optional[datetime] = None


def make_record(record_id: str = "rec_1") -> SampleRecord:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return SampleRecord(
        id=record_id,
        created_at=now,
        updated_at=now,
        name="sample",
        amount=Money(Decimal("12.34"), Currency.EUR),
        colour=Colour.BLUE,
        rate=Decimal("2.5"),
    )


class StorageContract:
    """Behaviour every backend must share"""

    def make_storage(self):
        raise NotImplementedError

    def setup_method(self):
        self.storage = self.make_storage()

    def teardown_method(self):
        self.storage.close()

    def test_basic_operations(self):
        self.storage.save("things", "a", {"id": "a", "kind": "x"})
        self.storage.save("things", "b", {"id": "b", "kind": "y"})

        assert self.storage.load("things", "a") == {"id": "a", "kind": "x"}
        assert self.storage.load("things", "missing") is None
        assert self.storage.exists("things", "b")
        assert self.storage.count("things") == 2
        assert [r["id"] for r in self.storage.find("things", {"kind": "y"})] == ["b"]

        assert self.storage.delete("things", "a")
        assert not self.storage.delete("things", "a")
        self.storage.clear_table("things")
        assert self.storage.count("things") == 0

    def test_load_all_keeps_insertion_order(self):
        for record_id in ["c", "a", "b"]:
            self.storage.save("things", record_id, {"id": record_id})
        self.storage.save("things", "c", {"id": "c", "touched": True})
        assert [r["id"] for r in self.storage.load_all("things")] == ["c", "a", "b"]

    def test_record_round_trip(self):
        record = make_record()
        record.settled_at = datetime(2024, 2, 1, tzinfo=timezone.utc)
        self.storage.save_record("samples", record)

        loaded = self.storage.load_record(SampleRecord, "samples", record.id)
        assert loaded == record
        assert loaded.amount.currency == Currency.EUR
        assert loaded.colour == Colour.BLUE
        assert loaded.rate == Decimal("2.5")

    def test_save_record_bumps_version(self):
        record = make_record()
        self.storage.save_record("samples", record)
        assert record.version == 1
        self.storage.save_record("samples", record)
        assert record.version == 2
        assert self.storage.load("samples", record.id)["version"] == 2

    def test_stale_write_is_rejected(self):
        record = make_record()
        self.storage.save_record("samples", record)

        first = self.storage.load_record(SampleRecord, "samples", record.id)
        second = self.storage.load_record(SampleRecord, "samples", record.id)
        first.name = "first"
        self.storage.save_record("samples", first)

        second.name = "second"
        with pytest.raises(ConcurrencyConflict):
            self.storage.save_record("samples", second)
        assert self.storage.load("samples", record.id)["name"] == "first"

    def test_duplicate_create_is_rejected(self):
        self.storage.save_record("samples", make_record("dup"))
        with pytest.raises(ConcurrencyConflict):
            self.storage.save_record("samples", make_record("dup"))

    def test_atomic_commits(self):
        with self.storage.atomic():
            self.storage.save("things", "a", {"id": "a"})
            self.storage.save("things", "b", {"id": "b"})
        assert self.storage.count("things") == 2

    def test_atomic_rolls_back_on_error(self):
        self.storage.save("things", "keep", {"id": "keep", "n": 1})

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("things", "keep", {"id": "keep", "n": 2})
                self.storage.save("things", "new", {"id": "new"})
                raise RuntimeError("boom")

        assert self.storage.load("things", "keep") == {"id": "keep", "n": 1}
        assert self.storage.load("things", "new") is None

    def test_nested_atomic_joins_outer_block(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                with self.storage.atomic():
                    self.storage.save("things", "inner", {"id": "inner"})
                self.storage.save("things", "outer", {"id": "outer"})
                raise RuntimeError("boom")

        assert self.storage.load("things", "inner") is None
        assert self.storage.load("things", "outer") is None

    def test_table_created_in_rolled_back_block_is_usable(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("fresh", "a", {"id": "a"})
                raise RuntimeError("boom")
        self.storage.save("fresh", "b", {"id": "b"})
        assert self.storage.count("fresh") == 1


class TestInMemoryStorage(StorageContract):

    def make_storage(self):
        return InMemoryStorage()

    def test_loaded_data_is_a_copy(self):
        self.storage.save("things", "a", {"id": "a", "tags": ["x"]})
        loaded = self.storage.load("things", "a")
        loaded["tags"].append("y")
        assert self.storage.load("things", "a")["tags"] == ["x"]


class TestSQLiteStorage(StorageContract):

    def make_storage(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        return SQLiteStorage(os.path.join(self.temp_dir.name, "test.db"))

    def teardown_method(self):
        self.storage.close()
        self.temp_dir.cleanup()

    def test_data_survives_reopen(self):
        path = self.storage.db_path
        self.storage.save_record("samples", make_record())
        self.storage.close()

        self.storage = SQLiteStorage(path)
        loaded = self.storage.load_record(SampleRecord, "samples", "rec_1")
        assert loaded.amount == Money(Decimal("12.34"), Currency.EUR)
        assert loaded.version == 1


class TestCreateStorage:

    def test_memory_path_selects_in_memory(self):
        assert isinstance(create_storage(":memory:"), InMemoryStorage)

    def test_file_path_selects_sqlite(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = create_storage(os.path.join(temp_dir, "x.db"))
            try:
                assert isinstance(storage, SQLiteStorage)
            finally:
                storage.close()
