"""
Storage Backend Module

Abstract document-store interface with in-memory (testing) and SQLite
(persistence) implementations. Records are stored as JSON documents with
monetary values as Decimal strings.

Every record carries a ``version``. ``save(..., expected_version=n)`` is a
compare-and-swap: it raises ConcurrencyConflict when the stored version is not
``n``. ``atomic()`` groups a read-validate-write sequence into one unit that
either fully commits or fully rolls back.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Type, TypeVar, Union, get_args, get_origin, get_type_hints
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
import copy
import sqlite3
import json
import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from contextlib import contextmanager

from .currency import Money, Currency
from .errors import ConcurrencyConflict

R = TypeVar("R", bound="StorageRecord")


def encode_value(value: Any) -> Any:
    if isinstance(value, Money):
        return value.to_dict()
    if isinstance(value, Currency):
        return value.code
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any, hint: Any) -> Any:
    if value is None:
        return None
    if get_origin(hint) is Union:
        args = [a for a in get_args(hint) if a is not type(None)]
        return decode_value(value, args[0]) if len(args) == 1 else value
    if hint is Money:
        return Money.from_dict(value)
    if hint is Currency:
        return Currency.from_code(value)
    if hint is datetime:
        return datetime.fromisoformat(value)
    if hint is Decimal:
        return Decimal(value)
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(value)
    return value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime
    version: int = field(default=0, kw_only=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary"""
        return {f.name: encode_value(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls: Type[R], data: Dict[str, Any]) -> R:
        """Create instance from a stored dictionary"""
        hints = get_type_hints(cls)
        kwargs = {}
        for f in fields(cls):
            if f.name in data:
                kwargs[f.name] = decode_value(data[f.name], hints.get(f.name))
        return cls(**kwargs)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any],
             expected_version: Optional[int] = None) -> None:
        """
        Save a record. When expected_version is given, the write only happens
        if the stored version (0 for a missing record) matches it.
        """
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def atomic(self):
        """Context manager grouping operations into one all-or-nothing unit"""
        pass

    def close(self) -> None:
        """Close storage connection (default no-op)"""
        pass

    def exists(self, table: str, record_id: str) -> bool:
        return self.load(table, record_id) is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose top-level keys equal the given values"""
        return [
            record for record in self.load_all(table)
            if all(key in record and record[key] == value for key, value in filters.items())
        ]

    # Typed record helpers

    def save_record(self, table: str, record: 'StorageRecord') -> None:
        """Persist a record with an optimistic version check, bumping its version"""
        data = record.to_dict()
        data['version'] = record.version + 1
        self.save(table, record.id, data, expected_version=record.version)
        record.version += 1

    def load_record(self, record_type: Type[R], table: str, record_id: str) -> Optional[R]:
        data = self.load(table, record_id)
        if data:
            return record_type.from_dict(data)
        return None

    def find_records(self, record_type: Type[R], table: str, filters: Dict[str, Any]) -> List[R]:
        return [record_type.from_dict(data) for data in self.find(table, filters)]

    def load_all_records(self, record_type: Type[R], table: str) -> List[R]:
        return [record_type.from_dict(data) for data in self.load_all(table)]


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    ``atomic()`` holds the storage lock for the whole block, so writers are
    serialized, and restores a snapshot if the block raises.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._depth = 0

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any],
             expected_version: Optional[int] = None) -> None:
        with self._lock:
            rows = self._table(table)
            if expected_version is not None:
                current = rows.get(record_id)
                current_version = current.get('version', 0) if current else 0
                if current_version != expected_version:
                    raise ConcurrencyConflict(
                        f"{table}:{record_id} was modified concurrently "
                        f"(expected version {expected_version}, found {current_version})"
                    )
            # Deep copy to prevent external mutation
            rows[record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            if record:
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [json.loads(json.dumps(record)) for record in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._data[table] = {}

    @contextmanager
    def atomic(self):
        with self._lock:
            snapshot = copy.deepcopy(self._data) if self._depth == 0 else None
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._data = snapshot
                raise
            else:
                self._depth -= 1


class SQLiteStorage(StorageInterface):
    """
    SQLite storage implementation for persistence.

    ``atomic()`` opens a ``BEGIN IMMEDIATE`` transaction so that the write
    lock is taken before anything is read; a second process attempting the
    same will wait up to ``timeout`` seconds and then fail with
    ConcurrencyConflict.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None, timeout=timeout
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _ensure_table(self, table: str) -> None:
        if table in self._tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._connection.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_at
            ON {table}(created_at)
        """)
        self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any],
             expected_version: Optional[int] = None) -> None:
        with self._lock:
            self._ensure_table(table)
            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)
            new_version = data.get('version', 0)

            if expected_version is None:
                self._connection.execute(f"""
                    INSERT INTO {table} (id, data, version, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        data = excluded.data,
                        version = excluded.version,
                        updated_at = excluded.updated_at
                """, (record_id, data_json, new_version, now, now))
                return

            cursor = self._connection.execute(f"""
                UPDATE {table} SET data = ?, version = ?, updated_at = ?
                WHERE id = ? AND version = ?
            """, (data_json, new_version, now, record_id, expected_version))
            if cursor.rowcount == 1:
                return

            row = self._connection.execute(
                f"SELECT version FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            if row is not None or expected_version != 0:
                found = row['version'] if row is not None else 0
                raise ConcurrencyConflict(
                    f"{table}:{record_id} was modified concurrently "
                    f"(expected version {expected_version}, found {found})"
                )
            try:
                self._connection.execute(f"""
                    INSERT INTO {table} (id, data, version, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (record_id, data_json, new_version, now, now))
            except sqlite3.IntegrityError:
                raise ConcurrencyConflict(f"{table}:{record_id} was created concurrently")

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"SELECT data FROM {table} ORDER BY created_at, rowid"
            )
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            return self._connection.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()['n']

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")

    @contextmanager
    def atomic(self):
        with self._lock:
            if self._depth == 0:
                try:
                    self._connection.execute("BEGIN IMMEDIATE")
                except sqlite3.OperationalError as e:
                    raise ConcurrencyConflict(f"Could not acquire write lock: {e}")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._connection.execute("ROLLBACK")
                    # Tables created inside the block were rolled back too
                    self._tables.clear()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    self._connection.execute("COMMIT")

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_path: str, timeout: float = 5.0) -> StorageInterface:
    """Pick a backend from a configured path (":memory:" selects InMemoryStorage)"""
    if database_path == ":memory:":
        return InMemoryStorage()
    return SQLiteStorage(database_path, timeout=timeout)
