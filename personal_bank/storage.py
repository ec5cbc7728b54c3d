"""
Storage Backend Module

The ledger persists itself as one snapshot: a document of tables, each
mapping a record id to a JSON-compatible dict. Backends differ only in
where that document lives, in memory (testing) or in a single JSON file
(default). All monetary values are stored as Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union, TYPE_CHECKING
from datetime import datetime
import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from contextlib import contextmanager

if TYPE_CHECKING:
    from .config import BankConfig


logger = logging.getLogger("personal_bank.storage")

Tables = Dict[str, Dict[str, Dict[str, Any]]]


class StorageError(Exception):
    """Raised when a storage backend cannot read or write its data"""


@dataclass
class StorageRecord:
    """Fields every persisted record carries"""
    id: str
    created_at: datetime
    updated_at: datetime


class StorageInterface(ABC):
    """Keyed record store the ledger writes its snapshot into"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace one record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """One record, or None if the id is unknown"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Every record of a table in insertion order"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        ...

    @abstractmethod
    def count(self, table: str) -> int:
        ...

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Drop every record of a table"""

    @abstractmethod
    def close(self) -> None:
        """Release the backend; later writes raise StorageError"""

    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """Group writes so they are committed together or not at all"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


def _copy(data: Any) -> Any:
    """Deep copy through JSON so callers never share state with the store"""
    return json.loads(json.dumps(data, default=str))


class InMemoryStorage(StorageInterface):
    """
    Snapshot document held in memory.

    Also the base for file-backed storage: subclasses override ``_tables``
    to load the document lazily and ``_write`` to persist it. A transaction
    keeps a copy of the document to restore on rollback and defers
    ``_write`` until commit.
    """

    def __init__(self):
        self._data: Optional[Tables] = {}
        self._snapshot: Optional[Tables] = None
        self._in_transaction = False
        self._closed = False
        self._lock = threading.RLock()

    def _tables(self) -> Tables:
        return self._data

    def _write(self) -> None:
        pass

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError(f"{type(self).__name__} is closed")

    def _changed(self) -> None:
        if not self._in_transaction:
            self._write()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._check_open()
            self._tables().setdefault(table, {})[record_id] = _copy(data)
            self._changed()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._tables().get(table, {}).get(record_id)
            return _copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [_copy(record) for record in self._tables().get(table, {}).values()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._tables().get(table, {})

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables().get(table, {}))

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._check_open()
            self._tables()[table] = {}
            self._changed()

    def begin_transaction(self) -> None:
        """Remember the current document; writes wait for commit"""
        with self._lock:
            self._check_open()
            if not self._in_transaction:
                self._snapshot = _copy(self._tables())
                self._in_transaction = True

    def commit(self) -> None:
        with self._lock:
            if self._in_transaction:
                self._in_transaction = False
                self._write()
                self._snapshot = None

    def rollback(self) -> None:
        """Restore the document from before the transaction"""
        with self._lock:
            if self._snapshot is not None:
                self._data = self._snapshot
                self._snapshot = None
            self._in_transaction = False

    def close(self) -> None:
        with self._lock:
            self._closed = True


class JSONFileStorage(InMemoryStorage):
    """
    Single-document JSON storage.

    Every table lives in one JSON object on disk. Each committed change
    rewrites the whole file through a temporary file and an atomic rename,
    so a crash mid-write leaves the previous snapshot intact. Reads are
    served from the copy loaded on first use.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._data = None

    def _tables(self) -> Tables:
        """Read the file on first use; a missing file is an empty store"""
        if self._data is None:
            # An unreadable file still leaves an empty store behind so later
            # writes replace it.
            self._data = {}
            self._data = self._read()
        return self._data

    def _read(self) -> Tables:
        if not self.path.exists():
            logger.info(f"No existing data file at {self.path}")
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(document, dict) or not all(isinstance(t, dict) for t in document.values()):
            raise StorageError(f"Cannot read {self.path}: expected an object of tables")
        return document

    def _write(self) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(self._tables(), indent=2, sort_keys=True, default=str),
                encoding="utf-8"
            )
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e


def create_storage(config: 'BankConfig') -> StorageInterface:
    """Build the storage backend named by config.storage_backend"""
    backend = config.storage_backend
    if backend == "json":
        return JSONFileStorage(config.data_file)
    if backend == "memory":
        return InMemoryStorage()
    raise ValueError(f"Unknown storage backend: {backend}")
