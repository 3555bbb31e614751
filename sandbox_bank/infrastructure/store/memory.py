"""In-memory entity tables with per-entity locking"""

import copy
import threading
from contextlib import contextmanager
from typing import Dict, Generic, Iterator, List, Optional, TypeVar

from sandbox_bank.domain.models import (
    AccessDetails,
    Application,
    Developer,
    Job,
    TransferOrder,
    TransferType,
    User,
)

T = TypeVar("T")


class IdSequence:
    """Monotonic ID source shared by every table"""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def next_str(self) -> str:
        return f"{self.next():08x}"

    def advance_past(self, value: int) -> None:
        """Make sure IDs handed out later are greater than value"""
        with self._lock:
            self._value = max(self._value, value)

    @property
    def current(self) -> int:
        with self._lock:
            return self._value


class Table(Generic[T]):
    """
    Mutex-guarded table of entities keyed by ID.

    Rows are copied on the way in and out: callers fetch a value, mutate it,
    then write it back with set(). Use locked(key) around a read-modify-write
    so that concurrent submissions for the same entity serialize.
    """

    def __init__(self, name: str):
        self.name = name
        self._rows: Dict[str, T] = {}
        self._lock = threading.Lock()
        self._entity_locks: Dict[str, threading.RLock] = {}

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            row = self._rows.get(key)
        return copy.deepcopy(row) if row is not None else None

    def set(self, key: str, value: T) -> None:
        row = copy.deepcopy(value)
        with self._lock:
            self._rows[key] = row

    def delete(self, key: str) -> bool:
        with self._lock:
            self._entity_locks.pop(key, None)
            return self._rows.pop(key, None) is not None

    def values(self) -> List[T]:
        with self._lock:
            rows = list(self._rows.values())
        return copy.deepcopy(rows)

    def snapshot(self) -> Dict[str, T]:
        with self._lock:
            return copy.deepcopy(self._rows)

    def replace(self, rows: Dict[str, T]) -> None:
        rows = copy.deepcopy(rows)
        with self._lock:
            self._rows = rows
            self._entity_locks = {k: v for k, v in self._entity_locks.items() if k in rows}

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._rows

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        """
        Hold the per-entity lock for key (re-entrant).

        Callers lock only keys they are about to write or have found in the
        table; entries are dropped again by delete() and replace().
        """
        with self._lock:
            entity_lock = self._entity_locks.setdefault(key, threading.RLock())
        with entity_lock:
            yield


class Store:
    """All sandbox tables; injected into the catalog, identity store and engines"""

    def __init__(self):
        self.ids = IdSequence()
        self.developers: Table[Developer] = Table("developers")
        self.applications: Table[Application] = Table("applications")
        self.users: Table[User] = Table("users")
        self.tokens: Table[str] = Table("tokens")  # user ID indexed by token
        self.jobs: Table[Job] = Table("jobs")
        self.accesses: Table[AccessDetails] = Table("accesses")  # indexed by provider ID
        self.transfers: Table[TransferOrder] = Table("transfers")
        self.recurring_transfers: Table[TransferOrder] = Table("recurring_transfers")

    def transfer_table(self, transfer_type: TransferType) -> Table[TransferOrder]:
        if transfer_type == TransferType.RECURRING:
            return self.recurring_transfers
        return self.transfers
