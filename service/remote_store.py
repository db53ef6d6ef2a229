"""Remote mirror for finished-game records."""

import threading
from typing import Dict, List, Optional, Set

from history_store import GameRecord


class RemoteStoreError(RuntimeError):
    pass


class RemoteStore:
    """Interface the history store talks to when mirroring records."""

    def is_available(self) -> bool:
        raise NotImplementedError

    def save(self, record: GameRecord) -> None:
        raise NotImplementedError

    def query_all(self) -> List[GameRecord]:
        """All mirrored records, newest first."""
        raise NotImplementedError

    def delete(self, record_id: str) -> None:
        raise NotImplementedError


class InMemoryRemoteStore(RemoteStore):
    """Process-local mirror; handy for development and tests.

    ``fail_on`` names operations ("save", "query", "delete") that should raise,
    and ``fail_ids`` restricts delete failures to specific records.
    """

    def __init__(
        self,
        records: Optional[List[GameRecord]] = None,
        available: bool = True,
        fail_on: Optional[Set[str]] = None,
        fail_ids: Optional[Set[str]] = None,
    ) -> None:
        self._records: Dict[str, GameRecord] = {r.id: r for r in records or []}
        self._lock = threading.Lock()
        self.available = available
        self.fail_on = set(fail_on or ())
        self.fail_ids = set(fail_ids or ())

    def is_available(self) -> bool:
        return self.available

    def save(self, record: GameRecord) -> None:
        if "save" in self.fail_on:
            raise RemoteStoreError(f"save rejected for {record.id}")
        with self._lock:
            self._records[record.id] = record

    def query_all(self) -> List[GameRecord]:
        if "query" in self.fail_on:
            raise RemoteStoreError("query failed")
        with self._lock:
            records = list(self._records.values())
        return sorted(records, key=lambda r: r.date, reverse=True)

    def delete(self, record_id: str) -> None:
        if "delete" in self.fail_on and (not self.fail_ids or record_id in self.fail_ids):
            raise RemoteStoreError(f"delete failed for {record_id}")
        with self._lock:
            self._records.pop(record_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
