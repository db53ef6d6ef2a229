"""Persisted history of finished games, with optional remote mirroring."""

import json
import logging
import os
import tempfile
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

HISTORY_KEY = "GameHistoryRecords"
DUPLICATE_WINDOW_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class GameRecord:
    score: int
    highest_tile: int
    moves: int
    date: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "highestTile": self.highest_tile,
            "moves": self.moves,
            "date": self.date.isoformat(),
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "GameRecord":
        raw_date = str(payload["date"])
        if raw_date.endswith(("Z", "z")):
            raw_date = raw_date[:-1] + "+00:00"
        date = datetime.fromisoformat(raw_date)
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        return cls(
            score=int(payload["score"]),
            highest_tile=int(payload["highestTile"]),
            moves=int(payload["moves"]),
            date=date,
            id=str(payload["id"]),
        )

    def same_event(self, other: "GameRecord") -> bool:
        if self.score != other.score or self.highest_tile != other.highest_tile:
            return False
        delta = abs((self.date - other.date).total_seconds())
        return delta < DUPLICATE_WINDOW_SECONDS


def merge_records(local: Iterable[GameRecord], remote: Iterable[GameRecord]) -> List[GameRecord]:
    """Union of both collections without duplicate events, newest first.

    Candidates are visited in output order and dropped when they match a record
    already kept, so the result does not depend on which side a record came
    from and re-merging a merged list with either source changes nothing.
    """
    candidates = sorted(
        list(local) + list(remote),
        key=lambda r: (-r.date.timestamp(), r.id),
    )
    merged: List[GameRecord] = []
    for record in candidates:
        if not any(record.same_event(kept) for kept in merged):
            merged.append(record)
    return merged


class JsonFileStorage:
    """Stores the record list as JSON under a fixed key in a single file."""

    def __init__(self, path: str, key: str = HISTORY_KEY) -> None:
        self.path = os.path.abspath(path)
        self.key = key

    def load(self) -> List[GameRecord]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if not isinstance(payload, dict):
            raise ValueError(f"Expected a JSON object in {self.path}")
        return [GameRecord.from_dict(item) for item in payload.get(self.key, [])]

    def save(self, records: Iterable[GameRecord]) -> None:
        directory = os.path.dirname(self.path)
        os.makedirs(directory, exist_ok=True)
        payload = {self.key: [r.to_dict() for r in records]}
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class HistoryStore:
    """Append-only log of finished games.

    The local list is authoritative. Each write is persisted before returning;
    mirroring to ``remote`` happens on a background executor and only ever
    reports through ``syncing`` and ``last_sync_error``.
    """

    def __init__(
        self,
        storage: Optional[JsonFileStorage] = None,
        remote=None,
        sync_on_start: bool = False,
        max_workers: int = 4,
    ) -> None:
        self._storage = storage
        self._remote = remote
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="history-sync")
        self._pending: List[Future] = []
        self._in_flight = 0
        self._records: List[GameRecord] = self._load()
        self.last_sync_error: Optional[str] = None
        if sync_on_start:
            self.load_from_remote()

    # -- local persistence -------------------------------------------------

    def _load(self) -> List[GameRecord]:
        if self._storage is None:
            return []
        try:
            return self._storage.load()
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Error decoding game history from %s: %s", self._storage.path, exc)
            return []

    def _persist(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.save(self._records)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error encoding game history to %s: %s", self._storage.path, exc)

    # -- public API --------------------------------------------------------

    @property
    def records(self) -> List[GameRecord]:
        with self._lock:
            return list(self._records)

    @property
    def syncing(self) -> bool:
        with self._lock:
            return self._in_flight > 0

    def add_record(self, score: int, highest_tile: int, moves: int) -> GameRecord:
        record = GameRecord(score=score, highest_tile=highest_tile, moves=moves)
        self.append(record)
        return record

    def append(self, record: GameRecord) -> Optional[Future]:
        with self._lock:
            self._records.append(record)
            self._persist()
        logger.info("Recorded game: score=%s highest_tile=%s moves=%s", record.score, record.highest_tile, record.moves)
        return self._submit(self._save_remote, record)

    def clear(self) -> Optional[Future]:
        with self._lock:
            self._records = []
            self._persist()
        return self._submit(self._clear_remote)

    def load_from_remote(self) -> Optional[Future]:
        return self._submit(self._load_remote)

    def best_score(self) -> Optional[int]:
        with self._lock:
            if not self._records:
                return None
            return max(r.score for r in self._records)

    def average_score(self) -> float:
        with self._lock:
            if not self._records:
                return 0.0
            return sum(r.score for r in self._records) / len(self._records)

    def total_games(self) -> int:
        with self._lock:
            return len(self._records)

    def statistics(self) -> Dict[str, Any]:
        return {
            "total_games": self.total_games(),
            "best_score": self.best_score(),
            "average_score": self.average_score(),
        }

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until every remote task submitted so far has finished."""
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def close(self) -> None:
        self.wait()
        self._executor.shutdown(wait=True)

    # -- remote mirroring --------------------------------------------------

    def _submit(self, fn, *args) -> Optional[Future]:
        if self._remote is None:
            return None
        with self._lock:
            try:
                future = self._executor.submit(self._run_remote, fn, *args)
            except RuntimeError as exc:
                self._report(f"Remote sync not scheduled: {exc}")
                return None
            self._in_flight += 1
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def _run_remote(self, fn, *args) -> None:
        try:
            if not self._remote.is_available():
                self._report("Remote store not available")
                return
            fn(*args)
        except Exception as exc:
            self._report(f"Remote sync failed: {exc}")
        finally:
            with self._lock:
                self._in_flight -= 1

    def _report(self, message: Optional[str]) -> None:
        if message:
            logger.warning(message)
        with self._lock:
            self.last_sync_error = message

    def _save_remote(self, record: GameRecord) -> None:
        try:
            self._remote.save(record)
        except Exception as exc:
            self._report(f"Failed to save record to remote store: {exc}")
            return
        self._report(None)

    def _load_remote(self) -> None:
        try:
            remote_records = self._remote.query_all()
        except Exception as exc:
            self._report(f"Failed to load records from remote store: {exc}")
            return
        with self._lock:
            self._records = merge_records(self._records, remote_records)
            self._persist()
        self._report(None)

    def _clear_remote(self) -> None:
        try:
            remote_records = self._remote.query_all()
        except Exception as exc:
            self._report(f"Failed to query records for deletion: {exc}")
            return
        if not remote_records:
            self._report(None)
            return

        errors: List[str] = []
        with ThreadPoolExecutor(max_workers=min(8, len(remote_records))) as pool:
            futures = [pool.submit(self._remote.delete, r.id) for r in remote_records]
            wait(futures)
        for future in futures:
            exc = future.exception()
            if exc is not None:
                errors.append(str(exc))

        if errors:
            self._report(f"Some records failed to delete: {', '.join(errors)}")
        else:
            logger.info("All remote records deleted")
            self._report(None)


__all__ = ["GameRecord", "HistoryStore", "JsonFileStorage", "merge_records"]
