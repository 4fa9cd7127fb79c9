"""
Score history for routed responses.

Acts as both collaborators the router consumes:
- persistence sink (``record_score``)
- historical reader (``get_recent_average`` / ``get_recent_scores``)

Records live in memory and, when a storage path is given, are appended to a
JSON-lines file. Records older than the retention window are dropped, and at
most ``max_records`` are held in memory.
"""

import json
import threading
import time
from collections import deque
from pathlib import Path
from typing import Any

from loguru import logger

from smartroute.routing.errors import PersistenceError
from smartroute.routing.types import ProviderId, ScoreRecord, TaskCategory

SECONDS_PER_DAY = 86400
RECENT_LIMIT = 10
DEFAULT_RETENTION_DAYS = 30
DEFAULT_MAX_RECORDS = 10000


def _key(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


class ScoreStore:
    """
    Thread-safe, bounded score history.

    Args:
        storage_path: Optional JSON-lines file; in-memory only when None.
        retention_days: Records older than this are dropped.
        max_records: Upper bound on records held in memory; oldest go first.
    """

    def __init__(
        self,
        storage_path: Path | None = None,
        retention_days: float = DEFAULT_RETENTION_DAYS,
        max_records: int = DEFAULT_MAX_RECORDS,
    ):
        self.storage_path = storage_path
        self.retention_days = retention_days
        self._records: deque[ScoreRecord] = deque(maxlen=max_records)
        # Newest RECENT_LIMIT records per (provider, category)
        self._recent: dict[tuple[str, str], list[ScoreRecord]] = {}
        self._lock = threading.Lock()
        self._load()

    @property
    def max_records(self) -> int:
        return self._records.maxlen

    def record_score(self, record: ScoreRecord) -> None:
        """
        Append a record.

        Raises:
            PersistenceError: The storage file could not be written.
        """
        with self._lock:
            self._prune_expired()
            self._add(record)
            if not self.storage_path:
                return
            try:
                self.storage_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.storage_path, "a") as f:
                    f.write(json.dumps(record.to_dict()) + "\n")
            except OSError as e:
                raise PersistenceError(f"Failed to write score record: {e}") from e

    def records(
        self,
        provider: ProviderId | str | None = None,
        category: TaskCategory | str | None = None,
        days: float | None = None,
    ) -> list[ScoreRecord]:
        """Matching records, newest first."""
        cutoff = time.time() - days * SECONDS_PER_DAY if days is not None else None
        provider_key = _key(provider) if provider is not None else None
        category_key = _key(category) if category is not None else None

        with self._lock:
            snapshot = list(self._records)

        matches = [
            r for r in reversed(snapshot)
            if (provider_key is None or r.provider == provider_key)
            and (category_key is None or r.category == category_key)
            and (cutoff is None or r.timestamp >= cutoff)
        ]
        matches.sort(key=lambda r: r.timestamp, reverse=True)
        return matches

    def get_recent_scores(
        self,
        provider_id: ProviderId | str,
        category: TaskCategory | str,
        window_days: int = 7,
    ) -> list[int]:
        """Confidence of the last ten records in the window, newest first."""
        cutoff = time.time() - window_days * SECONDS_PER_DAY
        with self._lock:
            recent = list(self._recent.get((_key(provider_id), _key(category)), ()))
        return [r.confidence for r in reversed(recent) if r.timestamp >= cutoff]

    def get_recent_average(
        self,
        provider_id: ProviderId | str,
        category: TaskCategory | str,
        window_days: int = 7,
    ) -> float | None:
        """
        Recency-weighted mean confidence for a (provider, category) pair.

        The newest of the last ten records weighs 1, the next 1/2, and so on.

        Returns:
            The weighted mean, or None when there is no history in the window.
        """
        scores = self.get_recent_scores(provider_id, category, window_days)
        if not scores:
            return None

        weighted_sum = 0.0
        total_weight = 0.0
        for i, score in enumerate(scores):
            weight = 1 / (i + 1)
            weighted_sum += score * weight
            total_weight += weight
        return weighted_sum / total_weight

    def get_analytics(
        self,
        provider: ProviderId | str | None = None,
        category: TaskCategory | str | None = None,
        days: int = 7,
    ) -> list[dict[str, Any]]:
        """
        Aggregate records per (provider, category).

        Returns:
            Rows with count, average confidence, average latency and accept rate,
            busiest pair first.
        """
        groups: dict[tuple[str, str], list[ScoreRecord]] = {}
        for record in self.records(provider, category, days=days):
            groups.setdefault((record.provider, record.category), []).append(record)

        rows = []
        for (provider_key, category_key), records in groups.items():
            count = len(records)
            rows.append({
                "provider": provider_key,
                "category": category_key,
                "count": count,
                "avg_confidence": sum(r.confidence for r in records) / count,
                "avg_latency_ms": sum(r.latency_ms for r in records) / count,
                "accept_rate": sum(1 for r in records if r.accepted) / count,
                "success_rate": sum(1 for r in records if r.success) / count,
            })

        rows.sort(key=lambda row: (-row["count"], row["provider"], row["category"]))
        return rows

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._recent.clear()
            if self.storage_path and self.storage_path.exists():
                self.storage_path.unlink()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _add(self, record: ScoreRecord) -> None:
        self._records.append(record)
        bucket = self._recent.setdefault((record.provider, record.category), [])
        bucket.append(record)
        if len(bucket) > 1 and bucket[-2].timestamp > record.timestamp:
            bucket.sort(key=lambda r: r.timestamp)
        del bucket[:-RECENT_LIMIT]

    def _cutoff(self) -> float:
        return time.time() - self.retention_days * SECONDS_PER_DAY

    def _prune_expired(self) -> None:
        # Appends are close to chronological, so expired records sit at the left
        cutoff = self._cutoff()
        while self._records and self._records[0].timestamp < cutoff:
            self._records.popleft()

    def _load(self) -> None:
        """Load records from storage; an unreadable file means an empty history."""
        if not self.storage_path or not self.storage_path.exists():
            return

        cutoff = self._cutoff()
        skipped = 0
        dropped = 0
        try:
            with open(self.storage_path, encoding="utf-8", errors="replace") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                        if not isinstance(data, dict):
                            raise ValueError(f"expected an object, got {type(data).__name__}")
                        record = ScoreRecord.from_dict(data)
                        expired = record.timestamp < cutoff
                    except (ValueError, TypeError):
                        skipped += 1
                        continue
                    if expired:
                        dropped += 1
                        continue
                    self._add(record)
        except OSError as e:
            logger.warning(f"Could not read score history from {self.storage_path}: {e}; starting empty")
            self._records.clear()
            self._recent.clear()
            return

        if skipped:
            logger.warning(f"Skipped {skipped} unreadable score records in {self.storage_path}")
        if dropped or skipped or len(self._records) == self.max_records:
            self._compact()
        logger.debug(f"Loaded {len(self._records)} score records from {self.storage_path}")

    def _compact(self) -> None:
        """Rewrite the storage file with only the records kept in memory."""
        tmp_path = self.storage_path.with_suffix(self.storage_path.suffix + ".tmp")
        try:
            with open(tmp_path, "w") as f:
                for record in self._records:
                    f.write(json.dumps(record.to_dict()) + "\n")
            tmp_path.replace(self.storage_path)
        except OSError as e:
            logger.warning(f"Failed to compact score history at {self.storage_path}: {e}")
