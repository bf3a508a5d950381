from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any

import structlog

from sagesync_errors import SyncInProgressError
from sagesync_models import SyncOutcome, SyncRunRecord

logger = structlog.get_logger()

HISTORY_LIMIT = 10


class SyncStateTracker:
    """Process-wide sync state: the in-progress guard, lifetime stats and recent history.

    start_sync() is the only way into a run, for manual and scheduled triggers
    alike. Readers get copies; nothing returned aliases internal state.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self._lock = threading.Lock()
        self._in_progress = False
        self._history_limit = history_limit
        self._stats: dict[str, Any] = {
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_sync_time": None,
        }
        self._last_result: SyncRunRecord | None = None
        self._history: list[SyncRunRecord] = []

    def is_in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    def start_sync(self) -> datetime:
        with self._lock:
            if self._in_progress:
                raise SyncInProgressError("Sync already in progress")
            self._in_progress = True
        logger.info("Sync state: STARTED")
        return datetime.now(timezone.utc)

    def end_sync(self, outcome: SyncOutcome, started_at: datetime) -> SyncRunRecord:
        duration = datetime.now(timezone.utc) - started_at
        record = SyncRunRecord(
            started_at=started_at,
            duration_ms=int(duration.total_seconds() * 1000),
            success=outcome.success,
            totals=outcome.totals.model_copy(),
            warehouses_touched=tuple(outcome.warehouses_touched),
            error=outcome.error,
        )
        with self._lock:
            self._in_progress = False
            self._stats["total_syncs"] += 1
            if record.success:
                self._stats["successful_syncs"] += 1
            else:
                self._stats["failed_syncs"] += 1
            self._stats["last_sync_time"] = started_at.isoformat()
            self._last_result = record
            self._history.insert(0, record)
            del self._history[self._history_limit :]

        if record.success:
            logger.info("Sync state: COMPLETED", duration_ms=record.duration_ms)
        else:
            logger.error("Sync state: FAILED", error=record.error, duration_ms=record.duration_ms)
        return record

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._stats)

    def get_last_result(self) -> dict[str, Any] | None:
        with self._lock:
            return self._last_result.model_dump() if self._last_result else None

    def get_history(self, limit: int = HISTORY_LIMIT) -> list[dict[str, Any]]:
        with self._lock:
            return [r.model_dump() for r in self._history[: max(limit, 0)]]

    def get_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "in_progress": self._in_progress,
                "stats": dict(self._stats),
                "last_result": self._last_result.model_dump() if self._last_result else None,
                "history": [r.model_dump() for r in self._history],
            }
