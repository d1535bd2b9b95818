"""Periodically rebuilt in-memory copy of the unified feed.

A refresh assembles every dashboard row inside the horizon into a new immutable
``Snapshot`` and publishes it with a single reference assignment, so readers see
either the old generation or the new one, never a mix. Failed refreshes leave the
published snapshot untouched.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from .documents import DashboardRow
from .errors import DataIntegrityWarning
from .metrics import record_snapshot_refresh
from .time_window import UTC, TimeWindow, ensure_utc
from .union import load_dashboard_rows

logger = logging.getLogger(__name__)

DEFAULT_HORIZON = timedelta(days=400)

RowLoader = Callable[[TimeWindow], tuple[Sequence[DashboardRow], Sequence[DataIntegrityWarning]]]


@dataclass(frozen=True)
class Snapshot:
    generation: int
    built_at: datetime
    horizon_start: datetime
    rows: tuple[DashboardRow, ...]

    def covers(self, window: TimeWindow) -> bool:
        return window.start >= self.horizon_start

    def rows_in(self, window: TimeWindow) -> list[DashboardRow]:
        return [row for row in self.rows if window.contains(row.document.updated_at)]


@dataclass(frozen=True)
class RefreshOutcome:
    status: str
    generation: Optional[int] = None
    rows: int = 0
    orphans: int = 0
    elapsed_seconds: float = 0.0
    error: Optional[str] = None


def session_loader(session_factory: Callable[[], Session]) -> RowLoader:
    def load(window: TimeWindow):
        session = session_factory()
        try:
            return load_dashboard_rows(session, window)
        finally:
            session.rollback()
            session.close()

    return load


class SnapshotRefresher:
    def __init__(
        self,
        loader: RowLoader,
        *,
        horizon: timedelta = DEFAULT_HORIZON,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._loader = loader
        self.horizon = horizon
        self._clock = clock
        self._lock = threading.Lock()
        self._current: Optional[Snapshot] = None

    @property
    def current(self) -> Optional[Snapshot]:
        return self._current

    @property
    def refreshing(self) -> bool:
        return self._lock.locked()

    def refresh(self) -> RefreshOutcome:
        if not self._lock.acquire(blocking=False):
            logger.info(json.dumps({"event": "snapshot_refresh", "status": "skipped"}))
            record_snapshot_refresh("skipped")
            return RefreshOutcome(status="skipped")
        try:
            return self._rebuild()
        finally:
            self._lock.release()

    def _rebuild(self) -> RefreshOutcome:
        built_at = ensure_utc(self._clock())
        window = TimeWindow(start=built_at - self.horizon, end=built_at)
        started = time.perf_counter()
        try:
            rows, orphans = self._loader(window)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            logger.exception("Snapshot refresh failed; keeping generation %s", self._generation())
            record_snapshot_refresh("failed")
            return RefreshOutcome(status="failed", generation=self._generation(), elapsed_seconds=elapsed, error=str(exc))

        snapshot = Snapshot(
            generation=self._generation() + 1,
            built_at=built_at,
            horizon_start=window.start,
            rows=tuple(rows),
        )
        self._current = snapshot
        elapsed = time.perf_counter() - started
        record_snapshot_refresh("published", generation=snapshot.generation, rows=len(snapshot.rows))
        logger.info(
            json.dumps(
                {
                    "event": "snapshot_refresh",
                    "status": "published",
                    "generation": snapshot.generation,
                    "rows": len(snapshot.rows),
                    "orphans": len(orphans),
                    "elapsed_ms": round(elapsed * 1000, 2),
                },
                separators=(",", ":"),
            )
        )
        return RefreshOutcome(
            status="published",
            generation=snapshot.generation,
            rows=len(snapshot.rows),
            orphans=len(orphans),
            elapsed_seconds=elapsed,
        )

    def _generation(self) -> int:
        return self._current.generation if self._current is not None else 0
