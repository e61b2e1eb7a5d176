from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Dict, List, Optional

from tqdm import tqdm

from .models import EventKind, ImprovementEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImprovementSnapshot:
    method: str
    running: bool
    batches_processed: int
    operations: int
    started_at: Optional[float]
    ended_at: Optional[float]

    @property
    def elapsed_secs(self) -> float:
        if self.started_at is None:
            return 0.0
        return (self.ended_at or time.time()) - self.started_at


class ImprovementMetrics:
    """Thread-safe listener aggregating lifecycle events per improvement method."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._runs: Dict[str, Dict[str, Optional[float]]] = {}

    def __call__(self, event: ImprovementEvent) -> None:
        self.record_event(event)

    def record_event(self, event: ImprovementEvent) -> None:
        now = time.time()
        with self._lock:
            run = self._runs.setdefault(
                event.method,
                {"started_at": None, "ended_at": None, "batches": 0, "operations": 0},
            )
            if event.kind is EventKind.START:
                run.update(started_at=now, ended_at=None)
            elif event.kind is EventKind.BATCH_PROCESSED:
                run["batches"] += 1
                run["operations"] += len(event.data)
            elif event.kind is EventKind.END:
                run["ended_at"] = now

    def snapshot(self, method: str) -> ImprovementSnapshot:
        with self._lock:
            run = dict(self._runs.get(method) or {"started_at": None, "ended_at": None, "batches": 0, "operations": 0})
        return ImprovementSnapshot(
            method=method,
            running=run["started_at"] is not None and run["ended_at"] is None,
            batches_processed=int(run["batches"]),
            operations=int(run["operations"]),
            started_at=run["started_at"],
            ended_at=run["ended_at"],
        )

    def export_json(self) -> List[Dict]:
        """Export one dictionary per method seen so far."""
        with self._lock:
            methods = list(self._runs)
        return [asdict(self.snapshot(method)) for method in methods]


class JsonLogListener:
    """Logs each lifecycle event as one JSON object per line."""

    def __init__(self, engine_name: str, level: int = logging.INFO) -> None:
        self._engine_name = engine_name
        self._level = level

    def __call__(self, event: ImprovementEvent) -> None:
        record = {
            "timestamp": time.time(),
            "engine": self._engine_name,
            "event": event.kind.value,
            "method": event.method,
        }
        if event.kind is EventKind.START and event.total_batches is not None:
            record["totalBatches"] = event.total_batches
        elif event.kind is EventKind.BATCH_PROCESSED:
            record["documents"] = len(event.data)
        logger.log(self._level, json.dumps(record, ensure_ascii=False))


class ProgressListener:
    """Renders processed batches of one engine as a tqdm progress bar.

    Without an explicit ``total`` the bar is sized from the batch count
    carried by each run's start event."""

    def __init__(self, engine_name: str, total: Optional[int] = None) -> None:
        self._engine_name = engine_name
        self._total = total
        self._bars: Dict[str, tqdm] = {}
        self._lock = Lock()

    def __call__(self, event: ImprovementEvent) -> None:
        with self._lock:
            if event.kind is EventKind.START:
                self._bars[event.method] = tqdm(
                    total=self._total if self._total is not None else event.total_batches,
                    desc=f"{self._engine_name}:{event.method}",
                    unit="batch",
                )
                return
            bar = self._bars.get(event.method)
            if bar is None:
                return
            if event.kind is EventKind.BATCH_PROCESSED:
                bar.update(1)
                bar.set_postfix(documents=len(event.data))
            elif event.kind is EventKind.END:
                bar.close()
                del self._bars[event.method]
