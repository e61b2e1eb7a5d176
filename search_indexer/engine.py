"""Incremental improvement engine.

One run walks ``ceil(total_estimate / batch_size)`` batches. Batches are
submitted in windows of ``group_size`` to a bounded pool of ``concurrency``
workers, and each window is drained before the next one is submitted. A
batch asks the strategy for candidates at its ``skip`` offset, maps them to
upsert operations and hands those to the strategy's bulk writer.

Failures are contained per batch: the exception is logged with the method
and batch index, the batch is dropped and the run carries on. The one
exception is a store error while reading the first page, which ends the run
and is re-raised once the end event has been sent. Lifecycle
events (start, batchProcessed, end) go to registered listeners.
"""
from __future__ import annotations

import functools
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from .controller import ThreadPoolController
from .models import BatchDescriptor, EventKind, ImprovementEvent, RunSummary, UpsertOperation
from .storage import DataStoreError

logger = logging.getLogger(__name__)

Listener = Callable[[ImprovementEvent], None]

_PROCESSED = "processed"
_FAILED = "failed"
_SKIPPED = "skipped"


@dataclass(frozen=True)
class ImprovementStrategy:
    """The three functions a collection plugs into the engine.

    ``produce(skip)`` returns the candidates of one batch,
    ``get_bulk_ops(candidate)`` returns zero or more upsert operations and
    ``perform_bulk_write(ops)`` persists them.
    """

    method: str
    produce: Callable[[int], Sequence[Any]]
    get_bulk_ops: Callable[[Any], Iterable[UpsertOperation]]
    perform_bulk_write: Callable[[List[UpsertOperation]], Any]


class ImprovementEngine:
    def __init__(self, concurrency: int = 100, group_size: int = 500, listeners: Iterable[Listener] = ()) -> None:
        if concurrency < 1 or group_size < 1:
            raise ValueError("concurrency and group_size must be >= 1")
        self._concurrency = concurrency
        self._group_size = group_size
        self._listeners: List[Listener] = list(listeners)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def process_improvement(
        self,
        strategy: ImprovementStrategy,
        batch_size: int,
        total_estimate: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunSummary:
        """Run every batch of ``strategy`` and return the per-run accounting.

        Raises ``DataStoreError`` after the end event when the first page
        cannot be read from the store: an unreachable store at run start is
        fatal, while the same error on any later batch only drops that batch.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        method = strategy.method
        # The batch count is frozen here even if the source grows mid-run.
        total_batches = math.ceil(max(total_estimate, 0) / batch_size)
        self._emit(ImprovementEvent(EventKind.START, method, total_batches=total_batches))

        tally = {_PROCESSED: 0, _FAILED: 0, _SKIPPED: 0}
        operations = 0
        fatal: Optional[DataStoreError] = None
        run_batch = functools.partial(self._run_batch, strategy, cancel_event)

        with ThreadPoolController(max_workers=self._concurrency, initial_limit=self._concurrency) as controller:
            for window_start in range(0, total_batches, self._group_size):
                window_end = min(window_start + self._group_size, total_batches)
                if fatal is not None or (cancel_event is not None and cancel_event.is_set()):
                    tally[_SKIPPED] += total_batches - window_start
                    logger.info("improvement stopped method=%s at batch=%d", method, window_start)
                    break
                futures = [
                    controller.submit(run_batch, BatchDescriptor(index=i, skip=i * batch_size, batch_size=batch_size))
                    for i in range(window_start, window_end)
                ]
                for future in futures:
                    status, written, error = future.result()
                    tally[status] += 1
                    operations += written
                    if error is not None:
                        fatal = error

        self._emit(ImprovementEvent(EventKind.END, method))
        if fatal is not None:
            raise fatal
        return RunSummary(
            method=method,
            total_batches=total_batches,
            processed=tally[_PROCESSED],
            failed=tally[_FAILED],
            skipped=tally[_SKIPPED],
            operations=operations,
        )

    def _run_batch(
        self,
        strategy: ImprovementStrategy,
        cancel_event: Optional[threading.Event],
        batch: BatchDescriptor,
    ) -> Tuple[str, int, Optional[DataStoreError]]:
        if cancel_event is not None and cancel_event.is_set():
            return _SKIPPED, 0, None
        try:
            candidates = strategy.produce(batch.skip)
        except DataStoreError as exc:
            if batch.index == 0:
                logger.error("first page unreadable method=%s error=%s", strategy.method, exc)
                return _FAILED, 0, exc
            self._log_failure(strategy, batch)
            return _FAILED, 0, None
        except Exception:  # noqa: BLE001
            self._log_failure(strategy, batch)
            return _FAILED, 0, None
        if not candidates:
            return _PROCESSED, 0, None
        try:
            ops = [op for candidate in candidates for op in strategy.get_bulk_ops(candidate)]
            if ops:
                strategy.perform_bulk_write(ops)
        except Exception:  # noqa: BLE001
            self._log_failure(strategy, batch)
            return _FAILED, 0, None
        self._emit(ImprovementEvent(EventKind.BATCH_PROCESSED, strategy.method, tuple(ops)))
        return _PROCESSED, len(ops), None

    def _log_failure(self, strategy: ImprovementStrategy, batch: BatchDescriptor) -> None:
        logger.exception(
            "batch failed method=%s batch=%d skip=%d size=%d",
            strategy.method,
            batch.index,
            batch.skip,
            batch.batch_size,
        )

    def _emit(self, event: ImprovementEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("listener failed event=%s method=%s", event.kind.value, event.method)
