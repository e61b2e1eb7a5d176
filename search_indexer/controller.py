from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class ThreadPoolController:
    """Bounded admission of batch tasks onto a thread pool.

    ``submit`` blocks the caller while ``limit`` tasks are already running,
    so the number of queued-but-not-running tasks stays at zero and memory
    does not grow with the number of submitted batches. After ``stop`` new
    submissions are refused with ``RuntimeError``.
    """

    def __init__(self, max_workers: int, initial_limit: int) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="batch")

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)

        self._limit = max(1, min(initial_limit, max_workers))
        self._active = 0
        self._running = False

    def __enter__(self) -> "ThreadPoolController":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop(wait=True)

    def start(self) -> None:
        self._running = True

    def stop(self, wait: bool = True) -> None:
        with self._cv:
            self._running = False
            self._cv.notify_all()
        self._executor.shutdown(wait=wait, cancel_futures=False)

    def submit(self, fn: Callable[[T], R], arg: T) -> Future:
        """Submit ``fn(arg)``, blocking while the pool is at its concurrency limit."""
        with self._cv:
            while self._running and self._active >= self._limit:
                self._cv.wait(timeout=0.5)

            if not self._running:
                raise RuntimeError("controller is stopped")

            self._active += 1

        return self._executor.submit(self._wrap_task, fn, arg)

    def _wrap_task(self, fn: Callable[[T], R], arg: T) -> R:
        try:
            return fn(arg)
        finally:
            with self._cv:
                self._active = max(0, self._active - 1)
                self._cv.notify_all()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active
