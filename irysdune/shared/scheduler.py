#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Process-wide query scheduler.

Every network-bound operation goes through one FIFO queue drained by a single
worker thread, so exactly one operation talks to upstream APIs at a time.
After each operation settles the worker waits a quiescence interval (300 ms by
default) before starting the next one.

Usage:
    scheduler = QueryScheduler()
    future = scheduler.schedule("tag-page", lambda: client.query_transactions(...))
    page = future.result()
"""
from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .errors import SchedulerClosedError
from .logging_setup import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_DELAY_SECONDS = 0.3


@dataclass
class _Job:
    name: str
    operation: Callable[[], Any]
    future: Future


class QueryScheduler:
    """
    Serializes operations with inter-call spacing.

    Failures are delivered to the awaiting caller only; they never stop the
    queue. There is no cancellation, priority or dedup: two operations with the
    same name both run, in submission order.
    """

    _STOP = object()

    def __init__(self, delay_seconds: float = DEFAULT_DELAY_SECONDS, sleep: Optional[Callable[[float], None]] = None, metrics: Optional[Any] = None) -> None:
        """
        Args:
            delay_seconds: Quiescence interval after each settled operation
            sleep: Sleep function (injectable for tests)
            metrics: Optional AggregatorMetrics receiving outcomes and queue depth
        """
        if delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")
        self.delay_seconds = delay_seconds
        self._sleep = sleep or time.sleep
        self._metrics = metrics
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._worker = threading.Thread(target=self._run, name="query-scheduler", daemon=True)
        self._worker.start()

    def schedule(self, name: str, operation: Callable[[], T]) -> "Future[T]":
        """Queue `operation`; the returned Future settles with its result or exception."""
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise SchedulerClosedError(f"Scheduler is shut down; cannot run {name}")
            self._queue.put(_Job(name=name, operation=operation, future=future))
        self._report_depth()
        return future

    def run(self, name: str, operation: Callable[[], T], timeout: Optional[float] = None) -> T:
        """Schedule and block until the operation settles."""
        return self.schedule(name, operation).result(timeout=timeout)

    def pending(self) -> int:
        return self._queue.qsize()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; the worker exits after draining queued jobs."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(self._STOP)
        if wait:
            self._worker.join()

    def _report_depth(self) -> None:
        if self._metrics is not None:
            self._metrics.set_queue_depth(self._queue.qsize())

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            if job is self._STOP:
                return
            self._report_depth()
            if not job.future.set_running_or_notify_cancel():
                continue
            logger.debug(f"[scheduler] {job.name} started")
            started = time.monotonic()
            try:
                result = job.operation()
            except BaseException as e:
                logger.error(f"[scheduler] {job.name} failed: {e}")
                job.future.set_exception(e)
                outcome = "error"
            else:
                logger.debug(f"[scheduler] {job.name} completed in {time.monotonic() - started:.3f}s")
                job.future.set_result(result)
                outcome = "ok"
            if self._metrics is not None:
                self._metrics.record_operation(outcome)
            if self.delay_seconds > 0:
                self._sleep(self.delay_seconds)
