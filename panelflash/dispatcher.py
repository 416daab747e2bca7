"""Serialized, rate-limited dispatcher for calls to the generation API."""

from __future__ import annotations

import functools
import logging
import random
import string
import threading
import time
from collections import deque
from concurrent.futures import Future
from typing import Callable, Optional, TypeVar

from .constants import DEFAULT_MIN_INTERVAL_MS, QUEUE_ID_LENGTH
from .errors import DispatchError, normalize_error_message
from .types import DispatcherSnapshot, DispatcherState, QueueItem

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _new_item_id() -> str:
    return "".join(random.choices(_ID_ALPHABET, k=QUEUE_ID_LENGTH))


class RequestDispatcher:
    """FIFO queue that runs one operation at a time, spaced by a minimum interval.

    One instance is meant to be shared by every caller in the process. The
    drain loop runs on a background thread that is started by ``enqueue`` when
    the dispatcher is idle and exits as soon as the queue is empty.
    """

    def __init__(
        self,
        min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        event_sink: Optional[Callable[[dict], None]] = None,
    ) -> None:
        self._min_interval_s = max(0, min_interval_ms) / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._event_sink = event_sink
        self._queue: deque[QueueItem] = deque()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._state: DispatcherState = "idle"
        self._worker: threading.Thread | None = None
        self._is_loading = False
        self._last_error: str | None = None
        self._last_dispatch_ts: float | None = None
        self._loop_starts = 0
        self._dispatched = 0

    # Public API ---------------------------------------------------------
    def enqueue(
        self,
        operation: Callable[[], T],
        *,
        kind: str = "request",
        label: str = "",
    ) -> "Future[T]":
        """Queue ``operation`` and return a future settled with its outcome.

        The future is marked running straight away: once queued, an operation
        always executes, so ``Future.cancel()`` has no effect.
        """

        future: Future = Future()
        future.set_running_or_notify_cancel()
        item_id = _new_item_id()
        item = QueueItem(
            id=item_id,
            execute=functools.partial(self._run_item, item_id, operation, future, kind, label),
            enqueued_ts=self._clock(),
            future=future,
        )

        with self._lock:
            self._queue.append(item)
            LOGGER.debug("Queued %s %s (queue_size=%d)", kind, item_id, len(self._queue))
            if self._state == "draining":
                return future
            self._state = "draining"
            self._loop_starts += 1
            worker = threading.Thread(
                target=self._drain,
                name=f"RequestDispatcher-{self._loop_starts}",
                daemon=True,
            )
            self._worker = worker

        try:
            worker.start()
        except RuntimeError as exc:
            self._abandon_queue(exc)
        return future

    def snapshot(self) -> DispatcherSnapshot:
        with self._lock:
            return DispatcherSnapshot(
                state=self._state,
                is_loading=self._is_loading,
                last_error=self._last_error,
                queue_size=len(self._queue),
                loop_starts=self._loop_starts,
                dispatched=self._dispatched,
                last_dispatch_ts=self._last_dispatch_ts,
            )

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._is_loading

    @property
    def last_error(self) -> str | None:
        with self._lock:
            return self._last_error

    @property
    def loop_starts(self) -> int:
        with self._lock:
            return self._loop_starts

    def clear_error(self) -> None:
        with self._lock:
            self._last_error = None

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until the drain loop has emptied the queue and exited."""

        with self._idle:
            return self._idle.wait_for(
                lambda: self._state == "idle" and not self._queue, timeout=timeout
            )

    # Internal helpers ---------------------------------------------------
    def _abandon_queue(self, exc: BaseException) -> None:
        """Fail every queued item when the drain thread could not be started."""

        message = normalize_error_message(exc)
        with self._lock:
            stranded = list(self._queue)
            self._queue.clear()
            self._state = "idle"
            self._worker = None
            self._loop_starts -= 1
            self._last_error = message
            self._idle.notify_all()
        LOGGER.error("Could not start dispatcher thread: %s", message)
        for item in stranded:
            if item.future is None or item.future.done():
                continue
            error = DispatchError(message)
            error.__cause__ = exc
            item.future.set_exception(error)

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._queue:
                    self._state = "idle"
                    self._worker = None
                    self._idle.notify_all()
                    return
                last_dispatch = self._last_dispatch_ts

            if last_dispatch is not None:
                remaining = self._min_interval_s - (self._clock() - last_dispatch)
                if remaining > 0:
                    LOGGER.debug("Rate limit: waiting %.3fs before next dispatch", remaining)
                    self._sleep(remaining)

            with self._lock:
                item = self._queue.popleft()
                self._is_loading = True
                self._last_error = None
                self._last_dispatch_ts = self._clock()
                self._dispatched += 1

            item.execute()

    def _run_item(
        self,
        item_id: str,
        operation: Callable[[], T],
        future: "Future[T]",
        kind: str,
        label: str,
    ) -> None:
        start = self._clock()
        self._emit({"event": "dispatch", "request_id": item_id, "kind": kind, "label": label})
        try:
            result = operation()
        except BaseException as exc:
            message = normalize_error_message(exc)
            with self._lock:
                self._last_error = message
                self._is_loading = False
            LOGGER.warning("%s %s failed: %s", kind, item_id, message)
            self._emit(self._settle_event(item_id, kind, label, start, "error", message))
            error = DispatchError(message)
            error.__cause__ = exc
            future.set_exception(error)
            return

        with self._lock:
            self._is_loading = False
        LOGGER.debug("%s %s settled", kind, item_id)
        self._emit(self._settle_event(item_id, kind, label, start, "ok", None))
        future.set_result(result)

    def _settle_event(
        self,
        item_id: str,
        kind: str,
        label: str,
        start: float,
        status: str,
        error: str | None,
    ) -> dict:
        return {
            "event": "settle",
            "request_id": item_id,
            "kind": kind,
            "label": label,
            "status": status,
            "latency_ms": int((self._clock() - start) * 1000),
            "error": error,
        }

    def _emit(self, event: dict) -> None:
        if self._event_sink is None:
            return
        try:
            self._event_sink(event)
        except Exception as exc:  # pragma: no cover - sink must not break the loop
            LOGGER.debug("Event sink raised: %s", exc)


__all__ = ["RequestDispatcher"]
