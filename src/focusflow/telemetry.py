"""Batched event delivery with an explicit start/flush/close lifecycle."""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

__all__ = [
    "EventBuffer",
    "EventSink",
    "JsonlEventSink",
    "OverflowPolicy",
    "TelemetryLogHandler",
]

LOGGER = logging.getLogger(__name__)

EventSink = Callable[[List[Dict[str, Any]]], None]


class OverflowPolicy(str, Enum):
    """Which events to discard once the buffer is full."""

    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class EventBuffer:
    """Queue events and deliver them to ``sink`` in batches.

    Batches are sent when ``batch_size`` events are pending, on every
    ``flush_interval`` tick after :meth:`start`, and on :meth:`close`. A batch
    whose delivery fails goes back to the front of the queue; the queue never
    holds more than ``max_buffer`` events and overflow is resolved by ``overflow``.
    """

    def __init__(
        self,
        sink: EventSink,
        *,
        batch_size: int = 10,
        flush_interval: float = 5.0,
        max_buffer: int = 500,
        overflow: OverflowPolicy | str = OverflowPolicy.DROP_OLDEST,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if batch_size <= 0 or max_buffer <= 0:
            raise ValueError("batch_size and max_buffer must be positive")
        self._sink = sink
        self._batch_size = batch_size
        self._flush_interval = flush_interval
        self._max_buffer = max_buffer
        self._overflow = OverflowPolicy(overflow)
        self._context = dict(context or {})
        self._queue: Deque[Dict[str, Any]] = deque()
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._running = False
        self._dropped = 0

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Begin periodic flushing."""
        if self._running:
            return
        self._running = True
        self._schedule()

    def record(self, name: str, data: Optional[Mapping[str, Any]] = None) -> None:
        """Queue an event; flush immediately once a full batch is waiting."""
        event = {
            "event_name": name,
            "event_data": dict(data or {}),
            "timestamp": _utc_timestamp(),
            **self._context,
        }
        with self._lock:
            if len(self._queue) >= self._max_buffer:
                self._dropped += 1
                if self._overflow is OverflowPolicy.DROP_NEWEST:
                    return
                self._queue.popleft()
            self._queue.append(event)
            full = len(self._queue) >= self._batch_size
        if full:
            self.flush()

    def flush(self) -> int:
        """Deliver everything pending and return the number of events sent."""
        with self._lock:
            if not self._queue:
                return 0
            batch = list(self._queue)
            self._queue.clear()

        try:
            self._sink(batch)
        except Exception as error:  # sink failures are retried on the next flush
            requeued = self._requeue(batch)
            LOGGER.warning(
                "Failed to deliver %d event(s): %s; %d kept for retry",
                len(batch),
                error,
                requeued,
            )
            return 0
        return len(batch)

    def close(self) -> None:
        """Stop periodic flushing and drain the queue once."""
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.flush()

    def __enter__(self) -> "EventBuffer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _requeue(self, batch: List[Dict[str, Any]]) -> int:
        with self._lock:
            combined = batch + list(self._queue)
            excess = len(combined) - self._max_buffer
            if excess > 0:
                self._dropped += excess
                if self._overflow is OverflowPolicy.DROP_OLDEST:
                    combined = combined[excess:]
                else:
                    combined = combined[: self._max_buffer]
            self._queue = deque(combined)
            return len(self._queue)

    def _schedule(self) -> None:
        if not self._running or self._flush_interval <= 0:
            return
        self._timer = threading.Timer(self._flush_interval, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def _tick(self) -> None:
        self.flush()
        self._schedule()


class JsonlEventSink:
    """Append event batches to a JSON-lines file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def __call__(self, events: List[Dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            for event in events:
                handle.write(json.dumps(event, sort_keys=True, ensure_ascii=False, default=str))
                handle.write("\n")


class TelemetryLogHandler(logging.Handler):
    """Forward log records into an :class:`EventBuffer`."""

    def __init__(self, buffer: EventBuffer, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        # Delivery warnings from this module would feed back into the buffer.
        if record.name == __name__:
            return
        try:
            message = self.format(record)
        except Exception:  # pragma: no cover - logging convention
            self.handleError(record)
            return
        data: Dict[str, Any] = {
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message,
        }
        if record.exc_info and record.exc_info[1] is not None:
            data["error"] = repr(record.exc_info[1])
        self._buffer.record("log", data)
