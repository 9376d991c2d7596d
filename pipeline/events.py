"""Per-run match event stream.

Each matching run owns one stream. Consumers either iterate it (blocking
until the run closes the stream) or register callbacks. Events must arrive in
phase order with non-decreasing confidence; anything else is rejected.
"""

import logging
import queue
import threading
from typing import Callable, Iterator, List, Optional

from core.models import MatchEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[MatchEvent], None]

_CLOSED = object()


class MatchEventStream:
    def __init__(self, run_id: str):
        self.run_id = run_id
        self._lock = threading.Lock()
        self._queue: "queue.Queue" = queue.Queue()
        self._history: List[MatchEvent] = []
        self._callbacks: List[EventCallback] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def events(self) -> List[MatchEvent]:
        """Everything emitted so far, in order."""
        with self._lock:
            return list(self._history)

    @property
    def latest(self) -> Optional[MatchEvent]:
        with self._lock:
            return self._history[-1] if self._history else None

    def subscribe(self, callback: EventCallback) -> None:
        """Register a callback; events already emitted are replayed to it first."""
        with self._lock:
            self._callbacks.append(callback)
            replay = list(self._history)
        for event in replay:
            self._notify(callback, event)

    def emit(self, event: MatchEvent) -> bool:
        """Publish an event. Returns False if it was rejected."""
        with self._lock:
            if self._closed:
                logger.debug(f"Run {self.run_id}: stream closed, dropping {event.phase.value} event")
                return False
            if self._history:
                last = self._history[-1]
                if event.phase.rank <= last.phase.rank:
                    logger.warning(
                        f"Run {self.run_id}: rejected {event.phase.value} event after {last.phase.value}"
                    )
                    return False
                if event.confidence.rank < last.confidence.rank:
                    logger.warning(
                        f"Run {self.run_id}: rejected {event.phase.value} event with lower confidence"
                    )
                    return False
            self._history.append(event)
            self._queue.put(event)
            callbacks = list(self._callbacks)

        for callback in callbacks:
            self._notify(callback, event)
        return True

    def _notify(self, callback: EventCallback, event: MatchEvent) -> None:
        try:
            callback(event)
        except Exception:
            logger.exception(f"Run {self.run_id}: event callback failed")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_CLOSED)

    def iter_events(self, timeout: Optional[float] = None) -> Iterator[MatchEvent]:
        """
        Yield events as they arrive until the stream is closed.

        With a timeout, iteration also stops once no event arrives within it.
        """
        while True:
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                return
            if item is _CLOSED:
                # Let other iterators see the close marker too
                self._queue.put(_CLOSED)
                return
            yield item

    def __iter__(self) -> Iterator[MatchEvent]:
        return self.iter_events()
