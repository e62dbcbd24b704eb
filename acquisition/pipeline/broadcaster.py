"""Fan-out of pipeline output to live subscribers.

The broadcaster is the only path by which stage output and lifecycle events
leave the orchestrator while a run is in progress. Nothing is buffered: a
subscriber that joins mid-run reads the run record's ``output`` to catch up.
"""

import itertools
import queue
import threading
from typing import Callable, Dict, Iterator, Optional

from acquisition.logging import get_logger

from .models import OutputEvent, OutputKind

logger = get_logger(__name__, component="broadcaster")

OutputCallback = Callable[[OutputEvent], None]

_CLOSED = object()


class OutputBroadcaster:
    """
    Publish/subscribe channel for :class:`OutputEvent` objects.

    Subscribers are called synchronously, in subscription order, on the
    publishing thread. A subscriber that raises is logged and skipped; the
    remaining subscribers still receive the event. Consumers that may block
    (network streams, slow terminals) should use :meth:`open_stream`, which
    decouples them through a bounded queue.

    Subscribing and unsubscribing are safe from any thread, including from
    inside a callback during a publish.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._delivery_lock = threading.RLock()
        self._subscribers: Dict[int, OutputCallback] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, callback: OutputCallback) -> Callable[[], None]:
        """
        Register a callback for all future events.

        Args:
            callback: Called with each OutputEvent

        Returns:
            Idempotent function that removes the subscription
        """
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    def publish(self, event: OutputEvent) -> None:
        """Deliver an event to every current subscriber.

        Publishes from different threads are serialized: each event reaches
        all subscribers before the next one starts, so every subscriber sees
        the same order and no callback runs on two threads at once.
        """
        with self._delivery_lock:
            self._deliver(event)

    def _deliver(self, event: OutputEvent) -> None:
        with self._lock:
            snapshot = list(self._subscribers.items())

        for token, callback in snapshot:
            # Skip subscribers removed by an earlier callback in this publish
            with self._lock:
                if token not in self._subscribers:
                    continue
            try:
                callback(event)
            except Exception as e:
                logger.warning(
                    f"Output subscriber failed: {e}",
                    extra={
                        "event": "broadcaster.subscriber.failed",
                        "error_type": type(e).__name__,
                        "output_kind": event.kind,
                    },
                    exc_info=True,
                )

    def emit(self, kind: OutputKind, text: str) -> OutputEvent:
        """Build an event stamped now, publish it and return it."""
        event = OutputEvent(kind=OutputKind(kind), text=text)
        self.publish(event)
        return event

    def open_stream(self, max_pending: int = 1000) -> "OutputStream":
        """
        Subscribe through a bounded queue.

        Events arriving while ``max_pending`` events are already waiting are
        dropped (and counted on the stream) instead of blocking the pipeline.
        A ``complete`` event is never dropped: it replaces the oldest pending
        event, so a reader always learns that the run ended.
        """
        stream = OutputStream(max_pending=max_pending)
        stream._attach(self.subscribe(stream._deliver))
        return stream

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


class OutputStream:
    """Queue-backed subscription returned by :meth:`OutputBroadcaster.open_stream`.

    Example:
        >>> with broadcaster.open_stream() as stream:
        ...     for event in stream:
        ...         print(event.text, end="")
        ...         if event.kind is OutputKind.COMPLETE:
        ...             break
    """

    def __init__(self, max_pending: int = 1000):
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._queue: "queue.Queue" = queue.Queue(maxsize=max_pending)
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._closed = threading.Event()
        self.dropped = 0

    def _attach(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe

    def _deliver(self, event: OutputEvent) -> None:
        if self._closed.is_set():
            return
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                if event.kind is not OutputKind.COMPLETE:
                    self.dropped += 1
                    return
            # A complete event evicts the oldest pending one instead
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except queue.Empty:
                pass

    def get(self, timeout: Optional[float] = None) -> Optional[OutputEvent]:
        """Next event, or None on timeout or once the stream is closed."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Leave the sentinel for any other reader
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def close(self) -> None:
        """Stop receiving events and wake up blocked readers."""
        if self._closed.is_set():
            return
        self._closed.set()
        if self._unsubscribe is not None:
            self._unsubscribe()
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> Iterator[OutputEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def __enter__(self) -> "OutputStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
