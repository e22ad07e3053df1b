from __future__ import annotations

from kiosk_stack.l2_ingest.protocol_queue import EventQueue

from typing import Callable, DefaultDict, List
from collections import defaultdict
import logging
import threading

log = logging.getLogger(__name__)

Subscriber = Callable[[object], None]

_STOP = object()


class EventBus:
    """
    Notifications from the kiosk core to its outer surfaces.

    Topics:
      "display.state"  StateChanged, one per screen change (panel renderer)
      "kiosk.fault"    Fault, e.g. TRANSPORT_LOST (operator display / log)

    publish() only enqueues, so the dispatch loop never waits on a renderer.
    A single "EventBus-Dispatcher" thread delivers events in publish order;
    a subscriber that raises is logged and the others still get the event.
    When the queue is full the event is dropped and counted.
    """

    def __init__(self, capacity: int = 1024, publish_timeout_ms: int = 10) -> None:
        self._subscribers: DefaultDict[str, List[Subscriber]] = defaultdict(list)
        self._queue = EventQueue(maxsize=capacity, name="EventBus")
        self._publish_timeout = publish_timeout_ms / 1000.0
        self._lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run, name="EventBus-Dispatcher", daemon=True
        )
        self._thread.start()

    def subscribe(self, topic: str, callback: Subscriber) -> None:
        """
        Parameters
        ----------
        topic : str
            "display.state" or "kiosk.fault".
        callback : Callable[[object], None]
            Called with the event on the dispatcher thread. Keep it short.
        """
        with self._lock:
            self._subscribers[topic].append(callback)

    def unsubscribe(self, topic: str, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers[topic]:
                self._subscribers[topic].remove(callback)

    def publish(self, topic: str, event: object) -> bool:
        """Queue ``event`` for ``topic``. False if it was dropped (queue full)."""
        if self._queue.put((topic, event), timeout=self._publish_timeout):
            return True
        log.warning("[%s] full; dropped %s event", self._queue.name(), topic)
        return False

    def pending(self) -> int:
        return self._queue.qsize()

    def capacity(self) -> int:
        return self._queue.maxsize()

    def dropped(self) -> int:
        return self._queue.dropped()

    def close(self) -> None:
        # if the queue is full the sentinel is lost and the join times out
        self._queue.put((_STOP, None), timeout=0.0)
        self._thread.join(timeout=1.0)

    def _run(self) -> None:
        while True:
            ok, item = self._queue.get(timeout=0.1)
            if not ok:
                continue
            topic, event = item
            if topic is _STOP:
                return
            with self._lock:
                callbacks = list(self._subscribers.get(topic, ()))
            for callback in callbacks:
                try:
                    callback(event)
                except Exception:
                    log.exception("subscriber error on topic '%s'", topic)
