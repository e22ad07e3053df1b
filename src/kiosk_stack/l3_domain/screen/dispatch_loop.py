from __future__ import annotations

import logging
import threading
from typing import Callable

from kiosk_stack.l2_ingest.protocol_queue import EventQueue
from kiosk_stack.l3_domain.screen.dispatcher import StateDispatcher

log = logging.getLogger(__name__)

DEFAULT_TICK_S = 0.016


class DispatchLoop:
    """
    Foreground consumer of the EventQueue.

    Each tick drains every queued item and handles them in arrival order
    before yielding, so bursts from the reader keep their order. Items are
    event codes, or callables posted by other threads that need to touch the
    display (they run on the loop thread, in line with the codes).
    """

    def __init__(self, queue: EventQueue, dispatcher: StateDispatcher) -> None:
        self._queue = queue
        self._dispatcher = dispatcher
        self._processed = 0

    @property
    def processed(self) -> int:
        return self._processed

    def post(self, action: Callable[[], None]) -> bool:
        """Run ``action`` on the loop thread at the next tick. False if the queue is full."""
        ok = self._queue.put(action, timeout=0.0)
        if not ok:
            log.warning("[%s] overflow: dropped posted action", self._queue.name())
        return ok

    def tick(self) -> int:
        """Handle everything currently queued. Returns the number of codes dispatched."""
        codes = 0
        for item in self._queue.drain():
            try:
                if callable(item):
                    item()
                else:
                    codes += 1
                    self._dispatcher.dispatch(item)
            except Exception:
                log.exception("dispatch failed for %r", item)
        self._processed += codes
        return codes

    def run(self, stop: threading.Event, tick_interval_sec: float = DEFAULT_TICK_S) -> None:
        """Tick until ``stop`` is set."""
        log.info("Dispatch loop started (tick %.0f ms)", tick_interval_sec * 1000)
        while not stop.is_set():
            self.tick()
            stop.wait(tick_interval_sec)
        self.tick()  # flush what arrived during the last wait
        log.info("Dispatch loop stopped after %d codes", self._processed)
