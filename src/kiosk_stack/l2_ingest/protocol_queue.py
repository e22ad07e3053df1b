from typing import Any, List, Literal, Optional, Tuple
from queue import Queue, Full, Empty
import threading


class EventQueue:
    """
    FIFO hand-off between producer threads (serial reader, key injector,
    EventBus publishers) and one consumer.

    - Fixed capacity; when full the incoming item is refused ('drop_newest')
      and counted, the queued ones are never touched.
    - put/get take their timeout per call; timeout <= 0 never blocks.
    - drain() empties the queue for tick-driven consumers in one call.
    """

    def __init__(self, maxsize: int, name: str,
                 on_overflow: Literal["drop_newest"] = "drop_newest") -> None:
        if not isinstance(maxsize, int) or maxsize <= 0:
            raise ValueError("maxsize must be a positive integer")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("name must be a non-empty string")
        if on_overflow != "drop_newest":
            raise ValueError("on_overflow must be 'drop_newest'")
        self._name = name
        self._maxsize = maxsize
        self._q: Queue = Queue(maxsize=maxsize)
        self._dropped = 0
        self._count_lock = threading.Lock()

    def put(self, item: Any, timeout: float) -> bool:
        """Enqueue ``item``. False means the queue stayed full and the item was dropped."""
        try:
            if timeout <= 0:
                self._q.put_nowait(item)
            else:
                self._q.put(item, timeout=timeout)
        except Full:
            with self._count_lock:
                self._dropped += 1
            return False
        return True

    def get(self, timeout: float) -> Tuple[bool, Any]:
        """(True, item), or (False, None) when nothing arrived within ``timeout``."""
        try:
            if timeout <= 0:
                return True, self._q.get_nowait()
            return True, self._q.get(timeout=timeout)
        except Empty:
            return False, None

    def drain(self, max_items: Optional[int] = None) -> List[Any]:
        """
        Take everything queued right now (or at most ``max_items``), oldest
        first. Never blocks; items arriving meanwhile may or may not be included.
        """
        items: List[Any] = []
        while max_items is None or len(items) < max_items:
            try:
                items.append(self._q.get_nowait())
            except Empty:
                break
        return items

    def qsize(self) -> int:
        return self._q.qsize()

    def maxsize(self) -> int:
        return self._maxsize

    def dropped(self) -> int:
        """Items refused because the queue was full, since creation."""
        with self._count_lock:
            return self._dropped

    def name(self) -> str:
        return self._name
