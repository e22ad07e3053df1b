from __future__ import annotations

import logging
from typing import Mapping, Optional

from .line_codec import parse_code
from .protocol_queue import EventQueue

log = logging.getLogger(__name__)

# Keyboard layout of the kiosk's debug simulator: digits 0-9, F1-F6 = 10-15.
KEY_CODES: Mapping[str, int] = {
    **{str(n): n for n in range(10)},
    **{f"f{n}": 9 + n for n in range(1, 7)},
}


class KeyInjector:
    """
    Manual input source used when no reader device is attached (or next to
    one, for testing). Translates key names into event codes and pushes them
    into the same EventQueue the serial reader feeds.

    Accepted tokens: the names in KEY_CODES ("0".."9", "f1".."f6",
    case-insensitive) and plain decimal numbers such as "12".
    """

    def __init__(self, queue: EventQueue) -> None:
        self._queue = queue

    @staticmethod
    def code_for(key: str) -> Optional[int]:
        token = key.strip().lower()
        if token in KEY_CODES:
            return KEY_CODES[token]
        if token.isdigit():
            return parse_code(token)
        return None

    def inject(self, key: str) -> bool:
        """Queue the code for ``key``. Returns False for unknown keys or a full queue."""
        code = self.code_for(key)
        if code is None:
            log.info("Unknown key %r", key)
            return False
        ok = self._queue.put(code, timeout=0.0)
        if not ok:
            log.warning("[%s] overflow: dropped simulated code %d", self._queue.name(), code)
        return ok
