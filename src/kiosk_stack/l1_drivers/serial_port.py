from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from kiosk_stack.l0_core.errors import SerialError  # noqa: F401  (re-exported for drivers)

LineCallback = Callable[[bytes], None]
LostCallback = Callable[[], None]


class SerialPort(ABC):
    """
    Contract for a line-oriented serial transport.

    The port owns one background reader that hands every complete line
    (terminator included) to the registered callback. Implementations must
    make close() safe to call from any thread, at any time, more than once.
    """

    @abstractmethod
    def open(self) -> None:
        """Open the device and start the reader. Raises SerialError."""

    @abstractmethod
    def close(self) -> None:
        """Stop the reader, then release the device. Raises SerialError."""

    @abstractmethod
    def is_open(self) -> bool:
        """True while the device is open and the reader is alive."""

    @abstractmethod
    def set_reader(self, on_line: Optional[LineCallback]) -> None:
        """Register (or clear with None) the per-line callback."""

    @abstractmethod
    def set_on_lost(self, on_lost: Optional[LostCallback]) -> None:
        """Register (or clear) a callback fired once when the connection fails."""
