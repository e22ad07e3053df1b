"""
transport_reader.py
===================
Ingestion service for the reader device.

This class wraps:
- L1 driver (`PySerialPort`) for the serial link and its reader thread.
- `line_codec.parse_code` to turn each received line into an event code.
- `EventQueue` to hand codes over to the dispatch loop.

Design:
- The reader callback only parses and enqueues; dispatching happens on the
  consumer side (`DispatchLoop.tick`), never on the serial thread.
- open() with no address scans the available ports and picks the first one;
  if there is none, TransportNotFound tells the caller to fall back to
  simulated input.

Usage:
    from kiosk_stack.l2_ingest.transport_reader import TransportReader

    reader = TransportReader(queue)
    try:
        reader.open()            # auto-discover
    except TransportNotFound:
        ...                      # keyboard / dev shell input only
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from kiosk_stack.l0_core.errors import SerialError, TransportNotFound
from kiosk_stack.l1_drivers.pyserial_port import PySerialPort, discover_ports
from kiosk_stack.l1_drivers.serial_port import SerialPort
from .line_codec import decode_line, parse_code
from .protocol_queue import EventQueue

Q_PUT_TIMEOUT = 0.01

log = logging.getLogger(__name__)

PortFactory = Callable[[str, int, float, bool], SerialPort]


def _default_port_factory(device: str, baudrate: int, timeout: float, log_raw: bool) -> SerialPort:
    return PySerialPort(device, baudrate, timeout=timeout, log_raw=log_raw)


class TransportReader:
    """
    Owns the serial connection to the reader device and feeds the EventQueue.
    """

    def __init__(
        self,
        queue: EventQueue,
        baudrate: int = 115200,
        read_timeout_ms: int = 50,
        log_raw: bool = False,
        on_lost: Optional[Callable[[str], None]] = None,
        port_factory: PortFactory = _default_port_factory,
        discover: Callable[[], list[str]] = discover_ports,
    ) -> None:
        self._queue = queue
        self._baudrate = baudrate
        self._timeout = read_timeout_ms / 1000.0
        self._log_raw = log_raw
        self._on_lost = on_lost
        self._port_factory = port_factory
        self._discover = discover

        self._port: Optional[SerialPort] = None
        self._address: Optional[str] = None
        self._dropped = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    @property
    def address(self) -> Optional[str]:
        """Address of the current (or last) connection, None before open()."""
        return self._address

    def open(self, address: Optional[str] = None) -> str:
        """
        Connect to ``address`` (or the first discovered port) and start reading.

        Returns:
            The address actually opened.

        Raises:
            TransportNotFound: No address given and none discovered.
            SerialError: The device exists but could not be opened.
        """
        if self._port is not None:
            self.close()

        if not address:
            names = self._discover()
            if not names:
                raise TransportNotFound("No serial port found")
            address = names[0]
            log.info("Auto-selected serial port %s (of %d)", address, len(names))

        port = self._port_factory(address, self._baudrate, self._timeout, self._log_raw)
        port.set_reader(self._on_serial_line)
        port.set_on_lost(self._handle_lost)
        port.open()

        self._port = port
        self._address = address
        return address

    def reopen(self) -> str:
        """Reconnect to the last address (after a connection loss)."""
        return self.open(self._address)

    def close(self) -> None:
        """
        Stop the reader and close the port. Idempotent.

        Errors while stopping are logged, not raised: shutdown must always
        complete.
        """
        port = self._port
        self._port = None
        if port is None:
            return
        port.set_reader(None)
        port.set_on_lost(None)
        try:
            port.close()
        except SerialError:
            log.exception("Error while closing %s", self._address)
        log.info("Transport %s closed", self._address)

    def is_open(self) -> bool:
        return bool(self._port and self._port.is_open())

    def dropped(self) -> int:
        """Number of codes dropped because the EventQueue was full."""
        return self._dropped

    # -------------------------------------------------------------------------
    # RX (runs on the serial reader thread)
    # -------------------------------------------------------------------------
    def _on_serial_line(self, raw: bytes) -> None:
        line = decode_line(raw)
        if not line:
            return
        code = parse_code(line)
        if code is None:
            log.debug("Discarded line without digits: %r", line)
            return
        if not self._queue.put(code, timeout=Q_PUT_TIMEOUT):
            self._dropped += 1
            log.warning("[%s] overflow: dropped code %d", self._queue.name(), code)

    def _handle_lost(self) -> None:
        address = self._address or "?"
        log.error("Transport %s lost; continuing without live events", address)
        if self._on_lost:
            self._on_lost(address)
