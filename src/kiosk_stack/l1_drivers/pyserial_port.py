from __future__ import annotations

from typing import Optional
import threading
import logging

import serial  # provided by pyserial
from serial import SerialException
from serial.tools import list_ports
from .serial_port import SerialPort, SerialError, LineCallback, LostCallback

MAX_LINE_BYTES = 256           # cap for a line that never sees its terminator
MAX_CONSECUTIVE_ERRORS = 5     # read faults in a row that count as a lost connection
ERROR_BACKOFF_S = 0.05

log = logging.getLogger(__name__)


def discover_ports() -> list[str]:
    """
    Return the device names of all serial ports currently present
    (e.g. "/dev/ttyACM0", "COM3"), sorted so the choice of "first port"
    is stable between runs.
    """
    return sorted(p.device for p in list_ports.comports())


class PySerialPort(SerialPort):
    """
    Concrete SerialPort built on pyserial, reading newline-terminated text.

    Current capabilities:
    - Open and close a serial connection.
    - Check if the connection is open.
    - Run a background reader thread that delivers whole lines to a callback.
    - Report a failed connection once through an on_lost callback.
    """

    def __init__(self, device: str, baudrate: int = 115200, timeout: float = 0.05,
                 log_raw: bool = False) -> None:
        self._device = device
        self._baudrate = baudrate
        self._timeout = timeout
        self._log_raw = log_raw

        self._ser: Optional[serial.Serial] = None
        self._on_line: Optional[LineCallback] = None
        self._on_lost: Optional[LostCallback] = None

        self._reader_thread: Optional[threading.Thread] = None
        self._stop_flag = threading.Event()
        self._lost = threading.Event()

    @property
    def device(self) -> str:
        return self._device

    def open(self) -> None:
        """
        Open the serial connection and start the background reader thread.

        1. Open the device with the configured baud rate and read timeout.
           pyserial failures are re-raised as SerialError so higher layers
           never handle raw pyserial exceptions.
        2. Clear the stop/lost flags.
        3. Start the daemon reader thread (`_reader_loop`).

        Raises:
            SerialError: If opening the device fails.
        """
        try:
            self._ser = serial.Serial(
                self._device,
                self._baudrate,
                timeout=self._timeout
            )
        except (SerialException, OSError) as e:
            raise SerialError(f"Failed to open {self._device}: {e}") from e

        self._stop_flag.clear()
        self._lost.clear()
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            name="rx-reader",
            daemon=True
        )
        self._reader_thread.start()
        log.info("Opened %s @ %d", self._device, self._baudrate)

    def close(self) -> None:
        """
        Close the serial connection and stop the background reader thread.

        Two-phase shutdown: the reader is asked to stop and joined (bounded)
        *before* the handle is closed, so a blocked readline() never sees its
        handle disappear underneath it.

        Raises:
            SerialError: If the reader thread fails to stop or if closing the
                        serial port raises a SerialException.
        """
        self._stop_flag.set()
        t = self._reader_thread
        if t and t.is_alive() and t is not threading.current_thread():
            t.join(timeout=1.0)
            if t.is_alive():
                raise SerialError("Failed to stop reader thread")
        self._reader_thread = None

        ser = self._ser
        self._ser = None
        if ser and ser.is_open:
            try:
                ser.close()
            except SerialException as e:
                raise SerialError(f"Failed to close {self._device}: {e}") from e

    def is_open(self) -> bool:
        """True when the pyserial handle exists, reports open, and has not been lost."""
        return bool(self._ser and self._ser.is_open and not self._lost.is_set())

    def set_reader(self, on_line: Optional[LineCallback]) -> None:
        """
        Register or remove the callback for incoming lines.

        The callback runs on the reader thread with the raw line bytes
        (terminator included). Keep it lightweight: push into a queue and
        return. Exceptions it raises are logged and do not stop the reader.
        """
        self._on_line = on_line

    def set_on_lost(self, on_lost: Optional[LostCallback]) -> None:
        self._on_lost = on_lost

    def _reader_loop(self) -> None:
        """
        Background thread loop reading lines until stopped or the link fails.

        - readline() returns b"" (or a fragment) when the read timeout expires;
          fragments are kept until their terminator arrives.
        - A read fault is logged and retried. If the port reports closed or
          MAX_CONSECUTIVE_ERRORS faults happen back to back, the connection is
          considered lost: the handle is closed and on_lost fires once.
        """
        log.info("RX reader started")
        ser = self._ser
        if not ser:
            return
        pending = bytearray()
        errors = 0
        while not self._stop_flag.is_set():
            try:
                chunk = ser.readline()
            except (SerialException, OSError) as e:
                errors += 1
                log.warning("Read error on %s: %s", self._device, e)
                if not ser.is_open or errors >= MAX_CONSECUTIVE_ERRORS:
                    self._mark_lost(ser)
                    break
                self._stop_flag.wait(ERROR_BACKOFF_S)
                continue
            errors = 0
            if not chunk:
                continue  # timeout
            pending.extend(chunk)
            if not pending.endswith(b"\n"):
                if len(pending) > MAX_LINE_BYTES:
                    log.warning("Dropping %d bytes without line terminator", len(pending))
                    pending.clear()
                continue
            line = bytes(pending)
            pending.clear()
            if self._log_raw:
                log.info("[Serial RAW] %s", line.strip().decode("ascii", errors="replace"))
            if self._on_line:
                try:
                    self._on_line(line)
                except Exception:
                    log.exception("line callback error")
        log.info("RX reader exiting")

    def _mark_lost(self, ser: serial.Serial) -> None:
        self._lost.set()
        log.error("Connection to %s lost; reader stopping", self._device)
        try:
            ser.close()
        except (SerialException, OSError):
            log.exception("Error while closing lost port %s", self._device)
        if self._on_lost:
            try:
                self._on_lost()
            except Exception:
                log.exception("on_lost callback error")
