from __future__ import annotations

from enum import Enum
import time
from dataclasses import dataclass
from typing import Mapping, Union

Number = Union[int, float]
Value = Union[Number, bool, str]

# Closed range of event codes emitted by the reader device.
CODE_MIN = 0
CODE_MAX = 15


class Severity(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"


def now_ms() -> int:
    """Gives a steady (monotonic) clock for event timing in milliseconds
        for timestamps in logs/events (steady, not wall-clock).
    """
    return time.monotonic_ns() // 1_000_000


def is_valid_code(code: object) -> bool:
    """True for plain ints inside [CODE_MIN, CODE_MAX] (bools are rejected)."""
    return isinstance(code, int) and not isinstance(code, bool) and CODE_MIN <= code <= CODE_MAX


class DisplayState(str, Enum):
    """
    Screens the kiosk can present. Exactly one is active at a time.
    """
    IDLE = "idle"
    AWAITING_HAND = "awaiting_hand"
    MEASUREMENT_READY = "measurement_ready"
    MEASURING = "measuring"
    SUCCESS = "success"
    FAILURE = "failure"
    TAG_READ = "tag_read"
    TAG_WRITE = "tag_write"
    DONE = "done"


# ---- speech directives (tagged variant carried alongside a state change) ----

@dataclass(frozen=True, slots=True)
class Suppress:
    """Change the screen silently."""


@dataclass(frozen=True, slots=True)
class SpeakDefault:
    """Speak the state's configured default prompt after the screen-change delay."""


@dataclass(frozen=True, slots=True)
class SpeakNow:
    """
    Suppress the state's own prompt and speak ``text`` immediately instead.

    The text travels with the directive value, so a diagnostic sentence chosen
    for one event code can never be observed by another transition.
    """
    text: str


SpeechDirective = Union[Suppress, SpeakDefault, SpeakNow]


@dataclass(frozen=True, slots=True)
class StateChanged:
    """
    Immutable notification published on topic "display.state" whenever the
    active screen changes (or is re-shown).

    Fields:
      - timestamp_millis: monotonic timestamp (use now_ms())
      - state: the screen that is now active
      - previous: the screen that was active before, None at startup
      - code: event code that caused the change; None for direct calls
    """
    timestamp_millis: int
    state: DisplayState
    previous: DisplayState | None
    code: int | None = None


@dataclass(frozen=True, slots=True)
class SpeechRequest:
    """
    One spoken prompt on its way to a playback sink.

    Fields
    ------
    timestamp_millis : int
        Creation time (use now_ms()).
    text : str
        The exact phrase to speak.
    voice_profile : str
        Voice identifier understood by the synthesis backend (e.g. "ja-JP-NanamiNeural").
    audio_format : str
        Output format name; selects the cache file extension.
    delay_sec : float
        Pause between resolving the audio and starting playback.
    """
    timestamp_millis: int
    text: str
    voice_profile: str
    audio_format: str
    delay_sec: float = 0.0


@dataclass(frozen=True, slots=True)
class Fault:
    """
    Immutable fault record used for reporting errors with a severity level.
    Example:
      Fault(timestamp_millis=..., severity=Severity.ERROR, code="TRANSPORT_LOST",
            message="serial read loop exited", context={"port": "/dev/ttyACM0"})
    """
    timestamp_millis: int
    severity: Severity
    code: str               # stable programmatic code (e.g., "TRANSPORT_LOST")
    message: str            # human-readable explanation
    context: Mapping[str, Value]  # small scalar extras (never mutate)
