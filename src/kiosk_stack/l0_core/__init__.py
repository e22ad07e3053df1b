"""
kiosk_stack.l0_core
Foundational Core layer (contracts & buses) for the kiosk stack.

Public API:
- now_ms, Severity, DisplayState, speech directives (Suppress, SpeakDefault, SpeakNow)
- StateChanged, SpeechRequest, Fault
- EventBus
"""

from .events import (  # noqa: F401
    now_ms, Severity, CODE_MIN, CODE_MAX, is_valid_code,
    DisplayState, Suppress, SpeakDefault, SpeakNow, SpeechDirective,
    StateChanged, SpeechRequest, Fault,
)
from .bus import EventBus  # noqa: F401

__all__ = [
    "now_ms", "Severity", "CODE_MIN", "CODE_MAX", "is_valid_code",
    "DisplayState", "Suppress", "SpeakDefault", "SpeakNow", "SpeechDirective",
    "StateChanged", "SpeechRequest", "Fault",
    "EventBus",
]
