"""
Exception hierarchy shared by every layer of the kiosk stack.

Higher layers catch these instead of raw pyserial / urllib / OS exceptions.
"""
from __future__ import annotations


class KioskError(Exception):
    """Base class for all kiosk_stack errors."""


class SerialError(KioskError):
    """Opening, reading or closing the serial transport failed."""


class TransportNotFound(SerialError):
    """No serial address was configured and none could be discovered."""


class SpeechError(KioskError):
    """A prompt could not be turned into playable audio."""


class SynthesisUnavailable(SpeechError):
    """No cache entry exists and no synthesis backend is configured."""


class SynthesisFailed(SpeechError):
    """The backend call or the cache write/read failed (I/O failure)."""


class SinkError(KioskError):
    """The playback device refused to load or play a clip."""


class ConfigError(KioskError, ValueError):
    """Configuration file contents are invalid."""
