from __future__ import annotations
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from kiosk_stack.l2_audio.formats import AudioFormat
    from kiosk_stack.l3_domain.tts.speech_cache import AudioHandle


class SpeakerPort(Protocol):
    """
    Minimal port used by the display layer to say something.

    Program-to-interface:
    - The state machine depends on this small surface, not on a cache,
      backend or device.
    - Concrete speakers (local pre-baked cache, network backend, log-only)
      are chosen by configuration and swapped without touching domain code.

    delay_sec: seconds to wait before playback; None or a negative value
    means the speaker's own default.
    """
    def speak(self, text: str, delay_sec: Optional[float] = None) -> Optional[Future]: ...


class SynthesisBackend(Protocol):
    """
    Something that turns text into encoded audio bytes.

    is_configured is False when a required credential is missing; the cache
    then reports SynthesisUnavailable without calling synthesize().
    synthesize() raises SynthesisFailed on any transport or service error.
    """
    @property
    def is_configured(self) -> bool: ...

    def synthesize(self, text: str, voice_profile: str, audio_format: "AudioFormat") -> bytes: ...


class PlaybackSink(ABC):
    """
    Base class for audio output devices.

    Responsibility:
    - load(handle) prepares a resolved cache entry for playback.
    - play() starts the last loaded clip and returns quickly.

    Threading:
    - Called from playback coordinator worker threads, never concurrently
      for the same sink (the coordinator serializes commits per sink).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable identity of the device; requests are superseded per name."""
        raise NotImplementedError

    @abstractmethod
    def load(self, handle: "AudioHandle") -> None:
        """Load the clip. Raises SinkError if the device cannot take it."""
        raise NotImplementedError

    @abstractmethod
    def play(self) -> None:
        """Start playback of the loaded clip. Raises SinkError on failure."""
        raise NotImplementedError

    def stop(self) -> None:
        """Stop current playback, if the device supports it."""
