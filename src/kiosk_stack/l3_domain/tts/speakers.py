from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Optional

from kiosk_stack.l0_core.events import SpeechRequest, now_ms
from kiosk_stack.l2_audio.formats import AudioFormat
from kiosk_stack.l3_domain.tts.adapter import PlaybackSink
from kiosk_stack.l3_domain.tts.playback import PlaybackCoordinator

log = logging.getLogger(__name__)


class CachedSpeaker:
    """
    Speaker backed by the speech cache and a playback coordinator.

    One instance per (voice profile, format, sink). Whether audio comes from
    pre-baked files only or from a network backend is decided by the cache
    the coordinator was built with, not by this class.
    """

    def __init__(self, coordinator: PlaybackCoordinator, sink: Optional[PlaybackSink],
                 voice_profile: str, audio_format: AudioFormat,
                 default_delay_sec: float = 1.0) -> None:
        self._coordinator = coordinator
        self._sink = sink
        self._voice = voice_profile
        self._format = audio_format
        self._default_delay = default_delay_sec

    @property
    def voice_profile(self) -> str:
        return self._voice

    @property
    def audio_format(self) -> AudioFormat:
        return self._format

    def speak(self, text: str, delay_sec: Optional[float] = None) -> Optional[Future]:
        if not text or not text.strip():
            return None
        if delay_sec is None or delay_sec < 0:
            delay_sec = self._default_delay
        req = SpeechRequest(
            timestamp_millis=now_ms(),
            text=text,
            voice_profile=self._voice,
            audio_format=self._format.name,
            delay_sec=delay_sec,
        )
        return self._coordinator.announce(req, self._sink)


class NullSpeaker:
    """Speaker that only logs; used when voice output is disabled."""

    def speak(self, text: str, delay_sec: Optional[float] = None) -> Optional[Future]:
        if text and text.strip():
            log.info("[Voice OFF] %s", text)
        return None
