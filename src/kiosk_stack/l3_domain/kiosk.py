"""
kiosk.py
========
Composition root: builds the ingestion pipeline and the voice stack from a
KioskConfig and owns their lifecycle.

    TransportReader / KeyInjector -> EventQueue -> DispatchLoop
        -> StateDispatcher -> DisplayStateMachine -> {EventBus "display.state",
                                                       Speaker -> PlaybackCoordinator}

Usage:
    kiosk = Kiosk.from_config(cfg, bus)
    kiosk.connect()          # never raises; falls back to simulated input
    kiosk.run(stop_event)    # tick loop on the calling thread
    kiosk.close()
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from kiosk_stack.l0_core import EventBus
from kiosk_stack.l0_core.errors import SerialError, TransportNotFound
from kiosk_stack.l0_core.events import Fault, Severity, StateChanged, now_ms
from kiosk_stack.l2_ingest.key_injector import KeyInjector
from kiosk_stack.l2_ingest.protocol_queue import EventQueue
from kiosk_stack.l2_ingest.transport_reader import TransportReader
from kiosk_stack.l3_domain.config import KioskConfig
from kiosk_stack.l3_domain.screen.dispatch_loop import DispatchLoop
from kiosk_stack.l3_domain.screen.dispatcher import StateDispatcher
from kiosk_stack.l3_domain.screen.display import DisplayStateMachine
from kiosk_stack.l3_domain.screen.prompts import PromptTable
from kiosk_stack.l3_domain.tts.adapter import PlaybackSink, SpeakerPort
from kiosk_stack.l3_domain.tts.azure_backend import AzureSpeechBackend
from kiosk_stack.l3_domain.tts.playback import PlaybackCoordinator
from kiosk_stack.l3_domain.tts.sinks import CommandSink, PrintSink, SoundDeviceSink
from kiosk_stack.l3_domain.tts.speakers import CachedSpeaker, NullSpeaker
from kiosk_stack.l3_domain.tts.speech_cache import SpeechCache

QUEUE_MAX = 1024

log = logging.getLogger(__name__)


def build_sink(kind: str) -> PlaybackSink:
    if kind == "sounddevice":
        return SoundDeviceSink()
    if kind == "command":
        return CommandSink()
    if kind == "print":
        return PrintSink()
    raise ValueError(f"Unknown sink {kind!r}")


@dataclass(slots=True)
class VoiceStack:
    speaker: SpeakerPort
    coordinator: Optional[PlaybackCoordinator]
    cache: Optional[SpeechCache]


def build_voice(cfg: KioskConfig, sink: Optional[PlaybackSink] = None,
                base_dir: str | Path = ".") -> VoiceStack:
    """
    Select the speaker variant from ``cfg.voice.backend``:

    - "local": pre-baked WAV entries only; a missing entry is skipped.
    - "azure": network synthesis into an MP3 cache.
    - "none": log-only speaker.
    """
    backend = cfg.voice.backend
    if backend == "none":
        return VoiceStack(NullSpeaker(), None, None)

    base = Path(base_dir)
    if backend == "azure":
        az = cfg.azure
        synth = AzureSpeechBackend(
            region=az.region,
            subscription_key=az.subscription_key or None,
            timeout_sec=az.timeout_sec,
        )
        if not synth.is_configured:
            log.warning("Azure key not set; only cached prompts will play")
        cache = SpeechCache(base / az.cache_dir, backend=synth)
        voice, fmt = az.voice_profile, az.audio_format
    else:
        cache = SpeechCache(base / cfg.local.cache_dir)
        voice, fmt = cfg.local.voice_profile, cfg.local.audio_format

    coordinator = PlaybackCoordinator(cache)
    if sink is None:
        sink = build_sink(cfg.voice.sink)
    speaker = CachedSpeaker(coordinator, sink, voice, fmt, default_delay_sec=cfg.voice.speak_delay_sec)
    return VoiceStack(speaker, coordinator, cache)


class Kiosk:
    def __init__(self, cfg: KioskConfig, bus: EventBus, voice: VoiceStack) -> None:
        self._cfg = cfg
        self._bus = bus
        self._voice = voice

        prompts = PromptTable().with_overrides(cfg.prompts)
        prompts.validate()

        self.queue = EventQueue(QUEUE_MAX, "EventQueue")
        self.display = DisplayStateMachine(
            prompts,
            speaker=voice.speaker,
            emit_state=self._publish_state,
            speak_delay_sec=cfg.voice.speak_delay_sec,
            auto_speak=cfg.voice.auto_speak,
        )
        self.dispatcher = StateDispatcher(self.display)
        self.loop = DispatchLoop(self.queue, self.dispatcher)
        self.injector = KeyInjector(self.queue)
        self.reader = TransportReader(
            self.queue,
            baudrate=cfg.serial.baudrate,
            read_timeout_ms=cfg.serial.read_timeout_ms,
            log_raw=cfg.serial.log_raw,
            on_lost=self._on_transport_lost,
        )

    @classmethod
    def from_config(cls, cfg: KioskConfig, bus: EventBus,
                    sink: Optional[PlaybackSink] = None, base_dir: str | Path = ".") -> "Kiosk":
        return cls(cfg, bus, build_voice(cfg, sink=sink, base_dir=base_dir))

    @property
    def voice(self) -> VoiceStack:
        return self._voice

    # ---- lifecycle ----
    def connect(self) -> bool:
        """
        Open the reader device if configured to. Returns True when live
        events are flowing; False means simulated input only.
        """
        if not self._cfg.serial.auto_connect:
            return False
        try:
            address = self.reader.open(self._cfg.serial.port)
        except TransportNotFound:
            log.warning("[Serial] Port not found. Keyboard simulate only.")
            return False
        except SerialError as e:
            log.error("[Serial] Open failed: %s. Keyboard simulate only.", e)
            return False
        log.info("[Serial] Opened %s @ %d", address, self._cfg.serial.baudrate)
        return True

    def run(self, stop: threading.Event) -> None:
        self.loop.run(stop, self._cfg.tick_interval_ms / 1000.0)

    def close(self) -> None:
        self.reader.close()
        if self._voice.coordinator is not None:
            self._voice.coordinator.shutdown(wait=False)

    # ---- callbacks ----
    def _publish_state(self, evt: StateChanged) -> None:
        self._bus.publish("display.state", evt)

    def _on_transport_lost(self, address: str) -> None:
        self._bus.publish("kiosk.fault", Fault(
            timestamp_millis=now_ms(),
            severity=Severity.ERROR,
            code="TRANSPORT_LOST",
            message="serial read loop exited; live events stopped",
            context={"port": address},
        ))
