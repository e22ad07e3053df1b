"""
Playback sinks: where resolved prompts become sound.

- PrintSink:       prints what would be played. Development and tests.
- SoundDeviceSink: decodes with soundfile, plays with sounddevice (PortAudio).
- CommandSink:     hands the cached file to a command-line player
                   (afplay on macOS, aplay/ffplay on Linux). Works for mp3.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import threading
from typing import List, Optional, Sequence

import soundfile as sf

from kiosk_stack.l0_core.errors import SinkError
from kiosk_stack.l3_domain.tts.adapter import PlaybackSink
from kiosk_stack.l3_domain.tts.speech_cache import AudioHandle

log = logging.getLogger(__name__)


class PrintSink(PlaybackSink):
    """
    Trivial sink that prints the clip it would play.

    Responsibility:
    - Make playback visible without an audio device.
    - Return quickly; no blocking.
    """

    def __init__(self, name: str = "print") -> None:
        self._name = name
        self._loaded: Optional[AudioHandle] = None
        self.played: List[AudioHandle] = []

    @property
    def name(self) -> str:
        return self._name

    def load(self, handle: AudioHandle) -> None:
        self._loaded = handle

    def play(self) -> None:
        if self._loaded is None:
            raise SinkError("nothing loaded")
        self.played.append(self._loaded)
        print(f"[PLAY] {self._loaded.path.name}")


class SoundDeviceSink(PlaybackSink):
    """
    Plays clips on the default (or a named) PortAudio output device.

    sounddevice is imported on first use so that merely building the sink
    does not require the PortAudio library to be present.
    """

    def __init__(self, device: Optional[str | int] = None, name: str = "sounddevice") -> None:
        self._device = device
        self._name = name
        self._data = None
        self._rate = 0

    @property
    def name(self) -> str:
        return self._name

    def load(self, handle: AudioHandle) -> None:
        try:
            self._data, self._rate = sf.read(str(handle.path), dtype="float32")
        except (RuntimeError, OSError) as e:
            raise SinkError(f"Cannot decode {handle.path.name}: {e}") from e

    def play(self) -> None:
        if self._data is None:
            raise SinkError("nothing loaded")
        sd = _sounddevice()
        try:
            sd.stop()
            sd.play(self._data, samplerate=self._rate, device=self._device, blocking=False)
        except sd.PortAudioError as e:
            raise SinkError(f"PortAudio playback failed: {e}") from e

    def stop(self) -> None:
        _sounddevice().stop()


def _sounddevice():
    try:
        import sounddevice
    except OSError as e:  # raised when the PortAudio shared library is missing
        raise SinkError(f"PortAudio unavailable: {e}") from e
    return sounddevice


def default_player_command() -> List[str]:
    """Best available command-line player for this platform."""
    if sys.platform == "darwin":
        return ["afplay"]
    for cmd in (["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"], ["aplay", "-q"]):
        if shutil.which(cmd[0]):
            return cmd
    return ["aplay", "-q"]


class CommandSink(PlaybackSink):
    """
    Plays clips by spawning an external player process.

    A new play() stops the previous process first, so one sink never plays
    two prompts at once.
    """

    def __init__(self, command: Optional[Sequence[str]] = None, name: str = "command") -> None:
        self._command = list(command) if command else default_player_command()
        self._name = name
        self._path: Optional[str] = None
        self._proc: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def load(self, handle: AudioHandle) -> None:
        if not handle.path.is_file():
            raise SinkError(f"Missing clip {handle.path}")
        self._path = str(handle.path)

    def play(self) -> None:
        if self._path is None:
            raise SinkError("nothing loaded")
        with self._lock:
            self._terminate()
            try:
                self._proc = subprocess.Popen(
                    [*self._command, self._path],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                raise SinkError(f"Cannot start {self._command[0]}: {e}") from e

    def stop(self) -> None:
        with self._lock:
            self._terminate()

    def _terminate(self) -> None:
        proc = self._proc
        self._proc = None
        if proc and proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                proc.kill()
