"""
Content-addressed speech cache.

Every prompt is stored once under ``<root>/<md5-hex>.<ext>`` where the hash
covers (normalized text, voice profile, output format). Entries are written
once and reused forever; nothing here deletes them.

resolve() is the single entry point:

    cache hit               -> AudioHandle, no backend call
    miss, no backend        -> SynthesisUnavailable
    miss, backend error     -> SynthesisFailed
    miss, backend success   -> entry written atomically -> AudioHandle

Concurrent misses for the same key share one synthesis call through a
per-key in-flight Future.
"""
from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from kiosk_stack.l0_core.errors import SpeechError, SynthesisFailed, SynthesisUnavailable
from kiosk_stack.l2_audio.formats import AudioFormat, normalize_text, stable_hash
from kiosk_stack.l2_audio.wav_header import WavInfo, parse_wav
from kiosk_stack.l3_domain.tts.adapter import SynthesisBackend

log = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT_S = 30.0


@dataclass(frozen=True, slots=True)
class AudioHandle:
    """Resolved, immutable cache entry ready for a playback sink."""
    key: str
    path: Path
    audio_format: AudioFormat
    wav: Optional[WavInfo] = None

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    synth_calls: int = 0
    unavailable: int = 0
    failures: int = 0


class SpeechCache:
    def __init__(self, root: str | Path, backend: Optional[SynthesisBackend] = None,
                 wait_timeout_sec: float = DEFAULT_WAIT_TIMEOUT_S) -> None:
        self._root = Path(root)
        self._backend = backend
        self._wait_timeout = wait_timeout_sec
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}
        self._counts = {"hits": 0, "misses": 0, "synth_calls": 0, "unavailable": 0, "failures": 0}

    @property
    def root(self) -> Path:
        return self._root

    @property
    def backend(self) -> Optional[SynthesisBackend]:
        return self._backend

    # ---- lookups ----
    def path_for(self, text: str, voice_profile: str, audio_format: AudioFormat) -> Path:
        """Where the entry for these inputs lives (whether or not it exists)."""
        return self._path(stable_hash(text, voice_profile, audio_format), audio_format)

    def lookup(self, text: str, voice_profile: str, audio_format: AudioFormat) -> Optional[AudioHandle]:
        """Return the cached entry, or None when absent. Never synthesizes."""
        key = stable_hash(text, voice_profile, audio_format)
        path = self._path(key, audio_format)
        if not path.is_file():
            return None
        return self._handle(key, path, audio_format)

    def resolve(self, text: str, voice_profile: str, audio_format: AudioFormat) -> AudioHandle:
        """
        Return a handle for the spoken form of ``text``, synthesizing it on
        first use.

        Raises:
            ValueError: blank text.
            SynthesisUnavailable: not cached and no configured backend.
            SynthesisFailed: backend call or cache write failed.
        """
        if not normalize_text(text):
            raise ValueError("text must not be blank")

        key = stable_hash(text, voice_profile, audio_format)
        path = self._path(key, audio_format)
        if path.is_file():
            self._count("hits")
            return self._handle(key, path, audio_format)

        self._count("misses")
        with self._lock:
            pending = self._in_flight.get(key)
            owner = pending is None
            if owner:
                pending = Future()
                self._in_flight[key] = pending

        if not owner:
            log.debug("Waiting on in-flight synthesis for %s", key)
            try:
                return pending.result(timeout=self._wait_timeout)
            except FutureTimeout as exc:
                raise SynthesisFailed(f"Timed out waiting for synthesis of {key}") from exc

        try:
            handle = self._synthesize(key, path, text, voice_profile, audio_format)
        except Exception as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(handle)
            return handle
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(**self._counts)

    # ---- internals ----
    def _path(self, key: str, audio_format: AudioFormat) -> Path:
        return self._root / f"{key}.{audio_format.extension}"

    def _count(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def _synthesize(self, key: str, path: Path, text: str, voice_profile: str,
                    audio_format: AudioFormat) -> AudioHandle:
        # another owner may have finished between our miss and taking ownership
        if path.is_file():
            return self._handle(key, path, audio_format)

        backend = self._backend
        if backend is None or not backend.is_configured:
            self._count("unavailable")
            raise SynthesisUnavailable(
                f"No cache entry {path.name} and no synthesis backend configured"
            )

        self._count("synth_calls")
        try:
            audio = backend.synthesize(normalize_text(text), voice_profile, audio_format)
        except SpeechError:
            self._count("failures")
            raise
        except Exception as exc:
            self._count("failures")
            raise SynthesisFailed(f"Synthesis backend error: {exc}") from exc
        if not audio:
            self._count("failures")
            raise SynthesisFailed("Synthesis backend returned no audio")

        self._write(path, audio)
        log.info("Cached %d bytes as %s", len(audio), path.name)
        return self._handle(key, path, audio_format)

    def _write(self, path: Path, audio: bytes) -> None:
        tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(audio)
            os.replace(tmp, path)
        except OSError as exc:
            self._count("failures")
            tmp.unlink(missing_ok=True)
            raise SynthesisFailed(f"Failed to write cache entry {path}: {exc}") from exc

    def _handle(self, key: str, path: Path, audio_format: AudioFormat) -> AudioHandle:
        """
        Existing entries are always hits. The WAV header is read for its
        metadata only; an entry it cannot describe (hand-placed file, streamed
        WAV with open-ended sizes) is returned with ``wav=None`` and left for
        the sink to accept or refuse.
        """
        if not audio_format.is_wav:
            return AudioHandle(key=key, path=path, audio_format=audio_format)
        try:
            info = parse_wav(path.read_bytes())
        except (OSError, ValueError) as exc:
            log.warning("No WAV header info for %s: %s", path.name, exc)
            info = None
        return AudioHandle(key=key, path=path, audio_format=audio_format, wav=info)
