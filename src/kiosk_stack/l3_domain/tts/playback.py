"""
Playback coordinator.

announce() turns a SpeechRequest into a background task:

    resolve cache entry -> wait delay -> commit to sink (load + play)

Tasks run on a thread pool and are not ordered relative to each other.
Each sink keeps a generation counter; a task records its generation when it
is announced and commits only if no newer request for the same sink has
been announced since (latest wins). Every failure ends the task quietly
with a log line and leaves the sink untouched.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional

from kiosk_stack.l0_core.errors import SinkError, SynthesisUnavailable, SpeechError
from kiosk_stack.l0_core.events import SpeechRequest
from kiosk_stack.l2_audio.formats import audio_format_by_name
from kiosk_stack.l3_domain.tts.adapter import PlaybackSink
from kiosk_stack.l3_domain.tts.speech_cache import SpeechCache

log = logging.getLogger(__name__)


class PlaybackCoordinator:
    """
    Purpose:
        Drive playback sinks from speech requests without blocking the caller.

    Collaborators:
        - SpeechCache: resolves (and on first use synthesizes) audio.
        - PlaybackSink: the output device, passed per request.

    Threading:
        announce() may be called from any thread. Commits to one sink are
        serialized by a per-coordinator lock.
    """

    def __init__(self, cache: SpeechCache, max_workers: int = 4) -> None:
        self._cache = cache
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="announce")
        self._lock = threading.Lock()
        self._commit_lock = threading.Lock()
        self._generations: Dict[str, int] = {}
        self._pending: set[Future] = set()
        self._closed = threading.Event()

    @property
    def cache(self) -> SpeechCache:
        return self._cache

    def announce(self, request: SpeechRequest, sink: Optional[PlaybackSink]) -> Future:
        """
        Schedule ``request`` for playback on ``sink`` and return immediately.

        The returned Future resolves to True when playback started and False
        when the request was skipped (superseded, no sink, no audio, device
        error, shutdown).
        """
        if self._closed.is_set() or sink is None:
            if sink is None:
                log.warning("No playback sink; skipping %r", request.text)
            done: Future = Future()
            done.set_result(False)
            return done

        generation = self._next_generation(sink.name)
        try:
            fut = self._pool.submit(self._run, request, sink, generation)
        except RuntimeError:
            # pool shut down between the closed check and submit
            done = Future()
            done.set_result(False)
            return done
        with self._lock:
            self._pending.add(fut)
        fut.add_done_callback(self._forget)
        return fut

    def latest_generation(self, sink_name: str) -> int:
        with self._lock:
            return self._generations.get(sink_name, 0)

    def in_flight(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop accepting requests. Delayed tasks wake up and discard themselves;
        queued tasks that have not started are cancelled.
        """
        self._closed.set()
        self._pool.shutdown(wait=wait, cancel_futures=True)

    # ---- task body (runs on a pool thread) ----
    def _run(self, request: SpeechRequest, sink: PlaybackSink, generation: int) -> bool:
        try:
            fmt = audio_format_by_name(request.audio_format)
            handle = self._cache.resolve(request.text, request.voice_profile, fmt)
        except SynthesisUnavailable as e:
            log.info("Speech skipped (%s): %r", e, request.text)
            return False
        except SpeechError as e:
            log.warning("Speech failed (%s): %r", e, request.text)
            return False
        except ValueError as e:
            log.warning("Bad speech request (%s): %r", e, request.text)
            return False

        if request.delay_sec > 0 and self._closed.wait(request.delay_sec):
            log.debug("Shutdown during delay; dropping %r", request.text)
            return False
        if self._closed.is_set():
            return False

        with self._commit_lock:
            if generation != self.latest_generation(sink.name):
                log.debug("Superseded on sink %s: %r", sink.name, request.text)
                return False
            try:
                sink.load(handle)
                sink.play()
            except SinkError as e:
                log.warning("Playback on %s failed: %s", sink.name, e)
                return False
        log.info("[VOICE] %s", request.text)
        return True

    def _next_generation(self, sink_name: str) -> int:
        with self._lock:
            gen = self._generations.get(sink_name, 0) + 1
            self._generations[sink_name] = gen
            return gen

    def _forget(self, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)
