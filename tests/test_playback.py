import time
from concurrent.futures import wait

import pytest

from kiosk_stack.l0_core.errors import SinkError
from kiosk_stack.l0_core.events import SpeechRequest, now_ms
from kiosk_stack.l2_audio.formats import WAV_PCM_16K
from kiosk_stack.l2_audio.wav_header import build_wav
from kiosk_stack.l3_domain.tts.adapter import PlaybackSink
from kiosk_stack.l3_domain.tts.playback import PlaybackCoordinator
from kiosk_stack.l3_domain.tts.sinks import PrintSink, SoundDeviceSink
from kiosk_stack.l3_domain.tts.speakers import CachedSpeaker, NullSpeaker
from kiosk_stack.l3_domain.tts.speech_cache import SpeechCache

VOICE = "Kyoko"


class BrokenSink(PlaybackSink):
    name = "broken"

    def load(self, handle):
        self.loaded = handle

    def play(self):
        raise SinkError("device busy")


def _request(text, delay=0.0):
    return SpeechRequest(now_ms(), text, VOICE, WAV_PCM_16K.name, delay)


def _cache_with(tmp_path, *texts):
    cache = SpeechCache(tmp_path)
    for text in texts:
        cache.path_for(text, VOICE, WAV_PCM_16K).write_bytes(build_wav(b"\x00\x00" * 80))
    return cache


@pytest.fixture
def coordinator(tmp_path):
    coord = PlaybackCoordinator(_cache_with(tmp_path, "計測成功！", "完了しました。"))
    yield coord
    coord.shutdown(wait=True)


def test_announce_plays_cached_entry(coordinator, capsys):
    sink = PrintSink()
    fut = coordinator.announce(_request("計測成功！"), sink)
    assert fut.result(timeout=2.0) is True
    assert [h.path for h in sink.played] == [
        coordinator.cache.path_for("計測成功！", VOICE, WAV_PCM_16K)
    ]
    assert "[PLAY]" in capsys.readouterr().out


def test_latest_request_wins_on_a_sink(coordinator):
    sink = PrintSink()
    older = coordinator.announce(_request("計測成功！", delay=0.3), sink)
    newer = coordinator.announce(_request("完了しました。", delay=0.0), sink)

    assert newer.result(timeout=2.0) is True
    assert older.result(timeout=2.0) is False
    assert len(sink.played) == 1
    assert sink.played[0].path.name == coordinator.cache.path_for("完了しました。", VOICE, WAV_PCM_16K).name
    assert coordinator.latest_generation("print") == 2


def test_sinks_do_not_supersede_each_other(coordinator):
    a, b = PrintSink("left"), PrintSink("right")
    fa = coordinator.announce(_request("計測成功！", delay=0.1), a)
    fb = coordinator.announce(_request("完了しました。"), b)
    assert fa.result(timeout=2.0) is True
    assert fb.result(timeout=2.0) is True


def test_missing_entry_leaves_sink_untouched(coordinator):
    sink = PrintSink()
    fut = coordinator.announce(_request("まだ作っていない文"), sink)
    assert fut.result(timeout=2.0) is False
    assert sink.played == []


def test_sink_errors_are_contained(coordinator):
    fut = coordinator.announce(_request("計測成功！"), BrokenSink())
    assert fut.result(timeout=2.0) is False


def test_no_sink_is_a_skip(coordinator):
    assert coordinator.announce(_request("計測成功！"), None).result(timeout=0.1) is False


def test_unknown_format_is_a_skip(coordinator):
    req = SpeechRequest(now_ms(), "計測成功！", VOICE, "flac", 0.0)
    assert coordinator.announce(req, PrintSink()).result(timeout=2.0) is False


def test_shutdown_wakes_delayed_tasks(coordinator):
    sink = PrintSink()
    fut = coordinator.announce(_request("計測成功！", delay=5.0), sink)
    started = time.monotonic()
    coordinator.shutdown(wait=False)
    done, _ = wait([fut], timeout=2.0)

    assert fut in done
    assert time.monotonic() - started < 2.0
    assert fut.cancelled() or fut.result() is False
    assert sink.played == []
    assert coordinator.announce(_request("計測成功！"), sink).result(timeout=0.1) is False


def test_cached_speaker_builds_requests(coordinator):
    sink = PrintSink()
    speaker = CachedSpeaker(coordinator, sink, VOICE, WAV_PCM_16K, default_delay_sec=0.0)

    assert speaker.speak("   ") is None
    assert speaker.speak("計測成功！", -1).result(timeout=2.0) is True
    assert speaker.speak("完了しました。", None).result(timeout=2.0) is True
    assert len(sink.played) == 2


def test_null_speaker_returns_nothing():
    assert NullSpeaker().speak("完了しました。") is None


def test_print_sink_without_clip_raises():
    with pytest.raises(SinkError):
        PrintSink().play()


def test_sounddevice_sink_refuses_undecodable_clip(tmp_path):
    cache = SpeechCache(tmp_path)
    cache.path_for("計測成功！", VOICE, WAV_PCM_16K).write_bytes(b"placeholder audio")
    handle = cache.resolve("計測成功！", VOICE, WAV_PCM_16K)

    with pytest.raises(SinkError):
        SoundDeviceSink().load(handle)
