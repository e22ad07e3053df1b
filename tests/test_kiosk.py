import threading
import time

import pytest

from kiosk_stack.l0_core import EventBus
from kiosk_stack.l0_core.events import DisplayState, Fault, StateChanged
from kiosk_stack.l2_audio.formats import WAV_PCM_16K
from kiosk_stack.l2_audio.wav_header import build_wav
from kiosk_stack.l3_domain.config import parse_config
from kiosk_stack.l3_domain.kiosk import Kiosk, build_sink, build_voice
from kiosk_stack.l3_domain.screen.prompts import DEFAULT_PROMPTS
from kiosk_stack.l3_domain.tts.sinks import CommandSink, PrintSink
from kiosk_stack.l3_domain.tts.speakers import CachedSpeaker, NullSpeaker


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def bus():
    b = EventBus(capacity=64)
    yield b
    b.close()


def test_bus_delivers_in_order_and_survives_bad_subscribers(bus):
    got = []
    done = threading.Event()

    def bad(evt):
        raise RuntimeError("subscriber bug")

    def good(evt):
        got.append(evt)
        if evt == 3:
            done.set()

    bus.subscribe("t", bad)
    bus.subscribe("t", good)
    for n in (1, 2, 3):
        assert bus.publish("t", n)
    assert done.wait(1.0)
    assert got == [1, 2, 3]

    bus.unsubscribe("t", good)
    bus.unsubscribe("t", good)


def test_build_voice_variants(tmp_path, monkeypatch):
    monkeypatch.delenv("AZURE_SPEECH_KEY", raising=False)
    none = build_voice(parse_config({"voice": {"backend": "none"}}), base_dir=tmp_path)
    assert isinstance(none.speaker, NullSpeaker) and none.cache is None

    local = build_voice(parse_config({"voice": {"sink": "print"}}), base_dir=tmp_path)
    assert isinstance(local.speaker, CachedSpeaker)
    assert local.cache.root == tmp_path / "tts"
    assert local.cache.backend is None
    assert local.speaker.audio_format is WAV_PCM_16K
    local.coordinator.shutdown()

    azure = build_voice(parse_config({"voice": {"backend": "azure", "sink": "print"}}), base_dir=tmp_path)
    assert azure.cache.root == tmp_path / "tts_cache"
    assert azure.cache.backend.is_configured is False
    assert azure.speaker.voice_profile == "ja-JP-NanamiNeural"
    azure.coordinator.shutdown()


def test_build_sink():
    assert isinstance(build_sink("print"), PrintSink)
    assert isinstance(build_sink("command"), CommandSink)
    with pytest.raises(ValueError):
        build_sink("hdmi")


def _simulated_kiosk(tmp_path, bus, sink):
    cfg = parse_config({
        "serial": {"auto_connect": False},
        "voice": {"speak_delay_sec": 0, "sink": "print"},
    })
    kiosk = Kiosk.from_config(cfg, bus, sink=sink, base_dir=tmp_path)
    kiosk.voice.cache.root.mkdir(parents=True)
    return kiosk


def _place(kiosk, text):
    path = kiosk.voice.cache.path_for(text, "Kyoko", WAV_PCM_16K)
    path.write_bytes(build_wav(b"\x00\x00" * 80))
    return path


def test_kiosk_codes_flow_in_order_to_the_ui(tmp_path, bus):
    kiosk = _simulated_kiosk(tmp_path, bus, PrintSink())
    screens = []
    bus.subscribe("display.state", screens.append)

    assert kiosk.connect() is False
    for key in ("7", "9", "f6"):
        assert kiosk.injector.inject(key)
    assert kiosk.loop.tick() == 3

    assert kiosk.display.active is DisplayState.DONE
    assert _wait_for(lambda: len(screens) == 3)
    assert all(isinstance(e, StateChanged) for e in screens)
    assert [e.code for e in screens] == [7, 9, 15]
    assert [e.state for e in screens] == [DisplayState.MEASURING, DisplayState.SUCCESS, DisplayState.DONE]
    kiosk.close()


def test_kiosk_plays_cached_prompt(tmp_path, bus):
    sink = PrintSink()
    kiosk = _simulated_kiosk(tmp_path, bus, sink)
    path = _place(kiosk, DEFAULT_PROMPTS[DisplayState.MEASURING])

    kiosk.injector.inject("7")
    kiosk.loop.tick()

    assert _wait_for(lambda: len(sink.played) == 1)
    assert sink.played[0].path == path
    kiosk.close()


def test_kiosk_missing_prompt_still_changes_screen(tmp_path, bus):
    sink = PrintSink()
    kiosk = _simulated_kiosk(tmp_path, bus, sink)

    kiosk.injector.inject("9")
    kiosk.loop.tick()

    assert kiosk.display.active is DisplayState.SUCCESS
    assert _wait_for(lambda: kiosk.voice.coordinator.in_flight() == 0)
    assert sink.played == []
    assert kiosk.voice.cache.stats().unavailable == 1
    kiosk.close()


def test_kiosk_publishes_fault_on_transport_loss(tmp_path, bus):
    cfg = parse_config({"voice": {"backend": "none"}})
    kiosk = Kiosk.from_config(cfg, bus, base_dir=tmp_path)
    faults = []
    bus.subscribe("kiosk.fault", faults.append)

    kiosk._on_transport_lost("/dev/ttyACM0")

    assert _wait_for(lambda: len(faults) == 1)
    assert isinstance(faults[0], Fault)
    assert faults[0].code == "TRANSPORT_LOST"
    assert faults[0].context["port"] == "/dev/ttyACM0"
    kiosk.close()


def test_kiosk_connect_falls_back_when_no_port(tmp_path, bus, monkeypatch):
    cfg = parse_config({"voice": {"backend": "none"}})
    kiosk = Kiosk.from_config(cfg, bus, base_dir=tmp_path)
    monkeypatch.setattr(kiosk.reader, "_discover", lambda: [])
    assert kiosk.connect() is False
    assert kiosk.reader.is_open() is False
    kiosk.close()
