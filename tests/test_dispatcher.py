import threading

import pytest

from kiosk_stack.l0_core.events import DisplayState, SpeakDefault, SpeakNow, Suppress
from kiosk_stack.l2_ingest.key_injector import KeyInjector
from kiosk_stack.l2_ingest.protocol_queue import EventQueue
from kiosk_stack.l3_domain.screen.dispatch_loop import DispatchLoop
from kiosk_stack.l3_domain.screen.dispatcher import (
    MEASURE_TIMEOUT, READ_FAILED, WRONG_TAG, StateDispatcher, build_transitions,
)
from kiosk_stack.l3_domain.screen.display import DisplayStateMachine
from kiosk_stack.l3_domain.screen.prompts import DEFAULT_BACK_TO_IDLE, DEFAULT_PROMPTS, PromptTable


class RecordingSpeaker:
    def __init__(self):
        self.calls = []

    def speak(self, text, delay_sec=None):
        self.calls.append((text, delay_sec))
        return None


def _setup(auto_speak=True):
    speaker = RecordingSpeaker()
    states = []
    display = DisplayStateMachine(PromptTable(), speaker=speaker, emit_state=states.append,
                                  speak_delay_sec=1.0, auto_speak=auto_speak)
    return StateDispatcher(display), display, speaker, states


EXPECTED_STATES = {
    0: DisplayState.IDLE,
    1: DisplayState.TAG_READ,
    2: DisplayState.AWAITING_HAND,
    3: DisplayState.FAILURE,
    4: DisplayState.FAILURE,
    5: DisplayState.FAILURE,
    6: DisplayState.MEASUREMENT_READY,
    7: DisplayState.MEASURING,
    8: DisplayState.FAILURE,
    9: DisplayState.SUCCESS,
    10: DisplayState.TAG_READ,
    11: DisplayState.FAILURE,
    12: DisplayState.TAG_WRITE,
    13: DisplayState.FAILURE,
    14: DisplayState.FAILURE,
    15: DisplayState.DONE,
}


def test_table_is_total_over_code_range():
    table = build_transitions(PromptTable())
    assert sorted(table) == list(range(16))
    assert {c: t.state for c, t in table.items()} == EXPECTED_STATES


@pytest.mark.parametrize("code", range(16))
def test_dispatch_is_deterministic(code):
    first, second = _setup(), _setup()
    t1 = first[0].dispatch(code)
    t2 = second[0].dispatch(code)
    assert t1 == t2
    assert first[1].active is second[1].active is EXPECTED_STATES[code]
    assert first[2].calls == second[2].calls


def test_default_prompt_speaks_after_delay():
    dispatcher, display, speaker, _ = _setup()
    dispatcher.dispatch(7)
    assert display.active is DisplayState.MEASURING
    assert speaker.calls == [(DEFAULT_PROMPTS[DisplayState.MEASURING], 1.0)]


def test_immediate_prompt_uses_zero_delay():
    dispatcher, _, speaker, _ = _setup()
    dispatcher.dispatch(12)
    assert speaker.calls == [(DEFAULT_PROMPTS[DisplayState.TAG_WRITE], 0.0)]


@pytest.mark.parametrize("code", [-1, 16, 42, None, "7", 7.0, True])
def test_unknown_codes_change_nothing(code):
    unknown = []
    speaker = RecordingSpeaker()
    states = []
    display = DisplayStateMachine(PromptTable(), speaker=speaker, emit_state=states.append)
    dispatcher = StateDispatcher(display, on_unknown=unknown.append)

    assert dispatcher.dispatch(code) is None
    assert display.active is DisplayState.IDLE
    assert speaker.calls == []
    assert states == []
    assert unknown == [code]


def test_back_to_idle_from_measuring():
    dispatcher, display, speaker, states = _setup()
    dispatcher.dispatch(7)
    speaker.calls.clear()

    dispatcher.dispatch(0)

    assert display.active is DisplayState.IDLE
    assert speaker.calls == [(DEFAULT_BACK_TO_IDLE, 0.0)]
    assert DEFAULT_BACK_TO_IDLE != DEFAULT_PROMPTS[DisplayState.IDLE]
    assert states[-1].previous is DisplayState.MEASURING
    assert states[-1].code == 0


def test_failure_diagnostics_do_not_leak_between_codes():
    dispatcher, display, speaker, _ = _setup()

    dispatcher.dispatch(3)
    assert display.active is DisplayState.FAILURE
    dispatcher.dispatch(0)
    assert display.active is DisplayState.IDLE
    dispatcher.dispatch(4)

    assert speaker.calls == [
        (WRONG_TAG, 0.0),
        (DEFAULT_BACK_TO_IDLE, 0.0),
        (READ_FAILED, 0.0),
    ]
    # the failure screen's own prompt is never spoken for diagnostic codes
    assert all(text != DEFAULT_PROMPTS[DisplayState.FAILURE] for text, _ in speaker.calls)


def test_auto_speak_off_silences_defaults_only():
    dispatcher, _, speaker, _ = _setup(auto_speak=False)
    dispatcher.dispatch(9)
    dispatcher.dispatch(8)
    assert speaker.calls == [(MEASURE_TIMEOUT, 0.0)]


def test_show_directives_and_panels():
    _, display, speaker, states = _setup()

    display.show(DisplayState.DONE, Suppress())
    assert speaker.calls == []
    panels = display.panels()
    assert sum(panels.values()) == 1 and panels[DisplayState.DONE]

    display.show(DisplayState.SUCCESS, SpeakNow("  "))
    assert speaker.calls == []

    display.show(DisplayState.SUCCESS, SpeakDefault())
    assert speaker.calls == [(DEFAULT_PROMPTS[DisplayState.SUCCESS], 1.0)]
    assert [e.state for e in states] == [DisplayState.DONE, DisplayState.SUCCESS, DisplayState.SUCCESS]
    assert display.is_active(DisplayState.SUCCESS)


def test_display_without_speaker_only_logs():
    display = DisplayStateMachine(PromptTable())
    dispatcher = StateDispatcher(display)
    assert dispatcher.dispatch(3).state is DisplayState.FAILURE
    display.announce_now("テスト")
    assert display.active is DisplayState.FAILURE


def test_prompt_overrides_reach_immediate_transitions():
    prompts = PromptTable().with_overrides({"tag_read": "読み込み開始", "back_to_idle": "もどります"})
    speaker = RecordingSpeaker()
    display = DisplayStateMachine(prompts, speaker=speaker)
    dispatcher = StateDispatcher(display)

    dispatcher.dispatch(10)
    dispatcher.dispatch(0)

    assert speaker.calls == [("読み込み開始", 0.0), ("もどります", 0.0)]


def test_prompt_table_rejects_unknown_and_blank():
    with pytest.raises(ValueError):
        PromptTable().with_overrides({"lobby": "x"})
    with pytest.raises(ValueError):
        PromptTable().with_overrides({"done": " "}).validate()
    PromptTable().validate()
    texts = PromptTable().all_texts()
    assert DEFAULT_BACK_TO_IDLE in texts
    assert len(texts) == len(set(texts)) == 10


def test_dispatch_loop_keeps_fifo_order():
    dispatcher, display, _, states = _setup()
    q = EventQueue(16, "EventQueue")
    loop = DispatchLoop(q, dispatcher)
    inj = KeyInjector(q)
    for key in ("7", "9", "f6"):
        assert inj.inject(key)

    assert loop.tick() == 3
    assert [e.state for e in states] == [DisplayState.MEASURING, DisplayState.SUCCESS, DisplayState.DONE]
    assert display.active is DisplayState.DONE
    assert loop.processed == 3
    assert loop.tick() == 0


def test_dispatch_loop_survives_a_failing_dispatch():
    class Boom:
        def __init__(self):
            self.seen = []

        def dispatch(self, code):
            self.seen.append(code)
            if code == 1:
                raise RuntimeError("boom")

    q = EventQueue(8, "EventQueue")
    boom = Boom()
    loop = DispatchLoop(q, boom)
    q.put(1, timeout=0.0)
    q.put(2, timeout=0.0)
    assert loop.tick() == 2
    assert boom.seen == [1, 2]


def test_dispatch_loop_run_flushes_on_stop():
    dispatcher, display, _, _ = _setup()
    q = EventQueue(8, "EventQueue")
    loop = DispatchLoop(q, dispatcher)
    stop = threading.Event()
    stop.set()
    q.put(15, timeout=0.0)
    loop.run(stop, tick_interval_sec=0.001)
    assert display.active is DisplayState.DONE


def test_posted_actions_run_in_line_with_codes():
    dispatcher, display, speaker, states = _setup()
    q = EventQueue(8, "EventQueue")
    loop = DispatchLoop(q, dispatcher)
    inj = KeyInjector(q)
    assert inj.inject("7")
    assert loop.post(lambda: display.show(DisplayState.ERROR, Suppress()))
    assert inj.inject("f6")

    # only the two codes count as dispatched
    assert loop.tick() == 2
    assert [e.state for e in states] == [DisplayState.MEASURING, DisplayState.ERROR, DisplayState.DONE]
    assert loop.processed == 2


def test_posted_actions_run_on_the_loop_thread():
    dispatcher, display, speaker, _ = _setup()
    q = EventQueue(8, "EventQueue")
    loop = DispatchLoop(q, dispatcher)
    stop = threading.Event()
    ran_on = []
    done = threading.Event()

    def action():
        ran_on.append(threading.current_thread().name)
        display.announce_now("テスト")
        done.set()

    worker = threading.Thread(target=loop.run, args=(stop, 0.001), name="dispatch-loop")
    worker.start()
    try:
        assert loop.post(action)
        assert done.wait(1.0)
    finally:
        stop.set()
        worker.join(1.0)
    assert ran_on == ["dispatch-loop"]
    assert speaker.calls == [("テスト", 0.0)]


def test_post_reports_a_full_queue():
    dispatcher, _, _, _ = _setup()
    q = EventQueue(1, "EventQueue")
    loop = DispatchLoop(q, dispatcher)
    assert q.put(7, timeout=0.0)
    assert not loop.post(lambda: None)
