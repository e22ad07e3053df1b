from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from kiosk_stack.l0_core.events import (
    DisplayState, SpeakDefault, SpeakNow, SpeechDirective, is_valid_code,
)
from kiosk_stack.l3_domain.screen.display import DisplayStateMachine
from kiosk_stack.l3_domain.screen.prompts import PromptTable

log = logging.getLogger(__name__)

# Diagnostic sentences spoken on the failure screen, one per failing code.
WRONG_TAG = "このタグは使えません。"
READ_FAILED = "タグの読み出しに失敗しました。"
SAME_TAG_TWICE = "同じタグが続けて読み込まれました。"
MEASURE_TIMEOUT = "計測がタイムアウトしました。"
TAG_NOT_FOUND = "タグが見つかりませんでした。"
WRITE_INTERRUPTED = "書き込みを中断しました。"
WRITE_MISMATCH = "データが一致しません。"


@dataclass(frozen=True, slots=True)
class Transition:
    """
    What one event code does: which screen becomes active and what is said.

    Fields
    ------
    state : DisplayState
        Screen to activate.
    directive : SpeechDirective
        Speech accompanying the change.
    label : str
        Flow log line (e.g. "NFC read start").
    level : int
        logging level for the flow log line.
    """
    state: DisplayState
    directive: SpeechDirective
    label: str
    level: int = logging.INFO


def build_transitions(prompts: PromptTable) -> Mapping[int, Transition]:
    """
    The complete code table (0-15). Prompts that repeat a state's own text
    are taken from ``prompts`` so configuration overrides apply to them.
    """
    def now(state: DisplayState) -> SpeakNow:
        return SpeakNow(prompts[state])

    def fail(text: str, label: str, level: int = logging.ERROR) -> Transition:
        return Transition(DisplayState.FAILURE, SpeakNow(text), label, level)

    table = {
        0: Transition(DisplayState.IDLE, SpeakNow(prompts.back_to_idle), "Back to idle"),
        1: Transition(DisplayState.TAG_READ, now(DisplayState.TAG_READ), "NFC read start"),
        2: Transition(DisplayState.AWAITING_HAND, now(DisplayState.AWAITING_HAND), "NFC detected"),
        3: fail(WRONG_TAG, "Wrong NFC tag", logging.WARNING),
        4: fail(READ_FAILED, "NFC read failed"),
        5: fail(SAME_TAG_TWICE, "Same NFC tag blocked", logging.WARNING),
        6: Transition(DisplayState.MEASUREMENT_READY, now(DisplayState.MEASUREMENT_READY),
                      "Measuring ready"),
        7: Transition(DisplayState.MEASURING, SpeakDefault(), "Finger detected"),
        8: fail(MEASURE_TIMEOUT, "Measuring timeout"),
        9: Transition(DisplayState.SUCCESS, SpeakDefault(), "Measuring done"),
        10: Transition(DisplayState.TAG_READ, now(DisplayState.TAG_READ), "NFC read start (2nd)"),
        11: fail(TAG_NOT_FOUND, "NFC not found (timeout)"),
        12: Transition(DisplayState.TAG_WRITE, now(DisplayState.TAG_WRITE), "NFC write start"),
        13: fail(WRITE_INTERRUPTED, "NFC write interrupted"),
        14: fail(WRITE_MISMATCH, "NFC write mismatch"),
        15: Transition(DisplayState.DONE, SpeakDefault(), "NFC write done"),
    }
    return MappingProxyType(table)


class StateDispatcher:
    """
    Maps event codes to display transitions.

    The table is fixed at construction; dispatch() has no state of its own,
    so the same code always produces the same (screen, speech) pair.
    """

    def __init__(self, display: DisplayStateMachine,
                 transitions: Optional[Mapping[int, Transition]] = None,
                 on_unknown: Optional[Callable[[object], None]] = None) -> None:
        self._display = display
        self._table = transitions if transitions is not None else build_transitions(display.prompts)
        self._on_unknown = on_unknown

    @property
    def display(self) -> DisplayStateMachine:
        return self._display

    def transition_for(self, code: object) -> Optional[Transition]:
        if not is_valid_code(code):
            return None
        return self._table.get(code)  # type: ignore[arg-type]

    def dispatch(self, code: object) -> Optional[Transition]:
        """
        Apply the transition for ``code``.

        Returns the Transition applied, or None for codes outside the table
        (logged; the current screen stays and nothing is spoken).
        """
        t = self.transition_for(code)
        if t is None:
            log.warning("[Flow] Unknown code %r", code)
            if self._on_unknown:
                self._on_unknown(code)
            return None
        log.log(t.level, "[Flow] %s (code %d)", t.label, code)
        self._display.show(t.state, t.directive, code=code)  # type: ignore[arg-type]
        return t
