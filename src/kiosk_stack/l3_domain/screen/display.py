from __future__ import annotations

import logging
from typing import Callable, Optional

from kiosk_stack.l0_core.events import (
    DisplayState, SpeakDefault, SpeakNow, SpeechDirective, StateChanged, Suppress, now_ms,
)
from kiosk_stack.l3_domain.screen.prompts import PromptTable
from kiosk_stack.l3_domain.tts.adapter import SpeakerPort

log = logging.getLogger(__name__)


class DisplayStateMachine:
    """
    Purpose:
        Own the single active display state and the speech that goes with
        each change of screen.

    Collaborators:
        - emit_state: injected callable that publishes StateChanged for the UI
          (typically EventBus.publish on "display.state").
        - speaker: SpeakerPort used for prompts; None means log-only.

    Threading:
        Mutated only from the dispatch loop thread. Other threads hand work
        over with DispatchLoop.post().
    """

    def __init__(self,
                 prompts: PromptTable,
                 speaker: Optional[SpeakerPort] = None,
                 emit_state: Optional[Callable[[StateChanged], None]] = None,
                 speak_delay_sec: float = 1.0,
                 auto_speak: bool = True,
                 initial: DisplayState = DisplayState.IDLE) -> None:
        self._prompts = prompts
        self._speaker = speaker
        self._emit_state = emit_state
        self._delay = speak_delay_sec
        self._auto_speak = auto_speak
        self._active = initial

    # ---- queries ----
    @property
    def active(self) -> DisplayState:
        return self._active

    @property
    def prompts(self) -> PromptTable:
        return self._prompts

    def is_active(self, state: DisplayState) -> bool:
        return self._active is state

    def panels(self) -> dict[DisplayState, bool]:
        """Visibility of every panel; exactly one is True."""
        return {s: s is self._active for s in DisplayState}

    # ---- commands ----
    def show(self, state: DisplayState, directive: SpeechDirective = SpeakDefault(),
             code: Optional[int] = None) -> None:
        """
        Activate ``state`` (deactivating all others), notify the UI, then
        apply ``directive``:

        - Suppress: no speech.
        - SpeakDefault: the state's default prompt after the screen-change
          delay (only when auto_speak is on).
        - SpeakNow(text): ``text`` immediately; the default prompt is not used.
        """
        previous = self._active
        self._active = state
        if self._emit_state:
            self._emit_state(StateChanged(now_ms(), state, previous, code))

        if isinstance(directive, Suppress):
            return
        if isinstance(directive, SpeakNow):
            self.announce_now(directive.text)
            return
        if not self._auto_speak:
            return
        text = self._prompts[state]
        if not text.strip():
            return
        if self._speaker is None:
            log.info("[Voice] %s", text)
            return
        self._speaker.speak(text, self._delay)

    def announce_now(self, text: str) -> None:
        """Speak ``text`` with zero delay. Blank text is ignored."""
        if not text or not text.strip():
            return
        if self._speaker is None:
            log.info("[Voice NOW] %s", text)
            return
        self._speaker.speak(text, 0.0)
