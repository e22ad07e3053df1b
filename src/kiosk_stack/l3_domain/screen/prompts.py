from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from kiosk_stack.l0_core.events import DisplayState

DEFAULT_PROMPTS: Mapping[DisplayState, str] = MappingProxyType({
    DisplayState.IDLE: "待機中です。タグをかざしてね。",
    DisplayState.AWAITING_HAND: "タグを検出しました。センサーに手をかざしてね。",
    DisplayState.MEASUREMENT_READY: "計測の準備をします。",
    DisplayState.MEASURING: "計測を開始します。",
    DisplayState.SUCCESS: "計測成功！",
    DisplayState.FAILURE: "エラーが発生しました。もう一度お願いします。",
    DisplayState.TAG_READ: "タグを読み込みます。",
    DisplayState.TAG_WRITE: "タグに書き込みます。",
    DisplayState.DONE: "完了しました。",
})

DEFAULT_BACK_TO_IDLE = "待機画面に戻ります。"


@dataclass(frozen=True, slots=True)
class PromptTable:
    """
    Immutable default prompt per display state, plus the acknowledgement
    spoken when the kiosk is sent back to idle.

    Fields
    ------
    prompts : Mapping[DisplayState, str]
        Default prompt for every state.
    back_to_idle : str
        Spoken (immediately) on reset to idle; distinct from the idle prompt.
    """
    prompts: Mapping[DisplayState, str] = field(default_factory=lambda: DEFAULT_PROMPTS)
    back_to_idle: str = DEFAULT_BACK_TO_IDLE

    def __getitem__(self, state: DisplayState) -> str:
        return self.prompts.get(state, "")

    def with_overrides(self, overrides: Mapping[str, str]) -> "PromptTable":
        """
        Return a copy with some prompts replaced. Keys are DisplayState values
        ("idle", "failure", ...) or "back_to_idle".

        Raises:
            ValueError: unknown key.
        """
        merged = dict(self.prompts)
        back = self.back_to_idle
        for key, text in overrides.items():
            if key == "back_to_idle":
                back = str(text)
                continue
            try:
                merged[DisplayState(key)] = str(text)
            except ValueError:
                raise ValueError(f"Unknown prompt key {key!r}") from None
        return replace(self, prompts=MappingProxyType(merged), back_to_idle=back)

    def validate(self) -> None:
        """Every state and the back-to-idle prompt must have non-blank text."""
        missing = [s.value for s in DisplayState if not self[s].strip()]
        if not self.back_to_idle.strip():
            missing.append("back_to_idle")
        if missing:
            raise ValueError(f"Empty prompts for: {', '.join(missing)}")

    def all_texts(self) -> list[str]:
        """Every distinct prompt text (for cache warm-up)."""
        seen: dict[str, None] = {}
        for state in DisplayState:
            seen.setdefault(self[state], None)
        seen.setdefault(self.back_to_idle, None)
        return [t for t in seen if t.strip()]
