from __future__ import annotations
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping
import json

import yaml

from kiosk_stack.l0_core.errors import ConfigError
from kiosk_stack.l2_audio.formats import AudioFormat, audio_format_by_name

BACKENDS = ("local", "azure", "none")
SINKS = ("sounddevice", "command", "print")


@dataclass(frozen=True, slots=True)
class SerialConfig:
    """
    Serial link to the reader device.

    Fields
    ------
    port : str | None
        Device path ("/dev/ttyACM0", "COM3"). None/empty = first discovered port.
    baudrate : int
        Line speed. Defaults to 115200.
    read_timeout_ms : int
        Per-attempt readline timeout.
    auto_connect : bool
        Open the port at startup.
    log_raw : bool
        Log every raw line received.
    """
    port: str | None = None
    baudrate: int = 115_200
    read_timeout_ms: int = 50
    auto_connect: bool = True
    log_raw: bool = True


@dataclass(frozen=True, slots=True)
class VoiceConfig:
    backend: str = "local"         # "local" | "azure" | "none"
    auto_speak: bool = True
    speak_delay_sec: float = 1.0   # pause after a screen change before its prompt
    sink: str = "sounddevice"      # "sounddevice" | "command" | "print"


@dataclass(frozen=True, slots=True)
class LocalVoiceConfig:
    """Pre-baked prompts (no network)."""
    cache_dir: str = "tts"
    voice_profile: str = "Kyoko"
    format: str = "wav"

    @property
    def audio_format(self) -> AudioFormat:
        return audio_format_by_name(self.format)


@dataclass(frozen=True, slots=True)
class AzureVoiceConfig:
    """Network synthesis; an empty key falls back to $AZURE_SPEECH_KEY."""
    cache_dir: str = "tts_cache"
    region: str = "japaneast"
    subscription_key: str = ""
    voice_profile: str = "ja-JP-NanamiNeural"
    format: str = "mp3"
    timeout_sec: float = 10.0

    @property
    def audio_format(self) -> AudioFormat:
        return audio_format_by_name(self.format)


@dataclass(frozen=True, slots=True)
class KioskConfig:
    serial: SerialConfig = field(default_factory=SerialConfig)
    simulate_with_keyboard: bool = True
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    local: LocalVoiceConfig = field(default_factory=LocalVoiceConfig)
    azure: AzureVoiceConfig = field(default_factory=AzureVoiceConfig)
    prompts: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    tick_interval_ms: int = 16

    def with_overrides(self, **sections: Any) -> "KioskConfig":
        """Shallow update of whole sections (used for CLI flags)."""
        return replace(self, **sections)


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def _build(cls: type, values: Mapping[str, Any], name: str):
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid '{name}' section: {e}") from e


def _number(kind: type, value: Any, name: str, minimum: float):
    """Convert ``value`` with ``kind`` (int or float) and check its lower bound."""
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        number = kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value!r}")
    return number


def parse_config(data: Mapping[str, Any]) -> KioskConfig:
    """
    Build a KioskConfig from already-parsed YAML/JSON data. Missing keys use
    defaults.

    Raises ConfigError on unknown keys or invalid values.
    """
    serial = _build(SerialConfig, _section(data, "serial"), "serial")
    voice = _build(VoiceConfig, _section(data, "voice"), "voice")
    local = _build(LocalVoiceConfig, _section(data, "local"), "local")
    azure = _build(AzureVoiceConfig, _section(data, "azure"), "azure")
    prompts = {str(k): str(v) for k, v in _section(data, "prompts").items()}
    input_cfg = _section(data, "input")
    loop_cfg = _section(data, "loop")

    if voice.backend not in BACKENDS:
        raise ConfigError(f"voice.backend must be one of {BACKENDS}, got {voice.backend!r}")
    if voice.sink not in SINKS:
        raise ConfigError(f"voice.sink must be one of {SINKS}, got {voice.sink!r}")
    serial = replace(
        serial,
        baudrate=_number(int, serial.baudrate, "serial.baudrate", minimum=1),
        read_timeout_ms=_number(int, serial.read_timeout_ms, "serial.read_timeout_ms", minimum=1),
    )
    voice = replace(
        voice,
        speak_delay_sec=_number(float, voice.speak_delay_sec, "voice.speak_delay_sec", minimum=0),
    )
    azure = replace(
        azure,
        timeout_sec=_number(float, azure.timeout_sec, "azure.timeout_sec", minimum=0.001),
    )
    tick_interval_ms = _number(int, loop_cfg.get("tick_interval_ms", 16), "loop.tick_interval_ms", minimum=1)
    for section in (local, azure):
        try:
            section.audio_format
        except ValueError as e:
            raise ConfigError(str(e)) from e

    return KioskConfig(
        serial=serial,
        simulate_with_keyboard=bool(input_cfg.get("simulate_with_keyboard", True)),
        voice=voice,
        local=local,
        azure=azure,
        prompts=MappingProxyType(prompts),
        tick_interval_ms=tick_interval_ms,
    )


def load_config(path: str | Path) -> KioskConfig:
    """
    Load kiosk config from a YAML or JSON file.

    Supported shape (YAML):
        serial:
          port: /dev/ttyACM0
          baudrate: 115200
        voice:
          backend: azure
          sink: command
        azure:
          region: japaneast
        prompts:
          done: おつかれさまでした。

    Raises FileNotFoundError / ConfigError on bad input.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    try:
        if p.suffix.lower() in {".yml", ".yaml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text or "{}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot parse {p}: {e}") from e
    if not isinstance(data, Mapping):
        raise ConfigError(f"{p}: top level must be a mapping")
    return parse_config(data)
