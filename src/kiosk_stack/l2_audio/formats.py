"""
formats.py
==========
Audio formats understood by the speech cache and the content hash that names
every cache entry.

This file is the single source of truth for:
- Output format identifiers (the names the synthesis backend expects).
- The file extension each format is stored under.
- `stable_hash`, the pure function mapping (text, voice, format) to a key.
"""

from __future__ import annotations

import hashlib
import unicodedata
from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True, slots=True)
class AudioFormat:
    """
    Output format of a cache entry.

    name      : identifier sent to the backend (X-Microsoft-OutputFormat style)
    extension : file extension of the cached entry, without the dot
    """
    name: str
    extension: str

    @property
    def is_wav(self) -> bool:
        return self.extension == "wav"


# Lossless PCM container used for locally pre-baked prompts.
WAV_PCM_16K = AudioFormat("riff-16khz-16bit-mono-pcm", "wav")
# Compressed format requested from the network backend.
MP3_16K_128K = AudioFormat("audio-16khz-128kbitrate-mono-mp3", "mp3")

AUDIO_FORMATS: Mapping[str, AudioFormat] = {
    WAV_PCM_16K.name: WAV_PCM_16K,
    MP3_16K_128K.name: MP3_16K_128K,
}
"""Registry of known formats by name."""

_ALIASES: Mapping[str, AudioFormat] = {"wav": WAV_PCM_16K, "mp3": MP3_16K_128K}


def audio_format_by_name(name: str) -> AudioFormat:
    """
    Look up a format by its full name or its short alias ("wav", "mp3").

    Raises:
        ValueError: unknown format name.
    """
    key = name.strip().lower()
    fmt = AUDIO_FORMATS.get(key) or _ALIASES.get(key)
    if fmt is None:
        raise ValueError(f"Unknown audio format {name!r}")
    return fmt


def normalize_text(text: str) -> str:
    """
    Canonical form of a prompt before hashing: Unicode NFC, outer whitespace
    stripped. Case is preserved (no locale-dependent folding).
    """
    return unicodedata.normalize("NFC", text).strip()


def stable_hash(text: str, voice_profile: str, audio_format: AudioFormat) -> str:
    """
    Content key of a cache entry: MD5 hex digest of the UTF-8 bytes of
    "normalized text|voice profile|format name".

    Pure: same inputs give the same key on every call and in every process.

    Example:
        >>> stable_hash("完了しました。", "ja-JP-NanamiNeural", MP3_16K_128K)  # doctest: +SKIP
        '3f0c…'
    """
    payload = "|".join([normalize_text(text), voice_profile, audio_format.name])
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
