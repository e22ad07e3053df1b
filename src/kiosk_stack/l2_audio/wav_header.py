"""
wav_header.py
=============
RIFF/WAVE container schema (using `construct`).

Used to validate pre-baked cache entries before they reach a playback sink
and to report their length. Compressed entries (mp3) are not parsed.
"""

from __future__ import annotations

from dataclasses import dataclass

from construct import (
    Bytes, Const, ConstructError, GreedyRange, Int16ul, Int32ul, Padding, Struct, this,
)

# ============================================================
# Schemas
# ============================================================

RiffChunk = Struct(
    "id" / Bytes(4),
    "size" / Int32ul,
    "data" / Bytes(this.size),
    Padding(this.size % 2),           # chunks are word aligned
)

RiffFile = Struct(
    "riff" / Const(b"RIFF"),
    "size" / Int32ul,
    "wave" / Const(b"WAVE"),
    "chunks" / GreedyRange(RiffChunk),
)

FmtChunk = Struct(
    "audio_format" / Int16ul,        # 1 = PCM
    "channels" / Int16ul,
    "sample_rate" / Int32ul,
    "byte_rate" / Int32ul,
    "block_align" / Int16ul,
    "bits_per_sample" / Int16ul,
)

PCM = 1


@dataclass(frozen=True, slots=True)
class WavInfo:
    """Header facts of a WAV file."""
    channels: int
    sample_rate: int
    bits_per_sample: int
    data_bytes: int

    @property
    def duration_sec(self) -> float:
        frame = self.channels * (self.bits_per_sample // 8)
        if not frame or not self.sample_rate:
            return 0.0
        return self.data_bytes / (frame * self.sample_rate)


# ============================================================
# Helper functions
# ============================================================

def parse_wav(raw: bytes) -> WavInfo:
    """
    Parse a complete WAV file.

    Raises:
        ValueError: not a RIFF/WAVE file, or the fmt/data chunks are missing.
    """
    try:
        riff = RiffFile.parse(raw)
    except ConstructError as exc:
        raise ValueError(f"Not a RIFF/WAVE file: {exc}") from exc

    fmt = None
    data_bytes = None
    for chunk in riff.chunks:
        if chunk.id == b"fmt " and fmt is None:
            try:
                fmt = FmtChunk.parse(chunk.data)
            except ConstructError as exc:
                raise ValueError(f"Malformed fmt chunk: {exc}") from exc
        elif chunk.id == b"data" and data_bytes is None:
            data_bytes = chunk.size
    if fmt is None:
        raise ValueError("WAV file has no fmt chunk")
    if data_bytes is None:
        raise ValueError("WAV file has no data chunk")
    return WavInfo(
        channels=fmt.channels,
        sample_rate=fmt.sample_rate,
        bits_per_sample=fmt.bits_per_sample,
        data_bytes=data_bytes,
    )


def build_wav(pcm: bytes, sample_rate: int = 16_000, channels: int = 1,
              bits_per_sample: int = 16) -> bytes:
    """
    Wrap raw little-endian PCM samples into a minimal WAV file.

    Returns:
        Complete file bytes (RIFF header, fmt chunk, data chunk).
    """
    block_align = channels * (bits_per_sample // 8)
    fmt = FmtChunk.build(dict(
        audio_format=PCM,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=sample_rate * block_align,
        block_align=block_align,
        bits_per_sample=bits_per_sample,
    ))
    chunks = [
        dict(id=b"fmt ", size=len(fmt), data=fmt),
        dict(id=b"data", size=len(pcm), data=pcm),
    ]
    body = sum(8 + c["size"] + c["size"] % 2 for c in chunks)
    return RiffFile.build(dict(size=4 + body, chunks=chunks))
