"""
line_codec.py
=============
RX helpers for the reader device's line protocol.

Wire format:
    One newline-terminated ASCII message per event, e.g. b"7\\r\\n" or
    b"code: 7\\r\\n". Everything that is not a digit is framing noise.

This module ONLY turns raw lines into integer codes. Range checking is the
dispatcher's job, so out-of-range numbers still decode here.
"""

import re
from typing import Optional, Union

_NON_DIGITS = re.compile(r"\D")


def decode_line(raw: bytes) -> str:
    """
    Decode one raw serial line as ASCII, dropping undecodable bytes and
    surrounding whitespace.

    Example:
        >>> decode_line(b"code: 7\\r\\n")
        'code: 7'
    """
    return raw.decode("ascii", errors="ignore").strip()


def parse_code(line: Union[str, bytes]) -> Optional[int]:
    """
    Extract the event code from a line.

    All non-digit characters are removed; if digits remain they are parsed as a
    decimal integer, otherwise the line is discarded (None).

    Examples:
        >>> parse_code("code: 7")
        7
        >>> parse_code("12\\r\\n")
        12
        >>> parse_code("READY") is None
        True
    """
    if isinstance(line, (bytes, bytearray)):
        line = decode_line(bytes(line))
    digits = _NON_DIGITS.sub("", line)
    if not digits:
        return None
    try:
        return int(digits)
    except ValueError:
        return None
