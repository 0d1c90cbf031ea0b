"""Conversions between text, hex strings, and raw bytes."""

from __future__ import annotations

import re
from datetime import datetime

from serterm.core.errors import FormatError, HexFormatError
from serterm.core.model import DataFormat, LogEntry

_NON_HEX_RE = re.compile(r"[^0-9A-Fa-f]")
_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")
_WHITESPACE_RE = re.compile(r"\s")
# C0 controls except TAB/LF/CR, DEL, and C1 controls.
_UNPRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_SIZE_UNITS = ("B", "KB", "MB", "GB")

LINE_ENDINGS = {
    "none": "",
    "LF": "\n",
    "CR": "\r",
    "CRLF": "\r\n",
}


def text_to_bytes(text: str) -> bytes:
    if not text:
        return b""
    return text.encode("utf-8")


def bytes_to_text(data: bytes) -> str:
    """Decode bytes for display, falling back to hex when the result has control characters."""
    if not data:
        return ""
    text = bytes(data).decode("utf-8-sig", errors="replace")
    if _UNPRINTABLE_RE.search(text):
        return bytes_to_hex(data)
    return text


def hex_to_bytes(value: str) -> bytes:
    if not value:
        return b""

    cleaned = _NON_HEX_RE.sub("", value)
    if not cleaned:
        raise HexFormatError("Hex string contains no hex digits")
    if len(cleaned) % 2 != 0:
        raise HexFormatError(f"Hex string must have an even number of digits (got {len(cleaned)})")

    payload = bytearray()
    for offset in range(0, len(cleaned), 2):
        pair = cleaned[offset : offset + 2]
        try:
            payload.append(int(pair, 16))
        except ValueError as exc:
            raise HexFormatError(f"Invalid hex value '{pair}'") from exc
    return bytes(payload)


def bytes_to_hex(data: bytes) -> str:
    return " ".join(f"{b:02X}" for b in data)


def is_valid_hex(value: str) -> bool:
    if not value:
        return False
    cleaned = _WHITESPACE_RE.sub("", value)
    if not cleaned or len(cleaned) % 2 != 0:
        return False
    return _HEX_RE.match(cleaned) is not None


def format_bytes(size: int) -> str:
    if size == 0:
        return "0 B"
    if size == 1:
        return "1 B"
    exponent = 0
    while exponent < len(_SIZE_UNITS) - 1 and size >= 1024 ** (exponent + 1):
        exponent += 1
    return f"{size / 1024 ** exponent:.2f} {_SIZE_UNITS[exponent]}"


def format_timestamp(timestamp: float) -> str:
    moment = datetime.fromtimestamp(timestamp)
    return f"{moment:%H:%M:%S}.{moment.microsecond // 1000:03d}"


def encode_payload(data: str, fmt: DataFormat = "text", *, line_ending: str = "none") -> bytes:
    """Turn operator input into the bytes written to the device.

    Text input gets `line_ending` appended; hex input must pass `is_valid_hex`
    and never gets a line ending.
    """
    if fmt == "hex":
        if not is_valid_hex(data):
            raise HexFormatError(f"Invalid hex payload '{data}'")
        return hex_to_bytes(data)
    if fmt != "text":
        raise FormatError(f"Unsupported data format '{fmt}'")

    suffix = LINE_ENDINGS.get(line_ending)
    if suffix is None:
        allowed = ", ".join(LINE_ENDINGS)
        raise FormatError(f"Unsupported line ending '{line_ending}'. Allowed: {allowed}")
    return text_to_bytes(data + suffix)


def format_log_line(entry: LogEntry, display: DataFormat = "text") -> str:
    data = bytes_to_hex(entry.data) if display == "hex" else entry.text
    return f"[{format_timestamp(entry.timestamp)}] {entry.direction}: {data}"
