"""
Inbound frame decoding for the chat stream.

An inbound unit is tried as JSON first; anything that is not JSON is literal
chunk text. Structured objects are matched against the known shapes in a
fixed priority order because several fields can coexist in one frame:

    {"type": "error", "message"|"error": str}   -> ErrorFrame
    {"type": "chunk", "text": str}              -> ChunkFrame
    {"type": "done"} or {"done": true}          -> DoneFrame
    first string of message/response/content/text -> RawTextFrame

Plain-string sentinels "[DONE]" and "__DONE__" (trim-compared, case-sensitive)
terminate the stream.

Unrecognized shapes split in two. A JSON scalar or array carries no field
names, so its literal text is the only payload there is and it degrades to
RawTextFrame (a streamed "42" is the text "42"). An object is protocol
structure; when none of the fields above hold text (keepalives, status or
ping objects) it becomes IgnoredFrame, so its JSON never leaks into the reply.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)

DONE_SENTINELS = frozenset({"[DONE]", "__DONE__"})
DEFAULT_ERROR_DETAIL = "Chat websocket error."
TEXT_FIELDS = ("message", "response", "content", "text")


@dataclass(frozen=True)
class ChunkFrame:
    """Incremental assistant text."""

    text: str


@dataclass(frozen=True)
class DoneFrame:
    """End of the assistant message."""


@dataclass(frozen=True)
class ErrorFrame:
    """Server-reported failure."""

    detail: str


@dataclass(frozen=True)
class RawTextFrame:
    """Untyped text delivery (plain string or whole-message object)."""

    text: str


@dataclass(frozen=True)
class IgnoredFrame:
    """Structured unit with no recognizable payload (e.g. empty chunk)."""


ProtocolFrame = Union[ChunkFrame, DoneFrame, ErrorFrame, RawTextFrame, IgnoredFrame]


def _to_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).decode("utf-8", errors="replace")
    return "" if raw is None else str(raw)


def decode_text(text: str) -> ProtocolFrame:
    """Decode one string unit."""
    if text.strip() in DONE_SENTINELS:
        return DoneFrame()
    try:
        packet = json.loads(text)
    except ValueError:
        return RawTextFrame(text)
    if isinstance(packet, str):
        if packet.strip() in DONE_SENTINELS:
            return DoneFrame()
        return RawTextFrame(packet)
    if not isinstance(packet, dict):
        # numbers, booleans, null and arrays are plain tokens, not frames
        return RawTextFrame(text)
    return decode_packet(packet)


def decode_packet(packet: dict[str, Any]) -> ProtocolFrame:
    """Match a structured object against the known frame shapes."""
    kind = packet.get("type")

    if kind == "error":
        detail = packet.get("message")
        if not isinstance(detail, str):
            detail = packet.get("error")
        if not isinstance(detail, str):
            detail = DEFAULT_ERROR_DETAIL
        return ErrorFrame(detail)

    if kind == "chunk":
        text = packet.get("text")
        if isinstance(text, str) and text:
            return ChunkFrame(text)
        return IgnoredFrame()

    if kind == "done" or packet.get("done") is True:
        return DoneFrame()

    for name in TEXT_FIELDS:
        value = packet.get(name)
        if isinstance(value, str) and value:
            return RawTextFrame(value)

    logger.debug("Ignoring frame with no recognizable payload: keys=%s", sorted(packet))
    return IgnoredFrame()


def decode_frame(raw: Any) -> ProtocolFrame:
    """
    Decode a raw inbound unit (str or bytes) into a ProtocolFrame.

    Never raises: undecodable input degrades to RawTextFrame.
    """
    return decode_text(_to_text(raw))


__all__ = [
    "ChunkFrame",
    "DEFAULT_ERROR_DETAIL",
    "DONE_SENTINELS",
    "DoneFrame",
    "ErrorFrame",
    "IgnoredFrame",
    "ProtocolFrame",
    "RawTextFrame",
    "decode_frame",
    "decode_packet",
    "decode_text",
]
