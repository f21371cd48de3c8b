"""
Core conversation types shared across the session and stream layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class MessageRole(str, Enum):
    """Role of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# Only these roles are ever written to the durable chat log.
LOGGED_ROLES = frozenset({MessageRole.USER, MessageRole.ASSISTANT})


@dataclass(frozen=True)
class ChatMessage:
    """A single message in conversation order."""

    role: MessageRole
    content: str

    def to_wire(self) -> dict[str, str]:
        """Serialize for the outbound chat envelope (no timestamp)."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ChatLogEntry:
    """A persisted turn: message plus optional ISO-8601 timestamp."""

    role: MessageRole
    content: str
    timestamp: str | None = None

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


@dataclass
class ChatReply:
    """Finalized assistant reply for one request."""

    message: str
    artifact_paths: list[str] = field(default_factory=list)


def strip_timestamps(entries: list[ChatLogEntry]) -> list[ChatMessage]:
    """Drop timestamps, keeping role/content order."""
    return [entry.to_message() for entry in entries]


def iso_timestamp(moment: datetime | None = None) -> str:
    """
    Format a moment as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC.

    Naive datetimes are interpreted as local time.
    """
    if moment is None:
        moment = datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.astimezone()
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def suffix_timestamp(moment: datetime | None = None) -> str:
    """Local-time ``dd-mm-yyTHH-MM-SS`` stamp used in archive and log file names."""
    moment = moment or datetime.now()
    return moment.strftime("%d-%m-%yT%H-%M-%S")


__all__ = [
    "ChatLogEntry",
    "ChatMessage",
    "ChatReply",
    "LOGGED_ROLES",
    "MessageRole",
    "iso_timestamp",
    "strip_timestamps",
    "suffix_timestamp",
]
