"""
Durable markdown chat log.

Format (UTF-8)::

    # Chat history

    ## [2025-01-31T10:00:00.000Z] user
    question text

    ## [2025-01-31T10:00:04.512Z] assistant
    reply text

The log is append-only. Older installs kept JSON history; such files are
parsed leniently and rewritten once into markdown.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from ..storage import BlobStore
from ..types import LOGGED_ROLES, ChatLogEntry, ChatMessage, MessageRole, iso_timestamp, strip_timestamps

logger = logging.getLogger(__name__)

CHAT_LOG_TITLE = "# Chat history"
CHAT_LOG_HEADER = f"{CHAT_LOG_TITLE}\n\n"

_TURN_HEADER = re.compile(r"^## \[(.+)\] (user|assistant)$")
_LINE_BREAK = re.compile(r"\r?\n")

LEGACY_CONTAINER_KEYS = ("messages", "history", "items", "log")
LEGACY_ROLE_KEYS = ("role", "type", "author", "sender")
LEGACY_CONTENT_KEYS = ("content", "text", "message")
LEGACY_TIMESTAMP_KEYS = ("timestamp", "time", "created_at", "createdAt", "date", "ts")

# Epoch values below this are seconds, at or above are milliseconds
EPOCH_MILLIS_THRESHOLD = 1e12


class MalformedLogError(ValueError):
    """Chat log content could not be parsed."""


def _coalesce(record: dict[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    """First value that is present and not null."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def normalize_timestamp(value: Any) -> str | None:
    """
    Normalize an ISO string or numeric epoch to ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Unparseable values return None; they are never replaced by "now".
    """
    if isinstance(value, str):
        return _parse_iso(value.strip())
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    millis = value * 1000 if value < EPOCH_MILLIS_THRESHOLD else value
    try:
        moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return iso_timestamp(moment)


def _parse_iso(text: str) -> str | None:
    if not text:
        return None
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        moment = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if moment.tzinfo is None and len(candidate) <= 10:
        # date-only values are UTC midnight
        moment = moment.replace(tzinfo=timezone.utc)
    return iso_timestamp(moment)


def parse_legacy_log(content: str) -> list[ChatLogEntry]:
    """
    Parse legacy JSON history.

    Accepts a raw array or an object exposing ``messages|history|items|log``.
    Items without a known role or a string body are skipped.

    Raises:
        MalformedLogError: content is not JSON
    """
    try:
        parsed = json.loads(content)
    except ValueError as e:
        raise MalformedLogError(f"Legacy chat log is not valid JSON: {e}") from e

    if isinstance(parsed, list):
        raw_items: Any = parsed
    elif isinstance(parsed, dict):
        raw_items = _coalesce(parsed, LEGACY_CONTAINER_KEYS, [])
    else:
        raw_items = []
    if not isinstance(raw_items, list):
        return []

    entries: list[ChatLogEntry] = []
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        role = _coalesce(item, LEGACY_ROLE_KEYS)
        if role not in ("user", "assistant", "system"):
            continue
        text = _coalesce(item, LEGACY_CONTENT_KEYS, "")
        if not isinstance(text, str):
            continue
        entries.append(
            ChatLogEntry(
                role=MessageRole(role),
                content=text,
                timestamp=normalize_timestamp(_coalesce(item, LEGACY_TIMESTAMP_KEYS)),
            )
        )
    return entries


def parse_markdown_log(content: str) -> list[ChatLogEntry]:
    """Parse the markdown turn format; never fails."""
    entries: list[ChatLogEntry] = []
    role: MessageRole | None = None
    timestamp: str | None = None
    buffer: list[str] = []

    def flush() -> None:
        if role is None or not buffer:
            return
        text = "\n".join(buffer).strip()
        if text:
            entries.append(ChatLogEntry(role=role, content=text, timestamp=timestamp))

    for line in _LINE_BREAK.split(content):
        match = _TURN_HEADER.match(line)
        if match:
            flush()
            timestamp = match.group(1)
            role = MessageRole(match.group(2))
            buffer = []
            continue
        if role is None:
            # title and stray text before the first turn
            continue
        buffer.append(line)
    flush()
    return entries


def looks_like_legacy(content: str) -> bool:
    trimmed = content.strip()
    return trimmed.startswith("{") or trimmed.startswith("[")


def parse_chat_log(content: str) -> list[ChatLogEntry]:
    """Parse a log, trying the legacy JSON format first when it looks like JSON."""
    if looks_like_legacy(content):
        try:
            return parse_legacy_log(content.strip())
        except MalformedLogError:
            # fall through to markdown parsing
            pass
    return parse_markdown_log(content)


def format_entry(role: MessageRole, content: str, timestamp: str) -> str:
    return f"## [{timestamp}] {role.value}\n{content}\n\n"


def render_chat_log(entries: list[ChatLogEntry], now: Callable[[], str] = iso_timestamp) -> str:
    """Render a complete markdown log; system turns are dropped, missing timestamps filled."""
    body = "".join(
        format_entry(entry.role, entry.content, entry.timestamp or now())
        for entry in entries
        if entry.role in LOGGED_ROLES
    )
    return CHAT_LOG_HEADER + body


class ChatLogStore:
    """
    Reads, appends and migrates chat logs through a BlobStore.

    Every read re-parses from storage; nothing is cached, so logs rewritten
    between reads are picked up.
    """

    def __init__(self, store: BlobStore, clock: Callable[[], str] = iso_timestamp):
        self.store = store
        self.clock = clock

    def read_text(self, path: str) -> str | None:
        if not self.store.exists(path) or self.store.is_dir(path):
            return None
        try:
            return self.store.read(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Unreadable chat log %s: %s", path, e)
            return None

    def load_entries(self, path: str, migrate: bool = True) -> list[ChatLogEntry]:
        """
        Entries in the log; a missing or unreadable file yields [].

        With ``migrate`` a legacy JSON log is rewritten as markdown first and
        the entries are read back from the rewritten file.
        """
        if migrate and self.migrate(path):
            content = self.read_text(path)
            return parse_markdown_log(content) if content is not None else []
        content = self.read_text(path)
        if content is None:
            return []
        return parse_chat_log(content)

    def load_history(self, path: str) -> list[ChatMessage]:
        return strip_timestamps(self.load_entries(path))

    def create(self, path: str) -> None:
        self.store.write(path, CHAT_LOG_HEADER)

    def append(self, path: str, role: MessageRole, content: str) -> None:
        """Append one turn; a missing log is created with the title header."""
        if role not in LOGGED_ROLES:
            raise ValueError(f"Role {role.value!r} is never written to the chat log")
        self.store.append(path, format_entry(role, content, self.clock()), CHAT_LOG_HEADER)

    def write(self, path: str, entries: list[ChatLogEntry]) -> None:
        """Replace the log with the given entries."""
        self.store.write(path, render_chat_log(entries, self.clock))

    def migrate(self, path: str) -> bool:
        """
        Rewrite a legacy JSON log as markdown in place.

        Returns True if a rewrite happened. Markdown logs, unparseable JSON and
        JSON with no usable entries are left untouched.
        """
        content = self.read_text(path)
        if content is None or not looks_like_legacy(content):
            return False
        try:
            entries = parse_legacy_log(content.strip())
        except MalformedLogError as e:
            logger.warning("Not migrating %s: %s", path, e)
            return False
        if not entries:
            return False
        self.write(path, entries)
        logger.info("Migrated legacy chat log %s (%d entries)", path, len(entries))
        return True


__all__ = [
    "CHAT_LOG_HEADER",
    "CHAT_LOG_TITLE",
    "ChatLogStore",
    "MalformedLogError",
    "format_entry",
    "looks_like_legacy",
    "normalize_timestamp",
    "parse_chat_log",
    "parse_legacy_log",
    "parse_markdown_log",
    "render_chat_log",
]
