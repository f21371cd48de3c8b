"""Active chat log bookkeeping for a folder's context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ValidationError

from ..layout import ContextLayout
from ..storage import BlobStore, FileStat, join_path
from ..types import ChatLogEntry, suffix_timestamp
from .chat_log import ChatLogStore

logger = logging.getLogger(__name__)


class ChatState(BaseModel):
    """Contents of chat-state.json."""

    activeLogPath: str


@dataclass
class RecoveredHistory:
    """History found in another log of the same folder."""

    path: str
    entries: list[ChatLogEntry]


class ChatLogLocator:
    """
    Chooses which chat log a folder's session writes to.

    Logs live in the context folder as ``chat-<stamp>.md``; archived contexts
    (``<context>-<stamp>``) keep their logs, which remain candidates for
    history recovery.
    """

    def __init__(self, store: BlobStore, layout: ContextLayout, logs: ChatLogStore):
        self.store = store
        self.layout = layout
        self.logs = logs

    def read_state(self, folder: str) -> ChatState | None:
        path = self.layout.chat_state_path(folder)
        if not self.store.exists(path):
            return None
        try:
            return ChatState.model_validate_json(self.store.read(path))
        except (ValidationError, OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable chat state %s: %s", path, e)
            return None

    def write_state(self, folder: str, active_log_path: str) -> None:
        self.store.ensure_folder(self.layout.context_path(folder))
        state = ChatState(activeLogPath=active_log_path)
        self.store.write(self.layout.chat_state_path(folder), state.model_dump_json(indent=2))

    def candidates(self, folder: str, include_json: bool = False) -> list[FileStat]:
        """Chat logs in the context folder and its archives, newest first."""
        extensions = ("md", "json") if include_json else ("md",)
        found: list[FileStat] = []

        def collect(node: str) -> None:
            for child in self.store.list_children(node):
                if self.store.is_dir(child):
                    collect(child)
                    continue
                stat = self.store.stat(child)
                if stat.name == self.layout.storage.chat_state_file:
                    continue
                if stat.name.startswith(self.layout.storage.chat_log_prefix) and stat.extension in extensions:
                    found.append(stat)

        for child in self.store.list_children(folder):
            if self.layout.is_context_root(folder, child) and self.store.is_dir(child):
                collect(child)

        found.sort(key=lambda f: f.mtime, reverse=True)
        return found

    def get_or_create(self, folder: str, moment: datetime | None = None) -> str:
        """
        Active log path for the folder.

        Prefers the recorded active log, then the newest existing log,
        then a freshly created one.
        """
        self.store.ensure_folder(self.layout.context_path(folder))
        state = self.read_state(folder)
        if state is not None:
            active = state.activeLogPath
            if active.endswith(".md") and self.store.exists(active) and not self.store.is_dir(active):
                return active

        existing = self.candidates(folder)
        if existing:
            path = existing[0].path
            self.write_state(folder, path)
            return path

        name = f"{self.layout.storage.chat_log_prefix}{suffix_timestamp(moment)}.md"
        path = join_path(self.layout.context_path(folder), name)
        self.logs.create(path)
        self.write_state(folder, path)
        logger.info("Created chat log %s", path)
        return path

    def find_history(self, folder: str, current_path: str, include_json: bool = True) -> RecoveredHistory | None:
        """Newest other log with at least one entry, read without migrating it."""
        for candidate in self.candidates(folder, include_json):
            if candidate.path == current_path:
                continue
            entries = self.logs.load_entries(candidate.path, migrate=False)
            if entries:
                return RecoveredHistory(path=candidate.path, entries=entries)
        return None

    def recover_into(self, folder: str, current_path: str) -> list[ChatLogEntry]:
        """
        Seed an empty active log from the newest other log.

        Returns the recovered entries (empty when nothing was found).
        """
        found = self.find_history(folder, current_path)
        if found is None:
            return []
        self.logs.write(current_path, found.entries)
        logger.info("Recovered %d entries from %s into %s", len(found.entries), found.path, current_path)
        return self.logs.load_entries(current_path, migrate=False)


__all__ = ["ChatLogLocator", "ChatState", "RecoveredHistory"]
