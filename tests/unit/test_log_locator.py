"""Tests for ChatLogLocator: active log selection and history recovery."""

import json
import os
from datetime import datetime

import pytest

from foldersense.layout import ContextLayout
from foldersense.session.chat_log import CHAT_LOG_HEADER, ChatLogStore
from foldersense.session.log_locator import ChatLogLocator
from foldersense.storage import LocalBlobStore
from foldersense.types import MessageRole

NOW = "2025-05-05T05:05:05.000Z"


@pytest.fixture
def store(tmp_path):
    return LocalBlobStore(tmp_path)


@pytest.fixture
def locator(store):
    return ChatLogLocator(store, ContextLayout(), ChatLogStore(store, clock=lambda: NOW))


def set_mtime(tmp_path, path, seconds):
    os.utime(tmp_path / path, (seconds, seconds))


class TestGetOrCreate:
    """Tests for get_or_create."""

    def test_creates_new_log_and_state(self, store, locator):
        """With nothing on disk a titled log is created and recorded."""
        path = locator.get_or_create("n", datetime(2025, 1, 2, 3, 4, 5))
        assert path == "n/4senseContext/chat-02-01-25T03-04-05.md"
        assert store.read(path) == CHAT_LOG_HEADER
        state = json.loads(store.read("n/4senseContext/chat-state.json"))
        assert state == {"activeLogPath": path}

    def test_uses_recorded_state(self, store, locator):
        """A recorded active log that still exists is reused."""
        store.write("n/4senseContext/chat-a.md", CHAT_LOG_HEADER)
        store.write("n/4senseContext/chat-b.md", CHAT_LOG_HEADER)
        locator.write_state("n", "n/4senseContext/chat-a.md")
        assert locator.get_or_create("n") == "n/4senseContext/chat-a.md"

    def test_stale_state_adopts_newest_log(self, store, locator, tmp_path):
        """A missing recorded log falls back to the newest existing log."""
        store.write("n/4senseContext/chat-old.md", CHAT_LOG_HEADER)
        store.write("n/4senseContext-01-01-25T00-00-00/chat-newer.md", CHAT_LOG_HEADER)
        set_mtime(tmp_path, "n/4senseContext/chat-old.md", 1_000)
        set_mtime(tmp_path, "n/4senseContext-01-01-25T00-00-00/chat-newer.md", 2_000)
        locator.write_state("n", "n/4senseContext/chat-gone.md")

        path = locator.get_or_create("n")

        assert path == "n/4senseContext-01-01-25T00-00-00/chat-newer.md"
        assert locator.read_state("n").activeLogPath == path

    def test_json_state_target_is_not_reused(self, store, locator):
        """Only markdown logs can be active."""
        store.write("n/4senseContext/chat-legacy.json", "[]")
        locator.write_state("n", "n/4senseContext/chat-legacy.json")
        path = locator.get_or_create("n")
        assert path.endswith(".md")

    def test_malformed_state_is_ignored(self, store, locator):
        """A corrupted chat-state.json is treated as absent."""
        store.write("n/4senseContext/chat-state.json", "{not json")
        store.write("n/4senseContext/chat-x.md", CHAT_LOG_HEADER)
        assert locator.read_state("n") is None
        assert locator.get_or_create("n") == "n/4senseContext/chat-x.md"


class TestCandidates:
    """Tests for candidate listing."""

    def test_newest_first_and_json_optional(self, store, locator, tmp_path):
        """Candidates span the context and archives; .json only on request."""
        store.write("n/4senseContext/chat-a.md", "")
        store.write("n/4senseContext/chat-b.json", "[]")
        store.write("n/4senseContext/notes.md", "")
        store.write("n/other/chat-c.md", "")
        set_mtime(tmp_path, "n/4senseContext/chat-a.md", 1_000)
        set_mtime(tmp_path, "n/4senseContext/chat-b.json", 3_000)

        assert [c.path for c in locator.candidates("n")] == ["n/4senseContext/chat-a.md"]
        assert [c.path for c in locator.candidates("n", include_json=True)] == [
            "n/4senseContext/chat-b.json",
            "n/4senseContext/chat-a.md",
        ]


class TestRecovery:
    """Tests for history recovery into an empty active log."""

    def test_recovers_from_legacy_json(self, store, locator, tmp_path):
        """Entries from the newest other log are written into the active log."""
        store.write("n/4senseContext-01-01-25T00-00-00/chat-history.json", json.dumps([
            {"role": "user", "content": "q", "timestamp": "2025-01-01T00:00:00Z"},
            {"role": "assistant", "content": "a"},
        ]))
        active = locator.get_or_create("n")

        entries = locator.recover_into("n", active)

        assert [(e.role, e.content) for e in entries] == [
            (MessageRole.USER, "q"),
            (MessageRole.ASSISTANT, "a"),
        ]
        assert entries[0].timestamp == "2025-01-01T00:00:00.000Z"
        assert entries[1].timestamp == NOW
        assert store.read(active).startswith(CHAT_LOG_HEADER)
        # the source log is read, not migrated
        assert store.read("n/4senseContext-01-01-25T00-00-00/chat-history.json").startswith("[")

    def test_skips_empty_candidates(self, store, locator, tmp_path):
        """Logs without entries are passed over."""
        store.write("n/4senseContext/chat-empty.md", CHAT_LOG_HEADER)
        store.write("n/4senseContext/chat-full.md", CHAT_LOG_HEADER + "## [t] user\nkept\n\n")
        set_mtime(tmp_path, "n/4senseContext/chat-empty.md", 5_000)
        set_mtime(tmp_path, "n/4senseContext/chat-full.md", 1_000)
        store.write("n/4senseContext/chat-active.md", CHAT_LOG_HEADER)

        found = locator.find_history("n", "n/4senseContext/chat-active.md")

        assert found.path == "n/4senseContext/chat-full.md"
        assert [e.content for e in found.entries] == ["kept"]

    def test_nothing_to_recover(self, locator):
        """No other logs means no recovered entries."""
        active = locator.get_or_create("n")
        assert locator.recover_into("n", active) == []
