"""Tests for the markdown chat log and legacy migration."""

import json

import pytest

from foldersense.session.chat_log import (
    CHAT_LOG_HEADER,
    ChatLogStore,
    MalformedLogError,
    normalize_timestamp,
    parse_chat_log,
    parse_legacy_log,
    parse_markdown_log,
    render_chat_log,
)
from foldersense.storage import LocalBlobStore
from foldersense.types import ChatLogEntry, ChatMessage, MessageRole

FIXED_NOW = "2025-02-01T12:00:00.000Z"


@pytest.fixture
def store(tmp_path):
    return LocalBlobStore(tmp_path)


@pytest.fixture
def logs(store):
    return ChatLogStore(store, clock=lambda: FIXED_NOW)


class TestMarkdownParsing:
    """Tests for parse_markdown_log."""

    def test_parses_turns(self):
        """Header lines start turns; bodies keep inner newlines."""
        content = (
            "# Chat history\n\n"
            "## [2025-01-31T10:00:00.000Z] user\nline one\nline two\n\n"
            "## [2025-01-31T10:00:04.512Z] assistant\nreply\n\n"
        )
        entries = parse_markdown_log(content)
        assert entries == [
            ChatLogEntry(MessageRole.USER, "line one\nline two", "2025-01-31T10:00:00.000Z"),
            ChatLogEntry(MessageRole.ASSISTANT, "reply", "2025-01-31T10:00:04.512Z"),
        ]

    def test_empty_turns_are_dropped(self):
        """A header with a blank body produces no entry."""
        content = "## [t1] user\n\n## [t2] assistant\nok\n"
        assert [e.content for e in parse_markdown_log(content)] == ["ok"]

    def test_text_before_first_header_is_ignored(self):
        """Lines before any header belong to no turn."""
        content = "stray text\n## [t] user\nhello\n"
        assert parse_markdown_log(content) == [ChatLogEntry(MessageRole.USER, "hello", "t")]

    def test_system_headers_are_not_turns(self):
        """Only user and assistant headers are recognized."""
        content = "## [t] user\nhello\n## [t] system\nsecret\n"
        entries = parse_markdown_log(content)
        assert len(entries) == 1
        assert "## [t] system" in entries[0].content

    def test_crlf(self):
        """CRLF line endings parse like LF."""
        content = "# Chat history\r\n\r\n## [t] user\r\nhi\r\n\r\n"
        assert parse_markdown_log(content) == [ChatLogEntry(MessageRole.USER, "hi", "t")]

    def test_round_trip(self):
        """Rendered entries parse back to the same role/content sequence."""
        entries = [
            ChatLogEntry(MessageRole.USER, "What is in the folder?"),
            ChatLogEntry(MessageRole.ASSISTANT, "Two notes:\n\n- a\n- b"),
            ChatLogEntry(MessageRole.USER, "Thanks"),
        ]
        parsed = parse_chat_log(render_chat_log(entries, lambda: FIXED_NOW))
        assert [(e.role, e.content) for e in parsed] == [(e.role, e.content) for e in entries]
        assert all(e.timestamp == FIXED_NOW for e in parsed)

    def test_title_line_inside_turn_is_kept(self):
        """Only the leading title is dropped; the same text inside a turn is content."""
        entries = [
            ChatLogEntry(MessageRole.USER, "Show the heading"),
            ChatLogEntry(MessageRole.ASSISTANT, "Here:\n# Chat history of the project\nend"),
        ]
        parsed = parse_chat_log(render_chat_log(entries, lambda: FIXED_NOW))
        assert [(e.role, e.content) for e in parsed] == [(e.role, e.content) for e in entries]


class TestLegacyParsing:
    """Tests for legacy JSON history."""

    def test_raw_array(self):
        """A bare array of messages is accepted."""
        content = json.dumps([
            {"role": "user", "content": "q", "timestamp": "2025-01-01T00:00:00Z"},
            {"role": "assistant", "content": "a"},
        ])
        entries = parse_legacy_log(content)
        assert entries == [
            ChatLogEntry(MessageRole.USER, "q", "2025-01-01T00:00:00.000Z"),
            ChatLogEntry(MessageRole.ASSISTANT, "a", None),
        ]

    def test_container_and_alias_keys(self):
        """Alternate container, role, content and timestamp keys resolve."""
        content = json.dumps({
            "history": [
                {"author": "user", "text": "hi", "ts": 1700000000},
                {"sender": "assistant", "message": "hello", "createdAt": 1700000000123},
            ]
        })
        entries = parse_legacy_log(content)
        assert entries[0] == ChatLogEntry(MessageRole.USER, "hi", "2023-11-14T22:13:20.000Z")
        assert entries[1] == ChatLogEntry(MessageRole.ASSISTANT, "hello", "2023-11-14T22:13:20.123Z")

    def test_unknown_roles_and_bad_items_skipped(self):
        """Items without a known role or string content are dropped."""
        content = json.dumps({"messages": [
            {"role": "tool", "content": "x"},
            {"role": "user", "content": 5},
            "not an object",
            {"role": "system", "content": "prompt"},
        ]})
        assert parse_legacy_log(content) == [ChatLogEntry(MessageRole.SYSTEM, "prompt", None)]

    def test_invalid_json_raises(self):
        """Non-JSON content is a malformed legacy log."""
        with pytest.raises(MalformedLogError):
            parse_legacy_log("{not json")

    def test_invalid_json_falls_back_to_markdown(self):
        """parse_chat_log degrades to markdown parsing."""
        assert parse_chat_log("[oops\n## [t] user\nhi\n") == [ChatLogEntry(MessageRole.USER, "hi", "t")]


class TestNormalizeTimestamp:
    """Tests for timestamp normalization."""

    def test_seconds_and_millis(self):
        """Epoch values below 1e12 are seconds."""
        assert normalize_timestamp(0) == "1970-01-01T00:00:00.000Z"
        assert normalize_timestamp(1_000_000_000_000) == "2001-09-09T01:46:40.000Z"

    def test_iso_with_offset(self):
        """Offsets are converted to UTC."""
        assert normalize_timestamp("2025-01-01T03:00:00+03:00") == "2025-01-01T00:00:00.000Z"

    def test_date_only_is_utc(self):
        """A bare date is UTC midnight."""
        assert normalize_timestamp("2025-01-01") == "2025-01-01T00:00:00.000Z"

    def test_unparseable_values(self):
        """Garbage, booleans and non-finite numbers are dropped, not defaulted."""
        assert normalize_timestamp("yesterday") is None
        assert normalize_timestamp(True) is None
        assert normalize_timestamp(float("nan")) is None
        assert normalize_timestamp(None) is None


class TestChatLogStore:
    """Tests for ChatLogStore."""

    def test_append_creates_with_header(self, store, logs):
        """Appending to a missing log creates it with the title."""
        logs.append("f/chat.md", MessageRole.USER, "hello")
        assert store.read("f/chat.md") == CHAT_LOG_HEADER + f"## [{FIXED_NOW}] user\nhello\n\n"

    def test_append_then_load(self, logs):
        """Appended turns load back as history."""
        logs.append("chat.md", MessageRole.USER, "q")
        logs.append("chat.md", MessageRole.ASSISTANT, "a")
        assert logs.load_history("chat.md") == [
            ChatMessage(MessageRole.USER, "q"),
            ChatMessage(MessageRole.ASSISTANT, "a"),
        ]

    def test_system_role_is_never_logged(self, logs):
        """System turns are rejected."""
        with pytest.raises(ValueError):
            logs.append("chat.md", MessageRole.SYSTEM, "prompt")

    def test_missing_log_is_empty(self, logs):
        """A missing file yields no entries."""
        assert logs.load_entries("nope.md") == []

    def test_reads_are_not_cached(self, store, logs):
        """External rewrites are seen on the next read."""
        logs.append("chat.md", MessageRole.USER, "first")
        store.write("chat.md", CHAT_LOG_HEADER + "## [t] user\nreplaced\n")
        assert [e.content for e in logs.load_entries("chat.md")] == ["replaced"]

    def test_migrate_rewrites_legacy_log(self, store, logs):
        """A legacy JSON log is rewritten as markdown in place."""
        store.write("chat.json", json.dumps([
            {"role": "user", "content": "q", "timestamp": "2025-01-01T00:00:00.000Z"},
            {"role": "assistant", "content": "a"},
        ]))
        entries = logs.load_entries("chat.json")
        assert [(e.role, e.content) for e in entries] == [
            (MessageRole.USER, "q"),
            (MessageRole.ASSISTANT, "a"),
        ]
        content = store.read("chat.json")
        assert content.startswith(CHAT_LOG_HEADER)
        assert "## [2025-01-01T00:00:00.000Z] user\nq\n" in content
        assert f"## [{FIXED_NOW}] assistant\na\n" in content

    def test_migrate_drops_system_turns(self, store, logs):
        """System prompts in legacy history are not written to markdown."""
        store.write("chat.json", json.dumps([
            {"role": "system", "content": "prompt"},
            {"role": "user", "content": "q"},
        ]))
        logs.migrate("chat.json")
        assert "prompt" not in store.read("chat.json")

    def test_migration_is_idempotent(self, store, logs):
        """Migrating twice gives the same markdown as migrating once."""
        store.write("chat.json", json.dumps({"messages": [
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": "a", "time": 1700000000},
        ]}))
        assert logs.migrate("chat.json") is True
        once = store.read("chat.json")
        assert logs.migrate("chat.json") is False
        assert store.read("chat.json") == once

    def test_migrate_leaves_unusable_json_alone(self, store, logs):
        """Malformed or empty legacy logs are not rewritten."""
        store.write("bad.json", "{broken")
        store.write("empty.json", "[]")
        assert logs.migrate("bad.json") is False
        assert logs.migrate("empty.json") is False
        assert store.read("bad.json") == "{broken"
        assert logs.load_entries("bad.json") == []

    def test_load_without_migrate_leaves_file(self, store, logs):
        """migrate=False parses legacy content without rewriting it."""
        original = json.dumps([{"role": "user", "content": "q"}])
        store.write("chat.json", original)
        assert len(logs.load_entries("chat.json", migrate=False)) == 1
        assert store.read("chat.json") == original
