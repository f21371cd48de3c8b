"""Tests for LocalBlobStore, ContextLayout and folder scanning."""

import os

import pytest

from foldersense.config import StorageConfig
from foldersense.layout import ContextLayout
from foldersense.scan import (
    audio_content_type,
    collect_folder_files,
    split_files,
)
from foldersense.storage import FileStat, LocalBlobStore, join_path


@pytest.fixture
def store(tmp_path):
    return LocalBlobStore(tmp_path)


def stat(path: str, size: int = 1) -> FileStat:
    return FileStat(path=path, mtime=0, ctime=0, size=size)


class TestLocalBlobStore:
    """Tests for the filesystem-backed store."""

    def test_write_read_creates_parents(self, store):
        """Writes create missing parent folders."""
        store.write("a/b/c.md", "hello")
        assert store.read("a/b/c.md") == "hello"
        assert store.is_dir("a/b")

    def test_append_uses_prefix_only_on_create(self, store):
        """The create prefix is written once."""
        store.append("log.md", "one\n", "# title\n")
        store.append("log.md", "two\n", "# title\n")
        assert store.read("log.md") == "# title\none\ntwo\n"

    def test_rename_refuses_existing_target(self, store):
        """Renaming onto an existing path fails."""
        store.write("a.md", "a")
        store.write("b.md", "b")
        with pytest.raises(FileExistsError):
            store.rename("a.md", "b.md")

    def test_rename_folder(self, store):
        """Folders move with their contents."""
        store.write("ctx/chat.md", "x")
        store.rename("ctx", "ctx-old")
        assert store.read("ctx-old/chat.md") == "x"
        assert not store.exists("ctx")

    def test_list_children_relative_sorted(self, store):
        """Children are relative paths in name order."""
        store.write("f/b.md", "")
        store.write("f/a.md", "")
        assert store.list_children("f") == ["f/a.md", "f/b.md"]
        assert store.list_children("missing") == []

    def test_stat_mtime_in_millis(self, store, tmp_path):
        """Modification time is epoch milliseconds."""
        store.write("n.md", "abc")
        os.utime(tmp_path / "n.md", ns=(1_700_000_000_000_000_000, 1_700_000_000_123_000_000))
        info = store.stat("n.md")
        assert info.mtime == 1_700_000_000_123
        assert info.size == 3
        assert info.extension == "md"

    def test_ensure_folder_refuses_file(self, store):
        """A file cannot be turned into a folder."""
        store.write("x", "")
        with pytest.raises(NotADirectoryError):
            store.ensure_folder("x")

    def test_join_path_skips_root(self):
        """Empty parts (vault root) are dropped."""
        assert join_path("", "4senseContext") == "4senseContext"
        assert join_path("notes/", "/a.md") == "notes/a.md"


class TestContextLayout:
    """Tests for context path resolution."""

    def test_paths(self):
        """Context files live under the context folder."""
        layout = ContextLayout()
        assert layout.context_path("notes") == "notes/4senseContext"
        assert layout.artifacts_path("notes") == "notes/4senseContext/artefacts"
        assert layout.summary_path("notes") == "notes/4senseContext/_summary.md"
        assert layout.snapshot_path("notes") == "notes/4senseContext/snapshot.json"
        assert layout.chat_state_path("notes") == "notes/4senseContext/chat-state.json"
        assert layout.archive_path("notes", "01-02-25T10-00-00") == "notes/4senseContext-01-02-25T10-00-00"

    def test_custom_names(self):
        """Folder names come from StorageConfig."""
        layout = ContextLayout(StorageConfig(context_dir="ctx", artifacts_dir="out"))
        assert layout.artifacts_path("") == "ctx/out"

    def test_exclusions(self):
        """Context, archives and their contents are excluded."""
        layout = ContextLayout()
        assert layout.is_excluded("n", "n/4senseContext")
        assert layout.is_excluded("n", "n/4senseContext-01-01-25T00-00-00")
        assert layout.is_excluded("n", "n/4senseContext/_summary.md")
        assert not layout.is_excluded("n", "n/notes.md")


class TestScan:
    """Tests for folder traversal and classification."""

    def test_collect_skips_context_and_orders_by_ctime(self, store, tmp_path):
        """Context trees are skipped; files are ordered by creation time."""
        store.write("n/4senseContext/_summary.md", "s")
        store.write("n/4senseContext-01-01-25T00-00-00/chat-x.md", "c")
        store.write("n/sub/b.md", "b")
        store.write("n/a.md", "a")
        files = collect_folder_files(store, ContextLayout(), "n")
        assert sorted(f.path for f in files) == ["n/a.md", "n/sub/b.md"]
        ctimes = [f.ctime for f in files]
        assert ctimes == sorted(ctimes)

    def test_split_files(self):
        """Files are grouped by how they are summarized."""
        groups = split_files([
            stat("a.md"),
            stat("d.excalidraw.md"),
            stat("b.MP3"),
            stat("c.png"),
            stat("e.aac"),
            stat("f.pdf"),
        ])
        assert [f.path for f in groups.text_files] == ["a.md", "d.excalidraw.md"]
        assert [f.path for f in groups.audio_files] == ["b.MP3"]
        assert [f.path for f in groups.image_files] == ["c.png"]
        assert [f.path for f in groups.unsupported_audio_files] == ["e.aac"]
        assert [f.path for f in groups.skipped_files] == ["f.pdf"]
        assert groups.has_supported

    def test_nothing_supported(self):
        """Only skipped files means nothing to summarize."""
        assert not split_files([stat("x.pdf")]).has_supported

    def test_audio_content_type(self):
        """Content types follow the transcription service's expectations."""
        assert audio_content_type(stat("a.mp3")) == "audio/mpeg"
        assert audio_content_type(stat("a.opus")) == "audio/ogg;codecs=opus"
        assert audio_content_type(stat("a.wav")) == "audio/x-pcm;bit=16;rate=16000"
        with pytest.raises(ValueError):
            audio_content_type(stat("a.webm"))
