"""
Folder snapshots for context staleness detection.

A snapshot records ``{path, mtime}`` for every in-scope file at the last
successful summarize. Comparison is by path set and per-path mtime only;
content is never hashed, so a touched-but-unchanged file counts as changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, Field, ValidationError

from ..layout import ContextLayout
from ..storage import BlobStore, FileStat
from ..types import suffix_timestamp

logger = logging.getLogger(__name__)


class MalformedSnapshotError(ValueError):
    """Snapshot file could not be parsed."""


class FileStamp(BaseModel):
    """One file's path and modification time (epoch ms)."""

    path: str
    mtime: int | float


class SnapshotFile(BaseModel):
    """On-disk snapshot: ``{"files": [{"path", "mtime"}]}``."""

    files: list[FileStamp] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, files: list[FileStat]) -> "SnapshotFile":
        return cls(files=[FileStamp(path=f.path, mtime=f.mtime) for f in files])


@dataclass
class SnapshotState:
    """Result of comparing a stored snapshot with the current file set."""

    exists: bool
    changed: bool
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)


def parse_snapshot(content: str) -> SnapshotFile:
    """
    Raises:
        MalformedSnapshotError: content is not a valid snapshot document
    """
    try:
        return SnapshotFile.model_validate_json(content)
    except ValidationError as e:
        raise MalformedSnapshotError(f"Invalid snapshot: {e.error_count()} error(s)") from e


def compare_snapshot(stored: SnapshotFile, current: list[FileStamp]) -> SnapshotState:
    """
    Compare a stored snapshot against current stamps.

    Changed iff the path sets differ or any shared path's mtime differs.
    """
    current_map = {stamp.path: stamp.mtime for stamp in current}
    stored_map = {stamp.path: stamp.mtime for stamp in stored.files}

    added = [path for path in current_map if path not in stored_map]
    removed = [path for path in stored_map if path not in current_map]
    modified = [
        path for path, mtime in stored_map.items()
        if path in current_map and current_map[path] != mtime
    ]

    changed = (
        len(stored.files) != len(current_map)
        or bool(added or removed or modified)
    )
    return SnapshotState(exists=True, changed=changed, added=added, removed=removed, modified=modified)


class SnapshotTracker:
    """Reads, compares, writes and archives per-folder snapshots."""

    def __init__(self, store: BlobStore, layout: ContextLayout):
        self.store = store
        self.layout = layout

    def read(self, folder: str) -> SnapshotFile | None:
        """Stored snapshot, or None when absent or malformed."""
        path = self.layout.snapshot_path(folder)
        if not self.store.exists(path):
            return None
        try:
            return parse_snapshot(self.store.read(path))
        except (MalformedSnapshotError, OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", path, e)
            return None

    def evaluate(self, folder: str, current_files: list[FileStat]) -> SnapshotState:
        """``{exists, changed}`` for the folder; no snapshot means ``{False, False}``."""
        snapshot = self.read(folder)
        if snapshot is None:
            return SnapshotState(exists=False, changed=False)
        current = [FileStamp(path=f.path, mtime=f.mtime) for f in current_files]
        return compare_snapshot(snapshot, current)

    def write(self, folder: str, files: list[FileStat]) -> None:
        self.store.ensure_folder(self.layout.context_path(folder))
        snapshot = SnapshotFile.from_stats(files)
        self.store.write(self.layout.snapshot_path(folder), snapshot.model_dump_json(indent=2))

    def archive(self, folder: str, moment: datetime | None = None) -> str | None:
        """
        Rename the live context folder to a timestamp-suffixed sibling.

        Returns the archive path, or None when there is no context folder.
        """
        context = self.layout.context_path(folder)
        if not self.store.is_dir(context):
            return None
        archived = self.layout.archive_path(folder, suffix_timestamp(moment))
        self.store.rename(context, archived)
        logger.info("Archived stale context %s -> %s", context, archived)
        return archived

    def refresh(self, folder: str, files: list[FileStat]) -> SnapshotState:
        """
        Evaluate and act: archive then re-snapshot on change, snapshot when absent.

        Prior chat logs are preserved in the archive, never overwritten.
        """
        state = self.evaluate(folder, files)
        if state.changed:
            self.archive(folder)
            self.write(folder, files)
        elif not state.exists:
            self.write(folder, files)
        return state


__all__ = [
    "FileStamp",
    "MalformedSnapshotError",
    "SnapshotFile",
    "SnapshotState",
    "SnapshotTracker",
    "compare_snapshot",
    "parse_snapshot",
]
