"""Per-folder context paths (summary, snapshot, chat logs, artifacts)."""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import StorageConfig
from .storage import join_path


@dataclass
class ContextLayout:
    """
    Resolves the context folder layout for a summarized folder.

    <folder>/4senseContext/            summary, snapshot, chat logs, chat state
    <folder>/4senseContext/artefacts/  downloaded artifacts
    <folder>/4senseContext-<stamp>/    archived context after a snapshot change
    """

    storage: StorageConfig = field(default_factory=StorageConfig)

    def context_path(self, folder: str) -> str:
        return join_path(folder, self.storage.context_dir)

    def artifacts_path(self, folder: str) -> str:
        return join_path(self.context_path(folder), self.storage.artifacts_dir)

    def summary_path(self, folder: str) -> str:
        return join_path(self.context_path(folder), self.storage.summary_file_name)

    def snapshot_path(self, folder: str) -> str:
        return join_path(self.context_path(folder), self.storage.snapshot_file)

    def chat_state_path(self, folder: str) -> str:
        return join_path(self.context_path(folder), self.storage.chat_state_file)

    def archive_path(self, folder: str, stamp: str) -> str:
        return f"{self.context_path(folder)}-{stamp}"

    def is_context_root(self, folder: str, path: str) -> bool:
        """True for the live context folder or any of its archives."""
        context = self.context_path(folder)
        return path == context or path.startswith(f"{context}-")

    def is_excluded(self, folder: str, path: str) -> bool:
        """True if path belongs to the context/artifacts tree (never summarized)."""
        context = self.context_path(folder)
        artifacts = self.artifacts_path(folder)
        return (
            self.is_context_root(folder, path)
            or path.startswith(f"{context}/")
            or path == artifacts
            or path.startswith(f"{artifacts}/")
        )


__all__ = ["ContextLayout"]
