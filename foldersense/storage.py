"""
Blob storage over vault-relative paths.

The engine treats persistent storage as a key-value store addressed by
POSIX-style relative paths ("notes/project/4senseContext/snapshot.json").
Only single-path operations are assumed to be atomic.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath


@dataclass(frozen=True)
class FileStat:
    """Stat record for a stored file (times in epoch milliseconds)."""

    path: str
    mtime: int
    ctime: int
    size: int

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def extension(self) -> str:
        """Lower-cased extension without the dot ("" when absent)."""
        suffix = PurePosixPath(self.path).suffix
        return suffix[1:].lower() if suffix else ""


def join_path(*parts: str) -> str:
    """Join relative path parts, ignoring empty segments (the vault root)."""
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


class BlobStore(ABC):
    """Abstract read/write/rename store over relative paths."""

    @abstractmethod
    def read(self, path: str) -> str:
        """Read a text file (UTF-8)."""

    @abstractmethod
    def read_binary(self, path: str) -> bytes:
        """Read a file as bytes."""

    @abstractmethod
    def write(self, path: str, content: str) -> None:
        """Create or replace a text file."""

    @abstractmethod
    def write_binary(self, path: str, data: bytes) -> None:
        """Create or replace a binary file."""

    @abstractmethod
    def append(self, path: str, content: str, prefix_for_create: str = "") -> None:
        """Append text; a missing file is created as ``prefix_for_create + content``."""

    @abstractmethod
    def rename(self, path: str, new_path: str) -> None:
        """Rename a file or folder."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """True if a file or folder exists at path."""

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """True if path is a folder."""

    @abstractmethod
    def list_children(self, path: str) -> list[str]:
        """Relative paths of the direct children of a folder."""

    @abstractmethod
    def make_dirs(self, path: str) -> None:
        """Create a folder (and parents); no-op if it exists."""

    @abstractmethod
    def stat(self, path: str) -> FileStat:
        """Stat a file."""

    def ensure_folder(self, path: str) -> None:
        """Create a folder, refusing to shadow an existing file."""
        if self.is_dir(path):
            return
        if self.exists(path):
            raise NotADirectoryError(f"Path exists but is not a folder: {path}")
        self.make_dirs(path)


class LocalBlobStore(BlobStore):
    """BlobStore backed by a directory on the local filesystem."""

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser().resolve()

    def _abs(self, path: str) -> Path:
        return self.root.joinpath(*PurePosixPath(path).parts) if path else self.root

    def _rel(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def read(self, path: str) -> str:
        return self._abs(path).read_text(encoding="utf-8")

    def read_binary(self, path: str) -> bytes:
        return self._abs(path).read_bytes()

    def write(self, path: str, content: str) -> None:
        target = self._abs(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def write_binary(self, path: str, data: bytes) -> None:
        target = self._abs(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def append(self, path: str, content: str, prefix_for_create: str = "") -> None:
        target = self._abs(path)
        if not target.exists():
            self.write(path, prefix_for_create + content)
            return
        with open(target, "a", encoding="utf-8") as f:
            f.write(content)

    def rename(self, path: str, new_path: str) -> None:
        target = self._abs(new_path)
        if target.exists():
            raise FileExistsError(f"Rename target already exists: {new_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        os.rename(self._abs(path), target)

    def exists(self, path: str) -> bool:
        return self._abs(path).exists()

    def is_dir(self, path: str) -> bool:
        return self._abs(path).is_dir()

    def list_children(self, path: str) -> list[str]:
        folder = self._abs(path)
        if not folder.is_dir():
            return []
        return sorted(self._rel(child) for child in folder.iterdir())

    def make_dirs(self, path: str) -> None:
        self._abs(path).mkdir(parents=True, exist_ok=True)

    def stat(self, path: str) -> FileStat:
        st = self._abs(path).stat()
        # st_birthtime exists on macOS/BSD only
        birthtime = getattr(st, "st_birthtime", None)
        ctime = int(birthtime * 1000) if birthtime is not None else st.st_ctime_ns // 1_000_000
        return FileStat(
            path=path,
            mtime=st.st_mtime_ns // 1_000_000,
            ctime=ctime,
            size=st.st_size,
        )


__all__ = ["BlobStore", "FileStat", "LocalBlobStore", "join_path"]
