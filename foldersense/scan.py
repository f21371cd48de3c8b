"""Folder traversal and file-type classification for summarization."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .layout import ContextLayout
from .storage import BlobStore, FileStat

SUPPORTED_AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "m4a", "ogg", "flac", "opus"})
ALL_AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "m4a", "aac", "ogg", "flac", "opus", "webm"})
SUPPORTED_IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp"})
MAX_IMAGE_BYTES = 10 * 1024 * 1024

FileKind = Literal["markdown", "excalidraw", "audio_transcript", "text", "image"]


@dataclass
class FileGroups:
    """In-scope files split by how they are fed to the summarizer."""

    text_files: list[FileStat] = field(default_factory=list)
    audio_files: list[FileStat] = field(default_factory=list)
    image_files: list[FileStat] = field(default_factory=list)
    unsupported_audio_files: list[FileStat] = field(default_factory=list)
    skipped_files: list[FileStat] = field(default_factory=list)

    @property
    def has_supported(self) -> bool:
        return bool(self.text_files or self.audio_files or self.image_files)


def collect_folder_files(store: BlobStore, layout: ContextLayout, folder: str) -> list[FileStat]:
    """
    Collect every in-scope file under folder, ordered by creation time.

    The context folder, its archives and the artifacts folder are skipped.
    """
    files: list[FileStat] = []

    def traverse(node: str) -> None:
        for child in store.list_children(node):
            if layout.is_excluded(folder, child):
                continue
            if store.is_dir(child):
                traverse(child)
                continue
            files.append(store.stat(child))

    traverse(folder)
    files.sort(key=lambda f: f.ctime)
    return files


def is_markdown(file: FileStat) -> bool:
    return file.extension == "md"


def is_excalidraw(file: FileStat) -> bool:
    return file.path.endswith(".excalidraw.md")


def is_supported_audio(file: FileStat) -> bool:
    return file.extension in SUPPORTED_AUDIO_EXTENSIONS


def is_image(file: FileStat) -> bool:
    return file.extension in SUPPORTED_IMAGE_EXTENSIONS


def split_files(files: list[FileStat]) -> FileGroups:
    """Classify files; order within each group follows the input order."""
    groups = FileGroups()
    for file in files:
        if is_supported_audio(file):
            groups.audio_files.append(file)
        elif is_image(file):
            groups.image_files.append(file)
        elif file.extension in ALL_AUDIO_EXTENSIONS:
            groups.unsupported_audio_files.append(file)
        elif is_markdown(file):
            groups.text_files.append(file)
        else:
            groups.skipped_files.append(file)
    return groups


def audio_content_type(file: FileStat) -> str:
    """Content type sent to the transcription endpoint."""
    ext = file.extension
    if ext in ("mp3", "m4a"):
        return "audio/mpeg"
    if ext in ("ogg", "opus"):
        return "audio/ogg;codecs=opus"
    if ext == "flac":
        return "audio/flac"
    if ext == "wav":
        return "audio/x-pcm;bit=16;rate=16000"
    raise ValueError(f"Unsupported audio format: .{ext}")


__all__ = [
    "ALL_AUDIO_EXTENSIONS",
    "FileGroups",
    "FileKind",
    "MAX_IMAGE_BYTES",
    "SUPPORTED_AUDIO_EXTENSIONS",
    "SUPPORTED_IMAGE_EXTENSIONS",
    "audio_content_type",
    "collect_folder_files",
    "is_excalidraw",
    "is_image",
    "is_markdown",
    "is_supported_audio",
    "split_files",
]
