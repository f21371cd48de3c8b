"""
Folder-level orchestration: summarize a folder, open a chat over it, and
handle the files a chat produces (saved replies, downloaded artifacts).
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..api_client import ApiClient
from ..config import FolderSenseConfig
from ..layout import ContextLayout
from ..scan import (
    MAX_IMAGE_BYTES,
    audio_content_type,
    collect_folder_files,
    is_excalidraw,
    is_markdown,
    is_supported_audio,
    split_files,
)
from ..storage import BlobStore, FileStat, join_path
from ..stream.artifacts import artifact_filename
from ..stream.errors import ApiError
from ..stream.reveal import RevealScheduler
from ..stream.transport import StreamingTransport
from ..types import iso_timestamp, strip_timestamps, suffix_timestamp
from .chat_log import ChatLogStore
from .chat_session import ChatSession
from .log_locator import ChatLogLocator
from .snapshot import SnapshotTracker

logger = logging.getLogger(__name__)

ARTIFACT_DOWNLOADING = "downloading"
ARTIFACT_DONE = "done"
ARTIFACT_ERROR = "error"

StepCallback = Callable[[str], None]
StatusCallback = Callable[[str, str], None]


class FolderWorkspace:
    """
    Everything needed to chat about folders stored in one BlobStore.

    Args:
        store: Blob storage holding the folders
        config: Configuration (defaults to built-in defaults)
        api: Single-shot client (built from config when omitted)
        transport: Streaming transport (built from config when omitted)
        clock: ISO timestamp source for chat log turns
    """

    def __init__(
        self,
        store: BlobStore,
        config: FolderSenseConfig | None = None,
        api: ApiClient | None = None,
        transport: StreamingTransport | None = None,
        clock: Callable[[], str] = iso_timestamp,
    ):
        self.store = store
        self.config = config or FolderSenseConfig()
        self.layout = ContextLayout(self.config.storage)
        self.api = api or ApiClient(self.config.api)
        self.transport = transport or StreamingTransport(self.config, self.api)
        self.logs = ChatLogStore(store, clock)
        self.snapshots = SnapshotTracker(store, self.layout)
        self.locator = ChatLogLocator(store, self.layout, self.logs)

    def collect_files(self, folder: str) -> list[FileStat]:
        return collect_folder_files(self.store, self.layout, folder)

    def read_summary(self, folder: str) -> str | None:
        path = self.layout.summary_path(folder)
        if not self.store.exists(path):
            return None
        return self.store.read(path)

    def write_summary(self, folder: str, summary: str) -> None:
        self.store.ensure_folder(self.layout.context_path(folder))
        self.store.write(self.layout.summary_path(folder), summary)

    async def build_summary_payload(
        self,
        folder: str,
        files: list[FileStat],
        on_step: StepCallback | None = None,
    ) -> dict[str, Any]:
        """
        Build ``{folderPath, files}`` in the given (creation-time) order.

        Markdown is sent as text, images as base64 (oversized ones are
        skipped) and audio as a transcript. Audio is transcribed one file at
        a time.
        """
        step = on_step or (lambda _: None)
        audio_total = sum(1 for f in files if is_supported_audio(f))
        audio_index = 0
        payload_files: list[dict[str, str]] = []

        image_paths = {f.path for f in split_files(files).image_files}
        for file in files:
            if is_markdown(file):
                payload_files.append({
                    "path": file.path,
                    "kind": "excalidraw" if is_excalidraw(file) else "markdown",
                    "content": self.store.read(file.path),
                })
            elif file.path in image_paths:
                if file.size > MAX_IMAGE_BYTES:
                    step(f"Skipping large image: {file.name}")
                    continue
                step(f"Adding image: {file.name}")
                payload_files.append({
                    "path": file.path,
                    "kind": "image",
                    "content": base64.b64encode(self.store.read_binary(file.path)).decode("ascii"),
                })
            elif is_supported_audio(file):
                audio_index += 1
                step(f"Transcribing audio {audio_index}/{audio_total}: {file.name}")
                content_type = audio_content_type(file)
                data = base64.b64encode(self.store.read_binary(file.path)).decode("ascii")
                transcript = await self.api.transcribe(file.path, file.name, data, content_type)
                payload_files.append({
                    "path": file.path,
                    "kind": "audio_transcript",
                    "content": transcript,
                })

        return {"folderPath": folder, "files": payload_files}

    async def summarize_folder(
        self,
        folder: str,
        files: list[FileStat] | None = None,
        on_step: StepCallback | None = None,
    ) -> str:
        """
        Summarize a folder and store the summary and a fresh snapshot.

        Raises:
            ValueError: folder has no supported files
            ApiError: summary or transcription request failed
        """
        step = on_step or (lambda _: None)
        step("Scanning files...")
        if files is None:
            files = self.collect_files(folder)
        groups = split_files(files)
        if not groups.has_supported:
            raise ValueError("No supported files found in the selected folder.")

        if groups.unsupported_audio_files:
            names = ", ".join(f.name for f in groups.unsupported_audio_files[:3])
            extra = len(groups.unsupported_audio_files) - 3
            more = f" (+{extra} more)" if extra > 0 else ""
            logger.warning("Unsupported audio formats: %s%s", names, more)
        if groups.skipped_files:
            logger.info("Skipping %d unsupported files", len(groups.skipped_files))

        step("Preparing data...")
        payload = await self.build_summary_payload(folder, files, step)

        step("Sending data for summarization...")
        summary = await self.api.summarize(payload)

        step("Saving summary...")
        self.write_summary(folder, summary)
        self.snapshots.write(folder, files)
        logger.info("Summary saved for %s (%d files)", folder or "/", len(payload["files"]))
        return summary

    async def open_chat(
        self,
        folder: str,
        *,
        reveal: RevealScheduler | None = None,
        on_artifact_status: StatusCallback | None = None,
        on_step: StepCallback | None = None,
    ) -> ChatSession:
        """
        Prepare a folder's context and return a session seeded with its history.

        A changed snapshot archives the previous context first. A missing
        summary is generated. An empty active log is seeded from the newest
        other log (including legacy JSON logs and archived contexts).
        """
        files = self.collect_files(folder)
        state = self.snapshots.refresh(folder, files)
        if state.changed:
            logger.info(
                "Folder %s changed (%d added, %d removed, %d modified)",
                folder or "/", len(state.added), len(state.removed), len(state.modified),
            )
        self.store.ensure_folder(self.layout.context_path(folder))
        self.store.ensure_folder(self.layout.artifacts_path(folder))

        summary = self.read_summary(folder)
        if not summary:
            await self.summarize_folder(folder, files, on_step)
            summary = self.read_summary(folder)
        if not summary:
            raise ValueError("Summary file not found. Unable to open chat.")

        log_path = self.locator.get_or_create(folder)
        entries = self.logs.load_entries(log_path)
        if not entries:
            entries = self.locator.recover_into(folder, log_path)

        async def handle_artifacts(paths: list[str]) -> dict[str, str]:
            return await self.download_artifacts(folder, paths, on_artifact_status)

        return ChatSession(
            self.transport,
            self.logs,
            log_path,
            summary,
            strip_timestamps(entries),
            reveal=reveal,
            artifact_handler=handle_artifacts,
        )

    def save_assistant_response(self, folder: str, content: str, moment: datetime | None = None) -> str:
        """Write a reply to ``ai-response-<stamp>[-n].md`` in the context folder."""
        context = self.layout.context_path(folder)
        self.store.ensure_folder(context)
        stamp = suffix_timestamp(moment)
        path = join_path(context, f"ai-response-{stamp}.md")
        index = 1
        while self.store.exists(path):
            path = join_path(context, f"ai-response-{stamp}-{index}.md")
            index += 1
        self.store.write(path, content)
        logger.info("Saved response to %s", path)
        return path

    async def download_artifacts(
        self,
        folder: str,
        paths: list[str],
        on_status: StatusCallback | None = None,
    ) -> dict[str, str]:
        """
        Fetch each artifact into the artifacts folder.

        Failures are reported per path and do not stop the remaining
        downloads. Returns the final status per path.
        """
        report = on_status or (lambda _path, _status: None)
        self.store.ensure_folder(self.layout.artifacts_path(folder))
        statuses: dict[str, str] = {}
        for path in paths:
            report(path, ARTIFACT_DOWNLOADING)
            try:
                target = join_path(self.layout.artifacts_path(folder), artifact_filename(path))
                data = await self.api.download(path)
                self.store.write_binary(target, data)
            except (ApiError, OSError, ValueError) as e:
                logger.warning("Artifact %s failed: %s", path, e)
                statuses[path] = ARTIFACT_ERROR
            else:
                statuses[path] = ARTIFACT_DONE
            report(path, statuses[path])
        return statuses


__all__ = [
    "ARTIFACT_DONE",
    "ARTIFACT_DOWNLOADING",
    "ARTIFACT_ERROR",
    "FolderWorkspace",
]
