"""Session Layer - Chat logs, snapshots and folder chat sessions."""

from .chat_log import ChatLogStore, MalformedLogError
from .chat_session import CHAT_SYSTEM_PROMPT, ChatSession, RequestHandle
from .log_locator import ChatLogLocator
from .snapshot import MalformedSnapshotError, SnapshotState, SnapshotTracker
from .workspace import FolderWorkspace

__all__ = [
    "CHAT_SYSTEM_PROMPT",
    "ChatLogLocator",
    "ChatLogStore",
    "ChatSession",
    "FolderWorkspace",
    "MalformedLogError",
    "MalformedSnapshotError",
    "RequestHandle",
    "SnapshotState",
    "SnapshotTracker",
]
