"""foldersense: chat with a remote assistant about a folder of notes.

The folder is summarized once and the summary is sent as context with every
turn. Replies stream over a WebSocket (with a single-shot HTTP fallback) and
the conversation is kept in a markdown log inside the folder.

Layers:
- Stream: frame decoding, dual transport, cancellation, paced reveal
- Session: chat logs, snapshots, single-flight chat sessions
"""

__version__ = "0.1.0"

# Stream Layer
from .stream import (
    ApiError,
    Canceled,
    ChatError,
    ConfigurationError,
    ProtocolError,
    RevealScheduler,
    SessionBusy,
    StreamingTransport,
    TransportError,
    decode_frame,
    extract_artifact_paths,
)

# Session Layer
from .session import ChatLogStore, ChatSession, FolderWorkspace, RequestHandle, SnapshotTracker

# Types, Storage & Config
from .api_client import ApiClient
from .config import FolderSenseConfig, default_config
from .storage import BlobStore, LocalBlobStore
from .types import ChatLogEntry, ChatMessage, ChatReply, MessageRole

__all__ = [
    # Stream
    "ApiError",
    "Canceled",
    "ChatError",
    "ConfigurationError",
    "ProtocolError",
    "RevealScheduler",
    "SessionBusy",
    "StreamingTransport",
    "TransportError",
    "decode_frame",
    "extract_artifact_paths",
    # Session
    "ChatLogStore",
    "ChatSession",
    "FolderWorkspace",
    "RequestHandle",
    "SnapshotTracker",
    # Types, storage & config
    "ApiClient",
    "BlobStore",
    "ChatLogEntry",
    "ChatMessage",
    "ChatReply",
    "FolderSenseConfig",
    "LocalBlobStore",
    "MessageRole",
    "default_config",
]
