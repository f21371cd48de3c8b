"""Stream Layer - Frame decoding, transport and paced reveal."""

from .artifacts import ARTIFACT_SECTION_MARKER, artifact_filename, extract_artifact_paths
from .cancel import CancellationToken, race
from .errors import (
    ApiError,
    Canceled,
    ChatError,
    ConfigurationError,
    ProtocolError,
    SessionBusy,
    TransportClosedAbnormally,
    TransportConnectError,
    TransportError,
    TransportTimeout,
)
from .frames import ChunkFrame, DoneFrame, ErrorFrame, IgnoredFrame, ProtocolFrame, RawTextFrame, decode_frame
from .reveal import RevealScheduler
from .transport import StreamingTransport, TransportState, build_envelope, websocket_connector

__all__ = [
    "ARTIFACT_SECTION_MARKER",
    "ApiError",
    "CancellationToken",
    "Canceled",
    "ChatError",
    "ChunkFrame",
    "ConfigurationError",
    "DoneFrame",
    "ErrorFrame",
    "IgnoredFrame",
    "ProtocolError",
    "ProtocolFrame",
    "RawTextFrame",
    "RevealScheduler",
    "SessionBusy",
    "StreamingTransport",
    "TransportClosedAbnormally",
    "TransportConnectError",
    "TransportError",
    "TransportState",
    "TransportTimeout",
    "artifact_filename",
    "build_envelope",
    "decode_frame",
    "extract_artifact_paths",
    "race",
    "websocket_connector",
]
