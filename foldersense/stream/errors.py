"""Error taxonomy for chat requests."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for chat request failures."""


class ConfigurationError(ChatError):
    """Required settings (API host) are missing."""


class TransportError(ChatError):
    """Duplex stream failed; eligible for the single fallback attempt."""


class TransportTimeout(TransportError):
    """Duplex connection did not open within the connect timeout."""


class TransportConnectError(TransportError):
    """Duplex connection could not be established (refused, handshake, DNS)."""


class TransportClosedAbnormally(TransportError):
    """Stream closed with a non-normal code before any text arrived."""

    def __init__(self, code: int | None, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(f"WebSocket closed with code {code}.")


class ProtocolError(ChatError):
    """Server sent an explicit error frame. Never retried."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class Canceled(ChatError):
    """Request canceled by the caller. Never retried, never logged."""

    def __init__(self, message: str = "Request aborted"):
        super().__init__(message)


class ApiError(ChatError):
    """Single-shot REST call failed."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class SessionBusy(ChatError):
    """A request is already outstanding for this session."""


__all__ = [
    "ApiError",
    "Canceled",
    "ChatError",
    "ConfigurationError",
    "ProtocolError",
    "SessionBusy",
    "TransportClosedAbnormally",
    "TransportConnectError",
    "TransportError",
    "TransportTimeout",
]
