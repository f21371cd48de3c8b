"""
Dual-transport chat streaming.

The primary path is a WebSocket: connect (bounded by ``open_timeout``), send
one JSON envelope, then consume inbound frames until done. Inbound units are
pumped by a reader task into a bounded channel of decoded frames and consumed
by a single loop, so cancellation and completion are decided in one place.

Any transport failure other than cancellation is retried exactly once over
the single-shot chat endpoint; the fallback reply is delivered through one
synthetic ``on_chunk`` call.

States: CONNECTING -> OPEN -> STREAMING -> FINALIZED | FAILED
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..api_client import ApiClient
from ..config import FolderSenseConfig
from ..types import ChatMessage, ChatReply
from .artifacts import extract_artifact_paths
from .cancel import CancellationToken, race
from .errors import (
    Canceled,
    ConfigurationError,
    ProtocolError,
    TransportClosedAbnormally,
    TransportConnectError,
    TransportError,
    TransportTimeout,
)
from .frames import ChunkFrame, DoneFrame, ErrorFrame, ProtocolFrame, RawTextFrame, decode_frame

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006

ChunkCallback = Callable[[str], None]


class Connection(Protocol):
    """The slice of a WebSocket client connection the transport uses."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...


Connector = Callable[[str], Awaitable[Connection]]


class TransportState(Enum):
    """Lifecycle of one streaming attempt."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass(frozen=True)
class _Closed:
    """End-of-channel marker carrying the close code."""

    code: int | None
    reason: str = ""


async def websocket_connector(url: str) -> Connection:
    """Open a WebSocket with no library-side timeout (the transport bounds it)."""
    return await ws_connect(url, open_timeout=None, max_size=None)


def build_envelope(summary: str, messages: list[ChatMessage], api_key: str | None) -> str:
    """Outbound JSON envelope; ``apiKey`` is omitted when not configured."""
    body: dict[str, Any] = {
        "summary": summary,
        "messages": [m.to_wire() for m in messages],
    }
    if api_key:
        body["apiKey"] = api_key
    return json.dumps(body, ensure_ascii=False)


class StreamingTransport:
    """
    Streams one assistant reply per ``send`` call.

    Args:
        config: Full configuration (endpoints and stream timing)
        api: Single-shot client used for the fallback attempt
        connector: Coroutine function opening a connection for a URL
        channel_size: Bound on decoded frames buffered between reader and consumer
    """

    def __init__(
        self,
        config: FolderSenseConfig,
        api: ApiClient,
        connector: Connector | None = None,
        channel_size: int = 256,
    ):
        self.config = config
        self.api = api
        self._connector = connector or websocket_connector
        self._channel_size = channel_size
        self.state = TransportState.IDLE

    def _set_state(self, state: TransportState) -> None:
        logger.debug("transport %s -> %s", self.state.value, state.value)
        self.state = state

    async def send(
        self,
        summary: str,
        messages: list[ChatMessage],
        on_chunk: ChunkCallback,
        token: CancellationToken | None = None,
    ) -> ChatReply:
        """
        Stream a reply, falling back to the single-shot endpoint once.

        Raises:
            Canceled: token fired (never followed by a fallback)
            ProtocolError: server sent an error frame (no fallback)
            ConfigurationError: API host missing
            ApiError: fallback request failed
        """
        if not self.config.api.api_host:
            raise ConfigurationError("API host is not configured. Set it in settings.")

        try:
            return await self.stream(summary, messages, on_chunk, token)
        except TransportError as e:
            logger.info("Streaming unavailable (%s); falling back to single-shot chat", e)

        if token is not None:
            token.raise_if_cancelled()
        reply = await race(self.api.chat(summary, messages), token)
        if reply.message:
            on_chunk(reply.message)
        return reply

    async def stream(
        self,
        summary: str,
        messages: list[ChatMessage],
        on_chunk: ChunkCallback,
        token: CancellationToken | None = None,
    ) -> ChatReply:
        """Run the WebSocket path only (no fallback)."""
        url = self.config.chat_websocket_url()
        envelope = build_envelope(summary, messages, self.config.api.api_key or None)

        self._set_state(TransportState.CONNECTING)
        conn = await self._open(url, token)

        close_reason = "done"
        pump: asyncio.Task[None] | None = None
        try:
            if token is not None and token.cancelled:
                raise Canceled()
            self._set_state(TransportState.OPEN)
            try:
                await conn.send(envelope)
            except ConnectionClosed as e:
                return self._finish_on_close(self._closed_from(e), "")

            self._set_state(TransportState.STREAMING)
            channel: asyncio.Queue[ProtocolFrame | _Closed] = asyncio.Queue(self._channel_size)
            pump = asyncio.create_task(self._pump(conn, channel))
            parts: list[str] = []

            while True:
                item = await race(channel.get(), token)
                if isinstance(item, _Closed):
                    return self._finish_on_close(item, "".join(parts))
                if isinstance(item, (ChunkFrame, RawTextFrame)):
                    if item.text:
                        parts.append(item.text)
                        on_chunk(item.text)
                elif isinstance(item, DoneFrame):
                    self._set_state(TransportState.FINALIZED)
                    return self._reply("".join(parts))
                elif isinstance(item, ErrorFrame):
                    close_reason = "error"
                    raise ProtocolError(item.detail)
        except Canceled:
            close_reason = "aborted"
            self._set_state(TransportState.FAILED)
            raise
        except BaseException:
            if self.state is not TransportState.FAILED:
                self._set_state(TransportState.FAILED)
            raise
        finally:
            if pump is not None:
                pump.cancel()
                await asyncio.gather(pump, return_exceptions=True)
            await self._close_quietly(conn, close_reason)

    async def _open(self, url: str, token: CancellationToken | None) -> Connection:
        try:
            return await race(self._connector(url), token, timeout=self.config.stream.open_timeout)
        except asyncio.TimeoutError as e:
            self._set_state(TransportState.FAILED)
            raise TransportTimeout("WebSocket connection timed out.") from e
        except Canceled:
            self._set_state(TransportState.FAILED)
            raise
        except (OSError, WebSocketException) as e:
            self._set_state(TransportState.FAILED)
            raise TransportConnectError(f"WebSocket connection failed: {e}") from e

    async def _pump(self, conn: Connection, channel: asyncio.Queue[ProtocolFrame | _Closed]) -> None:
        """Reader task: decode inbound units into the channel until the socket closes."""
        try:
            while True:
                raw = await conn.recv()
                await channel.put(decode_frame(raw))
        except ConnectionClosed as e:
            await channel.put(self._closed_from(e))
        except (OSError, WebSocketException) as e:
            logger.debug("WebSocket read failed: %s", e)
            await channel.put(_Closed(None, str(e)))

    @staticmethod
    def _closed_from(exc: ConnectionClosed) -> _Closed:
        if exc.rcvd is not None:
            return _Closed(exc.rcvd.code, exc.rcvd.reason)
        return _Closed(ABNORMAL_CLOSURE)

    def _finish_on_close(self, closed: _Closed, text: str) -> ChatReply:
        """A close without Done succeeds on normal closure or once any text arrived."""
        if closed.code == NORMAL_CLOSURE or text:
            self._set_state(TransportState.FINALIZED)
            return self._reply(text)
        self._set_state(TransportState.FAILED)
        raise TransportClosedAbnormally(closed.code, closed.reason)

    @staticmethod
    def _reply(text: str) -> ChatReply:
        return ChatReply(message=text, artifact_paths=extract_artifact_paths(text))

    @staticmethod
    async def _close_quietly(conn: Connection, reason: str) -> None:
        try:
            await conn.close(NORMAL_CLOSURE, reason)
        except (OSError, WebSocketException) as e:
            logger.debug("Ignoring error while closing WebSocket: %s", e)


__all__ = [
    "Connection",
    "Connector",
    "NORMAL_CLOSURE",
    "StreamingTransport",
    "TransportState",
    "build_envelope",
    "websocket_connector",
]
