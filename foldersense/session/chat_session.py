"""
Single-flight chat session over a folder's summary and chat log.

A session owns the message history (led by a system prompt that is never
logged), issues at most one outstanding request, and wires transport chunks
into the reveal scheduler and the durable log.

Each ``send`` returns a RequestHandle. Late chunks from a request that is no
longer the active one (or was cancelled) are recognised by handle identity
and dropped before they reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Generator
from typing import Any

from ..stream.cancel import CancellationToken
from ..stream.errors import Canceled, ChatError, SessionBusy
from ..stream.reveal import RevealScheduler
from ..stream.transport import StreamingTransport
from ..types import ChatMessage, ChatReply, MessageRole
from .chat_log import ChatLogStore

logger = logging.getLogger(__name__)

CHAT_SYSTEM_PROMPT = "You are a helpful assistant. Use the provided folder summary as context."

ChunkCallback = Callable[[str], None]
ArtifactHandler = Callable[[list[str]], Awaitable[Any]]


class RequestHandle:
    """
    One in-flight assistant request.

    Awaiting the handle yields the finalized ChatReply, or raises the
    request's failure (``Canceled`` after ``cancel()``).
    """

    def __init__(self) -> None:
        self.token = CancellationToken()
        self._task: asyncio.Task[ChatReply] | None = None

    def __await__(self) -> Generator[Any, None, ChatReply]:
        if self._task is None:
            raise RuntimeError("Request was never started")
        return self._task.__await__()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        """Cancel the request; a no-op once it has completed."""
        if self.done:
            return
        self.token.cancel()


class ChatSession:
    """
    Conversation with the assistant about one folder.

    Args:
        transport: Streaming transport (with single-shot fallback)
        log_store: Durable chat log access
        log_path: Active log file for this folder
        summary: Folder summary sent as context
        history: Prior turns loaded from the log
        reveal: Optional paced renderer for the in-flight reply
        artifact_handler: Called with extracted artifact paths after a reply
        system_prompt: Leading system message (session-local)
    """

    def __init__(
        self,
        transport: StreamingTransport,
        log_store: ChatLogStore,
        log_path: str,
        summary: str,
        history: list[ChatMessage],
        *,
        reveal: RevealScheduler | None = None,
        artifact_handler: ArtifactHandler | None = None,
        system_prompt: str = CHAT_SYSTEM_PROMPT,
    ):
        self.transport = transport
        self.log_store = log_store
        self.log_path = log_path
        self.summary = summary
        self.reveal = reveal
        self.artifact_handler = artifact_handler
        self.use_summary = True

        self._messages: list[ChatMessage] = [
            ChatMessage(role=MessageRole.SYSTEM, content=system_prompt),
            *history,
        ]
        self._active: RequestHandle | None = None
        self._pending: set[RequestHandle] = set()
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def messages(self) -> list[ChatMessage]:
        """Full history including the system prompt."""
        return list(self._messages)

    @property
    def transcript(self) -> list[ChatMessage]:
        """History without the system prompt."""
        return [m for m in self._messages if m.role is not MessageRole.SYSTEM]

    @property
    def busy(self) -> bool:
        """True while the latest request is neither finished nor cancelled."""
        active = self._active
        return active is not None and not active.done and not active.cancelled

    def send(self, text: str, *, on_chunk: ChunkCallback | None = None) -> RequestHandle:
        """
        Start a request for a user message.

        The user turn is written to the log, then to history, before the
        request starts; a failed log write leaves history untouched. A
        cancelled request no longer blocks a new one. Must be called from
        a running event loop.

        Raises:
            ValueError: text is blank
            SessionBusy: another request is still outstanding
            OSError: the log could not be written
        """
        text = text.strip()
        if not text:
            raise ValueError("Message text is empty")
        if self.busy:
            raise SessionBusy("A request is already in progress")

        self.log_store.append(self.log_path, MessageRole.USER, text)
        self._messages.append(ChatMessage(role=MessageRole.USER, content=text))

        handle = RequestHandle()
        self._active = handle
        if self.reveal is not None:
            self.reveal.update(handle, "")
        handle._task = asyncio.create_task(self._run(handle, list(self._messages), on_chunk))
        self._pending.add(handle)
        handle._task.add_done_callback(lambda _task: self._pending.discard(handle))
        return handle

    def _is_current(self, handle: RequestHandle) -> bool:
        return self._active is handle and not handle.cancelled

    async def _run(
        self,
        handle: RequestHandle,
        messages: list[ChatMessage],
        on_chunk: ChunkCallback | None,
    ) -> ChatReply:
        received: list[str] = []

        def deliver(chunk: str) -> None:
            if not self._is_current(handle):
                logger.debug("Dropping late chunk from a superseded request")
                return
            received.append(chunk)
            if self.reveal is not None:
                self.reveal.update(handle, "".join(received))
            if on_chunk is not None:
                on_chunk(chunk)

        summary = self.summary if self.use_summary else ""
        try:
            reply = await self.transport.send(summary, messages, deliver, handle.token)
        except Canceled:
            logger.debug("Request cancelled; nothing logged")
            self._drop_reveal(handle)
            raise
        except ChatError:
            self._drop_reveal(handle)
            raise

        if not self._is_current(handle):
            # cancelled after the reply arrived
            self._drop_reveal(handle)
            raise Canceled()

        text = reply.message or "".join(received)
        reply = ChatReply(message=text, artifact_paths=reply.artifact_paths)
        self._messages.append(ChatMessage(role=MessageRole.ASSISTANT, content=text))
        if text.strip():
            self.log_store.append(self.log_path, MessageRole.ASSISTANT, text)
        if self.reveal is not None:
            self.reveal.finalize(handle, text)
        if reply.artifact_paths and self.artifact_handler is not None:
            self._spawn(self.artifact_handler(list(reply.artifact_paths)))
        return reply

    def _drop_reveal(self, handle: RequestHandle) -> None:
        if self.reveal is not None and self._active is handle:
            self.reveal.stop()

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Artifact handling failed: %s", exc)

    def cancel(self) -> None:
        """Cancel the outstanding request, if any."""
        if self._active is not None:
            self._active.cancel()

    async def wait_background(self) -> None:
        """Wait for scheduled artifact handling to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def close(self) -> None:
        """Cancel every unfinished request, wait for it, and stop the reveal ticker."""
        pending = list(self._pending)
        for handle in pending:
            handle.cancel()
        results = await asyncio.gather(*(h._task for h in pending if h._task is not None), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.debug("Outstanding request ended on close: %r", result)
        if self.reveal is not None:
            self.reveal.stop()


__all__ = ["CHAT_SYSTEM_PROMPT", "ChatSession", "RequestHandle"]
