"""
Single-shot REST client for the assistant service.

Covers the request/response endpoints: chat (used as the streaming
fallback), folder summarization, audio transcription and artifact download.
All calls POST/GET JSON with an optional bearer token; the token is passed
through untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import httpx

from .config import ApiConfig
from .stream.artifacts import extract_artifact_paths
from .stream.errors import ApiError, ConfigurationError
from .types import ChatMessage, ChatReply

logger = logging.getLogger(__name__)

CHAT_REPLY_FIELDS = ("message", "response", "content")
TRANSCRIPT_FIELDS = ("text", "transcript", "transcription")


def extract_error_detail(response: httpx.Response) -> str | None:
    """Best human-readable detail from a failed response."""
    try:
        parsed = response.json()
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        detail = parsed.get("detail")
        if detail is None:
            detail = parsed.get("message")
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
    text = response.text
    if text and text.strip():
        return text.strip()
    return None


def _first_string(result: Any, names: Iterable[str]) -> str | None:
    if not isinstance(result, dict):
        return None
    for name in names:
        value = result.get(name)
        if value is not None:
            return value if isinstance(value, str) else None
    return None


class ApiClient:
    """
    Request/response client for the assistant service.

    Args:
        config: Endpoint configuration
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(self, config: ApiConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    def _require_host(self) -> None:
        if not self.config.api_host:
            raise ConfigurationError("API host is not configured. Set it in settings.")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.config.request_timeout)

    async def post_json(
        self,
        path: str,
        body: Any,
        extra_headers: dict[str, str] | None = None,
    ) -> Any:
        """
        POST a JSON body and return the parsed JSON reply.

        Raises:
            ConfigurationError: API host missing
            ApiError: Network failure, non-2xx status or non-JSON body
        """
        self._require_host()
        url = self.config.build_url(path)
        headers = {"Content-Type": "application/json", **self.config.auth_headers()}
        if extra_headers:
            headers.update(extra_headers)

        try:
            async with self._client() as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise ApiError(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            detail = extract_error_detail(response)
            raise ApiError(detail or f"API error: {response.status_code}", status=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise ApiError("API returned non-JSON response.", status=response.status_code) from e

    async def chat(self, summary: str, messages: list[ChatMessage]) -> ChatReply:
        """Non-streaming chat call against the chat endpoint."""
        result = await self.post_json(
            self.config.chat_path,
            {"summary": summary, "messages": [m.to_wire() for m in messages]},
        )
        content = _first_string(result, CHAT_REPLY_FIELDS)
        if content is None:
            raise ApiError("Chat API returned an unexpected response.")
        return ChatReply(message=content, artifact_paths=extract_artifact_paths(content))

    async def summarize(self, payload: dict[str, Any]) -> str:
        """Request a folder summary for ``{folderPath, files}``."""
        result = await self.post_json(self.config.summary_path, payload)
        summary = result.get("summary") if isinstance(result, dict) else None
        if not isinstance(summary, str):
            raise ApiError("Summary API returned an unexpected response.")
        return summary

    async def transcribe(self, path: str, name: str, data_b64: str, content_type: str) -> str:
        """Transcribe one audio file (base64 payload)."""
        result = await self.post_json(
            self.config.transcription_path,
            {"path": path, "name": name, "data": data_b64, "contentType": content_type},
            extra_headers={"X-Audio-Content-Type": content_type},
        )
        transcript = _first_string(result, TRANSCRIPT_FIELDS)
        if not transcript:
            raise ApiError("Transcription API returned an unexpected response.")
        return transcript

    async def download(self, path: str) -> bytes:
        """GET an artifact path relative to the API host."""
        self._require_host()
        url = self.config.build_url(path)
        try:
            async with self._client() as client:
                response = await client.get(url, headers=self.config.auth_headers())
        except httpx.HTTPError as e:
            raise ApiError(f"Artifact download failed: {e}") from e
        if not response.is_success:
            raise ApiError(f"Artifact download failed: {response.status_code}", status=response.status_code)
        return response.content


__all__ = ["ApiClient", "extract_error_detail"]
