"""
Configuration management for foldersense.

Settings live in ~/.config/foldersense/config.json. FOLDERSENSE_API_HOST and
FOLDERSENSE_API_KEY override the file (a project-root .env is loaded first).
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from dotenv import load_dotenv

CONFIG_PATH = Path.home() / ".config" / "foldersense" / "config.json"

# Auto-load .env from project root
_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class ApiConfig:
    """Remote assistant service endpoints."""

    api_host: str = ""
    api_key: str = ""
    summary_path: str = "/summaries"
    transcription_path: str = "/transcriptions"
    chat_path: str = "/chat"
    request_timeout: float = 120.0

    def build_url(self, path: str) -> str:
        """Join an endpoint path onto the configured host."""
        host = self.api_host.strip()
        base = host if host.endswith("/") else f"{host}/"
        return urljoin(base, path.strip().lstrip("/"))

    def auth_headers(self) -> dict[str, str]:
        """Bearer header when an API key is configured."""
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}


@dataclass
class StreamConfig:
    """Duplex stream and reveal pacing settings."""

    open_timeout: float = 8.0
    websocket_query_param: str = "websocket"
    websocket_query_value: str = "True"
    render_interval_ms: int = 120
    base_step: int = 2
    catchup_window: int = 20

    @property
    def tick_interval(self) -> float:
        """Reveal tick interval in seconds."""
        return max(24, self.render_interval_ms // 4) / 1000


@dataclass
class StorageConfig:
    """Names of the per-folder context files."""

    context_dir: str = "4senseContext"
    artifacts_dir: str = "artefacts"
    summary_file_name: str = "_summary.md"
    chat_log_prefix: str = "chat-"
    chat_state_file: str = "chat-state.json"
    snapshot_file: str = "snapshot.json"


@dataclass
class FolderSenseConfig:
    """Complete foldersense configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def chat_websocket_url(self) -> str:
        """Chat endpoint as a ws(s) URL carrying the streaming query flag."""
        parts = urlsplit(self.api.build_url(self.api.chat_path))
        scheme = "wss" if parts.scheme == "https" else "ws"
        query = parse_qsl(parts.query, keep_blank_values=True)
        if not any(key == self.stream.websocket_query_param for key, _ in query):
            query.append((self.stream.websocket_query_param, self.stream.websocket_query_value))
        return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

    @classmethod
    def load(cls, path: Path | None = None) -> "FolderSenseConfig":
        """Load configuration from file, then apply environment overrides."""
        if path is None:
            path = CONFIG_PATH

        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text())
            except (json.JSONDecodeError, OSError):
                # Use defaults on error
                data = {}
        if not isinstance(data, dict):
            data = {}

        # Backward compatibility: flat settings object with camelCase keys
        api_data = dict(data.get("api", {}))
        for legacy, current in (
            ("apiHost", "api_host"),
            ("apiKey", "api_key"),
            ("apiSummaryPath", "summary_path"),
            ("apiTranscriptionPath", "transcription_path"),
            ("apiChatPath", "chat_path"),
        ):
            if legacy in data and current not in api_data:
                api_data[current] = data[legacy]
        storage_data = dict(data.get("storage", {}))
        if "summaryFileName" in data and "summary_file_name" not in storage_data:
            storage_data["summary_file_name"] = data["summaryFileName"]

        config = cls(
            api=ApiConfig(**_filter_dataclass_fields(api_data, ApiConfig)),
            stream=StreamConfig(**_filter_dataclass_fields(data.get("stream", {}), StreamConfig)),
            storage=StorageConfig(**_filter_dataclass_fields(storage_data, StorageConfig)),
        )

        env_host = os.getenv("FOLDERSENSE_API_HOST")
        if env_host:
            config.api.api_host = env_host
        env_key = os.getenv("FOLDERSENSE_API_KEY")
        if env_key:
            config.api.api_key = env_key

        return config

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(
                {
                    "api": asdict(self.api),
                    "stream": asdict(self.stream),
                    "storage": asdict(self.storage),
                },
                f,
                indent=2,
            )


# Default configuration instance
default_config = FolderSenseConfig()
