"""Client configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, NonNegativeInt, PositiveFloat, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/zremote/client.yaml"),
    Path("/etc/zremote/client.yml"),
    Path("./config/zremote.yaml"),
    Path("./config/zremote.yml"),
)


class RemoteSettings(BaseSettings):
    """Validated settings for the remote-api client."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="ZREMOTE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Endpoint
    locator: str = Field(
        default="ws/127.0.0.1:10000",
        description="Remote-api endpoint, either <scheme>/<host>:<port> or a ws:// / wss:// URL.",
    )

    # Link
    connect_retry_timeout_ms: PositiveInt = Field(
        default=2000,
        description="Budget of the first connection attempt; doubled after each failure.",
    )
    connect_max_retries: PositiveInt = Field(
        default=10,
        description="Connection attempts before giving up.",
    )
    write_buffer_high_water_bytes: PositiveInt = Field(
        default=2 * 1024 * 1024,
        description="Outbound buffer size above which sends wait for the socket to drain.",
    )
    send_poll_interval_ms: PositiveInt = Field(
        default=10,
        description="Polling interval while waiting for the outbound buffer to drain.",
    )

    # Session
    session_open_timeout_seconds: PositiveFloat = Field(
        default=10.0,
        description="Seconds to wait for open.ack after the socket opens.",
    )
    default_channel_capacity: NonNegativeInt = Field(
        default=256,
        description="Capacity of the FIFO channel used when no handler is supplied.",
    )
    default_query_timeout_ms: NonNegativeInt = Field(
        default=10_000,
        description="Broker-side timeout forwarded with get/liveliness queries.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the command line client.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[RemoteSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[RemoteSettings] | None = None) -> Dict[str, Any]:
        for path in RemoteSettings._resolve_candidate_paths():
            data = RemoteSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("ZREMOTE_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read client config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid client config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Client config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> RemoteSettings:
    """Return memoized client settings."""

    return RemoteSettings()
