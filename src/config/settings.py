"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

import httpx
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/relay.db",
        description="SQLAlchemy connection string for call session records.",
    )
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # Control plane
    control_plane: Literal["ari", "webhook"] = Field(
        default="ari",
        description="Source of call-lifecycle events.",
    )
    control_plane_reconnect_delay_seconds: float = Field(default=5.0, gt=0.0)
    call_pending_ttl_seconds: float = Field(
        default=120.0,
        gt=0.0,
        description="How long an announced call waits for its media stream before it is forgotten.",
    )

    # Asterisk ARI
    asterisk_ari_url: str = Field(
        default="http://asterisk:8088/ari",
        description="Base URL for Asterisk ARI, e.g. http://localhost:8088/ari",
    )
    asterisk_ari_username: str | None = Field(default=None)
    asterisk_ari_password: str | None = Field(default=None)
    asterisk_stasis_app: str = Field(
        default="care-relay",
        description="ARI stasis application name used by the dialplan.",
    )
    asterisk_media_connection: str = Field(
        default="relay_media",
        description="websocket_client.conf connection Asterisk dials for external media.",
    )
    asterisk_media_format: str = Field(default="slin")

    # Inbound media server (HTTP + WebSocket)
    media_server_host: str = Field(default="0.0.0.0")
    media_server_port: int = Field(default=8080, description="Listening port for /stream and HTTP.")
    media_sample_rate: int = Field(default=8000, gt=0, description="Sample rate of relayed PCM.")
    media_sample_width: int = Field(default=2, ge=1, le=4, description="Bytes per sample.")
    media_channels: int = Field(default=1, ge=1)

    # Speech endpoint
    speech_endpoint_url: str = Field(description="WebSocket URL of the streaming speech service.")
    speech_endpoint_api_key: str | None = Field(default=None)
    speech_voice: str = Field(default="alloy", description="Voice-style tag sent on connect.")
    speech_persona_prompt: str = Field(default="receptionist.txt")
    speech_connect_timeout_seconds: float = Field(default=10.0, gt=0.0)
    speech_preconnect_max_frames: int = Field(
        default=50,
        ge=0,
        description="Frames held while the speech connection opens; 0 drops them.",
    )

    default_hospital_context: str = Field(default="default")

    # Recordings / blob storage
    recordings_backend: Literal["local", "http"] = Field(default="local")
    recordings_dir: Path = Field(default=Path("./data/recordings"))
    storage_url: str | None = Field(default=None, description="Object storage base URL.")
    storage_api_key: str | None = Field(default=None)
    storage_bucket: str = Field(default="call-recordings")

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value

    @field_validator("storage_url")
    @classmethod
    def check_storage_url(cls, value: str | None) -> str | None:
        if not value:
            return value
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"STORAGE_URL is not a valid URL: {exc}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError("STORAGE_URL must be an absolute http(s) URL")
        return value

    @model_validator(mode="after")
    def check_required_credentials(self) -> Settings:
        if self.control_plane == "ari" and (
            not self.asterisk_ari_username or not self.asterisk_ari_password
        ):
            raise ValueError("ASTERISK_ARI_USERNAME/PASSWORD not configured")
        if self.recordings_backend == "http" and (not self.storage_url or not self.storage_api_key):
            raise ValueError("STORAGE_URL/STORAGE_API_KEY are required for http recordings")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
