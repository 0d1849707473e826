"""Configuration Management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Plugin, host and relay settings from environment."""

    model_config = SettingsConfigDict(
        env_prefix="PLUGVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    # Relay server
    relay_host: str = Field(default="0.0.0.0", description="Relay bind address")
    relay_port: int = Field(default=3000, gt=0, lt=65536, description="Relay port")
    relay_url: str = Field(default="ws://localhost:3000", description="Relay WebSocket URL")
    relay_http_url: str = Field(default="http://localhost:3000", description="Relay HTTP URL")

    # RPC
    rpc_timeout: float = Field(default=30.0, gt=0, description="Request timeout (seconds)")
    protocol_version: int = Field(default=1, gt=0, description="Protocol version")
    update_mode: Literal["incremental", "full"] = Field(
        default="incremental", description="Tree update mode"
    )

    # Reconnection
    reconnect_attempts: int = Field(default=5, ge=1, description="Connect attempts")
    reconnect_base_delay: float = Field(default=0.5, ge=0.0, description="Backoff base delay")

    # Frame limits
    max_frame_size: int = Field(default=4 * 1024 * 1024, gt=0, description="Max frame bytes")
    max_json_depth: int = Field(default=256, gt=0, description="Max JSON nesting depth")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    json_logs: bool = Field(default=False, description="Use JSON log format")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
