"""Application configuration settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="CLIPROXY_LOG_")

    level: str = Field(default="INFO", description="Log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    json_format: bool = Field(default=True, description="Use JSON log format")


class SupervisorSettings(BaseSettings):
    """Defaults for binary acquisition and proxy supervision."""

    model_config = SettingsConfigDict(
        env_prefix="CLIPROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cache_dir: Optional[str] = Field(
        default=None, description="Root directory for downloaded binaries"
    )
    default_version: str = Field(
        default="latest", description="Release used when none is requested"
    )
    release_base_url: str = Field(
        default="https://github.com/router-for-me/CLIProxyAPI/releases/download",
        description="Base URL of the release assets",
    )
    download_timeout: float = Field(
        default=300.0, description="Download timeout in seconds"
    )

    health_path: str = Field(
        default="/v1/models", description="Readiness probe path"
    )
    health_interval: float = Field(
        default=0.2, description="Seconds between readiness probes"
    )
    health_retries: int = Field(
        default=60, description="Readiness probe attempts"
    )
    stop_timeout: float = Field(
        default=5.0, description="Seconds to wait after SIGTERM before SIGKILL"
    )
    event_history_limit: int = Field(
        default=1000, ge=1, description="Events retained per supervised run"
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_cache_dir(self) -> Path:
        """Get the directory holding cached binaries."""
        if self.cache_dir and self.cache_dir.strip():
            return Path(self.cache_dir).expanduser().resolve() / "bin"
        return Path.cwd() / ".cliproxy-cache" / "bin"

    def get_log_file_path(self) -> Optional[Path]:
        """Get the log file path if configured."""
        if self.logging.file_path:
            return Path(self.logging.file_path)
        return None


def get_settings() -> SupervisorSettings:
    """Load settings from the environment."""
    return SupervisorSettings()
