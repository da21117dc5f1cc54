"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for the code runner, loaded from
environment variables with sensible defaults.

Usage:
    from coderunner.config import get_settings
    settings = get_settings()
    timeout = settings.sandbox.timeout_sec
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes")
    return bool(v)


class SandboxSettings(BaseSettings):
    """Resource envelope and time limits applied to every container."""

    model_config = SettingsConfigDict(env_prefix="SANDBOX_", extra="ignore")

    enabled: bool = Field(default=True, description="Enable code execution")
    memory_limit_mb: int = Field(default=128, ge=6, description="Memory ceiling (no extra swap)")
    cpu_shares: int = Field(default=512, ge=2, description="Relative CPU weight (1024 = 1 CPU)")
    pids_limit: int = Field(default=50, ge=1, description="Process count ceiling")
    timeout_sec: float = Field(default=10.0, ge=0, description="Run phase limit, 0 disables")
    compile_timeout_sec: float = Field(default=30.0, ge=0, description="Compile phase limit, 0 disables")
    workdir: str = Field(default="/app", description="Directory the source is uploaded to")
    idle_command: str = Field(default="/bin/sh", description="Keeps the container alive between execs")
    max_output_bytes: int = Field(
        default=1024 * 1024, ge=1024, description="Bytes read from a program before its output is cut off"
    )
    execution_log_size: int = Field(default=1000, ge=1, description="Recent executions kept in memory")

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v):
        return _parse_bool(v)

    @property
    def memory_limit_bytes(self) -> int:
        return self.memory_limit_mb * 1024 * 1024


class ImageSettings(BaseSettings):
    """Container image per language."""

    model_config = SettingsConfigDict(env_prefix="IMAGE_", extra="ignore")

    javascript: str = Field(default="coderunner-js:latest")
    python: str = Field(default="coderunner-python:latest")
    c: str = Field(default="coderunner-c:latest")
    cpp: str = Field(default="coderunner-cpp:latest")
    java: str = Field(default="coderunner-java:latest")

    def as_mapping(self) -> dict[str, str]:
        return self.model_dump()


class DockerSettings(BaseSettings):
    """Docker daemon connection configuration."""

    model_config = SettingsConfigDict(env_prefix="DOCKER_", extra="ignore")

    base_url: str = Field(default="", description="Daemon URL; empty means DOCKER_HOST or the local socket")
    timeout: int = Field(default=60, description="Control API call timeout in seconds")
    max_pool_size: int = Field(default=10, description="Maximum pooled daemon connections")


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="*",
        validation_alias="CORS_ORIGINS",
    )
    origins_regex: str = Field(
        default="",
        validation_alias="CORS_ORIGINS_REGEX",
        description="Regex pattern for origins",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"] and not self.origins_regex


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    websocket: bool = Field(default=False, alias="ws_debug")
    sandbox: bool = Field(default=False, alias="sandbox_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.

    Usage:
        settings = Settings()
        # or use cached singleton:
        settings = get_settings()
    """

    def __init__(self) -> None:
        self.sandbox = SandboxSettings()
        self.images = ImageSettings()
        self.docker = DockerSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
