"""Configuration management for ngrokctl."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

DEFAULT_EXECUTABLE = "ngrok"
DEFAULT_API_URL = "http://127.0.0.1:4040"


class Protocol(str, Enum):
    """Tunnel protocols ngrokctl knows how to request."""

    HTTP = "http"


class TunnelConfig(BaseModel):
    """Immutable configuration for one ngrok session."""

    model_config = ConfigDict(frozen=True)

    executable: str = Field(
        default=DEFAULT_EXECUTABLE,
        description="ngrok executable name or path",
    )
    protocol: Protocol = Field(description="Tunnel protocol")
    port: int = Field(ge=1, le=65535, description="Local port to expose")
    api_url: str = Field(
        default=DEFAULT_API_URL,
        description="Base URL of ngrok's local status API",
    )
    startup_timeout: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=0.25, gt=0)
    request_timeout: float = Field(default=2.0, gt=0)
    shutdown_timeout: float = Field(default=5.0, gt=0)

    @field_validator("executable")
    def validate_executable(cls, v: str) -> str:
        """Reject blank executable names."""
        if not v.strip():
            raise ValueError("executable must not be empty")
        return v

    @field_validator("api_url")
    def validate_api_url(cls, v: str) -> str:
        """Status API must be reached over plain HTTP(S)."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported status API URL: {v}")
        return v.rstrip("/")

    def command(self, executable_path: str) -> list[str]:
        """Argument list used to spawn ngrok."""
        return [executable_path, self.protocol.value, str(self.port)]


class Settings(BaseSettings):
    """Defaults for every session, read from the environment or a file."""

    model_config = SettingsConfigDict(
        env_prefix="NGROKCTL_",
        env_file=".env",
        extra="ignore",
    )

    executable: str = Field(
        default=DEFAULT_EXECUTABLE,
        description="ngrok executable name or path",
    )
    api_url: str = Field(
        default=DEFAULT_API_URL,
        description="ngrok status API base URL",
    )
    startup_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for the status API to report the tunnel",
    )
    poll_interval: float = Field(
        default=0.25,
        gt=0,
        description="Seconds between status API polls",
    )
    request_timeout: float = Field(
        default=2.0,
        gt=0,
        description="Timeout for a single status API request",
    )
    shutdown_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for ngrok to exit before killing it",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> Settings:
        """Load settings from a YAML file."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping")

        # Support environment variable substitution
        data = cls._substitute_env_vars(data)

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings in {path}: {e}") from e

    @staticmethod
    def _substitute_env_vars(data: Any) -> Any:
        """Recursively substitute environment variables."""
        if isinstance(data, str):
            # Check for ${VAR_NAME} pattern
            if data.startswith("${") and data.endswith("}"):
                var_name = data[2:-1]
                return os.environ.get(var_name, data)
            return data
        elif isinstance(data, dict):
            return {
                k: Settings._substitute_env_vars(v) for k, v in data.items()
            }
        elif isinstance(data, list):
            return [Settings._substitute_env_vars(item) for item in data]
        return data

    def tunnel_defaults(self) -> dict[str, Any]:
        """Settings that seed a TunnelConfig."""
        return self.model_dump(exclude={"log_level"})
