"""
Centralized configuration for snesdev.

Uses Pydantic BaseSettings for environment variable integration
and validation. Request defaults (project name, install prefix, SDK
version) and the ambient settings (logging, telemetry) live here.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (SNESDEV_*)
3. .env file
4. Default values

Example:
    from snesdev.config import get_config

    config = get_config()
    print(config.default_install_prefix)  # From SNESDEV_DEFAULT_INSTALL_PREFIX or default

    # Override at runtime
    config = get_config(default_sdk_version="4.2.0")
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PRODUCT_NAME = "PVSnesLib"
DEFAULT_PROJECT_NAME = "my-snes-game"
DEFAULT_INSTALL_PREFIX = "~/.pvsneslib"
DEFAULT_SDK_VERSION = "4.3.0"


class SnesdevConfig(BaseSettings):
    """
    Central configuration for snesdev.

    All settings can be overridden via environment variables
    prefixed with SNESDEV_.

    Example:
        export SNESDEV_DEFAULT_INSTALL_PREFIX=/opt/pvsneslib
        export SNESDEV_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="SNESDEV_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service identification
    service_name: str = Field(
        default="snesdev",
        description="Service name for log and telemetry attribution",
    )

    # Request defaults
    default_project_name: str = Field(
        default=DEFAULT_PROJECT_NAME,
        description="Starter project name when the request does not give one",
    )
    default_install_prefix: str = Field(
        default=DEFAULT_INSTALL_PREFIX,
        description="SDK install prefix when the request does not give one",
    )
    default_sdk_version: str = Field(
        default=DEFAULT_SDK_VERSION,
        description="Latest known-good PVSnesLib release",
    )

    # State persistence
    state_dir_name: str = Field(
        default=".bootstrap-state",
        description="Directory (under the install prefix) holding run state records",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for snesdev",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Event log format (json for log shippers, text for console)",
    )

    # OTLP export
    otlp_endpoint: Optional[str] = Field(
        default=None,
        description="OTLP gRPC endpoint; telemetry export is disabled when unset",
    )

    @field_validator("default_install_prefix")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ and environment variables in paths."""
        return os.path.expanduser(os.path.expandvars(v))

    @field_validator("otlp_endpoint")
    @classmethod
    def validate_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Strip the protocol prefix; the exporter adds its own."""
        if not v:
            return None
        if v.startswith("http://"):
            v = v[7:]
        elif v.startswith("https://"):
            v = v[8:]
        return v

    def get_install_prefix(self) -> Path:
        return Path(self.default_install_prefix)


# Global singleton
_config: Optional[SnesdevConfig] = None


def get_config(**overrides) -> SnesdevConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        SnesdevConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = SnesdevConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
