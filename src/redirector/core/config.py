"""Process configuration with environment variable support.

All settings can be configured via environment variables with the REDIRECTOR_ prefix.
Example: REDIRECTOR_LOG_LEVEL=debug enables debug logging.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMATS = ("console", "json")
DEFAULT_HTTP_PORT = 80


def parse_bind(bind: str) -> tuple[str, int]:
    """Parse a bind address into host and port.

    Accepts ``host:port``, ``:port`` or a bare port. An empty address
    listens on every interface on port 80.

    Raises:
        ValueError: If the port is missing or not a number from 0 to 65535.

    Examples:
        >>> parse_bind(":8080")
        ('0.0.0.0', 8080)
        >>> parse_bind("127.0.0.1:9000")
        ('127.0.0.1', 9000)
    """
    if not bind:
        return "0.0.0.0", DEFAULT_HTTP_PORT

    host, _, port = bind.rpartition(":")
    if not (port.isascii() and port.isdigit()) or len(port) > 5 or int(port) > 65535:
        raise ValueError(
            f"Invalid bind address {bind!r}: expected host:port with a port from 0 to 65535"
        )
    return host.strip("[]") or "0.0.0.0", int(port)


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a JSON, YAML or TOML file.

    Args:
        path: Path to the configuration file (.json, .yaml, .yml or .toml).
            Files with any other suffix are read as JSON.

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors or invalid syntax
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            return json.loads(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e


class ServerConfig(BaseSettings):
    """Gateway process settings.

    The redirect rules themselves live in the file named by config_file;
    these settings only control how the process runs.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIRECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_file: str = Field(
        default="config.json",
        description="Path to the domain and rewrite rule configuration file.",
    )
    metrics_bind: str | None = Field(
        default=None,
        description="Bind address for /metrics and /health. Disabled when unset.",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warning or error.",
    )
    log_format: str = Field(
        default="console",
        description="Log output format: 'console' or 'json'.",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return value

    @field_validator("metrics_bind")
    @classmethod
    def _check_metrics_bind(cls, value: str | None) -> str | None:
        if value:
            parse_bind(value)
        return value or None
