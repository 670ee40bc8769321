"""Core."""

from .config import ServerConfig, load_config_from_file, parse_bind

__all__ = [
    "ServerConfig",
    "load_config_from_file",
    "parse_bind",
]
