"""Redirector server."""

from .gateway import (
    RedirectGateway,
    build_request,
    parse_bind,
    request_host,
    request_target,
    resolve_client_address,
)

__all__ = [
    "RedirectGateway",
    "build_request",
    "parse_bind",
    "request_host",
    "request_target",
    "resolve_client_address",
]
