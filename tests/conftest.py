"""Shared fixtures for redirector tests."""

from __future__ import annotations

import copy
from typing import Any

import pytest
import structlog

from redirector.rewrite import Configuration, validate_configuration

MISDIRECTED_BODY = (
    "421 Misdirected Request\n\n"
    "Target URI does not match an origin for which the server has been configured.\n"
)

BASE_CONFIG: dict[str, Any] = {
    "listen_address": ":8080",
    "default_response": {
        "code": 421,
        "headers": {
            "Connection": "close",
            "Content-Type": "text/plain",
        },
        "body": MISDIRECTED_BODY,
    },
    "domains": {},
}


def make_config_data(**overrides: Any) -> dict[str, Any]:
    """Return a fresh copy of the base configuration with overrides applied."""
    data = copy.deepcopy(BASE_CONFIG)
    data.update(copy.deepcopy(overrides))
    return data


def build_configuration(data: dict[str, Any]) -> Configuration:
    """Validate configuration data, failing the test on any problem."""
    configuration, problems = validate_configuration(data)
    assert problems == []
    return configuration


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
