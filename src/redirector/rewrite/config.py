"""Redirector Rewrite Configuration Models.

User-facing configuration shapes, decoded from JSON/YAML/TOML before any
pattern is compiled. Unknown fields are rejected so that a typo in the
configuration file is reported instead of silently ignored.

Example JSON configuration:
    {
      "listen_address": ":8080",
      "client_ip_header": "X-Real-Ip",
      "default_response": {
        "code": 421,
        "headers": {"Content-Type": "text/plain"},
        "body": "421 Misdirected Request\\n",
        "log_hits": true
      },
      "domains": {
        "example.com": {
          "match_subdomains": true,
          "rewrites": [
            {
              "regexp": "^(.*)$",
              "replacement": "https://www.example.com$1",
              "code": 301,
              "log_hits": true
            }
          ]
        }
      }
    }

Decoding happens in two stages: ``parse_configuration()`` produces these
primitive models, then ``ConfigurationConfig.to_configuration()`` compiles
patterns and builds the immutable runtime types from
``redirector.rewrite.rules``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, ValidationError

from redirector.rewrite.rules import Configuration, DefaultResponse, Domain, Rule


class ConfigurationError(ValueError):
    """The configuration source cannot be turned into a Configuration.

    Raised for unparseable input, unknown or mistyped fields and patterns
    that fail to compile. No partial configuration is ever returned
    alongside this error.
    """


_STRICT = ConfigDict(extra="forbid", frozen=True)


class RuleConfig(BaseModel):
    """Configuration for a single rewrite rule.

    Mirrors Rule field for field, with the pattern kept as a string.
    """

    model_config = _STRICT

    regexp: StrictStr = ""
    replacement: StrictStr = ""
    code: StrictInt = 0
    log_hits: StrictBool = False

    def to_rule(self, origin: str = "", index: int = 0) -> Rule:
        """Compile the pattern and convert to a Rule.

        Args:
            origin: Domain the rule belongs to, for error messages.
            index: Position of the rule within its domain.

        Raises:
            ConfigurationError: If the pattern does not compile.
        """
        try:
            compiled = re.compile(self.regexp)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid regexp {self.regexp!r} for domain {origin} at index {index}: {e}"
            ) from e

        return Rule(
            regexp=compiled,
            replacement=self.replacement,
            code=self.code,
            log_hits=self.log_hits,
        )


class DefaultResponseConfig(BaseModel):
    """Configuration for a fixed fallback response."""

    model_config = _STRICT

    code: StrictInt = 0
    """HTTP status, or 0 to close the connection without a response."""

    headers: dict[StrictStr, StrictStr] = Field(default_factory=dict)
    body: StrictStr = ""
    log_hits: StrictBool = False

    def to_default_response(self) -> DefaultResponse:
        """Convert to a DefaultResponse instance."""
        return DefaultResponse(
            code=self.code,
            headers=MappingProxyType(dict(self.headers)),
            body=self.body,
            log_hits=self.log_hits,
        )


class DomainConfig(BaseModel):
    """Configuration for one origin."""

    model_config = _STRICT

    rewrite_rules: list[RuleConfig] = Field(default_factory=list, alias="rewrites")
    default_response: DefaultResponseConfig | None = None
    match_subdomains: StrictBool = False

    def to_domain(self, origin: str = "") -> Domain:
        """Convert to a Domain instance, compiling every rule."""
        default_response = None
        if self.default_response is not None:
            default_response = self.default_response.to_default_response()

        return Domain(
            rewrite_rules=tuple(
                rule.to_rule(origin, index) for index, rule in enumerate(self.rewrite_rules)
            ),
            default_response=default_response,
            match_subdomains=self.match_subdomains,
        )


class ConfigurationConfig(BaseModel):
    """Top-level configuration source."""

    model_config = _STRICT

    listen_address: StrictStr = ""
    default_response: DefaultResponseConfig | None = None
    domains: dict[StrictStr, DomainConfig] = Field(default_factory=dict)
    client_ip_header: StrictStr | None = None
    """Trusted header carrying the real client address, if any."""

    def to_configuration(self) -> Configuration:
        """Create the immutable runtime Configuration.

        Raises:
            ConfigurationError: If any rule pattern fails to compile.
        """
        default_response = None
        if self.default_response is not None:
            default_response = self.default_response.to_default_response()

        domains = {origin: domain.to_domain(origin) for origin, domain in self.domains.items()}

        return Configuration(
            listen_address=self.listen_address,
            default_response=default_response,
            domains=MappingProxyType(domains),
            client_ip_header=self.client_ip_header or None,
        )


def _format_error_location(location: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in location) or "<root>"


def parse_configuration(data: Mapping[str, Any]) -> ConfigurationConfig:
    """Decode a configuration mapping into primitive models.

    Args:
        data: Mapping decoded from the configuration file.

    Returns:
        ConfigurationConfig instance.

    Raises:
        ConfigurationError: If the data is not a mapping, has unknown
            fields or has values of the wrong type.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"Error parsing config: expected an object, got {type(data).__name__}"
        )

    try:
        return ConfigurationConfig.model_validate(dict(data))
    except ValidationError as e:
        details = "; ".join(
            f"{_format_error_location(error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise ConfigurationError(f"Error parsing config: {details}") from e
