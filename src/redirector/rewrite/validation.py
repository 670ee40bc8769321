"""Redirector Configuration Validation.

Checks every constraint the matching engine relies on. Problems are
collected rather than raised, so an operator sees the complete list and
can fix everything before restarting.

Checks:
- Origins are lowercase ASCII FQDNs (punycode if needed), optionally with a port
- Rule codes are redirects (300-399)
- Replacements are absolute http:// or https:// URLs
- Replacement group references exist in the rule's pattern
- Default response codes are 0 (close connection) or 200-599
- No origin is a subdomain of an origin that has match_subdomains set
- The listen address is empty, :port or host:port

Example:
    configuration, problems = load_configuration("config.json")
    for problem in problems:
        print(problem)
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from redirector.core.config import load_config_from_file, parse_bind
from redirector.rewrite.config import ConfigurationError, parse_configuration
from redirector.rewrite.rules import (
    CLOSE_CONNECTION,
    Configuration,
    DefaultResponse,
    Domain,
    Rule,
    group_index,
)

_ORIGIN_PATTERN = re.compile(
    r"(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+"
    r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
    r"(?::[0-9]+)?"
)

_GROUP_REFERENCE = re.compile(r"\$(?:\{(\w+)\}|(\w+))", re.ASCII)

REDIRECT_CODES = range(300, 400)
RESPONSE_CODES = range(200, 600)


def validate_origin(origin: str) -> list[str]:
    """Check that an origin key is a valid lowercase FQDN with optional port.

    Examples:
        >>> validate_origin("xn--qwc.example.com:1234")
        []
        >>> len(validate_origin("Example.com"))
        1
    """
    if _ORIGIN_PATTERN.fullmatch(origin):
        return []
    return [
        f"Invalid domain {origin}. Keys must be valid fully qualified DNS domain names in "
        "ASCII lowercase (in punycode if required), optionally including a port number."
    ]


def group_references(replacement: str) -> list[str]:
    """List the group names referenced by a replacement template.

    Literal ``$$`` sequences are removed first, so ``$$1`` is never
    treated as a reference to group 1.

    Examples:
        >>> group_references("https://example.com/$1/${name}")
        ['1', 'name']
        >>> group_references("https://example.com/$$1")
        []
    """
    stripped = replacement.replace("$$", "")
    return [braced or bare for braced, bare in _GROUP_REFERENCE.findall(stripped)]


def validate_rule(origin: str, index: int, rule: Rule) -> list[str]:
    """Check a single rewrite rule.

    Args:
        origin: Domain the rule belongs to.
        index: Position of the rule within the domain.
        rule: The compiled rule.

    Returns:
        One problem per failed check, and one per dangling group reference.
    """
    problems: list[str] = []

    if rule.code not in REDIRECT_CODES:
        problems.append(
            f"Invalid redirect code {rule.code} for domain {origin} at index {index}. "
            "Code must be between 300 and 399 inclusive."
        )

    if not rule.replacement.startswith(("http://", "https://")):
        problems.append(
            f"Invalid replacement for domain {origin} at index {index}. "
            "Destination must begin with 'http://' or 'https://'."
        )

    for name in group_references(rule.replacement):
        if name.isdigit():
            if group_index(name, rule.regexp.groups) is None:
                problems.append(
                    f"Invalid replacement '{rule.replacement}' for domain {origin} at index "
                    f"{index}: replacement group ${name} does not exist"
                )
        elif name not in rule.regexp.groupindex:
            problems.append(
                f"Invalid replacement '{rule.replacement}' for domain {origin} at index "
                f"{index}: named group '{name}' does not exist"
            )

    return problems


def validate_default_response(
    default_response: DefaultResponse | None,
    origin: str | None = None,
) -> list[str]:
    """Check a default response code.

    A missing default response is valid: a domain without one inherits the
    global default.
    """
    if default_response is None:
        return []

    code = default_response.code
    if code == CLOSE_CONNECTION or code in RESPONSE_CODES:
        return []

    where = f" for domain {origin}" if origin is not None else ""
    return [
        f"Invalid default response code {code}{where}. Code must be between 200 and 599 "
        "inclusive, or 0 to close the connection immediately."
    ]


def validate_domain(origin: str, domain: Domain) -> list[str]:
    """Check an origin key, its rules and its default response."""
    problems = validate_origin(origin)

    for index, rule in enumerate(domain.rewrite_rules):
        problems.extend(validate_rule(origin, index, rule))

    problems.extend(validate_default_response(domain.default_response, origin))
    return problems


def find_shadowed_subdomains(domains: Mapping[str, Domain]) -> list[str]:
    """Find origins made unreachable by a parent with match_subdomains set.

    This is a cross-domain check, so it runs over all origins after the
    per-domain pass.
    """
    problems: list[str] = []

    for origin, domain in domains.items():
        if not domain.match_subdomains:
            continue
        suffix = "." + origin.lower()
        for candidate in domains:
            if candidate.lower().endswith(suffix):
                problems.append(
                    f"Domain {origin} has match_subdomains set to true, which makes the "
                    f"definition of subdomain {candidate} prohibited"
                )

    return problems


def validate_listen_address(listen_address: str) -> list[str]:
    """Check that the listen address can be bound."""
    try:
        parse_bind(listen_address)
    except ValueError as e:
        return [f"listen_address: {e}"]
    return []


def validate(configuration: Configuration) -> list[str]:
    """Run every semantic check over a runtime configuration.

    Problems are ordered by domain in source order, then subdomain
    shadowing, then the global default response, then the listen address.
    """
    problems: list[str] = []

    for origin, domain in configuration.domains.items():
        problems.extend(validate_domain(origin, domain))

    problems.extend(find_shadowed_subdomains(configuration.domains))
    problems.extend(validate_default_response(configuration.default_response))
    problems.extend(validate_listen_address(configuration.listen_address))
    return problems


def validate_configuration(data: Mapping[str, Any]) -> tuple[Configuration, list[str]]:
    """Build a Configuration from decoded data and validate it.

    Args:
        data: Mapping decoded from the configuration source.

    Returns:
        The configuration and the list of problems found. An empty list
        means the configuration is safe to serve.

    Raises:
        ConfigurationError: If the data cannot be decoded or a pattern
            does not compile.
    """
    configuration = parse_configuration(data).to_configuration()
    return configuration, validate(configuration)


def load_configuration(path: str | Path) -> tuple[Configuration, list[str]]:
    """Load, decode and validate a configuration file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or
            structurally invalid.
    """
    try:
        data = load_config_from_file(path)
    except FileNotFoundError as e:
        raise ConfigurationError(str(e)) from e
    except ValueError as e:
        raise ConfigurationError(f"Error parsing config file: {e}") from e

    return validate_configuration(data)
