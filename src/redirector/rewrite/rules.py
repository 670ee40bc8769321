"""Redirector Rewrite Rules.

Immutable runtime types describing which hosts the gateway answers for and
how request targets are rewritten into redirect destinations.

Types:
- Rule: compiled pattern, replacement template and redirect code
- Domain: ordered rules plus an optional domain-level default response
- DefaultResponse: fixed fallback response, or code 0 to close the connection
- Configuration: the validated snapshot shared by every request

Replacement templates use ``$`` references:
- ``$1`` / ``${1}``: numbered capture group (``$0`` is the whole match)
- ``$name`` / ``${name}``: named capture group
- ``$$``: a literal ``$``

Example:
    >>> rule = Rule(
    ...     regexp=re.compile(r"/a(/.*)"),
    ...     replacement="https://a.example.com$1",
    ...     code=303,
    ... )
    >>> rule.rewrite("/a/farewell")
    'https://a.example.com/farewell'
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

CLOSE_CONNECTION = 0
"""Default response code meaning "close the connection without a response"."""

# $$ | ${name} | $name, with ASCII-only names
_TEMPLATE_TOKEN = re.compile(r"\$(?:(\$)|\{(\w+)\}|(\w+))", re.ASCII)


def _read_only_mapping() -> Mapping:
    return MappingProxyType({})


def group_index(name: str, groups: int) -> int | None:
    """Resolve a numeric group reference against a pattern's group count.

    Args:
        name: Reference name made of ASCII digits.
        groups: Number of capture groups in the pattern.

    Returns:
        The group index, or None if the pattern has no such group.

    Example:
        >>> group_index("01", 2)
        1
        >>> group_index("3", 2) is None
        True
    """
    digits = name.lstrip("0") or "0"
    # more digits than the group count has can never name a group
    if len(digits) > len(str(groups)):
        return None
    index = int(digits)
    return index if index <= groups else None


def expand_template(match: re.Match[str], template: str) -> str:
    """Expand a ``$``-style replacement template against a match.

    References to groups that do not exist or did not participate in the
    match expand to the empty string. A ``$`` that does not start a valid
    reference is copied as-is.

    Args:
        match: The match supplying group values.
        template: Replacement template.

    Returns:
        The expanded string.
    """
    pieces: list[str] = []
    position = 0
    for token in _TEMPLATE_TOKEN.finditer(template):
        pieces.append(template[position : token.start()])
        position = token.end()

        dollar, braced, bare = token.groups()
        if dollar is not None:
            pieces.append("$")
            continue

        name = braced if braced is not None else bare
        pieces.append(_group_value(match, name))

    pieces.append(template[position:])
    return "".join(pieces)


def _group_value(match: re.Match[str], name: str) -> str:
    if name.isdigit():
        index = group_index(name, match.re.groups)
        if index is None:
            return ""
        return match.group(index) or ""
    if name not in match.re.groupindex:
        return ""
    return match.group(name) or ""


def replace_all(pattern: re.Pattern[str], subject: str, template: str) -> str:
    """Replace every match of pattern in subject with the expanded template.

    Empty matches directly after a previous match are left alone, so
    ``(.*)`` against ``/welcome`` substitutes once rather than also
    substituting the empty string at the end. After an empty match the
    search resumes one character later, so no match may start where an
    empty match already did: ``|a`` against ``a`` gives ``-a-``.
    """
    pieces: list[str] = []
    last_end = 0
    search_pos = 0
    while search_pos <= len(subject):
        match = pattern.search(subject, search_pos)
        if match is None:
            break

        start, end = match.span()
        pieces.append(subject[last_end:start])
        if end > last_end or start == 0:
            pieces.append(expand_template(match, template))
        last_end = end
        search_pos = max(end, search_pos + 1)

    pieces.append(subject[last_end:])
    return "".join(pieces)


@dataclass(frozen=True)
class Rule:
    """A single rewrite rule for a domain.

    Field names and order mirror RuleConfig, which holds the pattern as a
    plain string before compilation.
    """

    regexp: re.Pattern[str]
    replacement: str = ""
    code: int = 0
    log_hits: bool = False

    def matches(self, target: str) -> bool:
        """Check if the pattern occurs anywhere in the request target."""
        return self.regexp.search(target) is not None

    def rewrite(self, target: str) -> str | None:
        """Compute the redirect destination for a request target.

        Returns:
            The destination URL, or None if the rule does not match.
        """
        if not self.matches(target):
            return None
        return replace_all(self.regexp, target, self.replacement)


@dataclass(frozen=True)
class DefaultResponse:
    """Fixed response used when no rule matches."""

    code: int = CLOSE_CONNECTION
    headers: Mapping[str, str] = field(default_factory=_read_only_mapping)
    body: str = ""
    log_hits: bool = False

    @property
    def closes_connection(self) -> bool:
        """True if this response means closing the connection unanswered."""
        return self.code == CLOSE_CONNECTION


@dataclass(frozen=True)
class Domain:
    """Rewrite rules and fallback behaviour for one origin."""

    rewrite_rules: tuple[Rule, ...] = ()
    default_response: DefaultResponse | None = None
    match_subdomains: bool = False

    def matches_host(self, origin: str, host: str) -> bool:
        """Check if a request host belongs to this domain.

        Args:
            origin: The configured origin key for this domain.
            host: The request host, optionally with a port.

        Returns:
            True for a case-insensitive exact match, or a strict subdomain
            when match_subdomains is set.

        Example:
            >>> Domain(match_subdomains=True).matches_host("example.com", "WWW.example.com")
            True
            >>> Domain().matches_host("example.com", "www.example.com")
            False
        """
        host = host.lower()
        origin = origin.lower()
        if host == origin:
            return True
        return self.match_subdomains and host.endswith("." + origin)


@dataclass(frozen=True)
class Configuration:
    """Validated gateway configuration.

    Built once at startup and shared read-only by all requests.
    """

    listen_address: str = ""
    default_response: DefaultResponse | None = None
    domains: Mapping[str, Domain] = field(default_factory=_read_only_mapping)
    client_ip_header: str | None = None
