"""Redirector Matching & Rewrite Engine.

Decides what to do with a single request given a validated Configuration.
The decision is pure: no I/O, no locks, no shared mutable state. Logging
and metrics are left to the caller, which receives everything it needs on
the returned Outcome.

Decision order:
1. Find the domain whose origin matches the request host
2. Return a Redirect for the first rule (in declaration order) that matches
3. Otherwise use the domain's default response, if it has one
4. Otherwise use the global default response
5. A default response with code 0, or no default at all, means Close

Example:
    outcome = decide(configuration, RedirectRequest(host="example.com", target="/welcome"))

    if isinstance(outcome, Redirect):
        print(f"{outcome.code} -> {outcome.location}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from redirector.rewrite.rules import Configuration, DefaultResponse, Domain

DEFAULT_LABEL = "default"
"""Label used for the domain and rule index when a default response applies."""


class OutcomeKind(Enum):
    """Terminal states of a single request evaluation."""

    MATCHED = "matched"
    FIXED_DEFAULT = "fixed_default"
    CLOSE = "close"


@dataclass(frozen=True)
class RedirectRequest:
    """The parts of an HTTP request the engine looks at.

    Only host, target and method affect the decision. The remaining
    fields are carried through for the log payload.
    """

    host: str
    """Request host as received, optionally with a port."""

    target: str
    """Request target: path plus query string, without scheme or host."""

    method: str = "GET"
    remote_addr: str = ""
    """Client address, already resolved by the caller."""

    user_agent: str = ""
    referer: str = ""


@dataclass(frozen=True)
class Outcome:
    """Result of evaluating one request.

    Every outcome carries the facts needed for logging and metrics.
    """

    request: RedirectRequest
    domain: str = DEFAULT_LABEL
    rule_index: str = DEFAULT_LABEL
    code: int = 0
    log_hits: bool = False

    kind: OutcomeKind = field(init=False, default=OutcomeKind.CLOSE)

    def metric_labels(self) -> dict[str, str]:
        """Labels identifying this outcome for request metrics."""
        return {
            "domain": self.domain,
            "rule_index": self.rule_index,
            "method": self.request.method,
            "code": str(self.code),
        }

    def log_fields(self) -> dict[str, Any]:
        """Structured fields describing this outcome for a hit log entry."""
        return {
            "remote_addr": self.request.remote_addr,
            "method": self.request.method,
            "host": self.request.host,
            "uri": self.request.target,
            "user_agent": self.request.user_agent,
            "referer": self.request.referer,
            "code": self.code,
            "domain": self.domain,
            "rule_index": self.rule_index,
        }


@dataclass(frozen=True)
class Redirect(Outcome):
    """Redirect to a rewritten URL."""

    location: str = ""

    kind: OutcomeKind = field(init=False, default=OutcomeKind.MATCHED)

    def log_fields(self) -> dict[str, Any]:
        fields = super().log_fields()
        fields["location"] = self.location
        return fields


@dataclass(frozen=True)
class FixedResponse(Outcome):
    """Write a canned response verbatim."""

    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    kind: OutcomeKind = field(init=False, default=OutcomeKind.FIXED_DEFAULT)


@dataclass(frozen=True)
class Close(Outcome):
    """Close the connection without writing any response."""

    kind: OutcomeKind = field(init=False, default=OutcomeKind.CLOSE)


def find_domain(configuration: Configuration, host: str) -> tuple[str, Domain] | None:
    """Find the domain configured for a request host.

    Domains are checked in configuration order and the first match is
    returned. Validation rejects configurations where more than one domain
    could match the same host.

    Args:
        configuration: Validated configuration.
        host: Request host, optionally with a port.

    Returns:
        Tuple of (origin, domain) if found, None otherwise.
    """
    for origin, domain in configuration.domains.items():
        if domain.matches_host(origin, host):
            return origin, domain
    return None


def decide(configuration: Configuration, request: RedirectRequest) -> Outcome:
    """Decide the outcome for a single request.

    Never raises for any request: every request ends in a Redirect, a
    FixedResponse or a Close.

    Args:
        configuration: Validated configuration.
        request: The request to evaluate.

    Returns:
        The outcome, with observability fields filled in.
    """
    default_response = configuration.default_response
    source = DEFAULT_LABEL

    found = find_domain(configuration, request.host)
    if found is not None:
        origin, domain = found
        for index, rule in enumerate(domain.rewrite_rules):
            location = rule.rewrite(request.target)
            if location is None:
                continue
            return Redirect(
                request=request,
                domain=origin,
                rule_index=str(index),
                code=rule.code,
                log_hits=rule.log_hits,
                location=location,
            )

        if domain.default_response is not None:
            default_response = domain.default_response
            source = origin

    return _resolve_default(default_response, source, request)


def _resolve_default(
    default_response: DefaultResponse | None,
    source: str,
    request: RedirectRequest,
) -> Outcome:
    """Turn the chosen default response into a FixedResponse or Close."""
    if default_response is None:
        return Close(request=request, domain=source)

    if default_response.closes_connection:
        return Close(
            request=request,
            domain=source,
            log_hits=default_response.log_hits,
        )

    return FixedResponse(
        request=request,
        domain=source,
        code=default_response.code,
        log_hits=default_response.log_hits,
        headers=dict(default_response.headers),
        body=default_response.body,
    )
