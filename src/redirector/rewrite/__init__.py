"""Redirector Rewrite Module.

Configuration model, validation and the per-request decision engine for
host-based redirects.

Features:
- Exact and subdomain host matching, case-insensitive
- Ordered regex rewrite rules, first match wins
- Capture group substitution into redirect destinations
- Domain-level and global default responses
- Closing the connection without any response (code 0)
- Complete problem lists instead of fail-fast validation

Usage:
    from redirector.rewrite import RedirectRequest, decide, load_configuration

    configuration, problems = load_configuration("config.json")
    if problems:
        raise SystemExit("\\n".join(problems))

    outcome = decide(
        configuration,
        RedirectRequest(host="www.example.com", target="/welcome"),
    )
"""

from redirector.rewrite.config import (
    ConfigurationConfig,
    ConfigurationError,
    DefaultResponseConfig,
    DomainConfig,
    RuleConfig,
    parse_configuration,
)
from redirector.rewrite.engine import (
    DEFAULT_LABEL,
    Close,
    FixedResponse,
    Outcome,
    OutcomeKind,
    Redirect,
    RedirectRequest,
    decide,
    find_domain,
)
from redirector.rewrite.rules import (
    CLOSE_CONNECTION,
    Configuration,
    DefaultResponse,
    Domain,
    Rule,
    expand_template,
    replace_all,
)
from redirector.rewrite.validation import (
    find_shadowed_subdomains,
    group_references,
    load_configuration,
    validate,
    validate_configuration,
    validate_default_response,
    validate_domain,
    validate_listen_address,
    validate_origin,
    validate_rule,
)

__all__ = [
    # Engine
    "decide",
    "find_domain",
    "RedirectRequest",
    "Outcome",
    "OutcomeKind",
    "Redirect",
    "FixedResponse",
    "Close",
    "DEFAULT_LABEL",
    # Rules
    "Configuration",
    "Domain",
    "Rule",
    "DefaultResponse",
    "CLOSE_CONNECTION",
    "expand_template",
    "replace_all",
    # Configuration
    "ConfigurationConfig",
    "DomainConfig",
    "RuleConfig",
    "DefaultResponseConfig",
    "ConfigurationError",
    "parse_configuration",
    # Validation
    "validate",
    "validate_configuration",
    "load_configuration",
    "validate_origin",
    "validate_rule",
    "validate_domain",
    "validate_listen_address",
    "validate_default_response",
    "find_shadowed_subdomains",
    "group_references",
]
