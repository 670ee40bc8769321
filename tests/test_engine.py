"""Tests for the request decision engine."""

from __future__ import annotations

import pytest

from redirector.rewrite import (
    DEFAULT_LABEL,
    Close,
    Configuration,
    FixedResponse,
    OutcomeKind,
    Redirect,
    RedirectRequest,
    decide,
    find_domain,
)

from .conftest import MISDIRECTED_BODY, build_configuration, make_config_data

EXAMPLE_DOMAINS = {
    "example.com": {
        "rewrites": [
            {"regexp": "^/a/", "replacement": "https://a.example.com/", "code": 303},
            {"regexp": "/a(/.*)", "replacement": "https://a.example.com$1", "code": 301},
            {"regexp": "(.*)", "replacement": "https://www.example.com$1", "code": 301, "log_hits": True},
        ],
    },
    "example.net": {
        "match_subdomains": True,
        "rewrites": [
            {"regexp": "^/welcome$", "replacement": "https://www.example.com/welcome", "code": 302},
        ],
        "default_response": {
            "code": 410,
            "headers": {"Content-Type": "text/plain"},
            "body": "Gone.\n",
            "log_hits": True,
        },
    },
    "closed.example.org": {
        "default_response": {"code": 0, "log_hits": True},
    },
    "example.org:8080": {
        "rewrites": [
            {"regexp": "(.*)", "replacement": "https://www.example.org$1", "code": 308},
        ],
    },
}


@pytest.fixture
def configuration() -> Configuration:
    return build_configuration(make_config_data(domains=EXAMPLE_DOMAINS))


def _decide(configuration: Configuration, host: str, target: str = "/", method: str = "GET"):
    return decide(configuration, RedirectRequest(host=host, target=target, method=method))


class TestDefaults:
    """Tests for requests that no domain answers."""

    def test_unknown_host_gets_global_default(self, configuration):
        """Test the global default response is used for unknown hosts."""
        outcome = _decide(configuration, "other.org", "/welcome")

        assert isinstance(outcome, FixedResponse)
        assert outcome.kind is OutcomeKind.FIXED_DEFAULT
        assert outcome.code == 421
        assert outcome.body == MISDIRECTED_BODY
        assert outcome.headers == {"Connection": "close", "Content-Type": "text/plain"}
        assert outcome.domain == DEFAULT_LABEL
        assert outcome.rule_index == DEFAULT_LABEL

    def test_global_default_close(self):
        """Test a global default with code 0 closes the connection."""
        configuration = build_configuration(make_config_data(default_response={"code": 0}))

        outcome = _decide(configuration, "example.com")

        assert isinstance(outcome, Close)
        assert outcome.kind is OutcomeKind.CLOSE
        assert outcome.code == 0

    def test_no_default_at_all(self):
        """Test a missing global default closes the connection."""
        configuration = build_configuration({"domains": {}})

        outcome = _decide(configuration, "example.com")

        assert isinstance(outcome, Close)
        assert outcome.domain == DEFAULT_LABEL
        assert outcome.log_hits is False

    def test_empty_configuration(self):
        """Test the zero configuration closes every connection."""
        assert isinstance(_decide(Configuration(), "example.com"), Close)

    def test_headers_are_a_copy(self, configuration):
        """Test mutating an outcome's headers leaves the configuration alone."""
        outcome = _decide(configuration, "other.org")
        outcome.headers["X-Test"] = "1"

        assert "X-Test" not in configuration.default_response.headers


class TestRedirects:
    """Tests for rule matching and rewriting."""

    def test_catch_all(self, configuration):
        """Test a catch-all rule substitutes the whole target."""
        outcome = _decide(configuration, "example.com", "/welcome")

        assert isinstance(outcome, Redirect)
        assert outcome.kind is OutcomeKind.MATCHED
        assert outcome.code == 301
        assert outcome.location == "https://www.example.com/welcome"
        assert outcome.domain == "example.com"
        assert outcome.rule_index == "2"

    def test_first_matching_rule_wins(self, configuration):
        """Test rules are tried in declaration order."""
        outcome = _decide(configuration, "example.com", "/a/farewell")

        assert outcome.code == 303
        assert outcome.location == "https://a.example.com/farewell"
        assert outcome.rule_index == "0"

    def test_unanchored_match(self, configuration):
        """Test a rule may match in the middle of the target."""
        outcome = _decide(configuration, "example.com", "/b/a/c")

        assert outcome.code == 301
        assert outcome.location == "/bhttps://a.example.com/c"
        assert outcome.rule_index == "1"

    def test_query_string_is_part_of_target(self, configuration):
        """Test the query string is matched and carried over."""
        outcome = _decide(configuration, "example.com", "/search?q=1")

        assert outcome.location == "https://www.example.com/search?q=1"

    def test_host_is_case_insensitive(self, configuration):
        """Test the request host is matched without regard to case."""
        outcome = _decide(configuration, "EXAMPLE.com", "/welcome")

        assert isinstance(outcome, Redirect)
        assert outcome.domain == "example.com"

    def test_subdomain_not_matched_without_flag(self, configuration):
        """Test www.example.com does not use example.com's rules."""
        outcome = _decide(configuration, "www.example.com", "/welcome")

        assert isinstance(outcome, FixedResponse)
        assert outcome.code == 421

    def test_subdomain_matched_with_flag(self, configuration):
        """Test subdomains use the rules of a match_subdomains domain."""
        outcome = _decide(configuration, "www.example.net", "/welcome")

        assert isinstance(outcome, Redirect)
        assert outcome.code == 302
        assert outcome.domain == "example.net"

    def test_shared_suffix_is_not_subdomain(self, configuration):
        """Test www.not-example.net is not treated as a subdomain."""
        outcome = _decide(configuration, "www.not-example.net", "/welcome")

        assert outcome.code == 421
        assert outcome.domain == DEFAULT_LABEL

    def test_method_does_not_affect_decision(self, configuration):
        """Test POST requests are redirected like GET requests."""
        outcome = _decide(configuration, "example.com", "/welcome", method="POST")

        assert isinstance(outcome, Redirect)
        assert outcome.request.method == "POST"

    def test_origin_with_port(self, configuration):
        """Test origins with a port only match requests to that port."""
        outcome = _decide(configuration, "example.org:8080", "/x")
        assert isinstance(outcome, Redirect)
        assert outcome.location == "https://www.example.org/x"

        outcome = _decide(configuration, "example.org", "/x")
        assert outcome.code == 421


class TestDomainDefaults:
    """Tests for domain-level default responses."""

    def test_domain_default(self, configuration):
        """Test a domain default replaces the global default."""
        outcome = _decide(configuration, "example.net", "/elsewhere")

        assert isinstance(outcome, FixedResponse)
        assert outcome.code == 410
        assert outcome.body == "Gone.\n"
        assert outcome.domain == "example.net"
        assert outcome.rule_index == DEFAULT_LABEL
        assert outcome.log_hits is True

    def test_domain_default_applies_to_subdomains(self, configuration):
        """Test subdomains share the domain default."""
        outcome = _decide(configuration, "deep.www.example.net", "/elsewhere")

        assert outcome.code == 410

    def test_domain_default_close(self, configuration):
        """Test a domain default with code 0 closes the connection."""
        outcome = _decide(configuration, "closed.example.org", "/")

        assert isinstance(outcome, Close)
        assert outcome.domain == "closed.example.org"
        assert outcome.log_hits is True

    def test_domain_without_rules_or_default(self):
        """Test a bare domain falls back to the global default."""
        configuration = build_configuration(make_config_data(domains={"example.com": {}}))

        outcome = _decide(configuration, "example.com")

        assert outcome.code == 421
        assert outcome.domain == DEFAULT_LABEL


class TestLogHits:
    """Tests for log_hits propagation."""

    def test_rule_without_log_hits(self, configuration):
        """Test log_hits follows the matched rule."""
        assert _decide(configuration, "example.com", "/a/x").log_hits is False
        assert _decide(configuration, "example.com", "/x").log_hits is True

    def test_global_default_log_hits(self):
        """Test log_hits follows the global default."""
        data = make_config_data()
        data["default_response"]["log_hits"] = True
        configuration = build_configuration(data)

        assert _decide(configuration, "example.com").log_hits is True


class TestObservabilityFields:
    """Tests for metric labels and log fields."""

    def test_metric_labels_for_redirect(self, configuration):
        """Test labels identify the domain and rule."""
        outcome = _decide(configuration, "example.com", "/a/x", method="HEAD")

        assert outcome.metric_labels() == {
            "domain": "example.com",
            "rule_index": "0",
            "method": "HEAD",
            "code": "303",
        }

    def test_metric_labels_for_close(self):
        """Test a closed connection is labelled with code 0."""
        outcome = _decide(Configuration(), "example.com")

        assert outcome.metric_labels() == {
            "domain": "default",
            "rule_index": "default",
            "method": "GET",
            "code": "0",
        }

    def test_log_fields(self, configuration):
        """Test log fields carry the request details and the destination."""
        request = RedirectRequest(
            host="example.com",
            target="/welcome",
            method="GET",
            remote_addr="192.0.2.1",
            user_agent="curl/8.0",
            referer="https://example.org/",
        )

        fields = decide(configuration, request).log_fields()

        assert fields == {
            "remote_addr": "192.0.2.1",
            "method": "GET",
            "host": "example.com",
            "uri": "/welcome",
            "user_agent": "curl/8.0",
            "referer": "https://example.org/",
            "code": 301,
            "domain": "example.com",
            "rule_index": "2",
            "location": "https://www.example.com/welcome",
        }

    def test_log_fields_without_location(self, configuration):
        """Test default responses have no location field."""
        fields = _decide(configuration, "other.org").log_fields()

        assert "location" not in fields
        assert fields["code"] == 421


class TestFindDomain:
    """Tests for find_domain()."""

    def test_found(self, configuration):
        """Test the origin key is returned with the domain."""
        origin, domain = find_domain(configuration, "a.example.net")
        assert origin == "example.net"
        assert domain.match_subdomains is True

    def test_not_found(self, configuration):
        """Test None is returned for unknown hosts."""
        assert find_domain(configuration, "example.invalid") is None


class TestScenarios:
    """Whole-configuration scenarios."""

    @pytest.fixture
    def scenario(self) -> Configuration:
        return build_configuration(
            make_config_data(
                domains={
                    "example.com": {
                        "match_subdomains": True,
                        "rewrites": [
                            {"regexp": "/a(/.*)", "replacement": "https://a.example.com$1", "code": 303},
                            {"regexp": "(.*)", "replacement": "https://www.example.com$1", "code": 301},
                        ],
                    },
                    "mjec.example.org": {
                        "rewrites": [
                            {"regexp": "^/only-this$", "replacement": "https://example.org/", "code": 302},
                        ],
                        "default_response": {"code": 410, "body": "Gone.\n"},
                    },
                }
            )
        )

    def test_subdomain_redirect(self, scenario):
        """Test www.example.com/welcome redirects through example.com's catch-all."""
        outcome = _decide(scenario, "www.example.com", "/welcome")

        assert isinstance(outcome, Redirect)
        assert outcome.location == "https://www.example.com/welcome"
        assert outcome.code == 301

    def test_unknown_host(self, scenario):
        """Test other.org gets the global default."""
        outcome = _decide(scenario, "other.org", "/welcome")

        assert isinstance(outcome, FixedResponse)
        assert outcome.code == 421

    def test_earlier_rule_wins(self, scenario):
        """Test /a/x matches the 303 rule and never the catch-all."""
        outcome = _decide(scenario, "example.com", "/a/x")

        assert outcome.code == 303
        assert outcome.location == "https://a.example.com/x"

    def test_domain_default_over_global(self, scenario):
        """Test a domain default wins over the global default."""
        outcome = _decide(scenario, "mjec.example.org", "/elsewhere")

        assert isinstance(outcome, FixedResponse)
        assert outcome.code == 410
        assert outcome.body == "Gone.\n"
