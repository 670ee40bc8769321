from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REQUEST_LABELS = ("domain", "rule_index", "method", "code")


class GatewayMetrics:
    """Request metrics for one gateway.

    Each instance owns its registry so that gateways (and tests) never
    share counters by accident.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.in_flight_requests = Gauge(
            "redirector_in_flight_requests",
            "Requests currently being served",
            registry=self.registry,
        )

        self.requests = Counter(
            "redirector_requests_total",
            "Total requests by outcome",
            REQUEST_LABELS,
            registry=self.registry,
        )

        self.request_duration = Histogram(
            "redirector_request_duration_seconds",
            "Request handling latency",
            REQUEST_LABELS,
            buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
            registry=self.registry,
        )

    def observe(self, labels: dict[str, str], duration: float) -> None:
        """Record one finished request."""
        self.requests.labels(**labels).inc()
        self.request_duration.labels(**labels).observe(duration)

    def generate(self) -> bytes:
        return generate_latest(self.registry)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
