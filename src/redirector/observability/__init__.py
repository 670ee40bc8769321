from redirector.observability.metrics import (
    REQUEST_LABELS,
    GatewayMetrics,
    get_content_type,
)

__all__ = [
    # Metrics
    "GatewayMetrics",
    "REQUEST_LABELS",
    "get_content_type",
]
