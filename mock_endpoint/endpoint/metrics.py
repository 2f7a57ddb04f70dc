from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from mock_endpoint.logging import logger

REQUESTS_TOTAL = "mock_endpoint_requests_total"


def log_metrics_error(metric_name: str, error: Exception) -> None:
    """
    Logs a failure to record a metric.

    Metrics are a debugging aid for the test author; a problem inside the
    client library must never turn into a failed request.
    """
    logger.error(f"Failed to record metric {metric_name}: {str(error)}", exc_info=True)


class EndpointMetrics:
    """
    Request metrics for a single mock endpoint.

    Each endpoint gets its own registry: a test module commonly starts
    several endpoints in one process and the default global registry would
    reject the second set of collectors as duplicates.
    """

    def __init__(self) -> None:
        self.registry = CollectorRegistry()

        # Counted per method so a test can tell a retried POST from a GET probe.
        self.requests_total = Counter(
            "mock_endpoint_requests",
            "Total number of requests served by the mock endpoint",
            ["method"],
            registry=self.registry,
        )
        self.request_body_bytes = Histogram(
            "mock_endpoint_request_body_bytes",
            "Size of recorded request bodies in bytes",
            buckets=[0, 64, 256, 1024, 4096, 16384, 65536, 262144, 1048576],
            registry=self.registry,
        )

    def record_request(self, method: str, body_size: int) -> None:
        try:
            self.requests_total.labels(method=method).inc()
        except Exception as e:
            log_metrics_error("mock_endpoint_requests_total", e)
        try:
            self.request_body_bytes.observe(body_size)
        except Exception as e:
            log_metrics_error("mock_endpoint_request_body_bytes", e)

    def request_count(self, method: Optional[str] = None) -> int:
        """
        Returns how many requests were served, optionally only for `method`.
        """
        if method is not None:
            value = self.registry.get_sample_value(REQUESTS_TOTAL, {"method": method})
            return int(value or 0)

        total = 0
        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name == REQUESTS_TOTAL:
                    total += sample.value
        return int(total)

    def render(self) -> str:
        """Returns the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry).decode("utf-8")
