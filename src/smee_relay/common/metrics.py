import time
from functools import wraps
from typing import Callable, Dict, Optional, Union

from loguru import logger
from prometheus_client import REGISTRY, Counter, Gauge, Histogram, start_http_server


class MetricsRegistry:
    def __init__(self, registry=None):
        # Use a provided registry or the default one
        self.registry = registry or REGISTRY

        # Stream metrics
        self.events_received_total = Counter(
            "smee_relay_events_received_total",
            "Total number of events decoded from the upstream stream",
            ["source"],
            registry=self.registry,
        )
        self.stream_errors_total = Counter(
            "smee_relay_stream_errors_total",
            "Total number of upstream stream failures",
            ["source"],
            registry=self.registry,
        )
        self.stream_reconnect_total = Counter(
            "smee_relay_stream_reconnect_total",
            "Total number of upstream reconnect attempts",
            ["source"],
            registry=self.registry,
        )

        # Relay metrics
        self.deliveries_skipped_total = Counter(
            "smee_relay_deliveries_skipped_total",
            "Total number of deliveries dropped before forwarding",
            ["reason"],
            registry=self.registry,
        )
        self.signature_failures_total = Counter(
            "smee_relay_signature_failures_total",
            "Total number of deliveries rejected by signature checks",
            ["reason"],
            registry=self.registry,
        )

        # Forwarder metrics
        self.forward_total = Counter(
            "smee_relay_forward_total",
            "Total number of webhooks forwarded",
            ["target"],
            registry=self.registry,
        )
        self.forward_errors = Counter(
            "smee_relay_forward_errors",
            "Total number of errors forwarding webhooks",
            ["target", "status_code"],
            registry=self.registry,
        )
        self.forward_latency = Histogram(
            "smee_relay_forward_seconds",
            "Time spent forwarding webhooks",
            ["target"],
            registry=self.registry,
        )

        # Common metrics
        self.up = Gauge(
            "smee_relay_up",
            "Whether the relay is up",
            ["component"],
            registry=self.registry,
        )


# Global metrics registry
metrics = MetricsRegistry()


def start_metrics_server(port: int = 9090, host: str = "127.0.0.1"):
    """Start the Prometheus metrics server."""
    start_http_server(port, host)


def measure_time(
    metric: Histogram, labels: Optional[Union[Dict[str, str], Callable]] = None
) -> Callable:
    """Decorator to measure the execution time of a coroutine."""

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            labels_dict = {}
            if callable(labels) and args:
                # labels derived from the bound instance (self)
                try:
                    labels_dict = labels(args[0])
                except Exception as e:
                    logger.error(f"Error getting labels from function: {e}")
            elif isinstance(labels, dict):
                labels_dict = labels

            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                duration = time.time() - start_time
                try:
                    metric.labels(**labels_dict).observe(duration)
                except Exception as e:
                    logger.error(f"Error recording metric: {e}")

        return wrapper

    return decorator
