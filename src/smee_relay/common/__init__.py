"""Common configuration, models and metrics for the smee relay."""

from smee_relay.common.config import (
    BackoffStrategy,
    MetricsConfig,
    ReconnectPolicy,
    RelayConfig,
)
from smee_relay.common.models import (
    DeliveryDecodeError,
    EventRecord,
    LostConnectionError,
    MissingChannelError,
    UpstreamStatusError,
)
from smee_relay.common.metrics import (
    MetricsRegistry,
    metrics,
    measure_time,
    start_metrics_server,
)
from smee_relay.common.text import excerpt

__all__ = [
    # Config
    "BackoffStrategy",
    "MetricsConfig",
    "ReconnectPolicy",
    "RelayConfig",
    # Models
    "DeliveryDecodeError",
    "EventRecord",
    "LostConnectionError",
    "MissingChannelError",
    "UpstreamStatusError",
    # Metrics
    "MetricsRegistry",
    "metrics",
    "measure_time",
    "start_metrics_server",
    # Text
    "excerpt",
]
