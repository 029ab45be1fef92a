"""Prometheus metrics for HarborWatch."""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from harborwatch import __version__

# Application info
app_info = Info("harborwatch_app", "HarborWatch application information")
app_info.info({"version": __version__, "name": "HarborWatch"})

# Collection metrics
ticks_total = Counter("harborwatch_ticks_total", "Collection ticks completed")
tick_failures_total = Counter(
    "harborwatch_tick_failures_total",
    "Collection failures by source",
    ["source"],
)
tick_duration = Histogram(
    "harborwatch_tick_duration_seconds",
    "Collection tick duration",
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10],
)

# Container metrics
containers_total = Gauge("harborwatch_containers", "Containers seen in the last tick")
containers_running = Gauge(
    "harborwatch_running_containers", "Running containers seen in the last tick"
)
history_keys = Gauge(
    "harborwatch_history_keys", "Entities currently holding metric history"
)

# Stream metrics
stream_clients = Gauge("harborwatch_stream_clients", "Connected stream clients")
stream_rejections_total = Counter(
    "harborwatch_stream_rejections_total", "Stream handshakes rejected by origin policy"
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output.

    Returns:
        Prometheus-formatted metrics as bytes
    """
    return generate_latest()


def get_content_type() -> str:
    """Get Prometheus content type.

    Returns:
        Content type string for Prometheus metrics
    """
    return CONTENT_TYPE_LATEST
