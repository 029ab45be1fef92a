"""HarborWatch - Real-time host and container telemetry."""

__version__ = "1.0.0"
