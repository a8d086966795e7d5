"""Background jobs for Commute Permit."""

from .expiration_monitor import (
    ExpirationJobError,
    ExpirationMonitor,
    MonitorConfig,
    run_expiration_job,
)

__all__ = [
    "ExpirationJobError",
    "ExpirationMonitor",
    "MonitorConfig",
    "run_expiration_job",
]
