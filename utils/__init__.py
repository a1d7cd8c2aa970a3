"""
Utilities package for the catalog price tracker.
"""

from .logging import (
    get_logger,
    setup_logging,
    log_sweep_start,
    log_sweep_complete,
    log_sweep_error,
    log_performance_metrics
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_sweep_start",
    "log_sweep_complete",
    "log_sweep_error",
    "log_performance_metrics"
]
