"""Monitoring exports."""

from backtest_lab.monitoring.audit import AuditLog
from backtest_lab.monitoring.logs import LOG_FORMAT, configure_logging

__all__ = [
    "LOG_FORMAT",
    "AuditLog",
    "configure_logging",
]
