"""Monitoring module for logging and metrics."""

from .logger import Logger, LogLevel
from .metrics import MetricsCollector

__all__ = ["Logger", "LogLevel", "MetricsCollector"]
