"""Monitoring and observability."""

from .metrics import RelayMetrics

__all__ = ["RelayMetrics"]
