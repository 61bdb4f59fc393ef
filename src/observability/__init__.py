"""
Query Pipeline Observability Module

Monitoring components:
- Prometheus-style counters for parsing and scoring
"""

from src.observability.metrics import (
    get_metrics,
    get_metrics_text,
    record_parse,
    record_scoring,
    reset_metrics,
)

__all__ = [
    "get_metrics",
    "get_metrics_text",
    "record_parse",
    "record_scoring",
    "reset_metrics",
]
