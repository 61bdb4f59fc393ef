"""
Prometheus Metrics for Query Understanding and Ranking

Tracks:
- queries_parsed / parse_failures: Counters of parse outcomes
- candidates_scored: Counter of candidates passed through the scorer
- empty_results: Counter of scoring calls that received no candidates
- parse_latency_seconds / scoring_latency_seconds: Latency summaries
"""

import logging
import os
import threading
from collections import deque

logger = logging.getLogger(__name__)

# Thread-safe metrics storage
_lock = threading.Lock()

_metrics: dict[str, float] = {
    "queries_parsed": 0,
    "parse_failures": 0,
    "scoring_calls": 0,
    "candidates_scored": 0,
    "empty_results": 0,
    "avg_parse_latency_ms": 0.0,
    "avg_scoring_latency_ms": 0.0,
}

# Percentile windows keep only the most recent samples
LATENCY_SAMPLE_SIZE = int(os.environ.get("METRICS_LATENCY_SAMPLE_SIZE", "1000"))

_parse_latencies: deque[float] = deque(maxlen=LATENCY_SAMPLE_SIZE)
_scoring_latencies: deque[float] = deque(maxlen=LATENCY_SAMPLE_SIZE)

# Running totals for the averages: [sum_ms, count]
_parse_totals = [0.0, 0]
_scoring_totals = [0.0, 0]


def record_parse(latency_ms: float, success: bool = True) -> None:
    """Record one QueryUnderstandingAgent.parse call."""
    with _lock:
        if success:
            _metrics["queries_parsed"] += 1
        else:
            _metrics["parse_failures"] += 1
        _parse_latencies.append(latency_ms)
        _metrics["avg_parse_latency_ms"] = _running_average(_parse_totals, latency_ms)


def record_scoring(candidate_count: int, latency_ms: float) -> None:
    """Record one RetrievalScorer.score call."""
    with _lock:
        _metrics["scoring_calls"] += 1
        _metrics["candidates_scored"] += candidate_count
        if candidate_count == 0:
            _metrics["empty_results"] += 1
        _scoring_latencies.append(latency_ms)
        _metrics["avg_scoring_latency_ms"] = _running_average(_scoring_totals, latency_ms)


def get_metrics() -> dict[str, float]:
    """Snapshot of the raw counters."""
    with _lock:
        return dict(_metrics)


def get_metrics_text() -> str:
    """Generate Prometheus-compatible metrics text."""
    with _lock:
        attempts = _metrics["queries_parsed"] + _metrics["parse_failures"]
        failure_rate = _metrics["parse_failures"] / attempts if attempts > 0 else 0.0

        parse_sorted = sorted(_parse_latencies) if _parse_latencies else [0]
        scoring_sorted = sorted(_scoring_latencies) if _scoring_latencies else [0]

        lines = [
            "# HELP queries_parsed Total number of queries parsed successfully",
            "# TYPE queries_parsed counter",
            f'queries_parsed {int(_metrics["queries_parsed"])}',
            "",
            "# HELP parse_failures Total queries rejected by input validation",
            "# TYPE parse_failures counter",
            f'parse_failures {int(_metrics["parse_failures"])}',
            "",
            "# HELP candidates_scored Total candidates scored and ranked",
            "# TYPE candidates_scored counter",
            f'candidates_scored {int(_metrics["candidates_scored"])}',
            "",
            "# HELP empty_results Scoring calls that received no candidates",
            "# TYPE empty_results counter",
            f'empty_results {int(_metrics["empty_results"])}',
            "",
            "# HELP parse_latency_seconds Query parsing time",
            "# TYPE parse_latency_seconds summary",
            f"parse_latency_seconds_p50 {_percentile(parse_sorted, 50) / 1000:.4f}",
            f"parse_latency_seconds_p95 {_percentile(parse_sorted, 95) / 1000:.4f}",
            f'parse_latency_seconds_avg {_metrics["avg_parse_latency_ms"] / 1000:.4f}',
            "",
            "# HELP scoring_latency_seconds Candidate scoring time",
            "# TYPE scoring_latency_seconds summary",
            f"scoring_latency_seconds_p50 {_percentile(scoring_sorted, 50) / 1000:.4f}",
            f"scoring_latency_seconds_p95 {_percentile(scoring_sorted, 95) / 1000:.4f}",
            f'scoring_latency_seconds_avg {_metrics["avg_scoring_latency_ms"] / 1000:.4f}',
            "",
            "# HELP parse_failure_rate Share of parse calls rejected",
            "# TYPE parse_failure_rate gauge",
            f"parse_failure_rate {failure_rate:.4f}",
        ]

        return "\n".join(lines) + "\n"


def reset_metrics() -> None:
    """Reset all metrics to zero."""
    with _lock:
        for key in _metrics:
            _metrics[key] = 0
        _parse_latencies.clear()
        _scoring_latencies.clear()
        for totals in (_parse_totals, _scoring_totals):
            totals[0], totals[1] = 0.0, 0


def _percentile(sorted_data: list[float], percentile: int) -> float:
    """Compute the given percentile from sorted data."""
    if not sorted_data:
        return 0.0
    idx = int(len(sorted_data) * percentile / 100)
    idx = min(idx, len(sorted_data) - 1)
    return sorted_data[idx]


def _running_average(totals: list, latency_ms: float) -> float:
    """Fold one sample into ``totals`` and return the new mean."""
    totals[0] += latency_ms
    totals[1] += 1
    return totals[0] / totals[1]
