"""
Prometheus metrics for the HIV Resistance Report Service.

Exposes counters and histograms for report requests, Sierra scoring
calls and per-stage pipeline timing.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------
# Histograms
# -----------------------------------------------------------------------

SCORING_LATENCY = Histogram(
    "hivr_scoring_latency_seconds",
    "Latency of a single Sierra scoring request",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

PIPELINE_STAGE_DURATION = Histogram(
    "hivr_pipeline_stage_duration_seconds",
    "Duration of each report pipeline stage",
    labelnames=["stage"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
)

# -----------------------------------------------------------------------
# Counters
# -----------------------------------------------------------------------

SCORING_CALLS = Counter(
    "hivr_scoring_calls_total",
    "Sierra scoring calls by outcome",
    labelnames=["outcome"],
)

REPORT_REQUESTS = Counter(
    "hivr_report_requests_total",
    "Report requests served by HTTP status",
    labelnames=["status"],
)


# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


@contextmanager
def track_stage(stage: str):
    """Observe the wall time of a pipeline stage."""
    start = time.perf_counter()
    try:
        yield
    finally:
        PIPELINE_STAGE_DURATION.labels(stage=stage).observe(
            time.perf_counter() - start
        )


def record_scoring_call(outcome: str, elapsed: float) -> None:
    SCORING_CALLS.labels(outcome=outcome).inc()
    SCORING_LATENCY.observe(elapsed)


def record_report_request(status: int) -> None:
    REPORT_REQUESTS.labels(status=str(status)).inc()


def get_metrics_text() -> bytes:
    """Return the Prometheus exposition payload."""
    return generate_latest()
