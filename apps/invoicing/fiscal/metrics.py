"""
Prometheus metrics for the invoicing pipeline.

Covers:
- Invoice assembly outcomes
- Submission outcomes and latency
- Retries and definitive failures

Metrics are only collected if INVOICING_METRICS_ENABLED is set; otherwise
every metric is a no-op so call sites never need to check.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from prometheus_client import Counter, Histogram

from ..settings import invoicing_settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """Stand-in metric used when metrics are disabled."""

    def labels(self, *args: Any, **kwargs: Any) -> NoOpMetric:
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


def _create_counter(name: str, description: str, labels: list[str]) -> Any:
    """Create a Prometheus counter or no-op."""
    if invoicing_settings.metrics_enabled:
        return Counter(f"{invoicing_settings.metrics_prefix}_{name}", description, labels)
    return NoOpMetric()


def _create_histogram(name: str, description: str, labels: list[str], buckets: tuple[float, ...] | None = None) -> Any:
    """Create a Prometheus histogram or no-op."""
    if invoicing_settings.metrics_enabled:
        full_name = f"{invoicing_settings.metrics_prefix}_{name}"
        if buckets:
            return Histogram(full_name, description, labels, buckets=buckets)
        return Histogram(full_name, description, labels)
    return NoOpMetric()


# ===============================================================================
# METRICS DEFINITIONS
# ===============================================================================


class InvoicingMetrics:
    """Invoicing metrics, prefixed with INVOICING_METRICS_PREFIX (default 'invoicing')."""

    def __init__(self) -> None:
        self.invoices_assembled_total = _create_counter(
            "invoices_assembled_total",
            "Invoice assembly attempts by result",
            ["result"],  # created, existing, or an assembly error code
        )

        self.submissions_total = _create_counter(
            "submissions_total",
            "Submissions to the tax authority by outcome",
            ["outcome"],  # authorized, rejected, transient
        )

        self.submission_duration_seconds = _create_histogram(
            "submission_duration_seconds",
            "Time spent waiting on the tax authority",
            ["outcome"],
            buckets=(0.25, 0.5, 1, 2, 5, 10, 20, 30),
        )

        self.retries_total = _create_counter(
            "retries_total",
            "Transient failures scheduled for retry",
            ["reason"],
        )

        self.definitive_failures_total = _create_counter(
            "definitive_failures_total",
            "Invoices that exhausted their retry budget",
            [],
        )

    # ===== Convenience Methods =====

    def record_assembly(self, result: str) -> None:
        self.invoices_assembled_total.labels(result=result).inc()

    def record_submission(self, outcome: str, duration: float | None = None) -> None:
        self.submissions_total.labels(outcome=outcome).inc()
        if duration is not None:
            self.submission_duration_seconds.labels(outcome=outcome).observe(duration)

    def record_retry(self, reason: str) -> None:
        self.retries_total.labels(reason=reason).inc()

    def record_definitive_failure(self) -> None:
        self.definitive_failures_total.inc()

    @contextmanager
    def time_submission(self) -> Generator[dict[str, Any]]:
        """
        Time an authority call; the caller sets context["outcome"].

        Usage:
            with metrics.time_submission() as context:
                result = client.submit(invoice)
                context["outcome"] = result.outcome
        """
        start = time.monotonic()
        context: dict[str, Any] = {"outcome": "error"}
        try:
            yield context
        finally:
            duration = time.monotonic() - start
            self.record_submission(context["outcome"], duration)
            logger.debug(f"[Metrics] submission {context['outcome']}: {duration:.3f}s")


# Module-level metrics instance
metrics = InvoicingMetrics()
