from __future__ import annotations

import threading
from collections import Counter

from core.logging_utils import log_structured

METRIC_SIGNING_FAILED = "consent.signing_failed"
METRIC_VERIFICATION_REJECTED = "consent.verification_rejected"
METRIC_VERIFICATION_CALL_FAILED = "consent.verification_call_failed"
METRIC_SERVICE_ERROR = "consent.service_error"
METRIC_REFRESH_FAILED = "consent.refresh_failed"
METRIC_UNEXPECTED_EXCEPTION = "runtime.unexpected_exception"


class ConsentCounters:
    """Process-wide failure counters, each with a per-reason breakdown."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._totals: Counter[str] = Counter()
        self._reasons: dict[str, Counter[str]] = {}

    def increment(self, metric: str, reason: str | None = None) -> int:
        with self._lock:
            self._totals[metric] += 1
            if reason:
                self._reasons.setdefault(metric, Counter())[reason] += 1
            return self._totals[metric]

    def value(self, metric: str, reason: str | None = None) -> int:
        with self._lock:
            if reason is None:
                return self._totals[metric]
            return self._reasons.get(metric, Counter())[reason]

    def report(self) -> dict[str, dict]:
        with self._lock:
            return {
                metric: {"total": total, "reasons": dict(self._reasons.get(metric, {}))}
                for metric, total in sorted(self._totals.items())
            }

    def reset(self) -> None:
        with self._lock:
            self._totals.clear()
            self._reasons.clear()


COUNTERS = ConsentCounters()


def increment_metric(metric: str, *, request_id: str | None = None, reason: str | None = None) -> int:
    current = COUNTERS.increment(metric, reason)
    log_structured(
        "metric.increment",
        metric=metric,
        value=current,
        request_id=request_id,
        reason=reason,
    )
    return current


def unexpected_exception_metric(error_class: str, *, request_id: str | None = None) -> int:
    return increment_metric(METRIC_UNEXPECTED_EXCEPTION, request_id=request_id, reason=error_class)
