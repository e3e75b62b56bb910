from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any
import logging

import httpx

from core.consent_client import ConsentServiceError
from core.logging_utils import log_structured
from core.observability import unexpected_exception_metric
from core.wallet import WalletSigningError


class FailureClass(StrEnum):
    SERVICE_TIMEOUT = "service.timeout"
    SERVICE_UNAVAILABLE = "service.unavailable"
    SERVICE_REJECTED = "service.rejected"
    SIGNING_FAILED = "signing.failed"
    UNEXPECTED_EXCEPTION = "unexpected.exception"


@dataclass(frozen=True)
class FailurePolicy:
    failure_class: FailureClass
    http_status: int
    retryable: bool


def classify_failure(exc: BaseException) -> FailureClass:
    if isinstance(exc, WalletSigningError):
        return FailureClass.SIGNING_FAILED
    if isinstance(exc, ConsentServiceError):
        if isinstance(exc.__cause__, httpx.TimeoutException):
            return FailureClass.SERVICE_TIMEOUT
        if exc.status_code is None:
            return FailureClass.SERVICE_UNAVAILABLE
        return FailureClass.SERVICE_REJECTED
    if isinstance(exc, httpx.TimeoutException):
        return FailureClass.SERVICE_TIMEOUT
    if isinstance(exc, httpx.TransportError):
        return FailureClass.SERVICE_UNAVAILABLE
    return FailureClass.UNEXPECTED_EXCEPTION


def failure_policy(exc: BaseException) -> FailurePolicy:
    failure_class = classify_failure(exc)
    if failure_class == FailureClass.SERVICE_TIMEOUT:
        return FailurePolicy(failure_class=failure_class, http_status=504, retryable=True)
    if failure_class == FailureClass.SERVICE_UNAVAILABLE:
        return FailurePolicy(failure_class=failure_class, http_status=502, retryable=True)
    if failure_class == FailureClass.SERVICE_REJECTED:
        return FailurePolicy(failure_class=failure_class, http_status=502, retryable=False)
    if failure_class == FailureClass.SIGNING_FAILED:
        return FailurePolicy(failure_class=failure_class, http_status=400, retryable=False)
    return FailurePolicy(failure_class=failure_class, http_status=500, retryable=False)


def failure_message(exc: BaseException, fallback: str = "Unknown error") -> str:
    text = str(exc).strip()
    return text or fallback


def record_operation_failure(
    *,
    operation: str,
    exc: BaseException,
    resource_type: str | None = None,
    resource_id: str | None = None,
    extra_fields: dict[str, Any] | None = None,
) -> FailureClass:
    """Best-effort failure telemetry for an operation boundary."""
    failure_class = classify_failure(exc)
    fields: dict[str, Any] = {
        "operation": operation,
        "failure_class": failure_class.value,
        "error_class": exc.__class__.__name__,
        "resource_type": resource_type,
        "resource_id": resource_id,
    }
    if extra_fields:
        fields.update(extra_fields)
    if failure_class == FailureClass.UNEXPECTED_EXCEPTION:
        unexpected_exception_metric(exc.__class__.__name__, request_id=fields.get("request_id"))
    log_structured(f"{operation}.failed", level=logging.WARNING, **fields)
    return failure_class
