from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from core.logging_utils import log_structured
from schemas.consent import Consent, StatusFilter


def _raw_items(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("consents"), list):
        return payload["consents"]
    return []


def normalize_consent_list(payload: Any) -> list[Consent]:
    """Map any list-consents response onto an ordered list of consents.

    A bare list and a ``{"consents": [...]}`` wrapper are equivalent; every
    other shape is an empty list. Items that are not consents are dropped.
    """
    consents: list[Consent] = []
    dropped = 0
    for item in _raw_items(payload):
        try:
            consents.append(Consent.model_validate(item))
        except ValidationError:
            dropped += 1
    if dropped:
        log_structured(
            "consent.list_items_dropped",
            level=logging.WARNING,
            reason="malformed_item",
            dropped=dropped,
            count=len(consents),
        )
    return consents


def apply_status_filter(consents: list[Consent], status_filter: StatusFilter) -> list[Consent]:
    return [consent for consent in consents if status_filter.matches(consent.status)]


def unwrap_consent_record(payload: Any) -> Consent:
    """Parse a single consent returned by create/update calls."""
    if isinstance(payload, dict):
        for key in ("consent", "data"):
            if isinstance(payload.get(key), dict):
                payload = payload[key]
                break
    return Consent.model_validate(payload)
