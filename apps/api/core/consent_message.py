from __future__ import annotations

from collections.abc import Iterable

CONSENT_MESSAGE_TEMPLATE = "I consent to: {purpose} for patient: {patient_id}"


class ConsentInputError(ValueError):
    pass


def build_consent_message(purpose: str, patient_id: str) -> str:
    """Canonical text a wallet signs for a consent.

    Built verbatim from the two fields; the result is never stored, so any
    normalization here would break later reconstruction.
    """
    return CONSENT_MESSAGE_TEMPLATE.format(purpose=purpose, patient_id=patient_id)


def validate_consent_request(patient_id: str | None, purpose: str | None, allowed_purposes: Iterable[str]) -> None:
    if not isinstance(patient_id, str) or not patient_id.strip():
        raise ConsentInputError("Patient ID is required")
    if not isinstance(purpose, str) or not purpose.strip():
        raise ConsentInputError("Purpose is required")
    if purpose not in set(allowed_purposes):
        raise ConsentInputError(f"Unsupported consent purpose: {purpose}")
