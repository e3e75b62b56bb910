from __future__ import annotations

from dataclasses import dataclass

from core.consent_message import build_consent_message
from core.wallet import is_ed25519_account, verify_wallet_signature
from schemas.consent import Consent


@dataclass(frozen=True)
class SignatureAudit:
    consent_id: str
    message: str
    supported: bool
    verified: bool | None
    failure_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "consent_id": self.consent_id,
            "message": self.message,
            "supported": self.supported,
            "verified": self.verified,
            "failure_reason": self.failure_reason,
        }


def audit_consent_signature(consent: Consent) -> SignatureAudit:
    message = build_consent_message(consent.purpose, consent.patient_id)
    if not is_ed25519_account(consent.wallet_address):
        return SignatureAudit(
            consent_id=consent.id,
            message=message,
            supported=False,
            verified=None,
            failure_reason="unsupported account scheme",
        )
    verified = verify_wallet_signature(consent.wallet_address, message, consent.signature)
    return SignatureAudit(
        consent_id=consent.id,
        message=message,
        supported=True,
        verified=verified,
        failure_reason=None if verified else "signature mismatch",
    )
