from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from core.config import DEFAULT_CONSENT_PURPOSES
from core.consent_client import ConsentService
from core.consent_message import ConsentInputError, build_consent_message, validate_consent_request
from core.consent_records import apply_status_filter, normalize_consent_list
from core.consent_store import ConsentStore, StoreSnapshot, StoreState
from core.failure_modes import failure_message, record_operation_failure
from core.logging_utils import log_structured
from core.observability import (
    METRIC_REFRESH_FAILED,
    METRIC_SERVICE_ERROR,
    METRIC_SIGNING_FAILED,
    METRIC_VERIFICATION_CALL_FAILED,
    METRIC_VERIFICATION_REJECTED,
    increment_metric,
)
from core.tx_hash import normalize_tx_hash
from core.wallet import WalletSigner
from schemas.consent import Consent, ConsentCreate, ConsentStatus, ConsentUpdate, StatusFilter


class WorkflowErrorKind(StrEnum):
    PRECONDITION_FAILED = "precondition_failed"
    SIGNING_FAILED = "signing_failed"
    VERIFICATION_REJECTED = "verification_rejected"
    SERVICE_ERROR = "service_error"


class Verification(StrEnum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    CHECK_FAILED = "check_failed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Ok:
    consent: Consent
    verification: Verification | None = None
    refreshed: bool = True


@dataclass(frozen=True)
class Err:
    kind: WorkflowErrorKind
    message: str
    reason: str | None = None


WorkflowResult = Ok | Err


class ConsentWorkflow:
    """Sign, verify, create and activate consents against the Consent Service.

    Every mutation is a single ordered coroutine that settles each step before
    starting the next one and reports its outcome as ``Ok`` or ``Err``. The
    store is only ever replaced by a refresh from the service.
    """

    def __init__(
        self,
        service: ConsentService,
        store: ConsentStore | None = None,
        *,
        purposes: Iterable[str] = DEFAULT_CONSENT_PURPOSES,
        refresh_attempts: int = 2,
    ) -> None:
        if refresh_attempts < 1:
            raise ValueError("refresh_attempts must be >= 1")
        self.service = service
        self.store = store if store is not None else ConsentStore()
        self.purposes = tuple(purposes)
        self.refresh_attempts = refresh_attempts
        self._generation = 0

    def session(self, status_filter: StatusFilter = StatusFilter.ALL) -> ConsentWorkflow:
        """Workflow sharing this one's service and settings with a private store."""
        return ConsentWorkflow(
            self.service,
            ConsentStore(status_filter),
            purposes=self.purposes,
            refresh_attempts=self.refresh_attempts,
        )

    async def refresh(self, status_filter: StatusFilter | str | None = None) -> StoreSnapshot:
        """Fetch the list under ``status_filter`` and return what was fetched.

        The returned snapshot always belongs to this call's filter. The store
        only takes it when no newer refresh started in the meantime.
        """
        status_filter = StatusFilter(status_filter) if status_filter is not None else self.store.status_filter
        self._generation += 1
        generation = self._generation
        self.store.begin_loading(status_filter)
        try:
            payload = await self.service.list_consents(None, status_filter.as_query())
        except Exception as exc:
            record_operation_failure(
                operation="consent.list",
                exc=exc,
                resource_type="consent",
                extra_fields={"status_filter": status_filter.value},
            )
            increment_metric(METRIC_REFRESH_FAILED, reason=exc.__class__.__name__)
            snapshot = StoreSnapshot(
                state=StoreState.FAILED,
                status_filter=status_filter,
                error=failure_message(exc, "Failed to load consents"),
            )
            if generation == self._generation:
                self.store.failed(status_filter, snapshot.error)
            return snapshot

        consents = normalize_consent_list(payload)
        visible = apply_status_filter(consents, status_filter)
        if len(visible) != len(consents):
            log_structured(
                "consent.list_items_dropped",
                level=logging.WARNING,
                reason="status_filter_mismatch",
                status_filter=status_filter.value,
                dropped=len(consents) - len(visible),
            )
        snapshot = StoreSnapshot(state=StoreState.LOADED, status_filter=status_filter, consents=tuple(visible))
        # A newer refresh owns the store now.
        if generation == self._generation:
            self.store.loaded(status_filter, visible)
        log_structured("consent.list_loaded", status_filter=status_filter.value, count=len(visible))
        return snapshot

    async def find_consent(self, consent_id: str) -> Consent | None:
        """Look a consent up in the displayed list, then at the service."""
        current = self.store.find(consent_id)
        if current is not None:
            return current
        payload = await self.service.list_consents(None, None)
        for consent in normalize_consent_list(payload):
            if consent.id == consent_id:
                return consent
        return None

    async def _refresh_after_mutation(self) -> bool:
        for attempt in range(1, self.refresh_attempts + 1):
            snapshot = await self.refresh()
            if snapshot.state != StoreState.FAILED:
                return True
            log_structured("consent.refresh_retry", level=logging.WARNING, attempt=attempt)
        return False

    async def _verify(self, message: str, signature: str, account: str) -> Verification:
        try:
            verdict = await self.service.verify_signature(message, signature, account)
        except Exception as exc:
            # A failed verification call says nothing about the signature itself.
            record_operation_failure(operation="consent.verify_signature", exc=exc, resource_type="consent")
            increment_metric(METRIC_VERIFICATION_CALL_FAILED, reason=exc.__class__.__name__)
            return Verification.CHECK_FAILED
        if verdict is None or verdict.is_valid is None:
            return Verification.UNVERIFIED
        if verdict.is_valid is False:
            return Verification.REJECTED
        return Verification.VERIFIED

    async def create_consent(
        self,
        *,
        patient_id: str,
        purpose: str,
        account: str | None,
        signer: WalletSigner,
    ) -> WorkflowResult:
        if not account:
            return Err(
                WorkflowErrorKind.PRECONDITION_FAILED,
                "Please connect your wallet first",
                reason="wallet_not_connected",
            )
        try:
            validate_consent_request(patient_id, purpose, self.purposes)
        except ConsentInputError as exc:
            return Err(WorkflowErrorKind.PRECONDITION_FAILED, str(exc), reason="invalid_input")

        message = build_consent_message(purpose, patient_id)
        try:
            signature = await signer.sign_message(message)
        except Exception as exc:
            record_operation_failure(operation="consent.sign", exc=exc, resource_type="consent")
            increment_metric(METRIC_SIGNING_FAILED, reason=exc.__class__.__name__)
            return Err(WorkflowErrorKind.SIGNING_FAILED, failure_message(exc, "Signature request failed"))
        if not signature:
            increment_metric(METRIC_SIGNING_FAILED, reason="empty_signature")
            return Err(WorkflowErrorKind.SIGNING_FAILED, "Wallet returned an empty signature")

        verification = await self._verify(message, signature, account)
        if verification == Verification.REJECTED:
            increment_metric(METRIC_VERIFICATION_REJECTED)
            return Err(
                WorkflowErrorKind.VERIFICATION_REJECTED,
                "Signature verification failed. Consent was not created.",
            )

        try:
            consent = await self.service.create_consent(
                ConsentCreate(
                    patient_id=patient_id,
                    purpose=purpose,
                    wallet_address=account,
                    signature=signature,
                )
            )
        except Exception as exc:
            record_operation_failure(operation="consent.create", exc=exc, resource_type="consent")
            increment_metric(METRIC_SERVICE_ERROR, reason="create")
            return Err(WorkflowErrorKind.SERVICE_ERROR, failure_message(exc))

        log_structured(
            "consent.created",
            resource_type="consent",
            resource_id=consent.id,
            verification=verification.value,
        )
        refreshed = await self._refresh_after_mutation()
        return Ok(consent=consent, verification=verification, refreshed=refreshed)

    async def activate_consent(self, consent_id: str, tx_hash: str | None) -> WorkflowResult:
        try:
            current = await self.find_consent(consent_id)
        except Exception as exc:
            record_operation_failure(
                operation="consent.lookup",
                exc=exc,
                resource_type="consent",
                resource_id=consent_id,
            )
            increment_metric(METRIC_SERVICE_ERROR, reason="lookup")
            return Err(WorkflowErrorKind.SERVICE_ERROR, failure_message(exc, "Failed to load consents"))
        if current is None:
            return Err(
                WorkflowErrorKind.PRECONDITION_FAILED,
                "Consent not found",
                reason="not_found",
            )
        if not current.is_pending or current.blockchain_tx_hash:
            return Err(
                WorkflowErrorKind.PRECONDITION_FAILED,
                "Only pending consents can be activated",
                reason="not_pending",
            )
        try:
            tx_hash = normalize_tx_hash(tx_hash)
        except ValueError as exc:
            return Err(WorkflowErrorKind.PRECONDITION_FAILED, str(exc), reason="invalid_tx_hash")

        try:
            updated = await self.service.update_consent(
                consent_id,
                ConsentUpdate(status=ConsentStatus.ACTIVE, blockchain_tx_hash=tx_hash),
            )
        except Exception as exc:
            record_operation_failure(
                operation="consent.activate",
                exc=exc,
                resource_type="consent",
                resource_id=consent_id,
            )
            increment_metric(METRIC_SERVICE_ERROR, reason="update")
            return Err(WorkflowErrorKind.SERVICE_ERROR, failure_message(exc))

        log_structured("consent.activated", resource_type="consent", resource_id=consent_id)
        refreshed = await self._refresh_after_mutation()
        return Ok(consent=updated, refreshed=refreshed)
