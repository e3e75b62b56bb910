from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from core.consent_audit import audit_consent_signature
from core.consent_message import ConsentInputError, build_consent_message, validate_consent_request
from core.consent_store import StoreState
from core.consent_workflow import ConsentWorkflow, Err, Ok, WorkflowErrorKind
from core.contracts import ErrorCode, error_body, success
from core.logging_utils import request_id_from_request
from core.wallet import PresignedSigner
from schemas.consent import StatusFilter

router = APIRouter(prefix="/consents", tags=["consents"])


class ConsentMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str = Field(alias="patientId")
    purpose: str


class ConsentCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str = Field(alias="patientId")
    purpose: str
    account: Optional[str] = None
    signature: Optional[str] = None


class ConsentActivateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    blockchain_tx_hash: str = Field(alias="blockchainTxHash")


def get_workflow(request: Request) -> ConsentWorkflow:
    # Each request sees only the list it fetched itself.
    return request.app.state.workflow.session()


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    return request_id or request_id_from_request(request)


def _error_response(request: Request, err: Err) -> JSONResponse:
    if err.kind == WorkflowErrorKind.PRECONDITION_FAILED:
        if err.reason == "wallet_not_connected":
            status_code, code = 422, ErrorCode.WALLET_NOT_CONNECTED
        elif err.reason == "not_found":
            status_code, code = 404, ErrorCode.NOT_FOUND
        elif err.reason == "not_pending":
            status_code, code = 409, ErrorCode.CONFLICT
        else:
            status_code, code = 422, ErrorCode.VALIDATION_ERROR
    elif err.kind == WorkflowErrorKind.SIGNING_FAILED:
        status_code, code = 400, ErrorCode.SIGNING_FAILED
    elif err.kind == WorkflowErrorKind.VERIFICATION_REJECTED:
        status_code, code = 403, ErrorCode.SIGNATURE_REJECTED
    else:
        status_code, code = 502, ErrorCode.UPSTREAM_ERROR
    return JSONResponse(status_code=status_code, content=error_body(code, err.message, _request_id(request)))


def _ok_payload(result: Ok, workflow: ConsentWorkflow) -> dict:
    return {
        "consent": result.consent.to_wire(),
        "verification": result.verification.value if result.verification is not None else None,
        "refreshed": result.refreshed,
        "list": workflow.store.snapshot.to_dict(),
    }


@router.get("/purposes", description="Purposes a consent may be signed for.")
def list_purposes(workflow: ConsentWorkflow = Depends(get_workflow)):
    return success(list(workflow.purposes))


@router.get("", description="Refreshes the consent list under the given status filter.")
async def list_consents(
    request: Request,
    status: StatusFilter = Query(default=StatusFilter.ALL),
    workflow: ConsentWorkflow = Depends(get_workflow),
):
    snapshot = await workflow.refresh(status)
    if snapshot.state == StoreState.FAILED:
        return JSONResponse(
            status_code=502,
            content=error_body(ErrorCode.UPSTREAM_ERROR, snapshot.error or "Failed to load consents", _request_id(request)),
        )
    return success(snapshot.to_dict())


@router.post("/message", description="Canonical message the browser wallet must sign.")
def consent_message(
    payload: ConsentMessageRequest,
    request: Request,
    workflow: ConsentWorkflow = Depends(get_workflow),
):
    try:
        validate_consent_request(payload.patient_id, payload.purpose, workflow.purposes)
    except ConsentInputError as exc:
        return JSONResponse(
            status_code=422,
            content=error_body(ErrorCode.VALIDATION_ERROR, str(exc), _request_id(request)),
        )
    return success({"message": build_consent_message(payload.purpose, payload.patient_id)})


@router.post(
    "",
    status_code=201,
    description=(
        "Creates a consent from a signature produced by the connected wallet. "
        "The signature is checked with the Consent Service before creation."
    ),
)
async def create_consent(
    payload: ConsentCreateRequest,
    request: Request,
    workflow: ConsentWorkflow = Depends(get_workflow),
):
    result = await workflow.create_consent(
        patient_id=payload.patient_id,
        purpose=payload.purpose,
        account=payload.account,
        signer=PresignedSigner(payload.signature),
    )
    if isinstance(result, Err):
        return _error_response(request, result)
    return success(_ok_payload(result, workflow))


@router.post("/{consent_id}/activate", description="Records the chain transaction for a pending consent.")
async def activate_consent(
    consent_id: str,
    payload: ConsentActivateRequest,
    request: Request,
    workflow: ConsentWorkflow = Depends(get_workflow),
):
    result = await workflow.activate_consent(consent_id, payload.blockchain_tx_hash)
    if isinstance(result, Err):
        return _error_response(request, result)
    return success(_ok_payload(result, workflow))


@router.get("/{consent_id}/audit", description="Re-checks the stored signature against the canonical message.")
async def audit_consent(
    consent_id: str,
    request: Request,
    workflow: ConsentWorkflow = Depends(get_workflow),
):
    consent = await workflow.find_consent(consent_id)
    if consent is None:
        return JSONResponse(
            status_code=404,
            content=error_body(ErrorCode.NOT_FOUND, "Consent not found", _request_id(request)),
        )
    return success(audit_consent_signature(consent).to_dict())
