import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.consent_client import HttpConsentService, build_http_client
from core.consent_workflow import ConsentWorkflow
from core.contracts import ErrorCode, error_body
from core.failure_modes import failure_policy, record_operation_failure
from core.logging_utils import configure_logging, log_request, monotonic_ms, request_id_from_request
from routers.consents import router as consents_router
from routers.health import router as health_router

settings = get_settings()
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Consent Dashboard API",
    description=(
        "Backend for the healthcare dashboard consent screen. The browser wallet signs the canonical "
        "consent message; this API verifies it with the Consent Service, creates the consent and "
        "records chain transactions on activation."
    ),
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=[
        {"name": "consents", "description": "Consent signing, creation and activation."},
        {"name": "health", "description": "Operational liveness and diagnostics."},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-Id"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request_id_from_request(request)
    request.state.request_id = request_id
    started = monotonic_ms()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    elapsed = monotonic_ms() - started
    log_request(request_id, request.method, request.url.path, response.status_code, elapsed)
    return response


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _map_http_error_code(status_code: int) -> ErrorCode:
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code == 409:
        return ErrorCode.CONFLICT
    if status_code in {400, 422}:
        return ErrorCode.VALIDATION_ERROR
    if status_code in {502, 504}:
        return ErrorCode.UPSTREAM_ERROR
    return ErrorCode.INTERNAL_ERROR


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    message = "Request could not be processed"
    if exc.status_code in {400, 404, 405, 409, 422}:
        message = str(exc.detail) if isinstance(exc.detail, str) else message
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(_map_http_error_code(exc.status_code), message, _request_id(request)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body(
            ErrorCode.VALIDATION_ERROR,
            "Request validation failed",
            _request_id(request),
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    policy = failure_policy(exc)
    record_operation_failure(
        operation="http.request",
        exc=exc,
        resource_type="request",
        extra_fields={
            "path": request.url.path,
            "method": request.method,
            "request_id": _request_id(request),
        },
    )
    return JSONResponse(
        status_code=policy.http_status,
        content=error_body(
            ErrorCode.INTERNAL_ERROR,
            "Internal server error",
            _request_id(request),
        ),
    )


app.include_router(health_router)


@app.get("/")
def root():
    return {"status": "Consent Dashboard API running"}


app.include_router(consents_router)


@app.on_event("startup")
async def on_startup() -> None:
    logger.info(
        "startup env=%s version=%s consent_service=%s",
        settings.env,
        settings.app_version,
        settings.consent_service_url,
    )
    if getattr(app.state, "workflow", None) is not None:
        # Injected by the caller (tests, embedding apps).
        return
    client = build_http_client(
        settings.consent_service_url,
        timeout=settings.consent_service_timeout,
        api_key=settings.consent_service_api_key,
    )
    app.state.http_client = client
    app.state.workflow = ConsentWorkflow(
        HttpConsentService(client),
        purposes=settings.consent_purposes,
        refresh_attempts=settings.consent_refresh_attempts,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()
        app.state.http_client = None
        app.state.workflow = None
