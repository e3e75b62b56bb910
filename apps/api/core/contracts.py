from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    WALLET_NOT_CONNECTED = "WALLET_NOT_CONNECTED"
    SIGNING_FAILED = "SIGNING_FAILED"
    SIGNATURE_REJECTED = "SIGNATURE_REJECTED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def success(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_body(code: ErrorCode, message: str, request_id: str) -> dict[str, Any]:
    return {
        "error": {
            "code": str(code),
            "message": message,
            "request_id": request_id,
        }
    }
