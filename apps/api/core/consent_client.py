from __future__ import annotations

import json
import urllib.parse
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from core.consent_records import unwrap_consent_record
from schemas.consent import Consent, ConsentCreate, ConsentUpdate, VerificationVerdict


class ConsentServiceError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConsentService(Protocol):
    async def verify_signature(self, message: str, signature: str, account: str) -> VerificationVerdict | None: ...

    async def create_consent(self, payload: ConsentCreate) -> Consent: ...

    async def list_consents(self, patient_id: str | None, status: str | None) -> Any: ...

    async def update_consent(self, consent_id: str, update: ConsentUpdate) -> Consent: ...


def build_http_client(
    base_url: str,
    *,
    timeout: float,
    api_key: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = {"Accept": "application/json", "User-Agent": "consent-dashboard/1"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers=headers,
        transport=transport,
    )


def _decode_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def extract_error_message(response: httpx.Response) -> str:
    body = _decode_json(response)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
            return error["message"]
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Consent service responded with HTTP {response.status_code}"


class HttpConsentService:
    """Consent Service reached over its JSON HTTP API."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ConsentServiceError("Consent service request timed out") from exc
        except httpx.HTTPError as exc:
            raise ConsentServiceError(f"Consent service unreachable: {exc.__class__.__name__}") from exc
        if response.is_error:
            raise ConsentServiceError(extract_error_message(response), status_code=response.status_code)
        return response

    async def verify_signature(self, message: str, signature: str, account: str) -> VerificationVerdict | None:
        response = await self._request(
            "POST",
            "/verify-signature",
            json={"message": message, "signature": signature, "account": account},
        )
        body = _decode_json(response)
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        if not isinstance(body, dict):
            return None
        try:
            return VerificationVerdict.model_validate(body)
        except ValidationError as exc:
            raise ConsentServiceError("Malformed verification response", status_code=response.status_code) from exc

    async def create_consent(self, payload: ConsentCreate) -> Consent:
        response = await self._request("POST", "/consents", json=payload.to_wire())
        return self._consent_from(response)

    async def list_consents(self, patient_id: str | None, status: str | None) -> Any:
        params = {}
        if patient_id:
            params["patientId"] = patient_id
        if status:
            params["status"] = status
        response = await self._request("GET", "/consents", params=params)
        return _decode_json(response)

    async def update_consent(self, consent_id: str, update: ConsentUpdate) -> Consent:
        response = await self._request("PUT", f"/consents/{urllib.parse.quote(consent_id, safe='')}", json=update.to_wire())
        return self._consent_from(response)

    def _consent_from(self, response: httpx.Response) -> Consent:
        try:
            return unwrap_consent_record(_decode_json(response))
        except ValidationError as exc:
            raise ConsentServiceError("Malformed consent response", status_code=response.status_code) from exc
