import json
import unittest

import httpx

from core.consent_client import ConsentServiceError, HttpConsentService, build_http_client
from core.failure_modes import FailureClass, classify_failure, failure_policy
from schemas.consent import ConsentCreate, ConsentStatus, ConsentUpdate
from tests._helpers import ACCOUNT, SIGNATURE, TX_HASH

BASE_URL = "http://consent-service.test/api"


def _consent_json(**extra) -> dict:
    body = {
        "id": "c-1",
        "patientId": "patient-001",
        "purpose": "Research Study Participation",
        "walletAddress": ACCOUNT,
        "signature": SIGNATURE,
        "status": "pending",
        "createdAt": "2026-01-01T00:00:00Z",
    }
    body.update(extra)
    return body


class HttpConsentServiceTests(unittest.IsolatedAsyncioTestCase):
    def _service(self, handler, **kwargs) -> HttpConsentService:
        self.requests: list[httpx.Request] = []

        def _recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        client = build_http_client(BASE_URL, timeout=5, transport=httpx.MockTransport(_recording), **kwargs)
        self.addAsyncCleanup(client.aclose)
        return HttpConsentService(client)

    async def test_verify_signature_posts_message_signature_account(self) -> None:
        service = self._service(lambda request: httpx.Response(200, json={"isValid": True}))

        verdict = await service.verify_signature("msg", SIGNATURE, ACCOUNT)

        self.assertTrue(verdict.is_valid)
        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/api/verify-signature")
        self.assertEqual(json.loads(request.content), {"message": "msg", "signature": SIGNATURE, "account": ACCOUNT})

    async def test_verify_signature_without_body_has_no_verdict(self) -> None:
        service = self._service(lambda request: httpx.Response(204))
        self.assertIsNone(await service.verify_signature("msg", SIGNATURE, ACCOUNT))

    async def test_verify_signature_reads_enveloped_verdict(self) -> None:
        service = self._service(lambda request: httpx.Response(200, json={"data": {"isValid": False}}))
        verdict = await service.verify_signature("msg", SIGNATURE, ACCOUNT)
        self.assertIs(verdict.is_valid, False)

    async def test_non_boolean_verdicts_are_not_rejections(self) -> None:
        for raw in ("false", 0, "no", "off", None):
            service = self._service(lambda request, raw=raw: httpx.Response(200, json={"isValid": raw}))
            verdict = await service.verify_signature("msg", SIGNATURE, ACCOUNT)
            self.assertIsNone(verdict.is_valid, raw)

    async def test_create_consent_sends_exactly_four_fields(self) -> None:
        service = self._service(lambda request: httpx.Response(201, json=_consent_json()))

        consent = await service.create_consent(
            ConsentCreate(
                patient_id="patient-001",
                purpose="Research Study Participation",
                wallet_address=ACCOUNT,
                signature=SIGNATURE,
            )
        )

        self.assertEqual(consent.id, "c-1")
        self.assertEqual(
            json.loads(self.requests[0].content),
            {
                "patientId": "patient-001",
                "purpose": "Research Study Participation",
                "walletAddress": ACCOUNT,
                "signature": SIGNATURE,
            },
        )

    async def test_list_consents_omits_unset_params(self) -> None:
        service = self._service(lambda request: httpx.Response(200, json={"consents": [_consent_json()]}))

        payload = await service.list_consents(None, None)
        self.assertEqual(payload, {"consents": [_consent_json()]})
        self.assertEqual(self.requests[0].url.params, httpx.QueryParams())

        await service.list_consents("patient-001", "pending")
        self.assertEqual(self.requests[1].url.params["patientId"], "patient-001")
        self.assertEqual(self.requests[1].url.params["status"], "pending")

    async def test_list_consents_with_non_json_body_returns_none(self) -> None:
        service = self._service(lambda request: httpx.Response(200, text="<html>oops</html>"))
        self.assertIsNone(await service.list_consents(None, None))

    async def test_update_consent_puts_status_and_hash(self) -> None:
        service = self._service(
            lambda request: httpx.Response(200, json=_consent_json(status="active", blockchainTxHash=TX_HASH))
        )

        consent = await service.update_consent("c/1", ConsentUpdate(status=ConsentStatus.ACTIVE, blockchain_tx_hash=TX_HASH))

        self.assertEqual(consent.blockchain_tx_hash, TX_HASH)
        request = self.requests[0]
        self.assertEqual(request.method, "PUT")
        self.assertEqual(request.url.raw_path, b"/api/consents/c%2F1")
        self.assertEqual(json.loads(request.content), {"status": "active", "blockchainTxHash": TX_HASH})

    async def test_error_messages_are_passed_through(self) -> None:
        bodies = [
            ({"error": "Invalid signature format"}, "Invalid signature format"),
            ({"message": "Patient not found"}, "Patient not found"),
            ({"detail": "Not allowed"}, "Not allowed"),
            ({"error": {"code": "X", "message": "Nested message"}}, "Nested message"),
            ({}, "Consent service responded with HTTP 500"),
        ]
        for body, expected in bodies:
            service = self._service(lambda request, body=body: httpx.Response(500, json=body))
            with self.assertRaises(ConsentServiceError) as ctx:
                await service.create_consent(
                    ConsentCreate(patient_id="p", purpose="x", wallet_address=ACCOUNT, signature=SIGNATURE)
                )
            self.assertEqual(str(ctx.exception), expected)
            self.assertEqual(ctx.exception.status_code, 500)
            self.assertEqual(classify_failure(ctx.exception), FailureClass.SERVICE_REJECTED)

    async def test_transport_errors_are_wrapped(self) -> None:
        def _timeout(request):
            raise httpx.ReadTimeout("slow", request=request)

        def _refused(request):
            raise httpx.ConnectError("refused", request=request)

        service = self._service(_timeout)
        with self.assertRaises(ConsentServiceError) as ctx:
            await service.list_consents(None, None)
        self.assertIsNone(ctx.exception.status_code)
        self.assertEqual(classify_failure(ctx.exception), FailureClass.SERVICE_TIMEOUT)
        self.assertEqual(failure_policy(ctx.exception).http_status, 504)

        service = self._service(_refused)
        with self.assertRaises(ConsentServiceError) as ctx:
            await service.list_consents(None, None)
        self.assertEqual(classify_failure(ctx.exception), FailureClass.SERVICE_UNAVAILABLE)

    async def test_malformed_consent_response_raises(self) -> None:
        service = self._service(lambda request: httpx.Response(200, json={"ok": True}))
        with self.assertRaises(ConsentServiceError):
            await service.update_consent("c-1", ConsentUpdate(status=ConsentStatus.ACTIVE, blockchain_tx_hash=TX_HASH))

    async def test_api_key_is_sent_as_bearer(self) -> None:
        service = self._service(lambda request: httpx.Response(200, json=[]), api_key="svc-key")
        await service.list_consents(None, None)
        self.assertEqual(self.requests[0].headers["Authorization"], "Bearer svc-key")


if __name__ == "__main__":
    unittest.main()
