import argparse
import asyncio
import os
import sys

from core.config import get_settings
from core.consent_client import HttpConsentService, build_http_client
from core.consent_store import ConsentStore
from core.consent_workflow import ConsentWorkflow, Err
from core.logging_utils import configure_logging
from core.wallet import Ed25519WalletSigner
from schemas.consent import StatusFilter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Sign a consent with a local wallet key and create it in the Consent Service."
    )
    parser.add_argument("--patient-id", required=True, help="Patient the consent concerns, e.g. patient-001.")
    parser.add_argument(
        "--purpose",
        required=True,
        choices=settings.consent_purposes,
        help="Consent purpose.",
    )
    parser.add_argument(
        "--private-key-hex",
        default=os.getenv("WALLET_PRIVATE_KEY", ""),
        help="Ed25519 wallet key (default: WALLET_PRIVATE_KEY).",
    )
    parser.add_argument(
        "--activate-tx-hash",
        default=None,
        help="Chain transaction hash; activates the new consent once it is created.",
    )
    return parser.parse_args(argv)


def _report(label: str, result) -> int:
    if isinstance(result, Err):
        print(f"{label} failed [{result.kind.value}]: {result.message}", file=sys.stderr)
        return 1
    consent = result.consent
    print(f"{label}:", consent.id)
    print("  Patient ID:", consent.patient_id)
    print("  Purpose:", consent.purpose)
    print("  Status:", consent.status)
    if consent.blockchain_tx_hash:
        print("  Blockchain Tx Hash:", consent.blockchain_tx_hash)
    if result.verification is not None:
        print("  Signature check:", result.verification.value)
    if not result.refreshed:
        print("  Warning: consent list could not be refreshed", file=sys.stderr)
    return 0


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    if not args.private_key_hex:
        print("A wallet key is required (--private-key-hex or WALLET_PRIVATE_KEY)", file=sys.stderr)
        return 2
    signer = Ed25519WalletSigner(args.private_key_hex)

    async with build_http_client(
        settings.consent_service_url,
        timeout=settings.consent_service_timeout,
        api_key=settings.consent_service_api_key,
    ) as client:
        workflow = ConsentWorkflow(
            HttpConsentService(client),
            ConsentStore(StatusFilter.PENDING),
            purposes=settings.consent_purposes,
            refresh_attempts=settings.consent_refresh_attempts,
        )
        result = await workflow.create_consent(
            patient_id=args.patient_id,
            purpose=args.purpose,
            account=signer.account,
            signer=signer,
        )
        exit_code = _report("Consent created", result)
        if exit_code or not args.activate_tx_hash:
            return exit_code

        activated = await workflow.activate_consent(result.consent.id, args.activate_tx_hash)
        return _report("Consent activated", activated)


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
