from __future__ import annotations

from typing import Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey


class WalletSigningError(Exception):
    """Signing was rejected by the user or the wallet could not sign."""


class WalletSigner(Protocol):
    async def sign_message(self, message: str) -> str: ...


class PresignedSigner:
    """Signer for a signature the browser wallet already produced.

    The browser signs the canonical message itself and posts the result; an
    empty value means the user never approved the request.
    """

    def __init__(self, signature: str | None) -> None:
        self._signature = (signature or "").strip()

    async def sign_message(self, message: str) -> str:
        if not self._signature:
            raise WalletSigningError("Signature request was rejected")
        return self._signature


def _strip_hex_prefix(value: str) -> str:
    return value[2:] if value[:2] in {"0x", "0X"} else value


def verify_public_key_format(public_key_hex: str) -> None:
    if not isinstance(public_key_hex, str):
        raise ValueError("account must be a hex string")
    if len(public_key_hex) != 64:
        raise ValueError("account must be 32 bytes encoded as 64 hex characters")
    try:
        raw = bytes.fromhex(public_key_hex)
    except ValueError as exc:
        raise ValueError("account must be valid lowercase/uppercase hex") from exc
    if len(raw) != 32:
        raise ValueError("account must decode to exactly 32 bytes")


def is_ed25519_account(account: str) -> bool:
    try:
        verify_public_key_format(_strip_hex_prefix(account))
    except ValueError:
        return False
    return True


def generate_wallet_key() -> str:
    private_key = Ed25519PrivateKey.generate()
    raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return raw.hex()


class Ed25519WalletSigner:
    """Local wallet: the account is the hex-encoded Ed25519 public key."""

    def __init__(self, private_key_hex: str) -> None:
        try:
            self._private_key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(_strip_hex_prefix(private_key_hex)))
        except ValueError as exc:
            raise ValueError("wallet private key must be 32 bytes of hex") from exc
        public_raw = self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.account = public_raw.hex()

    async def sign_message(self, message: str) -> str:
        return self._private_key.sign(message.encode("utf-8")).hex()


def verify_wallet_signature(account: str, message: str, signature_hex: str) -> bool:
    try:
        public_key_hex = _strip_hex_prefix(account)
        verify_public_key_format(public_key_hex)
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        signature = bytes.fromhex(_strip_hex_prefix(signature_hex))
        public_key.verify(signature, message.encode("utf-8"))
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True
