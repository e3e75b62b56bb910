import re

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def normalize_tx_hash(value: str | None) -> str:
    """Validate a transaction hash handed over by the chain submission step.

    Hashes are never generated here; activation only records what the
    external submission returned.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Blockchain transaction hash is required")
    candidate = value.strip()
    if not _TX_HASH_RE.match(candidate):
        raise ValueError("Blockchain transaction hash must be 0x followed by 64 hex characters")
    return candidate
