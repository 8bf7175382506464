"""HMAC signing of outbound webhook payloads."""

import hashlib
import hmac
import json
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """Serialize a payload to the canonical JSON bytes sent on the wire.

    Keys are sorted and separators are compact so the same payload always
    produces the same bytes, and therefore the same signature.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def generate_hmac_signature(payload_bytes: bytes, secret: str) -> str:
    """Generate HMAC-SHA256 signature for a webhook payload.

    Args:
        payload_bytes: The raw payload bytes to sign.
        secret: The secret key for HMAC generation.

    Returns:
        Hex-encoded HMAC-SHA256 signature.
    """
    return hmac.new(
        secret.encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).hexdigest()


def sign(payload: dict[str, Any], secret: str) -> str:
    """Return the ``X-Webhook-Signature`` header value for a payload."""
    return SIGNATURE_PREFIX + generate_hmac_signature(serialize_payload(payload), secret)


def verify_signature(payload_bytes: bytes, secret: str, signature: str) -> bool:
    """Check a received signature header against the raw request body."""
    if not signature.startswith(SIGNATURE_PREFIX):
        return False
    expected = generate_hmac_signature(payload_bytes, secret)
    return hmac.compare_digest(expected, signature[len(SIGNATURE_PREFIX):])
