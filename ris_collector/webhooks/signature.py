"""GitHub webhook signature verification (``X-Hub-Signature-256``)."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(body: bytes, signature_header: str | None, secret: str) -> bool:
    """
    Check an ``X-Hub-Signature-256`` header against the raw request body.

    Comparison is constant-time. A missing header, wrong prefix or empty
    secret never verifies.
    """
    if not secret or not signature_header:
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(signature_header, compute_signature(body, secret))
