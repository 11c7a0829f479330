"""HMAC-SHA256 signatures shared by payment confirmation and webhooks."""

from __future__ import annotations

import hashlib
import hmac


def compute_signature(secret: str, message: bytes | str) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, message: bytes | str, signature: str | None) -> bool:
    """Constant-time comparison of ``signature`` against the expected hex digest."""

    if not secret or not signature:
        return False
    expected = compute_signature(secret, message)
    return hmac.compare_digest(expected, signature.strip().lower())


def payment_signature_message(order_id: str, payment_id: str) -> str:
    return f"{order_id}|{payment_id}"


def verify_payment_signature(secret: str, order_id: str, payment_id: str, signature: str | None) -> bool:
    return verify_signature(secret, payment_signature_message(order_id, payment_id), signature)


__all__ = [
    "compute_signature",
    "payment_signature_message",
    "verify_payment_signature",
    "verify_signature",
]
