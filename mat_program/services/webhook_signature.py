from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

from twilio.request_validator import RequestValidator


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_hmac_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check a hex HMAC-SHA256 of the raw body; a leading `sha256=` is accepted."""

    if not signature:
        return False
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]

    return hmac.compare_digest(signature, compute_signature(secret, body))


def verify_twilio_signature(auth_token: str, url: str, params: Mapping[str, str], signature: str | None) -> bool:
    """Check an `X-Twilio-Signature` header against the full callback URL and its POST params."""

    if not signature or not auth_token:
        return False
    return RequestValidator(auth_token).validate(url, dict(params), signature)
