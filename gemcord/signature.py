"""HMAC signature checks for inbound webhook deliveries."""

from __future__ import annotations

import hashlib
import hmac

from gemcord.errors import ConfigurationError

SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, raw_body: bytes) -> str:
    """Return the `sha256=<hex>` signature GitHub sends for `raw_body`."""

    if not secret:
        raise ConfigurationError("GITHUB_WEBHOOK_SECRET is not set. Cannot sign webhook payloads.")
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(secret: str, raw_body: bytes, signature: str) -> bool:
    """Check a received signature against the one computed from `raw_body`.

    A mismatch returns False; only a missing secret raises, since that is a
    deployment problem rather than a bad request.
    """
    expected = sign_payload(secret, raw_body)
    return hmac.compare_digest(expected.encode(), signature.encode())
