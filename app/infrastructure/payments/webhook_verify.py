from __future__ import annotations

import hmac
import logging


logger = logging.getLogger(__name__)


def sign_tracker(tracker_token: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), tracker_token.encode("utf-8"), "sha256").hexdigest()


def secrets_match(expected: str, supplied: str) -> bool:
    """Constant-time comparison that tolerates non-ASCII header values."""
    return hmac.compare_digest(
        expected.encode("utf-8", "surrogateescape"),
        supplied.encode("utf-8", "surrogateescape"),
    )


def verify_tracker_signature(tracker_token: str, signature: str | None, secret: str | None) -> bool:
    """Safepay signs webhook deliveries with HMAC-SHA256 over the tracker token."""
    if not signature:
        return False

    if not secret:
        logger.error("Missing webhook secret for signature verification")
        return False

    expected = sign_tracker(tracker_token, secret)
    return secrets_match(expected, signature.strip().lower())
