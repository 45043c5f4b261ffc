"""HMAC verification for push-capable providers.

Signed payload is ``"{unix_timestamp}.{raw_body}"``, signed with
HMAC-SHA256 under the provider's webhook secret.  The signature header may
carry the digest hex-encoded or base64-encoded.  Deliveries older than
the tolerance window are rejected to bound replay exposure.
"""

import base64
import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def compute_signature(secret: str, timestamp: str | int, raw_body: bytes | str) -> bytes:
    """Return the raw HMAC-SHA256 digest for a delivery."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    message = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def verify_signature(
    secret: str,
    raw_body: bytes | str,
    signature: str | None,
    timestamp: str | None,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """Check a webhook delivery's signature and freshness.

    Args:
        secret: The shared signing secret.
        raw_body: The request body exactly as received.
        signature: Value of the signature header (hex or base64).
        timestamp: Value of the timestamp header (Unix seconds).
        tolerance_seconds: Maximum accepted age of the delivery.
        now: Current Unix time, for tests.

    Returns:
        True only when the timestamp is fresh and the signature matches.
    """
    if not secret or not signature or not timestamp:
        return False

    try:
        ts = int(str(timestamp).strip())
    except ValueError:
        logger.warning("Webhook rejected: malformed timestamp %r", timestamp)
        return False

    current = time.time() if now is None else now
    if current - ts > tolerance_seconds:
        logger.warning("Webhook rejected: timestamp %d older than %ds", ts, tolerance_seconds)
        return False

    digest = compute_signature(secret, ts, raw_body)
    expected_hex = digest.hex()
    expected_b64 = base64.b64encode(digest).decode("ascii")
    provided = signature.strip()
    if not provided.isascii():
        return False

    return hmac.compare_digest(provided, expected_hex) or hmac.compare_digest(
        provided, expected_b64
    )
