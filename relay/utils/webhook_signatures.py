"""
Webhook signature validation - verify incoming webhooks are authentic.

Supported providers:
- CINC: hex HMAC-SHA256 of the raw body in X-CINC-Signature
"""
import hashlib
import hmac
import logging

from relay.errors import ConfigurationError

logger = logging.getLogger(__name__)

CINC_SIGNATURE_HEADER = "X-CINC-Signature"


def validate_hmac_sha256(
    secret: str,
    signature: str,
    body: bytes,
    header_prefix: str = "sha256=",
) -> bool:
    """
    Validate generic HMAC-SHA256 webhook signature.
    Handles signatures with optional prefix (e.g., "sha256=...").
    Returns True if valid, False if invalid.
    """
    if not secret or not signature:
        return False

    sig = signature.strip()
    if sig.startswith(header_prefix):
        sig = sig[len(header_prefix):]

    expected = hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, sig.lower())


def compute_payload_hash(body: bytes) -> str:
    """Compute SHA-256 hash of raw payload for the audit trail."""
    return hashlib.sha256(body).hexdigest()


def validate_cinc_signature(headers, body: bytes) -> bool:
    """
    Validate a CINC delivery.

    Raises ConfigurationError when CINC_WEBHOOK_SECRET is not set - an
    unsigned CINC endpoint is a deployment mistake, not a soft default.
    """
    from relay.config import get_settings
    secret = get_settings().cinc_webhook_secret
    if not secret:
        logger.error("CINC_WEBHOOK_SECRET is not set - rejecting CINC webhook")
        raise ConfigurationError("Webhook secret not configured")

    signature = headers.get(CINC_SIGNATURE_HEADER, "")
    if not signature:
        logger.warning("CINC webhook without %s header", CINC_SIGNATURE_HEADER)
        return False
    return validate_hmac_sha256(secret, signature, body)
