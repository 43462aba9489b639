# utils/signature.py

"""
Help Scout webhook signature verification.
X-HelpScout-Signature is base64(HMAC-SHA1(secret, raw body)).
Fails closed: no secret configured means every request is rejected.
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional, Union

from audit.events import emit_event

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-HelpScout-Signature"
_PREFIX_LEN = 10


def compute_signature(raw_body: Union[bytes, str], secret: str) -> str:
    """base64 HMAC-SHA1 of the exact body bytes."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def _prefix(value: str) -> str:
    return value[:_PREFIX_LEN] + "..."


def verify_signature(
    raw_body: Union[bytes, str],
    signature: Optional[str],
    secret: Optional[str],
    disabled: bool = False,
    remote_addr: Optional[str] = None,
) -> bool:
    """
    Return True only when `signature` matches the body under `secret`.

    Args:
        raw_body: Unparsed request body
        signature: X-HelpScout-Signature header value (may be None)
        secret: Shared secret from configuration (may be None)
        disabled: Dev/test escape hatch; never enable in production
        remote_addr: Caller address, for the audit trail only
    """
    if disabled:
        logger.warning("Signature validation is DISABLED - not for production use")
        emit_event("signature_bypassed", {"ip": remote_addr})
        return True

    if not secret:
        logger.error("Webhook secret not configured - rejecting request (ip=%s)", remote_addr)
        emit_event("signature_rejected", {"reason": "secret_not_configured", "ip": remote_addr})
        return False

    if not signature:
        logger.error("%s header missing (ip=%s)", SIGNATURE_HEADER, remote_addr)
        emit_event("signature_rejected", {"reason": "header_missing", "ip": remote_addr})
        return False

    try:
        computed = compute_signature(raw_body, secret)

        received_bytes = signature.encode("utf-8")
        computed_bytes = computed.encode("utf-8")

        # compare_digest needs equal-length inputs to stay constant-time
        if len(received_bytes) != len(computed_bytes):
            logger.error(
                "Signature validation failed: length mismatch received=%d computed=%d",
                len(received_bytes),
                len(computed_bytes),
            )
            emit_event("signature_rejected", {
                "reason": "length_mismatch",
                "received_length": len(received_bytes),
                "computed_length": len(computed_bytes),
                "ip": remote_addr,
            })
            return False

        if not hmac.compare_digest(received_bytes, computed_bytes):
            logger.error(
                "Signature validation failed: signature mismatch received=%s computed=%s",
                _prefix(signature),
                _prefix(computed),
            )
            emit_event("signature_rejected", {
                "reason": "mismatch",
                "received_signature": _prefix(signature),
                "computed_signature": _prefix(computed),
                "ip": remote_addr,
            })
            return False

        emit_event("signature_verified", {"ip": remote_addr})
        return True

    except Exception as e:
        logger.error("Signature validation error: %s", e, exc_info=True)
        emit_event("signature_rejected", {"reason": "error", "ip": remote_addr})
        return False
