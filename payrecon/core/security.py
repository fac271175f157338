"""Webhook signature verification and the admin bearer-token check.

Paystack signs every delivery with ``x-paystack-signature``: the hex HMAC-SHA512
of the raw request body keyed with the webhook secret. The digest must be
computed over the bytes exactly as received; hashing a re-serialized JSON
document changes field order and whitespace and breaks verification.
"""

import hashlib
import hmac
import logging
from typing import Optional, Union

from fastapi import Header, HTTPException, status

from payrecon.core import config

log = logging.getLogger("payrecon.security")


def _as_bytes(raw_body: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(raw_body, (bytes, bytearray)):
        return bytes(raw_body)
    if isinstance(raw_body, str):
        return raw_body.encode("utf-8")
    raise TypeError(f"unsupported body type: {type(raw_body).__name__}")


def sign_payload(raw_body: Union[bytes, str], secret: str) -> str:
    """Returns the hex HMAC-SHA512 signature the provider would send for ``raw_body``."""
    return hmac.new(secret.encode("utf-8"), _as_bytes(raw_body), hashlib.sha512).hexdigest()


def verify_signature(raw_body: Union[bytes, str], secret: Optional[str], signature: Optional[str]) -> bool:
    """
    Constant-time check of a provider signature over the unparsed body.
    Returns False on any malformed input instead of raising.
    """
    if not secret or not signature or not isinstance(signature, str):
        return False
    try:
        expected = sign_payload(raw_body, secret)
        # compare_digest rejects non-ASCII str input with TypeError
        return hmac.compare_digest(expected, signature)
    except (TypeError, ValueError):
        log.warning("Signature verification received malformed input.")
        return False


def require_admin(authorization: Optional[str] = Header(None)):
    """
    Minimal stand-in for the platform's admin session check: a static bearer token.
    Full authentication lives outside this service.
    """
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_authorization")
    parts = authorization.split()
    token = parts[1] if len(parts) == 2 and parts[0].lower() == "bearer" else parts[0]
    if not config.ADMIN_API_TOKEN or not hmac.compare_digest(token.encode("utf-8"), config.ADMIN_API_TOKEN.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    return token
