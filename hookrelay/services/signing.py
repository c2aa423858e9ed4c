"""
Webhook signing.

Outbound payloads carry `X-Webhook-Signature: t=<unix>,v1=<hex>` where
v1 = HMAC-SHA256(secret, "<t>.<payload>"). The timestamp is part of the
signed content so a captured request cannot be replayed outside the
tolerance window.
"""
import hashlib
import hmac
import secrets
import time

from hookrelay.config import settings


SECRET_PREFIX = "whsec_"


def generate_secret() -> str:
    """Generate a new endpoint signing secret."""
    return f"{SECRET_PREFIX}{secrets.token_hex(32)}"


def compute_hmac(secret: str, message: str) -> str:
    """Hex HMAC-SHA256 of message under secret."""
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def sign_payload(payload: str, secret: str, timestamp: int | None = None) -> str:
    """
    Generate a timestamped signature header for a webhook payload.

    Args:
        payload: Exact JSON string that will be sent as the request body
        secret: Endpoint secret
        timestamp: Unix seconds; defaults to now

    Returns:
        Header value in the form "t=<timestamp>,v1=<hex digest>"
    """
    if timestamp is None:
        timestamp = int(time.time())
    digest = compute_hmac(secret, f"{timestamp}.{payload}")
    return f"t={timestamp},v1={digest}"


def parse_signature_header(header: str) -> tuple[int, list[str]] | None:
    """
    Split a "t=..,v1=.." header into its timestamp and v1 digests.

    Returns None when the header is malformed. Several v1 entries are
    allowed (sent during secret rotation); unknown schemes are ignored.
    """
    if not header:
        return None

    timestamp = None
    digests = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None
        elif key == "v1" and value:
            digests.append(value)

    if timestamp is None or not digests:
        return None
    return timestamp, digests


def verify_signature(
    payload: str,
    signature_header: str,
    secret: str,
    tolerance: int | None = None,
    now: int | None = None,
) -> bool:
    """
    Verify a timestamped signature header.

    Args:
        payload: Raw request body as received
        signature_header: Value of the signature header
        secret: Shared secret
        tolerance: Max allowed clock difference in seconds (default 300)
        now: Current unix time, for tests

    Returns:
        True only if the header parses, the timestamp is within tolerance
        and one of the v1 digests matches.
    """
    if not secret:
        return False

    parsed = parse_signature_header(signature_header)
    if parsed is None:
        return False
    timestamp, digests = parsed

    if tolerance is None:
        tolerance = settings.SIGNATURE_TOLERANCE_SECONDS
    if now is None:
        now = int(time.time())
    if abs(now - timestamp) > tolerance:
        return False

    expected = compute_hmac(secret, f"{timestamp}.{payload}").encode()
    # Check every candidate so timing does not reveal which one matched
    matched = False
    for digest in digests:
        if hmac.compare_digest(expected, digest.encode("utf-8")):
            matched = True
    return matched
