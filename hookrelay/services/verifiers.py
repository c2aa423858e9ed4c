"""
Inbound webhook verifiers.

Each provider signs its webhooks differently (header names and digest
shape vary) but every adapter exposes the same two calls:

    verify(payload, headers, secret) -> bool
    identify(body, headers, payload) -> (event_id, event_type)

Stripe and Clerk ship signature libraries (stripe, svix) and those are
used as-is; Recall and Flutterwave only define a header. Adapters are
looked up by provider name in VERIFIERS. Header names are expected
lower-cased.
"""
import hashlib
import hmac
from typing import Any, Mapping, Protocol

import stripe
from svix.webhooks import Webhook, WebhookVerificationError

from hookrelay.config import settings


class Verifier(Protocol):
    """Common contract of the provider adapters."""

    provider: str

    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> bool:
        ...

    def identify(
        self, body: dict[str, Any], headers: Mapping[str, str], payload: bytes
    ) -> tuple[str, str]:
        ...


def _decode(payload: bytes) -> str | None:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _require(value: Any, what: str) -> str:
    if value is None or value == "":
        raise ValueError(f"missing {what}")
    return str(value)


class StripeVerifier:
    """Stripe-Signature: t=<unix>,v1=<hex hmac of "t.body">, checked by the Stripe SDK."""

    provider = "stripe"
    header = "stripe-signature"

    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> bool:
        body = _decode(payload)
        signature = headers.get(self.header)
        if body is None or not signature:
            return False
        try:
            # Signature only; JSON parsing stays with the ingestion pipeline
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                secret,
                tolerance=settings.SIGNATURE_TOLERANCE_SECONDS,
            )
        except (stripe.SignatureVerificationError, ValueError):
            return False
        return True

    def identify(self, body, headers, payload):
        return _require(body.get("id"), "event id"), _require(body.get("type"), "event type")


class SvixVerifier:
    """
    Svix signing scheme used by Clerk.

    Three headers: svix-id, svix-timestamp and svix-signature. The secret is
    "whsec_<base64 key>". The svix library enforces its own 5 minute
    timestamp tolerance.
    """

    provider = "clerk"

    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> bool:
        try:
            Webhook(secret).verify(payload, dict(headers))
        except (WebhookVerificationError, ValueError):
            # ValueError covers an undecodable secret and a non-JSON body
            return False
        return True

    def identify(self, body, headers, payload):
        return _require(headers.get("svix-id"), "svix-id"), _require(body.get("type"), "event type")


class RecallVerifier:
    """Hex HMAC-SHA256 of the raw body in X-Recall-Signature."""

    provider = "recall"
    header = "x-recall-signature"

    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> bool:
        signature = headers.get(self.header)
        if not signature:
            return False
        expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected.encode(), signature.strip().encode("utf-8"))

    def identify(self, body, headers, payload):
        # Bot status events carry no id of their own; an identical re-send
        # hashes to the same key and is treated as a duplicate.
        event_id = body.get("id") or hashlib.sha256(payload).hexdigest()
        return str(event_id), _require(body.get("event"), "event type")


class FlutterwaveVerifier:
    """Opaque verif-hash header that must equal the configured secret hash."""

    provider = "flutterwave"
    header = "verif-hash"

    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> bool:
        received = headers.get(self.header)
        if not received:
            return False
        return hmac.compare_digest(secret.encode("utf-8"), received.encode("utf-8"))

    def identify(self, body, headers, payload):
        data = body.get("data")
        if not isinstance(data, dict):
            data = {}
        return _require(data.get("id"), "data.id"), _require(body.get("event"), "event type")


VERIFIERS: dict[str, Verifier] = {
    v.provider: v
    for v in (StripeVerifier(), SvixVerifier(), RecallVerifier(), FlutterwaveVerifier())
}


def get_verifier(provider: str) -> Verifier | None:
    """Look up the adapter for a provider, None if unsupported."""
    return VERIFIERS.get(provider)
