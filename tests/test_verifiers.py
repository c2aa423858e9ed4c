"""Tests for the inbound provider verifiers."""
import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone

import pytest
from svix.webhooks import Webhook

from hookrelay.services.signing import sign_payload
from hookrelay.services.verifiers import (
    FlutterwaveVerifier,
    RecallVerifier,
    StripeVerifier,
    SvixVerifier,
    get_verifier,
)


def svix_headers(secret: str, msg_id: str, payload: bytes, timestamp: int | None = None) -> dict:
    """Sign a payload the way Svix does for Clerk."""
    timestamp = timestamp or int(time.time())
    signature = Webhook(secret).sign(
        msg_id, datetime.fromtimestamp(timestamp, tz=timezone.utc), payload.decode()
    )
    return {
        "svix-id": msg_id,
        "svix-timestamp": str(timestamp),
        "svix-signature": signature,
    }


class TestLookup:
    @pytest.mark.parametrize("provider", ["stripe", "clerk", "recall", "flutterwave"])
    def test_known_providers(self, provider):
        assert get_verifier(provider).provider == provider

    def test_unknown_provider(self):
        assert get_verifier("paypal") is None


class TestStripeVerifier:
    secret = "whsec_stripe_test"
    payload = json.dumps({"id": "evt_1", "type": "invoice.paid"}).encode()

    def test_valid_signature(self):
        headers = {"stripe-signature": sign_payload(self.payload.decode(), self.secret)}
        assert StripeVerifier().verify(self.payload, headers, self.secret)

    def test_tampered_body(self):
        headers = {"stripe-signature": sign_payload(self.payload.decode(), self.secret)}
        assert not StripeVerifier().verify(self.payload + b" ", headers, self.secret)

    def test_stale_timestamp(self):
        stale = int(time.time()) - 600
        headers = {"stripe-signature": sign_payload(self.payload.decode(), self.secret, timestamp=stale)}
        assert not StripeVerifier().verify(self.payload, headers, self.secret)

    def test_missing_header(self):
        assert not StripeVerifier().verify(self.payload, {}, self.secret)

    def test_identify(self):
        body = json.loads(self.payload)
        assert StripeVerifier().identify(body, {}, self.payload) == ("evt_1", "invoice.paid")

    def test_identify_requires_id(self):
        with pytest.raises(ValueError):
            StripeVerifier().identify({"type": "invoice.paid"}, {}, b"{}")


class TestSvixVerifier:
    secret = "whsec_" + base64.b64encode(b"clerk-signing-key-0123456789").decode()
    payload = json.dumps({"type": "user.created", "data": {"id": "user_1"}}).encode()

    def test_valid_signature(self):
        headers = svix_headers(self.secret, "msg_1", self.payload)
        assert SvixVerifier().verify(self.payload, headers, self.secret)

    def test_one_of_several_signatures(self):
        headers = svix_headers(self.secret, "msg_1", self.payload)
        headers["svix-signature"] = "v1,AAAA " + headers["svix-signature"]
        assert SvixVerifier().verify(self.payload, headers, self.secret)

    def test_wrong_secret(self):
        headers = svix_headers(self.secret, "msg_1", self.payload)
        other = "whsec_" + base64.b64encode(b"another-key").decode()
        assert not SvixVerifier().verify(self.payload, headers, other)

    def test_id_is_signed(self):
        headers = svix_headers(self.secret, "msg_1", self.payload)
        headers["svix-id"] = "msg_2"
        assert not SvixVerifier().verify(self.payload, headers, self.secret)

    def test_expired(self):
        headers = svix_headers(self.secret, "msg_1", self.payload, timestamp=int(time.time()) - 1000)
        assert not SvixVerifier().verify(self.payload, headers, self.secret)

    def test_future_timestamp(self):
        headers = svix_headers(self.secret, "msg_1", self.payload, timestamp=int(time.time()) + 1000)
        assert not SvixVerifier().verify(self.payload, headers, self.secret)

    def test_missing_headers(self):
        assert not SvixVerifier().verify(self.payload, {"svix-id": "msg_1"}, self.secret)

    def test_undecodable_secret(self):
        headers = svix_headers(self.secret, "msg_1", self.payload)
        assert not SvixVerifier().verify(self.payload, headers, "whsec_***")

    def test_identify_uses_message_id(self):
        body = json.loads(self.payload)
        result = SvixVerifier().identify(body, {"svix-id": "msg_1"}, self.payload)
        assert result == ("msg_1", "user.created")


class TestRecallVerifier:
    secret = "recall-secret"
    payload = json.dumps({"event": "bot.status_change", "data": {"bot_id": "b1"}}).encode()

    def sign(self, payload: bytes) -> dict:
        digest = hmac.new(self.secret.encode(), payload, hashlib.sha256).hexdigest()
        return {"x-recall-signature": digest}

    def test_valid_signature(self):
        assert RecallVerifier().verify(self.payload, self.sign(self.payload), self.secret)

    def test_tampered_body(self):
        assert not RecallVerifier().verify(self.payload + b"x", self.sign(self.payload), self.secret)

    def test_identify_falls_back_to_body_hash(self):
        body = json.loads(self.payload)
        event_id, event_type = RecallVerifier().identify(body, {}, self.payload)
        assert event_id == hashlib.sha256(self.payload).hexdigest()
        assert event_type == "bot.status_change"

    def test_identify_prefers_explicit_id(self):
        body = {"id": "rc_1", "event": "bot.done"}
        assert RecallVerifier().identify(body, {}, b"{}") == ("rc_1", "bot.done")


class TestFlutterwaveVerifier:
    secret = "flw-secret-hash"

    def test_matching_hash(self):
        assert FlutterwaveVerifier().verify(b"{}", {"verif-hash": self.secret}, self.secret)

    def test_mismatched_hash(self):
        assert not FlutterwaveVerifier().verify(b"{}", {"verif-hash": "nope"}, self.secret)
        assert not FlutterwaveVerifier().verify(b"{}", {}, self.secret)

    def test_identify(self):
        body = {"event": "charge.completed", "data": {"id": 4242}}
        assert FlutterwaveVerifier().identify(body, {}, b"") == ("4242", "charge.completed")

    def test_identify_without_data(self):
        with pytest.raises(ValueError):
            FlutterwaveVerifier().identify({"event": "charge.completed", "data": "x"}, {}, b"")
