"""
Webhook Service

Performs a single signed HTTP delivery to a subscriber endpoint. Retry
timing is not handled here: the worker records the outcome and asks the
dispatcher to enqueue a delayed job.
"""
import json
import time
import uuid
from dataclasses import dataclass
from typing import Any

import httpx

from hookrelay.config import settings
from hookrelay.models.base import utcnow
from hookrelay.models.webhook import WebhookEndpoint
from hookrelay.services.signing import sign_payload


# Attempts per logical delivery; the last one that fails is terminal
MAX_RETRY_ATTEMPTS = 5
# Delay before attempt N+1, in milliseconds; last value reused past the end
RETRY_DELAYS = (1_000, 5_000, 30_000, 300_000, 3_600_000)
# Stored response bodies are cut to this many characters
RESPONSE_BODY_LIMIT = 1000

USER_AGENT = "hookrelay-webhook/1.0"


def get_retry_delay(attempt: int) -> int:
    """
    Backoff delay in milliseconds after the given (1-based) attempt failed.

    Args:
        attempt: Attempt number that just failed

    Returns:
        Delay before the next attempt
    """
    index = min(max(attempt, 1) - 1, len(RETRY_DELAYS) - 1)
    return RETRY_DELAYS[index]


@dataclass
class DeliveryResult:
    """Outcome of one HTTP delivery attempt."""
    success: bool
    status_code: int | None = None
    response_body: str | None = None
    error: str | None = None
    duration_ms: int = 0


def build_payload(delivery_id: str, event_type: str, data: dict[str, Any]) -> str:
    """Serialize the delivery body exactly as it will be signed and sent."""
    return json.dumps({
        "id": delivery_id,
        "event": event_type,
        "timestamp": utcnow().isoformat(),
        "data": data,
    }, default=str)


def build_headers(endpoint: WebhookEndpoint, event_type: str, signature: str) -> dict[str, str]:
    """
    Request headers for a delivery.

    Endpoint custom headers are sent too but cannot replace the protocol
    headers below.
    """
    headers = dict(endpoint.headers or {})
    headers.update({
        "Content-Type": "application/json",
        "X-Webhook-Id": endpoint.id,
        "X-Webhook-Signature": signature,
        "X-Webhook-Event": event_type,
        "User-Agent": USER_AGENT,
    })
    return headers


def truncate(text: str | None, limit: int = RESPONSE_BODY_LIMIT) -> str | None:
    if text is None:
        return None
    return text[:limit]


async def deliver(
    client: httpx.AsyncClient,
    endpoint: WebhookEndpoint,
    event_type: str,
    data: dict[str, Any],
    delivery_id: str | None = None,
    timeout: float | None = None
) -> DeliveryResult:
    """
    POST a signed payload to an endpoint.

    Never raises for transport or HTTP errors, or for a request httpx
    refuses to build (bad URL, header value it cannot encode); they are
    folded into the returned DeliveryResult so the caller can record and
    retry.

    Args:
        client: Shared HTTP client
        endpoint: Target endpoint (url, secret, custom headers)
        event_type: Event type string
        data: Event data placed under "data"
        delivery_id: Stable delivery UUID, new one if omitted
        timeout: Hard request timeout in seconds (default 30)

    Returns:
        DeliveryResult
    """
    delivery_id = delivery_id or str(uuid.uuid4())
    payload = build_payload(delivery_id, event_type, data)
    signature = sign_payload(payload, endpoint.secret)
    headers = build_headers(endpoint, event_type, signature)

    if timeout is None:
        timeout = settings.WEBHOOK_TIMEOUT_SECONDS

    start = time.monotonic()
    try:
        response = await client.post(
            endpoint.url,
            content=payload,
            headers=headers,
            timeout=timeout
        )
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        # UnicodeEncodeError from a header value is a ValueError
        return DeliveryResult(
            success=False,
            error=str(e) or e.__class__.__name__,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    duration_ms = int((time.monotonic() - start) * 1000)
    body = truncate(response.text)

    if response.is_success:
        return DeliveryResult(
            success=True,
            status_code=response.status_code,
            response_body=body,
            duration_ms=duration_ms,
        )

    return DeliveryResult(
        success=False,
        status_code=response.status_code,
        response_body=body,
        error=f"HTTP {response.status_code}: {response.reason_phrase}",
        duration_ms=duration_ms,
    )
