"""
Webhook endpoint API routes.

Lets an organisation register HTTP endpoints, choose the events they
receive, inspect delivery history and send a test delivery.
"""
import re
from datetime import datetime
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.database import get_db
from hookrelay.dependencies.auth import TokenPayload, get_current_user, require_admin
from hookrelay.models.webhook import (
    TEST_EVENT,
    WEBHOOK_EVENTS,
    EndpointStatus,
    WebhookDelivery,
    WebhookEndpoint,
)
from hookrelay.services.delivery_ledger import MAX_HISTORY_LIMIT, DeliveryLedger
from hookrelay.services.endpoint_service import EndpointService
from hookrelay.services.webhook_service import deliver


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


# Pydantic models for request/response

def _validate_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("url must be an http or https URL")
    return value


def _validate_events(value: list[str]) -> list[str]:
    if not value:
        raise ValueError("at least one event is required")
    unknown = sorted(set(value) - set(WEBHOOK_EVENTS))
    if unknown:
        raise ValueError(f"unknown events: {', '.join(unknown)}")
    return value


# RFC 7230 token for names; visible ASCII plus space and tab for values
_HEADER_NAME = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")
_HEADER_VALUE = re.compile(r"[\t\x20-\x7e]*")


def _validate_headers(value: dict[str, str]) -> dict[str, str]:
    for name, header_value in value.items():
        if not _HEADER_NAME.fullmatch(name):
            raise ValueError(f"invalid header name: {name!r}")
        if not _HEADER_VALUE.fullmatch(header_value):
            raise ValueError(f"header {name} must be printable ASCII")
    return value


class CreateEndpointRequest(BaseModel):
    """Request model for registering an endpoint."""
    name: str
    url: str
    events: list[str]
    headers: dict[str, str] = {}

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        return _validate_url(v)

    @field_validator("events")
    @classmethod
    def check_events(cls, v: list[str]) -> list[str]:
        return _validate_events(v)

    @field_validator("headers")
    @classmethod
    def check_headers(cls, v: dict[str, str]) -> dict[str, str]:
        return _validate_headers(v)


class UpdateEndpointRequest(BaseModel):
    """Request model for updating an endpoint. Omitted fields are unchanged."""
    name: str | None = None
    url: str | None = None
    events: list[str] | None = None
    headers: dict[str, str] | None = None
    status: EndpointStatus | None = None

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str | None) -> str | None:
        return None if v is None else _validate_url(v)

    @field_validator("events")
    @classmethod
    def check_events(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _validate_events(v)

    @field_validator("headers")
    @classmethod
    def check_headers(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        return None if v is None else _validate_headers(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v: EndpointStatus | None) -> EndpointStatus | None:
        # FAILED is only ever set by the delivery worker
        if v == EndpointStatus.FAILED:
            raise ValueError("status must be active or inactive")
        return v


class EndpointResponse(BaseModel):
    """Response model for an endpoint."""
    id: str
    name: str
    url: str
    secret: str
    events: list[str]
    headers: dict[str, str]
    status: str
    failure_count: int
    last_triggered_at: str | None = None
    created_at: str | None = None


class DeliveryResponse(BaseModel):
    """Response model for a ledger row."""
    id: str
    endpoint_id: str
    event: str
    status: str
    attempts: int
    response_status: int | None = None
    response_body: str | None = None
    error: str | None = None
    last_attempt_at: str | None = None
    created_at: str | None = None


def mask_secret(secret: str) -> str:
    """Show only the first 12 characters of a secret."""
    return f"{secret[:12]}..."


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def endpoint_to_response(endpoint: WebhookEndpoint, reveal_secret: bool = False) -> EndpointResponse:
    """Convert WebhookEndpoint model to EndpointResponse."""
    return EndpointResponse(
        id=endpoint.id,
        name=endpoint.name,
        url=endpoint.url,
        secret=endpoint.secret if reveal_secret else mask_secret(endpoint.secret),
        events=list(endpoint.events or []),
        headers=dict(endpoint.headers or {}),
        status=endpoint.status.value,
        failure_count=endpoint.failure_count,
        last_triggered_at=_iso(endpoint.last_triggered_at),
        created_at=_iso(endpoint.created_at),
    )


def delivery_to_response(delivery: WebhookDelivery) -> DeliveryResponse:
    """Convert WebhookDelivery model to DeliveryResponse."""
    return DeliveryResponse(
        id=delivery.id,
        endpoint_id=delivery.endpoint_id,
        event=delivery.event,
        status=delivery.status.value,
        attempts=delivery.attempts,
        response_status=delivery.response_status,
        response_body=delivery.response_body,
        error=delivery.error,
        last_attempt_at=_iso(delivery.last_attempt_at),
        created_at=_iso(delivery.created_at),
    )


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared outbound client created in the app lifespan."""
    return request.app.state.http_client


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Webhook endpoint not found"
    )


@router.get("/events", response_model=dict)
async def list_events(token: TokenPayload = Depends(get_current_user)):
    """Event types an endpoint can subscribe to."""
    return {"events": WEBHOOK_EVENTS}


@router.post("/", response_model=EndpointResponse, status_code=status.HTTP_201_CREATED)
async def create_endpoint(
    request: CreateEndpointRequest,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Register a webhook endpoint.

    The signing secret is returned in full only in this response.
    """
    endpoint = await EndpointService(db).create(
        org_id=token.org_id,
        name=request.name,
        url=request.url,
        events=request.events,
        headers=request.headers,
    )
    return endpoint_to_response(endpoint, reveal_secret=True)


@router.get("/", response_model=list[EndpointResponse])
async def list_endpoints(
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the organisation's endpoints."""
    endpoints = await EndpointService(db).list_for_org(token.org_id)
    return [endpoint_to_response(e) for e in endpoints]


@router.get("/{endpoint_id}", response_model=EndpointResponse)
async def get_endpoint(
    endpoint_id: str,
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    endpoint = await EndpointService(db).get(token.org_id, endpoint_id)
    if not endpoint:
        raise _not_found()
    return endpoint_to_response(endpoint)


@router.put("/{endpoint_id}", response_model=EndpointResponse)
async def update_endpoint(
    endpoint_id: str,
    request: UpdateEndpointRequest,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Update an endpoint.

    Setting status to active also clears the failure counter.
    """
    endpoint = await EndpointService(db).update(
        token.org_id,
        endpoint_id,
        name=request.name,
        url=request.url,
        events=request.events,
        headers=request.headers,
        status=request.status,
    )
    if not endpoint:
        raise _not_found()
    return endpoint_to_response(endpoint)


@router.delete("/{endpoint_id}", response_model=dict)
async def delete_endpoint(
    endpoint_id: str,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    if not await EndpointService(db).delete(token.org_id, endpoint_id):
        raise _not_found()
    return {"message": "Webhook endpoint deleted"}


@router.post("/{endpoint_id}/regenerate-secret", response_model=dict)
async def regenerate_secret(
    endpoint_id: str,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Rotate the signing secret. The old secret stops working immediately."""
    secret = await EndpointService(db).regenerate_secret(token.org_id, endpoint_id)
    if secret is None:
        raise _not_found()
    return {"secret": secret}


@router.post("/{endpoint_id}/reactivate", response_model=EndpointResponse)
async def reactivate_endpoint(
    endpoint_id: str,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Bring an auto-disabled endpoint back into rotation."""
    endpoint = await EndpointService(db).reactivate(token.org_id, endpoint_id)
    if not endpoint:
        raise _not_found()
    return endpoint_to_response(endpoint)


@router.get("/{endpoint_id}/deliveries", response_model=list[DeliveryResponse])
async def list_deliveries(
    endpoint_id: str,
    limit: int = Query(50, ge=1, le=MAX_HISTORY_LIMIT),
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delivery history of an endpoint, most recent first."""
    endpoint = await EndpointService(db).get(token.org_id, endpoint_id)
    if not endpoint:
        raise _not_found()

    deliveries = await DeliveryLedger(db).list_for_endpoint(token.org_id, endpoint_id, limit=limit)
    return [delivery_to_response(d) for d in deliveries]


@router.post("/{endpoint_id}/test", response_model=dict)
async def send_test_delivery(
    endpoint_id: str,
    token: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client)
):
    """
    Send a signed test event to the endpoint and report the result.

    Runs inline, is not retried and leaves no delivery history.
    """
    endpoint = await EndpointService(db).get(token.org_id, endpoint_id)
    if not endpoint:
        raise _not_found()

    result = await deliver(
        client,
        endpoint,
        TEST_EVENT,
        {"message": "This is a test webhook delivery", "endpoint_id": endpoint.id},
    )

    return {
        "success": result.success,
        "status_code": result.status_code,
        "response_body": result.response_body,
        "error": result.error,
        "duration_ms": result.duration_ms,
    }
