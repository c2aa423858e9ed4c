"""
Inbound webhook routes.

Public endpoints for third-party providers. Authentication is the
provider's signature over the raw body, so the body is read as bytes
and never re-serialized before verification.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import settings
from hookrelay.database import get_db
from hookrelay.services.inbound_service import InboundOutcome, InboundService


router = APIRouter(prefix="/webhooks", tags=["inbound"])


@router.post("/{provider}", response_model=dict)
async def receive_webhook(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Receive a provider webhook.

    Duplicates are acknowledged with 200 so the provider stops retrying.
    Signature failures get a bare 401; the reason is only logged.
    """
    payload = await request.body()
    service = InboundService(
        db,
        handlers=request.app.state.inbound_handlers,
        secrets=settings.provider_secrets(),
    )
    result = await service.process(provider, payload, request.headers)

    if result.outcome == InboundOutcome.UNKNOWN_PROVIDER:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown provider"
        )
    if result.outcome == InboundOutcome.INVALID_SIGNATURE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
    if result.outcome == InboundOutcome.INVALID_PAYLOAD:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload"
        )

    return {
        "received": True,
        "duplicate": result.outcome == InboundOutcome.DUPLICATE,
    }
