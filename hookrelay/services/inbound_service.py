"""
Inbound webhook ingestion.

provider POST -> verify signature -> parse -> idempotency claim -> handlers

Domain handlers (billing sync, user sync, meeting bot status, ...) live
outside this service and register per provider on an
InboundHandlerRegistry.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.logging_config import get_logger
from hookrelay.routes.metrics import track_inbound
from hookrelay.services.idempotency import IdempotencyStore
from hookrelay.services.verifiers import get_verifier


class InboundOutcome(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_PAYLOAD = "invalid_payload"
    UNKNOWN_PROVIDER = "unknown_provider"


@dataclass
class InboundEvent:
    """A verified event handed to domain handlers."""
    provider: str
    event_id: str
    event_type: str
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class InboundResult:
    outcome: InboundOutcome
    event_id: str | None = None
    event_type: str | None = None


InboundHandler = Callable[[InboundEvent], Awaitable[None]]


class InboundHandlerRegistry:
    """Provider name -> handlers, run in registration order."""

    def __init__(self):
        self._handlers: dict[str, list[InboundHandler]] = {}

    def register(self, provider: str, handler: InboundHandler) -> None:
        self._handlers.setdefault(provider, []).append(handler)

    def on(self, provider: str) -> Callable[[InboundHandler], InboundHandler]:
        """
        Decorator form of register().

        Usage:
            @registry.on("stripe")
            async def sync_invoice(event: InboundEvent): ...
        """
        def decorator(handler: InboundHandler) -> InboundHandler:
            self.register(provider, handler)
            return handler
        return decorator

    def handlers_for(self, provider: str) -> list[InboundHandler]:
        return list(self._handlers.get(provider, []))


class InboundService:
    """Verifies, de-duplicates and dispatches inbound provider webhooks."""

    def __init__(
        self,
        db: AsyncSession,
        handlers: InboundHandlerRegistry,
        secrets: Mapping[str, str | None]
    ):
        self.db = db
        self.handlers = handlers
        self.secrets = secrets
        self.idempotency = IdempotencyStore(db)

    async def process(
        self,
        provider: str,
        payload: bytes,
        headers: Mapping[str, str]
    ) -> InboundResult:
        """
        Run the ingestion pipeline for one provider request.

        Args:
            provider: Provider name from the URL
            payload: Raw request body, exactly as received
            headers: Request headers

        Returns:
            InboundResult; the route maps the outcome to a status code

        Raises:
            Exception: Whatever a domain handler raised, after the claim
                has been released so the provider's retry is handled
        """
        log = get_logger(provider=provider)
        verifier = get_verifier(provider)
        if verifier is None:
            return self._finish("unknown", InboundResult(InboundOutcome.UNKNOWN_PROVIDER))

        normalized = {k.lower(): v for k, v in headers.items()}
        secret = self.secrets.get(provider)
        if not secret:
            log.warning("inbound_secret_not_configured")
            return self._finish(provider, InboundResult(InboundOutcome.INVALID_SIGNATURE))

        if not verifier.verify(payload, normalized, secret):
            log.warning("inbound_signature_rejected")
            return self._finish(provider, InboundResult(InboundOutcome.INVALID_SIGNATURE))

        try:
            body = json.loads(payload)
            if not isinstance(body, dict):
                raise ValueError("body is not a JSON object")
            event_id, event_type = verifier.identify(body, normalized, payload)
        except ValueError as e:
            log.warning("inbound_payload_rejected", error=str(e))
            return self._finish(provider, InboundResult(InboundOutcome.INVALID_PAYLOAD))

        log = log.bind(event_id=event_id, event_type=event_type)

        if not await self.idempotency.claim(provider, event_id, event_type):
            return self._finish(
                provider,
                InboundResult(InboundOutcome.DUPLICATE, event_id, event_type)
            )

        event = InboundEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            body=body,
            headers=normalized,
        )
        handlers = self.handlers.handlers_for(provider)
        if not handlers:
            log.info("inbound_no_handler_registered")

        try:
            for handler in handlers:
                await handler(event)
        except Exception:
            log.exception("inbound_handler_failed")
            await self.idempotency.release(provider, event_id)
            track_inbound(provider, "handler_failed")
            raise

        log.info("inbound_event_processed")
        return self._finish(
            provider,
            InboundResult(InboundOutcome.PROCESSED, event_id, event_type)
        )

    @staticmethod
    def _finish(provider: str, result: InboundResult) -> InboundResult:
        track_inbound(provider, result.outcome.value)
        return result
