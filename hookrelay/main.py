"""
HookRelay - webhook infrastructure for multi-tenant SaaS

FastAPI application entry point.

Domain code publishes events through ``app.state.dispatcher`` and registers
inbound handlers on ``app.state.inbound_handlers``:

    @app.state.inbound_handlers.on("stripe")
    async def sync_billing(event: InboundEvent): ...
"""
from contextlib import asynccontextmanager

import httpx
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Import observability modules
from hookrelay.config import settings
from hookrelay.database import AsyncSessionLocal
from hookrelay.logging_config import configure_logging, logger
from hookrelay.sentry_config import configure_sentry
from hookrelay.middleware.logging import LoggingMiddleware
from hookrelay.routes.metrics import router as metrics_router

# Import route modules
from hookrelay.routes.inbound import router as inbound_router
from hookrelay.routes.webhooks import router as webhooks_router

from hookrelay.services.dispatcher import WebhookDispatcher
from hookrelay.services.inbound_service import InboundHandlerRegistry
from hookrelay.services.job_queue import ArqJobQueue

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the queue pool and the outbound HTTP client for the process lifetime."""
    redis = await create_pool(RedisSettings.from_dsn(settings.REDIS_URL))
    app.state.dispatcher = WebhookDispatcher(ArqJobQueue(redis), AsyncSessionLocal)
    app.state.http_client = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    logger.info("app_started", environment=settings.ENVIRONMENT)

    try:
        yield
    finally:
        await app.state.http_client.aclose()
        await redis.close()
        logger.info("app_stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Outbound webhook delivery and inbound provider webhook ingestion",
    lifespan=lifespan,
)

app.state.inbound_handlers = InboundHandlerRegistry()

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Public provider webhooks
app.include_router(inbound_router)

# Endpoint management API
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "healthy"}
