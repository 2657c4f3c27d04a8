"""
Hookwarden - webhook verification, deduplication and failure alerting.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.middleware.base import BaseHTTPMiddleware

from hookwarden.api.router import api_router
from hookwarden.config import Settings, get_settings
from hookwarden.database import create_all, create_engine_from_settings, create_session_factory
from hookwarden.services.event_bus import EventDispatcher
from hookwarden.services.failure_detector import FailureDetector
from hookwarden.services.notifications import LoggingNotifier, NotificationSender, Notifier
from hookwarden.services.providers import ProviderRegistry
from hookwarden.services.scheduler import AsyncioScheduler, DatabaseScheduler
from hookwarden.services.validation import ValidationOrchestrator
from hookwarden.services.webhook_log_store import WebhookLogStore
from hookwarden.utils.cooldowns import InMemoryCooldownStore, RedisCooldownStore
from hookwarden.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)
from hookwarden.utils.redis_client import close_redis, create_redis
from hookwarden.workers.retry_worker import RetryWorker

logger = logging.getLogger("hookwarden")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings: Settings = app.state.settings
    logger.info("Hookwarden starting up (env=%s)", settings.app_env)

    if settings.database_auto_create:
        await create_all(app.state.engine)

    worker_tasks: list[asyncio.Task] = []
    if isinstance(app.state.scheduler, DatabaseScheduler):
        worker = RetryWorker(
            app.state.session_factory,
            app.state.orchestrator,
            poll_interval=settings.retry_poll_interval_seconds,
            lease_seconds=settings.retry_lease_seconds,
        )
        worker_tasks.append(asyncio.create_task(worker.run()))
        logger.info("Retry worker started")

    yield

    logger.info("Hookwarden shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)

    if isinstance(app.state.scheduler, AsyncioScheduler):
        await app.state.scheduler.shutdown()
    if app.state.redis is not None:
        await close_redis(app.state.redis)
    await app.state.engine.dispose()
    logger.info("Hookwarden shutdown complete")


def build_components(
    app: FastAPI,
    settings: Settings,
    engine: AsyncEngine,
    redis=None,
    notifier: Optional[Notifier] = None,
) -> None:
    """Wire the core components once and expose them on app.state."""
    session_factory = create_session_factory(engine)
    store = WebhookLogStore(session_factory)
    registry = ProviderRegistry.from_settings(settings)

    if settings.cooldown_backend == "redis":
        if redis is None:
            redis = create_redis(settings.redis_url)
        cooldowns = RedisCooldownStore(redis)
    else:
        cooldowns = InMemoryCooldownStore()

    notification_policy = settings.notification_policy()
    events = EventDispatcher(redis=redis)
    detector = FailureDetector(store, cooldowns, notification_policy)
    sender = NotificationSender(detector, notifier or LoggingNotifier(), notification_policy, events=events)

    if settings.retry_backend == "database":
        scheduler = DatabaseScheduler(session_factory)
    else:
        scheduler = AsyncioScheduler()

    orchestrator = ValidationOrchestrator(
        registry,
        store,
        settings.retry_policy(),
        tolerance_seconds=settings.signature_tolerance_seconds,
        scheduler=scheduler,
        notification_sender=sender,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.redis = redis
    app.state.log_store = store
    app.state.registry = registry
    app.state.events = events
    app.state.failure_detector = detector
    app.state.notification_sender = sender
    app.state.scheduler = scheduler
    app.state.orchestrator = orchestrator


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    redis=None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Application factory."""
    settings = settings or get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Hookwarden",
        description="Webhook signature verification, deduplication and failure alerting",
        version="1.0.0",
        lifespan=lifespan,
    )

    build_components(
        application,
        settings,
        engine or create_engine_from_settings(settings),
        redis=redis,
        notifier=notifier,
    )

    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    return application
