from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .clock import Clock, utc_now
from .config import Settings
from .container import ApplicationContainer
from .error_reporting import init_error_reporting
from .logging import configure_logging
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.routers import cron as cron_router
from ..presentation.api.routers import stripe_webhook as stripe_webhook_router
from ..services.entitlement_service import EntitlementService
from ..services.idempotency import IdempotencyLedger
from ..services.plan_resolver import PlanResolver
from ..services.stripe_service import StripeService
from ..services.subscription_service import SubscriptionService
from ..services.webhook_audit import WebhookAuditLogger
from ..services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="KrewUp Billing", lifespan=_create_lifespan(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(stripe_webhook_router.router)
    app.include_router(cron_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {
            "ok": True,
            "stripe_configured": bool(container.settings.stripe_secret_key),
        }

    return app


def build_container(
    settings: Settings,
    persistence: SQLitePersistence,
    clock: Clock = utc_now,
) -> ApplicationContainer:
    stripe_service = StripeService(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )
    plan_resolver = PlanResolver(
        monthly_price_id=settings.stripe_price_id_monthly,
        annual_price_id=settings.stripe_price_id_annual,
    )
    subscription_service = SubscriptionService(
        subscription_repository=persistence,
        history_repository=persistence,
        plan_resolver=plan_resolver,
        subscription_fetcher=stripe_service,
        clock=clock,
    )
    entitlement_service = EntitlementService(persistence, persistence)
    webhook_processor = WebhookProcessor(
        stripe_service=stripe_service,
        ledger=IdempotencyLedger(persistence),
        subscription_service=subscription_service,
        entitlement_service=entitlement_service,
        audit=WebhookAuditLogger(persistence, timeout_seconds=settings.webhook_timeout_seconds),
        transactions=persistence,
    )
    return ApplicationContainer(
        settings=settings,
        persistence=persistence,
        stripe_service=stripe_service,
        subscription_service=subscription_service,
        entitlement_service=entitlement_service,
        webhook_processor=webhook_processor,
        clock=clock,
    )


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        init_error_reporting(settings.sentry_dsn, settings.sentry_environment)
        persistence = SQLitePersistence(settings.database_path)
        app.state.container = build_container(settings, persistence)  # type: ignore[attr-defined]
        logger.info("Billing service ready (database: %s)", settings.database_path)

        try:
            yield
        finally:
            persistence.close()

    return lifespan
