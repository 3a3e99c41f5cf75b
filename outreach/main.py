import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from the project .env (tests configure Settings explicitly)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from outreach.core.config import Settings, settings, validate_config
from outreach.core.logging import configure_logging
from outreach.core.middleware.access_gate import AccessGateMiddleware
from outreach.core.middleware.request_id import RequestIdMiddleware
from outreach.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from outreach.api import access, admin, generation, health, pages, trial_usage
from outreach.features.access.gate import AccessGate
from outreach.features.access.registry import TokenRegistry
from outreach.features.trial.ledger import UsageLedger
from outreach.features.trial.policy import QuotaPolicy
from outreach.services.content_client import ContentClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("outreach")
    logger.info(
        "Starting Outreach backend...",
        extra={"usage_store": app.state.usage_ledger.backend_name},
    )
    try:
        yield
    finally:
        await app.state.usage_ledger.close()
        logging.getLogger("outreach").info("Stopping Outreach backend...")


def create_app(
    settings_obj: Optional[Settings] = None,
    *,
    ledger: Optional[UsageLedger] = None,
    content_client: Optional[ContentClient] = None,
    master_ips: Optional[list] = None,
) -> FastAPI:
    """Build the app with one registry, ledger and gate for the whole process.

    Tests pass their own settings, ledger and client to get isolated instances.
    """
    cfg = settings_obj or settings
    configure_logging(cfg.ENV, cfg.LOG_LEVEL)
    validate_config(settings_obj=cfg)

    registry = TokenRegistry.from_settings(cfg, master_ips=master_ips)
    usage_ledger = ledger or UsageLedger.from_url(cfg.usage_store_url, timeout_seconds=cfg.USAGE_STORE_TIMEOUT_SECONDS)

    app = FastAPI(title="Outreach - Backend", lifespan=lifespan)
    app.state.settings = cfg
    app.state.token_registry = registry
    app.state.usage_ledger = usage_ledger
    app.state.quota_policy = QuotaPolicy(registry, usage_ledger)
    app.state.content_client = content_client or ContentClient.from_settings(cfg)

    # Middlewares (last added runs first): CORS -> request id -> gate
    app.add_middleware(AccessGateMiddleware, gate=AccessGate.from_settings(cfg, registry=registry))
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cfg.CORS_ALLOW_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(pages.router)
    app.include_router(health.root_router)
    app.include_router(health.router)
    app.include_router(access.router)
    app.include_router(trial_usage.router)
    app.include_router(generation.router)
    app.include_router(admin.router)
    return app


app = create_app()
