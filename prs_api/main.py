import logging
import sys
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from .config import settings
from .middleware.logging import ACCESS_LOGGER_NAME, RequestLoggingMiddleware
from .routers import dashboard, health
from .workers.snapshot import build_refresher, configure_scheduler

logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])
logging.getLogger(ACCESS_LOGGER_NAME).setLevel(logging.INFO)

logger = logging.getLogger(__name__)

if settings.sentry_dsn and str(settings.sentry_dsn).strip().lower().startswith(("http://", "https://")):
    sentry_sdk.init(
        dsn=str(settings.sentry_dsn).strip(),
        environment=settings.environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    app.state.snapshot_refresher = None
    if settings.snapshot.enabled:
        refresher = build_refresher()
        app.state.snapshot_refresher = refresher
        scheduler = configure_scheduler(refresher)
        scheduler.start()
        logger.info(
            "Snapshot refresher started (every %s min, horizon %s days)",
            settings.snapshot.refresh_minutes,
            settings.snapshot.horizon_days,
        )
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)


app = FastAPI(title="PRS Dashboard API", version="0.1.0", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)

if settings.metrics_enabled:
    instrumentator = Instrumentator(should_group_status_codes=True, should_ignore_untemplated=True)
    instrumentator.instrument(app).expose(app, include_in_schema=False)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["x-dashboard-source", "x-snapshot-generation", "x-request-id"],
)

app.include_router(health.router, tags=["health"])
app.include_router(dashboard.router, tags=["dashboard"])
