from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.admin import router as admin_router
from app.api.auth import router as auth_router
from app.api.billing import router as billing_router
from app.api.employees import router as employees_router
from app.api.errors import install_error_handlers
from app.api.health import router as health_router
from app.api.me import router as me_router
from app.api.members import router as members_router
from app.api.metrics_endpoint import router as metrics_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.db.seed import ensure_super_admin, load_catalog
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.repos.store import InMemoryStore
from app.services.auth_service import hash_password
from app.services.container import build_services

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails.
    async with lifespan_db():
        async with lifespan_redis():
            # Tests install their own services before the app starts.
            if getattr(app.state, "services", None) is None:
                services = build_services(SETTINGS)
                if isinstance(services.store, InMemoryStore):
                    await load_catalog(services.store)
                if SETTINGS.super_admin_email and SETTINGS.super_admin_password:
                    await ensure_super_admin(
                        services.store,
                        SETTINGS.super_admin_email,
                        hash_password(SETTINGS.super_admin_password),
                    )
                app.state.services = services
            yield


# only app setup + router registration

app = FastAPI(
    title="entitlement-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[SETTINGS.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

install_error_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(me_router)
app.include_router(members_router)
app.include_router(employees_router)
app.include_router(billing_router)
app.include_router(admin_router)

logger.info(
    "entitlement-service started  env=%s log_level=%s port=%d docs=%s payments=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "provider" if SETTINGS.payments_enabled else "direct",
)
