"""API aggregated router.

All endpoints are registered here and mounted under /api in main.py.
"""

from fastapi import APIRouter

from api.routes import health, tenant_config, webhooks

api_router = APIRouter()

# Health (no auth required)
api_router.include_router(
    health.router,
    tags=["Health"],
)

# Tenant config lookup
api_router.include_router(
    tenant_config.router,
    tags=["Tenant"],
)

# Internal webhooks (HMAC-authenticated)
api_router.include_router(
    webhooks.router,
    prefix="/internal",
    tags=["Internal Webhooks"],
)
