"""FastAPI dependency injection functions.

Storages and services are built once in `create_app` and kept on
`app.state`; these helpers hand them to route handlers.
"""

from fastapi import Request

from app.config import Settings
from core.storage import KeyValueStorage
from services.config_refresh_service import ConfigRefreshService
from services.tenant_service import TenantService


def get_kv_storage(request: Request) -> KeyValueStorage:
    """Shared key-value store (tenant mappings, rate limits, webhook ledger)."""
    return request.app.state.kv_storage


def get_cache_storage(request: Request) -> KeyValueStorage:
    """Response cache store."""
    return request.app.state.cache_storage


def get_tenant_service(request: Request) -> TenantService:
    return request.app.state.tenant_service


def get_config_refresh_service(request: Request) -> ConfigRefreshService:
    return request.app.state.config_refresh_service


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with."""
    return request.app.state.settings
