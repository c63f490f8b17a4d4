"""Tenant config lookup.

Serves the public part of the tenant configuration for the requesting
hostname. The rendered response is cached per tenant and dropped by the
config-refresh webhook.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from app.dependencies import get_tenant_service
from services.tenant_service import TenantService

router = APIRouter()


def _request_hostname(request: Request, hostname: Optional[str]) -> str:
    if hostname:
        return hostname.strip().lower()
    host = request.headers.get("X-Forwarded-Host") or request.headers.get("Host", "")
    # Drop the port, keep bare hostname
    return host.split(",")[0].strip().split(":")[0].lower()


@router.get("/config", response_model=dict[str, Any], summary="Tenant config for this host")
async def get_config(
    request: Request,
    hostname: Optional[str] = None,
    tenants: TenantService = Depends(get_tenant_service),
) -> dict[str, Any]:
    return await tenants.get_public_config(_request_hostname(request, hostname))
