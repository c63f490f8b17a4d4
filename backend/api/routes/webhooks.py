"""Internal webhook receiver for config-refresh cache invalidation.

The config service calls this endpoint whenever a tenant's settings change:

    POST /api/internal/webhook/config-refresh
    X-Webhook-Signature: t=<unix_seconds>,v1=<hex_hmac_sha256>
    X-Webhook-Id: <unique delivery id>
    {"hostname": "shop.example.com"}
"""

from fastapi import APIRouter, Depends, Request

from api.schemas.webhook import ConfigRefreshResponse
from app.config import Settings
from app.dependencies import get_app_settings, get_config_refresh_service
from core.rate_limit import get_client_ip
from services.config_refresh_service import ConfigRefreshService, WebhookRequest

router = APIRouter()

SIGNATURE_HEADER = "X-Webhook-Signature"
WEBHOOK_ID_HEADER = "X-Webhook-Id"


def _declared_length(request: Request) -> int:
    try:
        return max(0, int(request.headers.get("Content-Length", "0")))
    except ValueError:
        return 0


async def _read_body(request: Request, limit: int) -> bytes:
    """Read the body, stopping once it is known to exceed `limit` bytes."""
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            break
    return bytes(body)


@router.post(
    "/webhook/config-refresh",
    response_model=ConfigRefreshResponse,
    summary="Invalidate cached tenant config",
)
async def config_refresh(
    request: Request,
    service: ConfigRefreshService = Depends(get_config_refresh_service),
    settings: Settings = Depends(get_app_settings),
):
    declared = _declared_length(request)
    # An oversized declaration is rejected by the pipeline without reading the body
    if declared > service.max_body_size:
        raw = b""
    else:
        raw = await _read_body(request, service.max_body_size)

    webhook_request = WebhookRequest(
        client_ip=get_client_ip(request, settings.TRUST_PROXY_HEADERS),
        secrets=request.app.state.webhook_secrets,
        # Undecodable bytes can't match the signature and fail authentication
        raw_body=raw.decode("utf-8", errors="replace") if raw else None,
        signature_header=request.headers.get(SIGNATURE_HEADER),
        webhook_id=request.headers.get(WEBHOOK_ID_HEADER),
        content_length=declared,
    )
    return await service.process(webhook_request)
