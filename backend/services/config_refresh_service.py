"""Config-refresh webhook pipeline.

Invalidates every cached artefact of a tenant when its configuration
changes upstream. The request runs through an ordered validation chain;
the first failing stage ends it with exactly one error:

    1. rate limit              -> RateLimitedError
    2. secrets configured      -> MisconfiguredError
    3. declared + actual size  -> PayloadTooLargeError
    4. body/header/id present  -> UnauthorizedError
    5. parse signature header  -> UnauthorizedError
    6. verify signature        -> UnauthorizedError
    7. timestamp freshness     -> UnauthorizedError
    8. payload validation      -> UnprocessablePayloadError
    9. replay check            -> ConflictError
   10-12. resolve tenant, load config, remove derived keys
   13. mark webhook processed

Cheap checks run before any HMAC work, and nothing derived from the body is
trusted (or reported on) before the signature and timestamp pass. Side
effects come last.

Two deliveries with the same id can both get past step 9 before either
reaches step 13. That is harmless while invalidation stays idempotent; a
non-idempotent side effect would need a claim/lock step before it.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from api.schemas.webhook import ConfigRefreshPayload
from core.exceptions import (
    ConflictError,
    MisconfiguredError,
    PayloadTooLargeError,
    RateLimitedError,
    UnauthorizedError,
    UnprocessablePayloadError,
)
from core.rate_limit import RateLimiter
from core.replay_guard import ReplayGuard
from core.storage import KeyValueStorage
from core.webhook_signing import (
    DEFAULT_TOLERANCE_SECONDS,
    MAX_WEBHOOK_BODY_SIZE,
    build_signed_payload,
    parse_signature_header,
    validate_freshness,
    verify_with_secrets,
)
from services.tenant_service import (
    TenantService,
    collect_all_hostnames,
    response_cache_key,
    tenant_config_key,
    tenant_id_key,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WebhookRequest:
    """Plain data extracted from an inbound webhook call."""

    client_ip: str
    secrets: list[str] = field(default_factory=list)
    raw_body: Optional[str] = None
    signature_header: Optional[str] = None
    webhook_id: Optional[str] = None
    content_length: int = 0


class ConfigRefreshService:
    """Authenticates config-refresh webhooks and invalidates tenant caches."""

    def __init__(
        self,
        kv_storage: KeyValueStorage,
        cache_storage: KeyValueStorage,
        rate_limiter: RateLimiter,
        replay_guard: Optional[ReplayGuard] = None,
        tenant_service: Optional[TenantService] = None,
        max_body_size: int = MAX_WEBHOOK_BODY_SIZE,
        max_age_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.kv = kv_storage
        self.cache = cache_storage
        self.rate_limiter = rate_limiter
        self.replay_guard = replay_guard or ReplayGuard(kv_storage)
        self.tenant_service = tenant_service
        self.max_body_size = max_body_size
        self.max_age_seconds = max_age_seconds
        self._clock = clock or time.time

    async def process(self, request: WebhookRequest) -> dict:
        """Run the full pipeline for one delivery.

        Returns:
            {"invalidated": True}

        Raises:
            StorefrontException subclass for the first failing stage; storage
            errors propagate unchanged and leave the webhook unmarked.
        """
        await self._check_rate_limit(request)

        if not request.secrets:
            raise MisconfiguredError("Webhook secret not configured")

        self._check_size(request)

        if not request.raw_body:
            raise UnauthorizedError("Missing body")
        if not request.signature_header:
            raise UnauthorizedError("Missing signature header")
        if not request.webhook_id:
            raise UnauthorizedError("Missing webhook ID")

        self._authenticate(request)

        hostname = self._parse_hostname(request.raw_body)

        if await self.replay_guard.has_been_processed(request.webhook_id):
            raise ConflictError(f"Webhook already processed: {request.webhook_id}")

        tenant_id = await self.invalidate(hostname)

        await self.replay_guard.mark_processed(request.webhook_id)

        logger.info(
            "Config cache invalidated",
            hostname=hostname,
            tenant_id=tenant_id,
            webhook_id=request.webhook_id,
        )
        return {"invalidated": True}

    # ─── Stages ────────────────────────────────────────────

    async def _check_rate_limit(self, request: WebhookRequest) -> None:
        result = await self.rate_limiter.check(request.client_ip)
        if not result.allowed:
            raise RateLimitedError(
                f"Rate limit exceeded for {request.client_ip}",
                reset_at=result.reset_at,
            )

    def _check_size(self, request: WebhookRequest) -> None:
        if request.content_length > self.max_body_size:
            raise PayloadTooLargeError(
                f"Declared Content-Length {request.content_length} exceeds {self.max_body_size}"
            )
        # The header can lie; measure what actually arrived
        if request.raw_body is not None:
            actual = len(request.raw_body.encode("utf-8"))
            if actual > self.max_body_size:
                raise PayloadTooLargeError(
                    f"Body of {actual} bytes exceeds {self.max_body_size}"
                )

    def _authenticate(self, request: WebhookRequest) -> None:
        envelope = parse_signature_header(request.signature_header)
        if envelope is None:
            raise UnauthorizedError("Malformed signature header")

        signed_payload = build_signed_payload(envelope.timestamp, request.raw_body)
        if not verify_with_secrets(signed_payload, envelope.signature, request.secrets):
            raise UnauthorizedError("Invalid webhook signature")

        if not validate_freshness(
            envelope.timestamp,
            now=self._clock(),
            max_age_seconds=self.max_age_seconds,
        ):
            raise UnauthorizedError("Stale or future timestamp")

    def _parse_hostname(self, raw_body: str) -> str:
        try:
            payload = ConfigRefreshPayload.model_validate_json(raw_body)
        except ValidationError as e:
            raise UnprocessablePayloadError(
                f"Missing or invalid hostname ({e.error_count()} error(s))"
            ) from e
        return payload.hostname

    # ─── Invalidation ──────────────────────────────────────

    async def invalidate(self, hostname: str) -> str:
        """Remove every cache entry derived from the tenant's config.

        Removes the hostname mapping of the payload hostname, of the config's
        primary hostname and of every alias, the config itself, and the
        rendered config response. Absent keys are no-ops.

        Returns:
            The tenant id the removals were keyed on
        """
        tenant_id = await self.kv.get_item(tenant_id_key(hostname)) or hostname
        config_key = tenant_config_key(tenant_id)
        config = await self.kv.get_item(config_key)

        hostnames = {hostname} | collect_all_hostnames(config)

        await asyncio.gather(
            *(self.kv.remove_item(tenant_id_key(h)) for h in sorted(hostnames)),
            self.kv.remove_item(config_key),
            self.cache.remove_item(response_cache_key(tenant_id)),
        )

        if self.tenant_service is not None:
            for h in hostnames:
                self.tenant_service.clear_negative_cache(h)

        return tenant_id
