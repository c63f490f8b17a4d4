"""Tenant service: hostname resolution and cached config lookups.

Storage layout (kv mount):
  tenant:id:<hostname>      -> tenant id (one entry per primary/alias hostname)
  tenant:config:<tenantId>  -> tenant configuration object

Cache mount:
  nitro:handlers:tenant:config:<tenantId> -> rendered public config response

Unknown hostnames are remembered in a short-lived in-process negative cache
so repeated lookups for bogus hosts don't hit the store.
"""

import time
from typing import Any, Callable, Optional

import structlog

from core.exceptions import TenantInactiveError, TenantNotFoundError
from core.storage import KeyValueStorage

logger = structlog.get_logger(__name__)

TENANT_ID_PREFIX = "tenant:id:"
TENANT_CONFIG_PREFIX = "tenant:config:"
RESPONSE_CACHE_PREFIX = "nitro:handlers:"

# Upper bound on remembered unknown hostnames per process
NEGATIVE_CACHE_MAX_SIZE = 10_000

# Fields of the tenant config exposed by the public lookup
PUBLIC_CONFIG_FIELDS = (
    "tenantId",
    "hostname",
    "aliases",
    "isActive",
    "mode",
    "branding",
    "features",
    "theme",
    "themeHash",
)


def tenant_id_key(hostname: str) -> str:
    return f"{TENANT_ID_PREFIX}{hostname}"


def tenant_config_key(tenant_id: str) -> str:
    return f"{TENANT_CONFIG_PREFIX}{tenant_id}"


def response_cache_key(tenant_id: str) -> str:
    return f"{RESPONSE_CACHE_PREFIX}{tenant_config_key(tenant_id)}"


def collect_all_hostnames(config: Optional[dict]) -> set[str]:
    """All hostnames a tenant is reachable on: primary plus aliases."""
    if not isinstance(config, dict):
        return set()
    hostnames = set()
    primary = config.get("hostname")
    if isinstance(primary, str) and primary:
        hostnames.add(primary)
    for alias in config.get("aliases") or []:
        if isinstance(alias, str) and alias:
            hostnames.add(alias)
    return hostnames


class TenantService:
    """Resolves hostnames to tenant configs stored in the shared store."""

    def __init__(
        self,
        kv_storage: KeyValueStorage,
        cache_storage: KeyValueStorage,
        negative_cache_ttl: int = 30,
        config_cache_ttl: int = 300,
        negative_cache_max_size: int = NEGATIVE_CACHE_MAX_SIZE,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.kv = kv_storage
        self.cache = cache_storage
        self.negative_cache_ttl = negative_cache_ttl
        self.negative_cache_max_size = negative_cache_max_size
        self.config_cache_ttl = config_cache_ttl
        self._clock = clock or time.monotonic
        # hostname -> expiry (clock seconds)
        self._negative_cache: dict[str, float] = {}

    # ─── Negative cache ────────────────────────────────────

    def _is_known_missing(self, hostname: str) -> bool:
        expires_at = self._negative_cache.get(hostname)
        if expires_at is None:
            return False
        if self._clock() >= expires_at:
            del self._negative_cache[hostname]
            return False
        return True

    def _remember_missing(self, hostname: str) -> None:
        if self.negative_cache_ttl <= 0 or self.negative_cache_max_size <= 0:
            return
        self._negative_cache.pop(hostname, None)
        if len(self._negative_cache) >= self.negative_cache_max_size:
            self._evict_negative_cache()
        self._negative_cache[hostname] = self._clock() + self.negative_cache_ttl

    def _evict_negative_cache(self) -> None:
        """Drop expired misses, then the oldest ones, to make room for one entry."""
        now = self._clock()
        for hostname in [h for h, expires_at in self._negative_cache.items() if now >= expires_at]:
            del self._negative_cache[hostname]
        # Insertion order is expiry order, all entries share one TTL
        while len(self._negative_cache) >= self.negative_cache_max_size:
            del self._negative_cache[next(iter(self._negative_cache))]

    def clear_negative_cache(self, hostname: Optional[str] = None) -> None:
        """Forget a cached miss for one hostname, or all of them."""
        if hostname is None:
            self._negative_cache.clear()
        else:
            self._negative_cache.pop(hostname, None)

    # ─── Resolution ────────────────────────────────────────

    async def resolve_tenant_id(self, hostname: str) -> str:
        """Tenant id mapped to `hostname`, falling back to the hostname itself."""
        tenant_id = await self.kv.get_item(tenant_id_key(hostname))
        return tenant_id or hostname

    async def resolve_tenant(self, hostname: str) -> Optional[dict]:
        """Load the tenant config for a hostname, or None if unknown."""
        if self._is_known_missing(hostname):
            return None

        tenant_id = await self.resolve_tenant_id(hostname)
        config = await self.kv.get_item(tenant_config_key(tenant_id))
        if not config:
            self._remember_missing(hostname)
            logger.debug("Tenant not found", hostname=hostname)
            return None
        return config

    async def write_hostname_mappings(self, config: dict) -> None:
        """Point every hostname of the tenant at its tenant id."""
        tenant_id = config.get("tenantId") or config.get("hostname")
        if not tenant_id:
            raise ValueError("Tenant config needs a tenantId or hostname")
        for hostname in collect_all_hostnames(config):
            await self.kv.set_item(tenant_id_key(hostname), tenant_id)
            self.clear_negative_cache(hostname)

    async def save_tenant(self, config: dict) -> None:
        """Store a tenant config and its hostname mappings."""
        tenant_id = config.get("tenantId") or config.get("hostname")
        if not tenant_id:
            raise ValueError("Tenant config needs a tenantId or hostname")
        await self.kv.set_item(tenant_config_key(tenant_id), config)
        await self.write_hostname_mappings(config)

    # ─── Public lookup ─────────────────────────────────────

    async def get_public_config(self, hostname: str) -> dict[str, Any]:
        """Rendered config lookup for a hostname, served from the response cache.

        Raises:
            TenantNotFoundError: No tenant for the hostname
            TenantInactiveError: Tenant exists but is inactive
        """
        tenant_id = await self.resolve_tenant_id(hostname)
        cache_key = response_cache_key(tenant_id)

        cached = await self.cache.get_item(cache_key)
        if cached is not None:
            return cached

        config = await self.resolve_tenant(hostname)
        if config is None:
            raise TenantNotFoundError(f"No tenant configured for hostname: {hostname}")
        # Only an explicit false switches a tenant off
        if config.get("isActive") is False:
            raise TenantInactiveError(f"Tenant is inactive: {tenant_id}")

        rendered = {k: config[k] for k in PUBLIC_CONFIG_FIELDS if k in config}
        await self.cache.set_item(cache_key, rendered, ttl=self.config_cache_ttl)
        return rendered
