"""Shared pytest fixtures for the storefront backend test suite.

Provides:
- In-memory kv and cache storages (no Redis needed for tests)
- A controllable clock
- Webhook signing helpers
- FastAPI app wired to the in-memory storages + httpx.AsyncClient
"""

import json
import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any app imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("STORAGE_DRIVER", "memory")
os.environ.setdefault("WEBHOOK_SECRET", "test-secret")
os.environ.setdefault("LOG_FORMAT", "text")

from core.rate_limit import CONFIG_REFRESH_BUCKET, RateLimiter  # noqa: E402
from core.replay_guard import ReplayGuard  # noqa: E402
from core.storage import MemoryStorage  # noqa: E402
from core.webhook_signing import build_signature_header  # noqa: E402
from services.config_refresh_service import (  # noqa: E402
    ConfigRefreshService,
    WebhookRequest,
)
from services.tenant_service import TenantService  # noqa: E402

TEST_SECRET = "test-secret"
NOW = 1_700_000_000


class FakeClock:
    """Manually advanced wall clock (seconds)."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sign(body: str, secret: str = TEST_SECRET, timestamp: int = NOW) -> str:
    """Build an X-Webhook-Signature header for `body`."""
    return build_signature_header(body, secret, timestamp=timestamp)


def make_request(
    hostname: str = "tenant-a.example.com",
    webhook_id: str = "wh_1",
    secret: str = TEST_SECRET,
    timestamp: int = NOW,
    **overrides,
) -> WebhookRequest:
    """A correctly signed WebhookRequest; any field can be overridden."""
    body = json.dumps({"hostname": hostname})
    fields = {
        "client_ip": "203.0.113.10",
        "secrets": [TEST_SECRET],
        "raw_body": body,
        "signature_header": sign(body, secret, timestamp),
        "webhook_id": webhook_id,
        "content_length": len(body.encode("utf-8")),
    }
    fields.update(overrides)
    return WebhookRequest(**fields)


# ---------------------------------------------------------------------------
# Storage / service fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def cache() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def tenant_service(kv, cache, clock) -> TenantService:
    return TenantService(kv, cache, negative_cache_ttl=30, clock=clock)


@pytest.fixture
def service(kv, cache, clock, tenant_service) -> ConfigRefreshService:
    """Pipeline with a 10 req/min limiter and a frozen clock."""
    limiter = RateLimiter(kv, limit=10, window_ms=60_000, prefix=CONFIG_REFRESH_BUCKET, clock=clock)
    return ConfigRefreshService(
        kv,
        cache,
        rate_limiter=limiter,
        replay_guard=ReplayGuard(kv),
        tenant_service=tenant_service,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(kv, cache):
    """FastAPI app wired to the in-memory test storages."""
    from app.main import create_app

    test_app = create_app(kv_storage=kv, cache_storage=cache)
    test_app.state.webhook_secrets = [TEST_SECRET]
    yield test_app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac
