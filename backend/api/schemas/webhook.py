"""Schemas for the internal config-refresh webhook."""

from pydantic import BaseModel, Field, StrictStr


class ConfigRefreshPayload(BaseModel):
    """Body sent by the config service when a tenant's settings change."""

    hostname: StrictStr = Field(min_length=1, description="Any hostname of the tenant")


class ConfigRefreshResponse(BaseModel):
    """Successful invalidation."""

    invalidated: bool = True
