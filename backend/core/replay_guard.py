"""Webhook idempotency ledger.

A `webhook:processed:<id>` marker is written once a delivery has taken
effect; a second delivery with the same id is rejected, never reprocessed.
Markers are never deleted here and expire only by the store's own retention.

Consult the guard only after the request is authenticated, otherwise an
anonymous caller could probe which ids are already used.
"""

from core.storage import KeyValueStorage

WEBHOOK_PROCESSED_PREFIX = "webhook:processed:"


def webhook_processed_key(webhook_id: str) -> str:
    return f"{WEBHOOK_PROCESSED_PREFIX}{webhook_id}"


class ReplayGuard:
    """Durable processed-marker per webhook id."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    async def has_been_processed(self, webhook_id: str) -> bool:
        return bool(await self.storage.get_item(webhook_processed_key(webhook_id)))

    async def mark_processed(self, webhook_id: str) -> None:
        await self.storage.set_item(webhook_processed_key(webhook_id), True)
