"""Repository for Linear webhook subscriptions.

A subscription ties a Linear webhook (by its webhookId) to the owner whose
synced data it feeds, along with the signing secret Linear uses for it.
"""

from __future__ import annotations

from typing import Protocol

import asyncpg
from pydantic import BaseModel

from src.utils.errors import StorageUnavailableError

_UNAVAILABLE_ERRORS = (asyncpg.PostgresConnectionError, asyncpg.InterfaceError, OSError, TimeoutError)


class SyncSubscription(BaseModel):
    owner_id: str
    team_id: str | None = None
    webhook_id: str | None = None
    webhook_secret: str
    is_active: bool = True

    class Config:
        from_attributes = True


class SyncSubscriptionStore(Protocol):
    async def get_by_webhook_id(self, webhook_id: str) -> SyncSubscription | None: ...

    async def list_active(self) -> list[SyncSubscription]: ...


class MemorySyncSubscriptionStore(SyncSubscriptionStore):
    def __init__(self, subscriptions: list[SyncSubscription] | None = None) -> None:
        self.subscriptions = list(subscriptions or [])

    async def get_by_webhook_id(self, webhook_id: str) -> SyncSubscription | None:
        for subscription in self.subscriptions:
            if subscription.is_active and subscription.webhook_id == webhook_id:
                return subscription
        return None

    async def list_active(self) -> list[SyncSubscription]:
        return [s for s in self.subscriptions if s.is_active]


class SyncSubscriptionRepository(SyncSubscriptionStore):
    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def get_by_webhook_id(self, webhook_id: str) -> SyncSubscription | None:
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT owner_id, team_id, webhook_id, webhook_secret, is_active
                    FROM sync_subscriptions
                    WHERE webhook_id = $1 AND is_active = TRUE
                    LIMIT 1
                    """,
                    webhook_id,
                )
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Subscription store unavailable: {e}") from e

        return SyncSubscription(**dict(row)) if row else None

    async def list_active(self) -> list[SyncSubscription]:
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT owner_id, team_id, webhook_id, webhook_secret, is_active
                    FROM sync_subscriptions
                    WHERE is_active = TRUE
                    ORDER BY created_at
                    """
                )
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Subscription store unavailable: {e}") from e

        return [SyncSubscription(**dict(row)) for row in rows]
