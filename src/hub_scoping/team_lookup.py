"""Cached team -> hub lookup.

Webhook processing and reconcile need to know which hubs a Linear team feeds.
The mapping changes rarely, so it is loaded once and cached with a short TTL.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.utils.config import get_hub_team_cache_ttl_seconds
from src.utils.errors import StorageUnavailableError
from src.utils.logging import get_logger
from src.utils.ttl_cache import TTLCache

if TYPE_CHECKING:
    from src.ingest.repositories.hub_mapping_repository import HubMappingStore

logger = get_logger(__name__)

_CACHE_KEY = ("team_to_hub_map",)


class TeamHubLookup:
    def __init__(self, mappings: HubMappingStore, ttl: float | None = None):
        self.mappings = mappings
        self.cache = TTLCache(ttl=ttl if ttl is not None else get_hub_team_cache_ttl_seconds())

    async def get_team_to_hub_map(self) -> dict[str, list[str]]:
        """team_id -> hub ids of every active mapping.

        Falls back to the last loaded map (or an empty one) if the store is down.
        """
        cached = await self.cache.get(_CACHE_KEY)
        if cached is not None:
            return cached

        try:
            active = await self.mappings.get_all_active_mappings()
        except StorageUnavailableError as e:
            stale = await self.cache.get_stale(_CACHE_KEY)
            logger.warning(
                "Failed to load hub team mappings, serving cached map",
                error=str(e),
                has_stale_map=stale is not None,
            )
            return stale if stale is not None else {}

        team_to_hubs: dict[str, list[str]] = {}
        for mapping in active:
            hubs = team_to_hubs.setdefault(mapping.team_id, [])
            if mapping.hub_id not in hubs:
                hubs.append(mapping.hub_id)

        await self.cache.set(_CACHE_KEY, team_to_hubs)
        return team_to_hubs

    async def is_team_configured(self, team_id: str) -> bool:
        return team_id in await self.get_team_to_hub_map()

    async def get_hubs_for_team(self, team_id: str) -> list[str]:
        return list((await self.get_team_to_hub_map()).get(team_id, []))

    async def get_all_configured_team_ids(self) -> set[str]:
        return set(await self.get_team_to_hub_map())

    async def invalidate(self) -> None:
        """Drop the cached map, e.g. after a mapping was added or deactivated."""
        await self.cache.invalidate(_CACHE_KEY)
