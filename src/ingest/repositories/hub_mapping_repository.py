"""Repository for hub team mappings and hub memberships."""

from __future__ import annotations

from typing import Protocol

import asyncpg

from src.hub_scoping.models import HubMemberRole, HubTeamMapping
from src.utils.errors import StorageUnavailableError

_UNAVAILABLE_ERRORS = (asyncpg.PostgresConnectionError, asyncpg.InterfaceError, OSError, TimeoutError)

_MAPPING_COLUMNS = """
    hub_id, team_id, team_name, visible_project_ids, visible_initiative_ids,
    visible_label_ids, is_active
"""


class HubMappingStore(Protocol):
    async def get_active_mappings(self, hub_id: str) -> list[HubTeamMapping]: ...

    async def get_all_active_mappings(self) -> list[HubTeamMapping]: ...

    async def get_member_role(self, hub_id: str, user_id: str) -> HubMemberRole | None: ...


class MemoryHubMappingStore(HubMappingStore):
    def __init__(
        self,
        mappings: list[HubTeamMapping] | None = None,
        members: dict[tuple[str, str], HubMemberRole] | None = None,
    ) -> None:
        self.mappings = list(mappings or [])
        self.members = dict(members or {})

    async def get_active_mappings(self, hub_id: str) -> list[HubTeamMapping]:
        return [m for m in self.mappings if m.hub_id == hub_id and m.is_active]

    async def get_all_active_mappings(self) -> list[HubTeamMapping]:
        return [m for m in self.mappings if m.is_active]

    async def get_member_role(self, hub_id: str, user_id: str) -> HubMemberRole | None:
        return self.members.get((hub_id, user_id))


def _row_to_mapping(row: asyncpg.Record) -> HubTeamMapping:
    return HubTeamMapping(
        hub_id=str(row["hub_id"]),
        team_id=row["team_id"],
        team_name=row["team_name"] or "",
        visible_project_ids=list(row["visible_project_ids"] or []),
        visible_initiative_ids=list(row["visible_initiative_ids"] or []),
        visible_label_ids=list(row["visible_label_ids"] or []),
        is_active=row["is_active"],
    )


class HubMappingRepository(HubMappingStore):
    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def get_active_mappings(self, hub_id: str) -> list[HubTeamMapping]:
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_MAPPING_COLUMNS}
                    FROM hub_team_mappings
                    WHERE hub_id = $1 AND is_active = TRUE
                    ORDER BY created_at
                    """,
                    hub_id,
                )
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Hub mapping store unavailable: {e}") from e

        return [_row_to_mapping(row) for row in rows]

    async def get_all_active_mappings(self) -> list[HubTeamMapping]:
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_MAPPING_COLUMNS}
                    FROM hub_team_mappings
                    WHERE is_active = TRUE
                    ORDER BY hub_id, created_at
                    """
                )
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Hub mapping store unavailable: {e}") from e

        return [_row_to_mapping(row) for row in rows]

    async def get_member_role(self, hub_id: str, user_id: str) -> HubMemberRole | None:
        try:
            async with self.db_pool.acquire() as conn:
                role = await conn.fetchval(
                    "SELECT role FROM hub_members WHERE hub_id = $1 AND user_id = $2",
                    hub_id,
                    user_id,
                )
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Hub mapping store unavailable: {e}") from e

        if role is None:
            return None
        try:
            return HubMemberRole(role)
        except ValueError:
            # Unknown roles get the least privilege that still allows reads
            return HubMemberRole.VIEW_ONLY
