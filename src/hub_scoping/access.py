"""Hub membership checks.

Every hub read is preceded by a membership check; writes additionally require
a role other than view_only. Failures use fixed messages so callers learn
nothing about the hub beyond "no".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.utils.errors import TenantUnauthorizedError
from src.utils.logging import get_logger

from .models import HubAccess

if TYPE_CHECKING:
    from src.ingest.repositories.hub_mapping_repository import HubMappingStore

logger = get_logger(__name__)

NOT_A_MEMBER_MESSAGE = "Not a member of this hub"
VIEW_ONLY_MESSAGE = "View-only members cannot modify issues"


async def verify_hub_access(
    mappings: HubMappingStore, hub_id: str, user_id: str | None, write: bool = False
) -> HubAccess:
    """Resolve the caller's membership of a hub.

    Raises:
        TenantUnauthorizedError: caller is anonymous, not a member, or is
            view_only and ``write`` was requested
    """
    if not user_id:
        raise TenantUnauthorizedError(NOT_A_MEMBER_MESSAGE)

    role = await mappings.get_member_role(hub_id, user_id)
    if role is None:
        logger.info("Rejected hub access for non-member", hub_id=hub_id, user_id=user_id)
        raise TenantUnauthorizedError(NOT_A_MEMBER_MESSAGE)

    if write and not role.can_write:
        logger.info("Rejected hub write for view-only member", hub_id=hub_id, user_id=user_id)
        raise TenantUnauthorizedError(VIEW_ONLY_MESSAGE)

    return HubAccess(hub_id=hub_id, user_id=user_id, role=role)
