"""Hub scoping: which synced Linear data a hub may see, and who may see it."""

from .access import verify_hub_access
from .models import (
    HubAccess,
    HubMemberRole,
    HubMetadata,
    HubTeamMapping,
    HubTeamStats,
    HubVisibility,
    LabelChangePlan,
)
from .service import HubReadService
from .team_lookup import TeamHubLookup
from .visibility import (
    compute_visibility,
    filter_labels,
    merge_visibility,
    plan_label_change,
    scope_issue,
    strip_assignee,
    visible_labels,
)

__all__ = [
    "HubAccess",
    "HubMemberRole",
    "HubMetadata",
    "HubReadService",
    "HubTeamMapping",
    "HubTeamStats",
    "HubVisibility",
    "LabelChangePlan",
    "TeamHubLookup",
    "compute_visibility",
    "filter_labels",
    "merge_visibility",
    "plan_label_change",
    "scope_issue",
    "strip_assignee",
    "verify_hub_access",
    "visible_labels",
]
