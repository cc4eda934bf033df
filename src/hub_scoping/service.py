"""Hub-scoped reads over the synced store.

Every read resolves the hub's active team mappings first. A hub with no
mappings, or a request for a team/project outside the hub's scope, gets an
empty result rather than an error so that scoping configuration never leaks
through error responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from connectors.linear.linear_helpers import format_linear_timestamp
from connectors.linear.linear_models import (
    LabelRef,
    LinearComment,
    LinearInitiative,
    LinearIssue,
    LinearProject,
    LinearTeam,
    RecordQuery,
    StoredRecord,
    SyncedEntityType,
    WorkflowState,
)
from connectors.linear.linear_read_projector import (
    project_comment,
    project_initiative,
    project_issue,
    project_issue_detail,
    project_project,
    project_roadmap_issue,
    project_team,
)
from src.utils.logging import get_logger

from .models import HubMetadata, HubTeamMapping, HubTeamStats, HubVisibility, LabelChangePlan
from .visibility import (
    compute_visibility,
    is_allowed,
    plan_label_change,
    scope_issue,
    visible_labels,
)

if TYPE_CHECKING:
    from src.ingest.repositories.hub_mapping_repository import HubMappingStore
    from src.ingest.repositories.synced_entity_repository import SyncedEntityStore

logger = get_logger(__name__)

CLOSED_STATE_TYPES = frozenset({"completed", "cancelled"})


def _issue_team_id(record: StoredRecord) -> str | None:
    return record.columns.get("team_id")


def _project_team_ids(record: StoredRecord) -> set[str]:
    """Team ids a project document links to, from `teams` objects or `teamIds`."""
    document = record.document
    teams = document.get("teams")
    if isinstance(teams, dict):
        teams = teams.get("nodes")

    team_ids: set[str] = set()
    if isinstance(teams, list):
        team_ids.update(t["id"] for t in teams if isinstance(t, dict) and isinstance(t.get("id"), str))
    if isinstance(document.get("teamIds"), list):
        team_ids.update(t for t in document["teamIds"] if isinstance(t, str))
    return team_ids


class HubReadService:
    def __init__(self, store: SyncedEntityStore, mappings: HubMappingStore, owner_id: str):
        self.store = store
        self.mappings = mappings
        self.owner_id = owner_id

    async def get_visibility(self, hub_id: str, team_id: str | None = None) -> HubVisibility:
        return compute_visibility(await self.mappings.get_active_mappings(hub_id), team_id=team_id)

    async def _scoped_issue_record(
        self, hub_id: str, issue_id: str
    ) -> tuple[StoredRecord, list[HubTeamMapping]] | None:
        """Point lookup that re-checks the issue's team against the hub's teams.

        Returns the record with the hub's active mappings, so callers can derive
        visibility without loading them again.
        """
        mappings = await self.mappings.get_active_mappings(hub_id)
        visibility = compute_visibility(mappings)
        if not visibility.has_teams:
            return None

        record = await self.store.get(SyncedEntityType.ISSUE, self.owner_id, issue_id)
        if record is None or _issue_team_id(record) not in visibility.team_ids:
            return None
        return record, mappings

    async def list_issues(
        self,
        hub_id: str,
        project_id: str | None = None,
        team_id: str | None = None,
        statuses: list[str] | None = None,
    ) -> list[LinearIssue]:
        visibility = await self.get_visibility(hub_id)
        if not visibility.has_teams:
            return []
        if team_id and team_id not in visibility.team_ids:
            return []
        if project_id and not is_allowed(visibility.project_filter, project_id):
            return []

        equals: dict[str, Any] = {}
        any_of: dict[str, list[Any]] = {"team_id": [team_id] if team_id else sorted(visibility.team_ids)}
        if project_id:
            equals["project_id"] = project_id
        elif visibility.project_filter is not None:
            any_of["project_id"] = sorted(visibility.project_filter)
        if statuses:
            any_of["state_name"] = list(statuses)

        records = await self.store.query(
            SyncedEntityType.ISSUE, self.owner_id, RecordQuery(equals=equals, any_of=any_of)
        )
        return [scope_issue(project_issue(record), visibility) for record in records]

    async def get_issue_detail(self, hub_id: str, issue_id: str) -> LinearIssue | None:
        scoped = await self._scoped_issue_record(hub_id, issue_id)
        if scoped is None:
            return None
        record, mappings = scoped
        return scope_issue(project_issue_detail(record), compute_visibility(mappings))

    async def list_comments(self, hub_id: str, issue_id: str) -> list[LinearComment]:
        if await self._scoped_issue_record(hub_id, issue_id) is None:
            return []

        records = await self.store.query(
            SyncedEntityType.COMMENT,
            self.owner_id,
            RecordQuery(equals={"issue_linear_id": issue_id}, order_by="created_at_asc"),
        )
        return [project_comment(record) for record in records]

    async def list_roadmap_issues(self, hub_id: str, project_ids: list[str]) -> list[LinearIssue]:
        visibility = await self.get_visibility(hub_id)
        if not visibility.has_teams:
            return []

        requested = [pid for pid in project_ids if is_allowed(visibility.project_filter, pid)]
        if not requested:
            return []

        records = await self.store.query(
            SyncedEntityType.ISSUE,
            self.owner_id,
            RecordQuery(any_of={"project_id": requested, "team_id": sorted(visibility.team_ids)}),
        )
        return [scope_issue(project_roadmap_issue(record), visibility) for record in records]

    async def list_projects(self, hub_id: str, status_name: str | None = None) -> list[LinearProject]:
        visibility = await self.get_visibility(hub_id)
        if not visibility.has_teams:
            return []

        equals = {"status_name": status_name} if status_name else {}
        any_of = (
            {"linear_id": sorted(visibility.project_filter)}
            if visibility.project_filter is not None
            else {}
        )
        records = await self.store.query(
            SyncedEntityType.PROJECT, self.owner_id, RecordQuery(equals=equals, any_of=any_of)
        )
        return [
            project_project(record)
            for record in records
            if _project_team_ids(record) & visibility.team_ids
        ]

    async def list_initiatives(self, hub_id: str, status: str | None = None) -> list[LinearInitiative]:
        visibility = await self.get_visibility(hub_id)
        if not visibility.has_teams:
            return []

        equals = {"status": status} if status else {}
        any_of = (
            {"linear_id": sorted(visibility.initiative_filter)}
            if visibility.initiative_filter is not None
            else {}
        )
        records = await self.store.query(
            SyncedEntityType.INITIATIVE, self.owner_id, RecordQuery(equals=equals, any_of=any_of)
        )
        return [project_initiative(record) for record in records]

    async def list_teams(self, hub_id: str) -> list[LinearTeam]:
        visibility = await self.get_visibility(hub_id)
        if not visibility.has_teams:
            return []

        records = await self.store.query(
            SyncedEntityType.TEAM,
            self.owner_id,
            RecordQuery(any_of={"linear_id": sorted(visibility.team_ids)}, order_by="name_asc"),
        )
        return [project_team(record) for record in records]

    async def get_metadata(
        self, hub_id: str, project_id: str | None = None, team_id: str | None = None
    ) -> HubMetadata:
        """Distinct workflow states and hub-visible labels across the hub's issues."""
        issues = await self.list_issues(hub_id, project_id=project_id, team_id=team_id)

        states: dict[str, WorkflowState] = {}
        labels: dict[str, LabelRef] = {}
        for issue in issues:
            # Projected issues default a missing state to "Unknown"; skip those
            if issue.state.id or issue.state.name != "Unknown":
                states[issue.state.name] = issue.state
            for label in issue.labels:
                labels[label.id] = label

        return HubMetadata(states=list(states.values()), labels=list(labels.values()))

    async def get_team_stats(self, hub_id: str) -> dict[str, HubTeamStats]:
        """Per mapped team: open issues, last activity and visible linked projects."""
        visibility = await self.get_visibility(hub_id)
        if not visibility.has_teams:
            return {}

        stats = {team_id: HubTeamStats(team_id=team_id) for team_id in sorted(visibility.team_ids)}
        last_activity: dict[str, Any] = {}

        issues = await self.store.query(
            SyncedEntityType.ISSUE,
            self.owner_id,
            RecordQuery(any_of={"team_id": sorted(visibility.team_ids)}),
        )
        for record in issues:
            team_id = _issue_team_id(record)
            if team_id not in stats:
                continue
            state = record.document.get("state")
            state_type = state.get("type") if isinstance(state, dict) else None
            if state_type not in CLOSED_STATE_TYPES:
                stats[team_id].open_issue_count += 1
            if record.updated_at and (
                team_id not in last_activity or record.updated_at > last_activity[team_id]
            ):
                last_activity[team_id] = record.updated_at

        projects = await self.store.query(SyncedEntityType.PROJECT, self.owner_id)
        for record in projects:
            if not is_allowed(visibility.project_filter, record.natural_key):
                continue
            for team_id in _project_team_ids(record):
                if team_id in stats:
                    stats[team_id].project_count += 1

        for team_id, timestamp in last_activity.items():
            stats[team_id].last_activity = format_linear_timestamp(timestamp)
        return stats

    async def plan_label_change(
        self, hub_id: str, issue_id: str, label_id: str, action: str
    ) -> LabelChangePlan | None:
        """Validate a label add/remove against the visibility of the issue's team.

        Returns None when the issue is not visible in the hub.
        """
        scoped = await self._scoped_issue_record(hub_id, issue_id)
        if scoped is None:
            return None

        record, mappings = scoped
        visibility = compute_visibility(mappings, team_id=_issue_team_id(record))
        plan = plan_label_change(
            {**record.document, "id": record.natural_key}, label_id, action, visibility.label_filter
        )

        # Labels we already know about; a newly added label may not be synced yet
        known = {label.id: label for label in project_issue(record).labels}
        resulting = [known.get(lid, LabelRef(id=lid)) for lid in plan.label_ids]
        return plan.model_copy(
            update={"visible_labels": visible_labels(resulting, visibility.label_filter)}
        )
