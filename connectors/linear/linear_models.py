"""Pydantic models for the Linear sync pipeline.

Three families live here:
- write side: SyncedRecord plus one typed indexed-column model per entity type
- read side: StoredRecord (a row as the store returns it) and the canonical
  shapes callers receive (LinearIssue, LinearComment, ...)
- job configs for backfill and reconcile runs
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class SyncedEntityType(StrEnum):
    ISSUE = "issue"
    COMMENT = "comment"
    PROJECT = "project"
    INITIATIVE = "initiative"
    TEAM = "team"

    @property
    def table_name(self) -> str:
        return f"synced_{self.value}s"


WebhookAction = Literal["create", "update", "remove"]

# Linear's webhook `type` values that map onto a stored entity.
# Teams never arrive by webhook, only through backfill.
WEBHOOK_ENTITY_TYPES: dict[str, SyncedEntityType] = {
    "Issue": SyncedEntityType.ISSUE,
    "Comment": SyncedEntityType.COMMENT,
    "Project": SyncedEntityType.PROJECT,
    "Initiative": SyncedEntityType.INITIATIVE,
}


class LinearWebhookPayload(BaseModel):
    """Envelope of a Linear webhook delivery. `data` stays an opaque document."""

    action: str
    type: str
    data: dict[str, Any]
    webhook_id: str | None = Field(default=None, alias="webhookId")
    organization_id: str | None = Field(default=None, alias="organizationId")
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# -- Indexed columns ---------------------------------------------------------
#
# Every field is optional and only *set* fields are written. A column that was
# never assigned is omitted from the upsert (prior value kept); a column that
# was assigned None is written as NULL (explicitly cleared upstream).


class IndexedColumns(BaseModel, frozen=True):
    def values(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class IssueColumns(IndexedColumns, frozen=True):
    identifier: str | None = None
    state_name: str | None = None
    priority: int | None = None
    assignee_name: str | None = None
    team_id: str | None = None
    project_id: str | None = None


class CommentColumns(IndexedColumns, frozen=True):
    issue_linear_id: str | None = None


class ProjectColumns(IndexedColumns, frozen=True):
    name: str | None = None
    status_name: str | None = None
    lead_name: str | None = None
    priority: int | None = None


class InitiativeColumns(IndexedColumns, frozen=True):
    name: str | None = None
    status: str | None = None
    owner_name: str | None = None


class TeamColumns(IndexedColumns, frozen=True):
    name: str | None = None
    key: str | None = None
    parent_team_id: str | None = None


INDEXED_COLUMNS: dict[SyncedEntityType, type[IndexedColumns]] = {
    SyncedEntityType.ISSUE: IssueColumns,
    SyncedEntityType.COMMENT: CommentColumns,
    SyncedEntityType.PROJECT: ProjectColumns,
    SyncedEntityType.INITIATIVE: InitiativeColumns,
    SyncedEntityType.TEAM: TeamColumns,
}


class SyncedRecord(BaseModel, frozen=True):
    """A normalized write for one entity, produced by the record mapper."""

    entity_type: SyncedEntityType
    natural_key: str
    owner_id: str
    document: dict[str, Any]
    columns: IndexedColumns
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StoredRecord(BaseModel):
    """A synced row as read back from the store."""

    entity_type: SyncedEntityType
    natural_key: str
    owner_id: str
    document: dict[str, Any] = Field(default_factory=dict)
    columns: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    synced_at: datetime | None = None


class RecordQuery(BaseModel, frozen=True):
    """Filter for SyncedEntityStore.query.

    `equals` and `any_of` keys are indexed column names or "linear_id".
    An `any_of` entry with an empty list matches nothing.
    """

    equals: dict[str, Any] = Field(default_factory=dict)
    any_of: dict[str, list[Any]] = Field(default_factory=dict)
    order_by: Literal["updated_at_desc", "created_at_asc", "name_asc"] = "updated_at_desc"


# -- Canonical shapes --------------------------------------------------------


class _Shape(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _NestedShape(BaseModel):
    # Nested objects keep whatever extra keys Linear sent
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class WorkflowState(_NestedShape):
    id: str = ""
    name: str = "Unknown"
    color: str = ""
    type: str = ""


class UserRef(_NestedShape):
    id: str = ""
    name: str = "Unknown"


class LabelRef(_NestedShape):
    id: str
    name: str = ""
    color: str = ""


class ProjectRef(_NestedShape):
    id: str = ""
    name: str = ""
    color: str | None = None


class ProjectStatus(_NestedShape):
    id: str = ""
    name: str = "Unknown"
    color: str = ""
    type: str = ""


class LinearIssue(_Shape):
    id: str
    identifier: str = ""
    title: str = ""
    description: str | None = None
    priority: int = 0
    priority_label: str = Field(default="No priority", alias="priorityLabel")
    url: str = ""
    state: WorkflowState = Field(default_factory=WorkflowState)
    assignee: UserRef | None = None
    labels: list[LabelRef] = Field(default_factory=list)
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")
    due_date: str | None = Field(default=None, alias="dueDate")
    project: ProjectRef | None = None


class LinearComment(_Shape):
    id: str
    body: str = ""
    user: UserRef = Field(default_factory=UserRef)
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class LinearTeam(_Shape):
    id: str
    name: str = ""
    key: str = ""
    display_name: str = Field(default="", alias="displayName")
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    private: bool = False
    parent: dict[str, Any] | None = None
    children: list[dict[str, Any]] = Field(default_factory=list)
    members: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class LinearProject(_Shape):
    id: str
    name: str = ""
    description: str | None = None
    status: ProjectStatus = Field(default_factory=ProjectStatus)
    lead: UserRef | None = None
    priority: int = 0
    priority_label: str = Field(default="No priority", alias="priorityLabel")
    progress: float = 0
    health: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    target_date: str | None = Field(default=None, alias="targetDate")
    url: str = ""
    teams: list[dict[str, Any]] = Field(default_factory=list)
    members: list[dict[str, Any]] = Field(default_factory=list)
    initiatives: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class LinearInitiative(_Shape):
    id: str
    name: str = ""
    description: str | None = None
    status: str = "Planned"
    health: str | None = None
    health_updated_at: str | None = Field(default=None, alias="healthUpdatedAt")
    target_date: str | None = Field(default=None, alias="targetDate")
    owner: UserRef | None = None
    projects: list[dict[str, Any]] = Field(default_factory=list)
    sub_initiatives: list[dict[str, Any]] = Field(default_factory=list, alias="subInitiatives")
    parent_initiative: dict[str, Any] | None = Field(default=None, alias="parentInitiative")
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


# -- Job configs -------------------------------------------------------------


class LinearTeamBackfillConfig(BaseModel, frozen=True):
    """Backfill every issue (with comments) and project of one team for one owner."""

    owner_id: str
    team_id: str
    include_comments: bool = True
    include_projects: bool = True


class LinearReconcileConfig(BaseModel, frozen=True):
    """Re-sync every team mapped by an active hub, plus all teams and initiatives."""

    owner_id: str
    include_comments: bool = True
