from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from connectors.linear.linear_models import LabelRef, WorkflowState


class HubMemberRole(StrEnum):
    DEFAULT = "default"
    VIEW_ONLY = "view_only"
    ADMIN = "admin"

    @property
    def can_write(self) -> bool:
        return self is not HubMemberRole.VIEW_ONLY


class HubTeamMapping(BaseModel):
    """One Linear team exposed to a hub, optionally narrowed by project/initiative/label.

    An empty visible_* list means "no filter on that dimension", not "nothing visible".
    """

    hub_id: str
    team_id: str
    team_name: str = ""
    visible_project_ids: list[str] = Field(default_factory=list)
    visible_initiative_ids: list[str] = Field(default_factory=list)
    visible_label_ids: list[str] = Field(default_factory=list)
    is_active: bool = True

    class Config:
        from_attributes = True


class HubVisibility(BaseModel, frozen=True):
    """Effective visibility of a hub, merged across its active team mappings.

    A filter of None means that dimension is unscoped.
    """

    team_ids: frozenset[str] = frozenset()
    project_filter: frozenset[str] | None = None
    initiative_filter: frozenset[str] | None = None
    label_filter: frozenset[str] | None = None

    @property
    def has_teams(self) -> bool:
        return bool(self.team_ids)


class HubAccess(BaseModel, frozen=True):
    hub_id: str
    user_id: str
    role: HubMemberRole


class HubMetadata(BaseModel):
    """Filter options for a hub's issue views. Assignees are never included."""

    states: list[WorkflowState] = Field(default_factory=list)
    labels: list[LabelRef] = Field(default_factory=list)


class HubTeamStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: str = Field(alias="teamId")
    project_count: int = Field(default=0, alias="projectCount")
    open_issue_count: int = Field(default=0, alias="openIssueCount")
    last_activity: str | None = Field(default=None, alias="lastActivity")


class LabelChangePlan(BaseModel, frozen=True):
    """Full label id list an issue should end up with after an add/remove."""

    issue_id: str
    action: str
    label_id: str
    label_ids: list[str]
    # Hub-visible subset of the resulting labels, for the response
    visible_labels: list[LabelRef] = Field(default_factory=list)
