"""Project stored records back into canonical Linear shapes.

Projection reads only the record's document (never its indexed columns) and
fills anything absent with fixed defaults, so a partially synced record is
always presentable. Timestamps fall back to the row's own storage timestamps.
"""

from typing import Any

from connectors.linear.linear_helpers import format_linear_timestamp, priority_to_label
from connectors.linear.linear_models import (
    LabelRef,
    LinearComment,
    LinearInitiative,
    LinearIssue,
    LinearProject,
    LinearTeam,
    ProjectRef,
    ProjectStatus,
    StoredRecord,
    UserRef,
    WorkflowState,
)


def _object(document: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = document.get(key)
    return value if isinstance(value, dict) else None


def _objects(document: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = document.get(key)
    if isinstance(value, dict) and isinstance(value.get("nodes"), list):
        value = value["nodes"]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _string(document: dict[str, Any], key: str, default: str = "") -> str:
    value = document.get(key)
    return value if isinstance(value, str) else default


def _optional_string(document: dict[str, Any], key: str) -> str | None:
    value = document.get(key)
    return value if isinstance(value, str) else None


def _priority(document: dict[str, Any]) -> int:
    value = document.get("priority")
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def _priority_label(document: dict[str, Any], priority: int) -> str:
    label = document.get("priorityLabel")
    return label if isinstance(label, str) and label else priority_to_label(priority)


def _timestamps(record: StoredRecord) -> dict[str, str | None]:
    document = record.document
    return {
        "created_at": _optional_string(document, "createdAt")
        or format_linear_timestamp(record.created_at),
        "updated_at": _optional_string(document, "updatedAt")
        or format_linear_timestamp(record.updated_at),
    }


def _user(document: dict[str, Any], key: str) -> UserRef | None:
    user = _object(document, key)
    if user is None:
        return None
    return UserRef.model_validate({**user, "id": user.get("id") or "", "name": user.get("name") or "Unknown"})


def _state(document: dict[str, Any]) -> WorkflowState:
    state = _object(document, "state")
    if state is None:
        return WorkflowState()
    return WorkflowState.model_validate(
        {
            **state,
            "id": state.get("id") or "",
            "name": state.get("name") or "Unknown",
            "color": state.get("color") or "",
            "type": state.get("type") or "",
        }
    )


def _labels(document: dict[str, Any]) -> list[LabelRef]:
    return [
        LabelRef.model_validate(
            {**label, "name": label.get("name") or "", "color": label.get("color") or ""}
        )
        for label in _objects(document, "labels")
        if isinstance(label.get("id"), str)
    ]


def project_issue(record: StoredRecord) -> LinearIssue:
    """Stored issue row -> LinearIssue, filling the documented defaults."""
    document = record.document
    priority = _priority(document)
    return LinearIssue(
        id=record.natural_key,
        identifier=_string(document, "identifier"),
        title=_string(document, "title"),
        description=_optional_string(document, "description"),
        priority=priority,
        priority_label=_priority_label(document, priority),
        url=_string(document, "url"),
        state=_state(document),
        assignee=_user(document, "assignee"),
        labels=_labels(document),
        **_timestamps(record),
    )


def project_issue_detail(record: StoredRecord) -> LinearIssue:
    """Issue projection plus dueDate, as shown on the issue detail view."""
    issue = project_issue(record)
    issue.due_date = _optional_string(record.document, "dueDate")
    return issue


def project_roadmap_issue(record: StoredRecord) -> LinearIssue:
    """Issue projection plus dueDate and a compact project reference."""
    issue = project_issue_detail(record)
    if project := _object(record.document, "project"):
        issue.project = ProjectRef(
            id=project.get("id") or "",
            name=project.get("name") or "",
            color=project.get("color"),
        )
    return issue


def project_comment(record: StoredRecord) -> LinearComment:
    document = record.document
    return LinearComment(
        id=record.natural_key,
        body=_string(document, "body"),
        user=_user(document, "user") or UserRef(),
        **_timestamps(record),
    )


def project_team(record: StoredRecord) -> LinearTeam:
    document = record.document
    name = _string(document, "name")
    return LinearTeam(
        id=record.natural_key,
        name=name,
        key=_string(document, "key"),
        display_name=_string(document, "displayName") or name,
        description=_optional_string(document, "description"),
        icon=_optional_string(document, "icon"),
        color=_optional_string(document, "color"),
        private=document.get("private") is True,
        parent=_object(document, "parent"),
        children=_objects(document, "children"),
        members=_objects(document, "members"),
        **_timestamps(record),
    )


def project_project(record: StoredRecord) -> LinearProject:
    document = record.document
    priority = _priority(document)
    status = _object(document, "status")
    progress = document.get("progress")
    return LinearProject(
        id=record.natural_key,
        name=_string(document, "name"),
        description=_optional_string(document, "description"),
        status=(
            ProjectStatus.model_validate(
                {
                    **status,
                    "id": status.get("id") or "",
                    "name": status.get("name") or "Unknown",
                    "color": status.get("color") or "",
                    "type": status.get("type") or "",
                }
            )
            if status
            else ProjectStatus()
        ),
        lead=_user(document, "lead"),
        priority=priority,
        priority_label=_priority_label(document, priority),
        progress=progress if isinstance(progress, int | float) and not isinstance(progress, bool) else 0,
        health=_optional_string(document, "health"),
        start_date=_optional_string(document, "startDate"),
        target_date=_optional_string(document, "targetDate"),
        url=_string(document, "url"),
        teams=_objects(document, "teams"),
        members=_objects(document, "members"),
        initiatives=_objects(document, "initiatives"),
        **_timestamps(record),
    )


def project_initiative(record: StoredRecord) -> LinearInitiative:
    document = record.document
    return LinearInitiative(
        id=record.natural_key,
        name=_string(document, "name"),
        description=_optional_string(document, "description"),
        status=_string(document, "status") or "Planned",
        health=_optional_string(document, "health"),
        health_updated_at=_optional_string(document, "healthUpdatedAt"),
        target_date=_optional_string(document, "targetDate"),
        owner=_user(document, "owner"),
        projects=_objects(document, "projects"),
        sub_initiatives=_objects(document, "subInitiatives"),
        parent_initiative=_object(document, "parentInitiative"),
        **_timestamps(record),
    )
