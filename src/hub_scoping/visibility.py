"""Visibility scoping for hubs.

A hub aggregates one or more Linear team mappings. Each mapping can narrow the
projects, initiatives and labels it exposes; an empty list leaves that
dimension open. Merging is per dimension: any open mapping opens the whole
dimension, otherwise the allow-lists are unioned.

Everything here is pure. Storage access lives in HubReadService.
"""

from collections.abc import Iterable, Sequence
from typing import Any, Literal

from connectors.linear.linear_models import LabelRef, LinearIssue
from src.utils.errors import LabelChangeRejectedError

from .models import HubTeamMapping, HubVisibility, LabelChangePlan

VisibilityDimension = Literal["visible_project_ids", "visible_initiative_ids", "visible_label_ids"]
LabelAction = Literal["add", "remove"]


def merge_visibility(
    mappings: Sequence[HubTeamMapping], field: VisibilityDimension
) -> frozenset[str] | None:
    """Merge one visibility dimension across mappings. None means unscoped."""
    has_unscoped = False
    allowed: set[str] = set()

    for mapping in mappings:
        ids = getattr(mapping, field)
        if not ids:
            has_unscoped = True
        else:
            allowed.update(ids)

    return None if has_unscoped else frozenset(allowed)


def compute_visibility(
    mappings: Sequence[HubTeamMapping], team_id: str | None = None
) -> HubVisibility:
    """Effective visibility of a hub from its mappings.

    Inactive mappings are ignored. With ``team_id`` only that team's mappings
    contribute, which is how per-issue label scoping works.
    """
    active = [m for m in mappings if m.is_active]
    if team_id is not None:
        active = [m for m in active if m.team_id == team_id]

    if not active:
        # No mappings: nothing is visible, regardless of the filters
        return HubVisibility(
            team_ids=frozenset(),
            project_filter=frozenset(),
            initiative_filter=frozenset(),
            label_filter=frozenset(),
        )

    return HubVisibility(
        team_ids=frozenset(m.team_id for m in active),
        project_filter=merge_visibility(active, "visible_project_ids"),
        initiative_filter=merge_visibility(active, "visible_initiative_ids"),
        label_filter=merge_visibility(active, "visible_label_ids"),
    )


def is_allowed(allowed: frozenset[str] | None, entity_id: str | None) -> bool:
    """Check an id against a merged filter. Unscoped filters allow anything."""
    if allowed is None:
        return True
    return entity_id is not None and entity_id in allowed


def strip_assignee(issue: LinearIssue) -> LinearIssue:
    return issue.model_copy(update={"assignee": None})


def filter_labels(issue: LinearIssue, allowed_label_ids: frozenset[str] | None) -> LinearIssue:
    """Keep only hub-visible labels. An issue left with no labels is still returned."""
    if allowed_label_ids is None:
        return issue
    return issue.model_copy(
        update={"labels": [label for label in issue.labels if label.id in allowed_label_ids]}
    )


def scope_issue(issue: LinearIssue, visibility: HubVisibility) -> LinearIssue:
    """Apply the blanket hub redactions to an issue already known to be in scope."""
    return filter_labels(strip_assignee(issue), visibility.label_filter)


def visible_labels(
    labels: Iterable[LabelRef | dict[str, Any]], allowed_label_ids: frozenset[str] | None
) -> list[LabelRef]:
    """Hub-visible subset of a label list, e.g. the labels returned after a write-back."""
    refs = [
        label if isinstance(label, LabelRef) else LabelRef.model_validate(label)
        for label in labels
    ]
    if allowed_label_ids is None:
        return refs
    return [label for label in refs if label.id in allowed_label_ids]


def _current_label_ids(issue_document: dict[str, Any]) -> list[str]:
    labels = issue_document.get("labels")
    if isinstance(labels, dict):
        labels = labels.get("nodes")
    if not isinstance(labels, list):
        return []
    return [
        label["id"]
        for label in labels
        if isinstance(label, dict) and isinstance(label.get("id"), str)
    ]


def plan_label_change(
    issue_document: dict[str, Any],
    label_id: str,
    action: str,
    allowed_label_ids: frozenset[str] | None,
) -> LabelChangePlan:
    """Validate a hub user's label add/remove and compute the issue's new label ids.

    Raises:
        LabelChangeRejectedError: 403 for a label outside the hub's visibility,
            400 for an unknown action, adding an applied label or removing a
            label the issue does not carry.
    """
    if action not in ("add", "remove") or not label_id:
        raise LabelChangeRejectedError("action and labelId are required", status_code=400)

    if not is_allowed(allowed_label_ids, label_id):
        raise LabelChangeRejectedError("Label not visible in this hub", status_code=403)

    current = _current_label_ids(issue_document)
    if action == "add":
        if label_id in current:
            raise LabelChangeRejectedError("Label already applied")
        new_label_ids = [*current, label_id]
    else:
        if label_id not in current:
            raise LabelChangeRejectedError("Label not on issue")
        new_label_ids = [existing for existing in current if existing != label_id]

    return LabelChangePlan(
        issue_id=str(issue_document.get("id", "")),
        action=action,
        label_id=label_id,
        label_ids=new_label_ids,
    )
