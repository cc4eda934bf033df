"""Map Linear webhook/API payloads onto SyncedRecords.

Every mapper is pure and total over dict input: the payload is stored verbatim
as the record's document, and indexed columns are read through null-safe
accessors. A column whose source field is absent from the payload is left
unset (the store keeps its prior value); a column whose parent object was
explicitly null is set to None.
"""

from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from connectors.linear.linear_helpers import parse_linear_timestamp
from connectors.linear.linear_models import (
    CommentColumns,
    IndexedColumns,
    InitiativeColumns,
    IssueColumns,
    ProjectColumns,
    SyncedEntityType,
    SyncedRecord,
    TeamColumns,
)
from src.utils.errors import MalformedPayloadError, UnsupportedEntityTypeError

_MISSING = object()

C = TypeVar("C", bound=IndexedColumns)


def top_level_field(document: dict[str, Any], key: str) -> Any:
    """`document[key]`, or _MISSING when the key is absent. Falsy values are returned as-is."""
    return document[key] if key in document else _MISSING


def nested_field(document: dict[str, Any], parent: str, key: str) -> Any:
    """`document[parent][key]` without assuming either level exists.

    Returns None when the parent is explicitly null, and _MISSING when the
    parent (or the key inside it) is absent or the parent is not an object.
    """
    if parent not in document:
        return _MISSING

    parent_value = document[parent]
    if parent_value is None:
        return None
    if not isinstance(parent_value, dict) or key not in parent_value:
        return _MISSING
    return parent_value[key]


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not _MISSING:
            return value
    return _MISSING


def _build_columns(columns_class: type[C], **values: Any) -> C:
    present = {name: value for name, value in values.items() if value is not _MISSING}
    try:
        return columns_class(**present)
    except ValidationError as e:
        raise MalformedPayloadError(f"Unexpected field types for {columns_class.__name__}: {e}") from e


def _require_natural_key(payload: dict[str, Any], entity_type: SyncedEntityType) -> str:
    natural_key = payload.get("id")
    if not natural_key or not isinstance(natural_key, str):
        raise MalformedPayloadError(f"{entity_type.value} payload has no id")
    return natural_key


def _timestamp(payload: dict[str, Any], key: str):
    value = payload.get(key)
    if not value:
        return None
    if not isinstance(value, str):
        raise MalformedPayloadError(f"Invalid {key} timestamp {value!r}")
    try:
        return parse_linear_timestamp(value)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Invalid {key} timestamp {value!r}") from e


def _build_record(
    entity_type: SyncedEntityType,
    action: str,
    payload: dict[str, Any],
    owner_id: str,
    columns: IndexedColumns,
) -> SyncedRecord:
    return SyncedRecord(
        entity_type=entity_type,
        natural_key=_require_natural_key(payload, entity_type),
        owner_id=owner_id,
        document=payload,
        columns=columns,
        # createdAt is only trusted on create; later partial updates never move it
        created_at=_timestamp(payload, "createdAt") if action == "create" else None,
        updated_at=_timestamp(payload, "updatedAt"),
    )


def map_issue_webhook_to_record(action: str, payload: dict[str, Any], owner_id: str) -> SyncedRecord:
    columns = _build_columns(
        IssueColumns,
        identifier=top_level_field(payload, "identifier"),
        state_name=nested_field(payload, "state", "name"),
        priority=top_level_field(payload, "priority"),
        assignee_name=nested_field(payload, "assignee", "name"),
        team_id=_first_present(nested_field(payload, "team", "id"), top_level_field(payload, "teamId")),
        project_id=_first_present(
            nested_field(payload, "project", "id"), top_level_field(payload, "projectId")
        ),
    )
    return _build_record(SyncedEntityType.ISSUE, action, payload, owner_id, columns)


def map_comment_webhook_to_record(
    action: str, payload: dict[str, Any], owner_id: str
) -> SyncedRecord:
    columns = _build_columns(
        CommentColumns,
        issue_linear_id=_first_present(
            nested_field(payload, "issue", "id"), top_level_field(payload, "issueId")
        ),
    )
    return _build_record(SyncedEntityType.COMMENT, action, payload, owner_id, columns)


def map_project_webhook_to_record(
    action: str, payload: dict[str, Any], owner_id: str
) -> SyncedRecord:
    columns = _build_columns(
        ProjectColumns,
        name=top_level_field(payload, "name"),
        status_name=nested_field(payload, "status", "name"),
        lead_name=nested_field(payload, "lead", "name"),
        priority=top_level_field(payload, "priority"),
    )
    return _build_record(SyncedEntityType.PROJECT, action, payload, owner_id, columns)


def map_initiative_webhook_to_record(
    action: str, payload: dict[str, Any], owner_id: str
) -> SyncedRecord:
    columns = _build_columns(
        InitiativeColumns,
        name=top_level_field(payload, "name"),
        status=top_level_field(payload, "status"),
        owner_name=nested_field(payload, "owner", "name"),
    )
    return _build_record(SyncedEntityType.INITIATIVE, action, payload, owner_id, columns)


def map_team_to_record(action: str, payload: dict[str, Any], owner_id: str) -> SyncedRecord:
    """Teams have no webhook; backfill maps them as `create`."""
    columns = _build_columns(
        TeamColumns,
        name=top_level_field(payload, "name"),
        key=top_level_field(payload, "key"),
        parent_team_id=nested_field(payload, "parent", "id"),
    )
    return _build_record(SyncedEntityType.TEAM, action, payload, owner_id, columns)


RecordMapper = Callable[[str, dict[str, Any], str], SyncedRecord]

RECORD_MAPPERS: dict[SyncedEntityType, RecordMapper] = {
    SyncedEntityType.ISSUE: map_issue_webhook_to_record,
    SyncedEntityType.COMMENT: map_comment_webhook_to_record,
    SyncedEntityType.PROJECT: map_project_webhook_to_record,
    SyncedEntityType.INITIATIVE: map_initiative_webhook_to_record,
    SyncedEntityType.TEAM: map_team_to_record,
}


def map_payload_to_record(
    entity_type: SyncedEntityType | str, action: str, payload: dict[str, Any], owner_id: str
) -> SyncedRecord:
    """Dispatch to the mapper for `entity_type`."""
    try:
        mapper = RECORD_MAPPERS[SyncedEntityType(entity_type)]
    except ValueError as e:
        raise UnsupportedEntityTypeError(str(entity_type)) from e

    if not isinstance(payload, dict):
        raise MalformedPayloadError(f"{entity_type} payload is not an object")
    return mapper(action, payload, owner_id)
