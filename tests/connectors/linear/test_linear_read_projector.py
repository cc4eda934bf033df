"""Tests for projecting stored records back into Linear shapes."""

from datetime import UTC, datetime

from connectors.linear.linear_models import StoredRecord, SyncedEntityType
from connectors.linear.linear_read_projector import (
    project_comment,
    project_initiative,
    project_issue,
    project_issue_detail,
    project_project,
    project_roadmap_issue,
    project_team,
)


def stored(entity_type, natural_key, document, **kwargs):
    return StoredRecord(
        entity_type=entity_type, natural_key=natural_key, owner_id="owner-1", document=document, **kwargs
    )


class TestProjectIssue:
    """Test issue projection defaults and shapes."""

    def test_empty_document_gets_defaults(self):
        issue = project_issue(stored(SyncedEntityType.ISSUE, "issue-1", {}))

        assert issue.id == "issue-1"
        assert issue.identifier == ""
        assert issue.title == ""
        assert issue.description is None
        assert issue.priority == 0
        assert issue.priority_label == "No priority"
        assert issue.state.name == "Unknown"
        assert issue.assignee is None
        assert issue.labels == []

    def test_full_document(self):
        issue = project_issue(
            stored(
                SyncedEntityType.ISSUE,
                "issue-1",
                {
                    "identifier": "ENG-1",
                    "title": "Fix login",
                    "priority": 1,
                    "url": "https://linear.app/acme/issue/ENG-1",
                    "state": {"id": "s1", "name": "Todo", "color": "#ccc", "type": "unstarted"},
                    "assignee": {"id": "u1", "name": "Alice", "email": "alice@example.com"},
                    "labels": [{"id": "l1", "name": "Bug", "color": "#f00"}],
                    "createdAt": "2026-01-05T10:00:00.000Z",
                },
            )
        )

        assert issue.priority_label == "Urgent"
        assert issue.state.type == "unstarted"
        assert issue.assignee.name == "Alice"
        # Extra nested keys survive
        assert issue.assignee.model_dump()["email"] == "alice@example.com"
        assert [label.id for label in issue.labels] == ["l1"]
        assert issue.created_at == "2026-01-05T10:00:00.000Z"

    def test_labels_accept_connection_shape_and_skip_bad_entries(self):
        issue = project_issue(
            stored(
                SyncedEntityType.ISSUE,
                "issue-1",
                {"labels": {"nodes": [{"id": "l1"}, {"name": "no id"}, "junk"]}},
            )
        )

        assert [(label.id, label.name) for label in issue.labels] == [("l1", "")]

    def test_null_state_name_uses_default(self):
        issue = project_issue(stored(SyncedEntityType.ISSUE, "issue-1", {"state": {"name": None}}))

        assert issue.state.name == "Unknown"

    def test_timestamps_fall_back_to_row(self):
        issue = project_issue(
            stored(
                SyncedEntityType.ISSUE,
                "issue-1",
                {},
                created_at=datetime(2026, 1, 5, 10, 0, tzinfo=UTC),
                updated_at=datetime(2026, 1, 6, 10, 0, tzinfo=UTC),
            )
        )

        assert issue.created_at == "2026-01-05T10:00:00.000Z"
        assert issue.updated_at == "2026-01-06T10:00:00.000Z"

    def test_wire_shape_uses_linear_field_names(self):
        issue = project_issue(stored(SyncedEntityType.ISSUE, "issue-1", {"priority": 3}))

        dumped = issue.model_dump(by_alias=True, exclude_none=True)

        assert dumped["priorityLabel"] == "Medium"
        assert "assignee" not in dumped

    def test_detail_adds_due_date(self):
        issue = project_issue_detail(stored(SyncedEntityType.ISSUE, "issue-1", {"dueDate": "2026-03-01"}))

        assert issue.due_date == "2026-03-01"

    def test_roadmap_adds_project_ref(self):
        issue = project_roadmap_issue(
            stored(
                SyncedEntityType.ISSUE,
                "issue-1",
                {"project": {"id": "p1", "name": "Auth", "color": "#0f0", "state": "started"}},
            )
        )

        assert issue.project.model_dump() == {"id": "p1", "name": "Auth", "color": "#0f0"}


class TestProjectOtherEntities:
    def test_comment_without_user(self):
        comment = project_comment(stored(SyncedEntityType.COMMENT, "comment-1", {"body": "LGTM"}))

        assert comment.body == "LGTM"
        assert comment.user.name == "Unknown"

    def test_team_display_name_falls_back_to_name(self):
        team = project_team(
            stored(
                SyncedEntityType.TEAM,
                "team-1",
                {"name": "Engineering", "key": "ENG", "private": "yes", "members": {"nodes": [{"id": "u1"}]}},
            )
        )

        assert team.display_name == "Engineering"
        assert team.private is False
        assert team.members == [{"id": "u1"}]

    def test_project_defaults(self):
        project = project_project(stored(SyncedEntityType.PROJECT, "project-1", {"progress": "half"}))

        assert project.status.name == "Unknown"
        assert project.progress == 0
        assert project.priority_label == "No priority"
        assert project.teams == []

    def test_project_full(self):
        project = project_project(
            stored(
                SyncedEntityType.PROJECT,
                "project-1",
                {
                    "name": "Auth",
                    "status": {"name": "Started", "type": "started"},
                    "lead": {"id": "u1", "name": "Alice"},
                    "progress": 0.4,
                    "teams": [{"id": "team-1"}],
                },
            )
        )

        assert project.status.name == "Started"
        assert project.lead.name == "Alice"
        assert project.progress == 0.4
        assert project.teams == [{"id": "team-1"}]

    def test_initiative_status_default(self):
        initiative = project_initiative(stored(SyncedEntityType.INITIATIVE, "init-1", {"name": "Q1"}))

        assert initiative.status == "Planned"
        assert initiative.owner is None
        assert initiative.sub_initiatives == []
