"""Tests for hub visibility merging and issue redaction."""

import pytest

from connectors.linear.linear_models import LabelRef, LinearIssue, UserRef
from src.hub_scoping.models import HubTeamMapping, HubVisibility
from src.hub_scoping.visibility import (
    compute_visibility,
    filter_labels,
    is_allowed,
    merge_visibility,
    plan_label_change,
    scope_issue,
    visible_labels,
)
from src.utils.errors import LabelChangeRejectedError


def mapping(team_id="team-1", projects=(), initiatives=(), labels=(), **kwargs):
    return HubTeamMapping(
        hub_id="hub-1",
        team_id=team_id,
        visible_project_ids=list(projects),
        visible_initiative_ids=list(initiatives),
        visible_label_ids=list(labels),
        **kwargs,
    )


class TestMergeVisibility:
    """Test per-dimension merging of mapping allow-lists."""

    def test_union_of_allow_lists(self):
        merged = merge_visibility(
            [mapping(projects=["p1"]), mapping("team-2", projects=["p2", "p1"])], "visible_project_ids"
        )

        assert merged == frozenset({"p1", "p2"})

    def test_any_empty_list_unscopes(self):
        merged = merge_visibility([mapping(projects=["p1"]), mapping("team-2")], "visible_project_ids")

        assert merged is None

    def test_dimensions_are_independent(self):
        visibility = compute_visibility([mapping(projects=["p1"]), mapping("team-2", labels=["l1"])])

        assert visibility.team_ids == frozenset({"team-1", "team-2"})
        assert visibility.project_filter is None
        assert visibility.initiative_filter is None
        assert visibility.label_filter is None

    def test_all_scoped(self):
        visibility = compute_visibility([mapping(labels=["l1"]), mapping("team-2", labels=["l2"])])

        assert visibility.label_filter == frozenset({"l1", "l2"})


class TestComputeVisibility:
    def test_no_mappings_sees_nothing(self):
        visibility = compute_visibility([])

        assert visibility.has_teams is False
        assert visibility.project_filter == frozenset()
        assert visibility.initiative_filter == frozenset()
        assert visibility.label_filter == frozenset()

    def test_inactive_mappings_ignored(self):
        visibility = compute_visibility([mapping(is_active=False), mapping("team-2", labels=["l2"])])

        assert visibility.team_ids == frozenset({"team-2"})
        assert visibility.label_filter == frozenset({"l2"})

    def test_per_team(self):
        mappings = [mapping(labels=["l1"]), mapping("team-2")]

        assert compute_visibility(mappings, team_id="team-1").label_filter == frozenset({"l1"})
        assert compute_visibility(mappings, team_id="team-2").label_filter is None
        assert compute_visibility(mappings, team_id="team-3").has_teams is False


class TestIsAllowed:
    def test_unscoped(self):
        assert is_allowed(None, "anything") is True
        assert is_allowed(None, None) is True

    def test_scoped(self):
        assert is_allowed(frozenset({"p1"}), "p1") is True
        assert is_allowed(frozenset({"p1"}), "p2") is False
        assert is_allowed(frozenset({"p1"}), None) is False
        assert is_allowed(frozenset(), "p1") is False


class TestIssueRedaction:
    def issue(self):
        return LinearIssue(
            id="issue-1",
            assignee=UserRef(id="u1", name="Alice"),
            labels=[LabelRef(id="l1", name="Bug"), LabelRef(id="l2", name="Internal")],
        )

    def test_scope_issue_strips_assignee_and_filters_labels(self):
        scoped = scope_issue(self.issue(), HubVisibility(team_ids=frozenset({"team-1"}), label_filter=frozenset({"l1"})))

        assert scoped.assignee is None
        assert [label.id for label in scoped.labels] == ["l1"]

    def test_unscoped_labels_untouched(self):
        scoped = scope_issue(self.issue(), HubVisibility(team_ids=frozenset({"team-1"})))

        assert scoped.assignee is None
        assert len(scoped.labels) == 2

    def test_issue_with_no_visible_labels_is_kept(self):
        filtered = filter_labels(self.issue(), frozenset({"l9"}))

        assert filtered.id == "issue-1"
        assert filtered.labels == []

    def test_original_is_not_mutated(self):
        issue = self.issue()
        scope_issue(issue, HubVisibility(team_ids=frozenset({"team-1"}), label_filter=frozenset()))

        assert issue.assignee is not None
        assert len(issue.labels) == 2

    def test_visible_labels_accepts_dicts(self):
        labels = visible_labels([{"id": "l1", "name": "Bug"}, LabelRef(id="l2")], frozenset({"l1"}))

        assert [(label.id, label.name) for label in labels] == [("l1", "Bug")]


class TestPlanLabelChange:
    """Test validation of hub label writes."""

    document = {"id": "issue-1", "labels": [{"id": "l1"}, {"id": "l2"}]}

    def test_add(self):
        plan = plan_label_change(self.document, "l3", "add", None)

        assert plan.issue_id == "issue-1"
        assert plan.label_ids == ["l1", "l2", "l3"]

    def test_remove(self):
        plan = plan_label_change(self.document, "l1", "remove", frozenset({"l1"}))

        assert plan.label_ids == ["l2"]

    def test_connection_shape(self):
        plan = plan_label_change({"id": "issue-1", "labels": {"nodes": [{"id": "l1"}]}}, "l2", "add", None)

        assert plan.label_ids == ["l1", "l2"]

    def test_label_outside_hub_is_forbidden(self):
        with pytest.raises(LabelChangeRejectedError) as exc_info:
            plan_label_change(self.document, "l3", "add", frozenset({"l1"}))

        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == "Label not visible in this hub"

    @pytest.mark.parametrize(
        "label_id,action,message",
        [
            ("l1", "add", "Label already applied"),
            ("l3", "remove", "Label not on issue"),
            ("l1", "toggle", "action and labelId are required"),
            ("", "add", "action and labelId are required"),
        ],
    )
    def test_bad_requests(self, label_id, action, message):
        with pytest.raises(LabelChangeRejectedError) as exc_info:
            plan_label_change(self.document, label_id, action, None)

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == message
