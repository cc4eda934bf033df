"""Backfill and reconcile synced Linear data from the GraphQL API.

API nodes go through the same mapper and upsert path as `create` webhooks,
one page at a time, after their connection fields are flattened to webhook
shape.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from connectors.linear.linear_helpers import flatten_connections
from connectors.linear.linear_models import (
    LinearReconcileConfig,
    LinearTeamBackfillConfig,
    SyncedEntityType,
)
from connectors.linear.linear_webhook_extractor import LinearWebhookIngestor
from src.clients.linear import LinearClient
from src.utils.error_handling import ErrorCounter, merge_counters, record_exception_and_ignore

if TYPE_CHECKING:
    from src.ingest.repositories.hub_mapping_repository import HubMappingStore

logger = logging.getLogger(__name__)


class LinearBackfillResult(BaseModel):
    hubs_reconciled: int = 0
    teams_reconciled: int = 0
    teams_upserted: int = 0
    initiatives_upserted: int = 0
    projects_upserted: int = 0
    issues_upserted: int = 0
    comments_upserted: int = 0
    errors: int = 0

    def absorb(self, other: "LinearBackfillResult") -> None:
        """Add another run's counts into this one (hub count excluded)."""
        for field in type(self).model_fields:
            if field != "hubs_reconciled":
                setattr(self, field, getattr(self, field) + getattr(other, field))


class LinearApiBackfillExtractor:
    def __init__(self, client: LinearClient, ingestor: LinearWebhookIngestor):
        self.client = client
        self.ingestor = ingestor

    async def _ingest_page(
        self, entity_type: SyncedEntityType, nodes: list[dict[str, Any]], owner_id: str
    ) -> ErrorCounter:
        return await self.ingestor.ingest_batch(
            entity_type, [flatten_connections(node) for node in nodes], owner_id, action="create"
        )

    async def backfill_teams(self, owner_id: str) -> ErrorCounter:
        counters = [
            await self._ingest_page(SyncedEntityType.TEAM, page, owner_id)
            for page in self.client.iter_teams()
        ]
        return merge_counters(*counters)

    async def backfill_initiatives(self, owner_id: str) -> ErrorCounter:
        counters = [
            await self._ingest_page(SyncedEntityType.INITIATIVE, page, owner_id)
            for page in self.client.iter_initiatives()
        ]
        return merge_counters(*counters)

    async def backfill_team_projects(self, owner_id: str, team_id: str) -> ErrorCounter:
        counters = [
            await self._ingest_page(SyncedEntityType.PROJECT, page, owner_id)
            for page in self.client.iter_team_projects(team_id)
        ]
        return merge_counters(*counters)

    async def backfill_issue_comments(self, owner_id: str, issue_id: str) -> ErrorCounter:
        counters = []
        for page in self.client.iter_issue_comments(issue_id):
            # The comments query is filtered by issue, so nodes don't carry it
            nodes = [{"issue": {"id": issue_id}, **node} for node in page]
            counters.append(await self._ingest_page(SyncedEntityType.COMMENT, nodes, owner_id))
        return merge_counters(*counters)

    async def backfill_team(self, config: LinearTeamBackfillConfig) -> LinearBackfillResult:
        """Backfill one team's projects, issues and (optionally) each issue's comments.

        Individual entities that fail are counted in `errors` and skipped.
        """
        result = LinearBackfillResult()
        owner_id, team_id = config.owner_id, config.team_id
        logger.info(f"Backfilling Linear team {team_id} for owner {owner_id}")

        if config.include_projects:
            projects = await self.backfill_team_projects(owner_id, team_id)
            result.projects_upserted += projects.get("successful", 0)
            result.errors += projects.get("failed", 0)

        comment_counter: ErrorCounter = {}
        for page in self.client.iter_team_issues(team_id):
            issues = await self._ingest_page(SyncedEntityType.ISSUE, page, owner_id)
            result.issues_upserted += issues.get("successful", 0)
            result.errors += issues.get("failed", 0)

            if not config.include_comments:
                continue
            for issue in page:
                issue_id = issue.get("id")
                if not issue_id:
                    continue
                step: ErrorCounter = {}
                with record_exception_and_ignore(
                    logger, f"Failed to backfill comments for issue {issue_id}", step
                ):
                    comments = await self.backfill_issue_comments(owner_id, issue_id)
                    comment_counter = merge_counters(comment_counter, comments)
                result.errors += step.get("failed", 0)

        result.comments_upserted += comment_counter.get("successful", 0)
        result.errors += comment_counter.get("failed", 0)
        result.teams_reconciled = 1

        logger.info(
            f"Backfilled Linear team {team_id}: {result.issues_upserted} issues, "
            f"{result.comments_upserted} comments, {result.projects_upserted} projects, "
            f"{result.errors} errors"
        )
        return result

    async def reconcile(
        self, config: LinearReconcileConfig, mappings: HubMappingStore
    ) -> LinearBackfillResult:
        """Re-sync everything hubs can see.

        Teams and initiatives are org-level and fetched once. Each team mapped by
        at least one active hub is backfilled once, however many hubs map it.
        """
        owner_id = config.owner_id
        result = LinearBackfillResult()

        step: ErrorCounter = {}
        with record_exception_and_ignore(logger, "Reconcile: teams failed", step):
            teams = await self.backfill_teams(owner_id)
            result.teams_upserted = teams.get("successful", 0)
            result.errors += teams.get("failed", 0)
        result.errors += step.get("failed", 0)

        try:
            initiatives = await self.backfill_initiatives(owner_id)
            result.initiatives_upserted = initiatives.get("successful", 0)
            result.errors += initiatives.get("failed", 0)
        except Exception as e:
            # Initiatives need org-level scope that some API keys lack
            logger.warning(f"Reconcile: initiatives failed (may lack org scope): {e}")

        active = await mappings.get_all_active_mappings()
        if not active:
            logger.info("Reconcile: no team mappings found")
            return result

        hub_ids: set[str] = set()
        team_ids: list[str] = []
        for mapping in active:
            hub_ids.add(mapping.hub_id)
            if mapping.team_id not in team_ids:
                team_ids.append(mapping.team_id)

        for team_id in team_ids:
            step = {}
            with record_exception_and_ignore(logger, f"Reconcile: team {team_id} failed", step):
                team_result = await self.backfill_team(
                    LinearTeamBackfillConfig(
                        owner_id=owner_id,
                        team_id=team_id,
                        include_comments=config.include_comments,
                    )
                )
                result.absorb(team_result)
            result.errors += step.get("failed", 0)

        result.hubs_reconciled = len(hub_ids)
        logger.info(
            f"Reconcile complete: {result.hubs_reconciled} hubs, {result.teams_reconciled} teams, "
            f"{result.issues_upserted} issues, {result.comments_upserted} comments, "
            f"{result.projects_upserted} projects, {result.initiatives_upserted} initiatives, "
            f"{result.errors} errors"
        )
        return result
