#!/usr/bin/env python3
"""Backfill CLI for the Linear sync store.

Pulls teams, projects, issues, comments and initiatives from the Linear
GraphQL API and writes them through the same path as webhooks. Also applies
schema migrations to the sync database.
"""

import asyncio
import logging
import sys
from pathlib import Path

import questionary
import typer
from rich.console import Console
from rich.table import Table

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from connectors.linear import LinearApiBackfillExtractor, LinearWebhookIngestor
from connectors.linear.linear_api_backfill_extractor import LinearBackfillResult
from connectors.linear.linear_models import LinearReconcileConfig, LinearTeamBackfillConfig
from src.clients.linear import LinearClient
from src.clients.sync_db import SyncDBManager
from src.ingest.repositories.hub_mapping_repository import HubMappingRepository
from src.ingest.repositories.synced_entity_repository import PostgresSyncedEntityRepository
from src.migrations.core import MigrationError, get_sync_migrations_dir, migrate_database
from src.utils.config import (
    get_config_value_str,
    get_database_url,
    get_linear_api_key,
    is_stale_update_guard_enabled,
)
from src.utils.logging import get_logger

app = typer.Typer(help="Backfill and maintain the Linear sync store")
console = Console()
logger = get_logger(__name__)


def resolve_owner_id(owner_id: str | None) -> str:
    owner_id = owner_id or get_config_value_str("HUB_DATA_OWNER_ID")
    if not owner_id:
        console.print("[red]No owner id: pass --owner-id or set HUB_DATA_OWNER_ID[/red]")
        sys.exit(1)
    return owner_id


def get_team_selection(client: LinearClient) -> str:
    """Prompt user to pick one of the token's accessible Linear teams."""
    choices = [
        questionary.Choice(title=f"{team.get('key', '?')} - {team.get('name', team['id'])}", value=team["id"])
        for page in client.iter_teams()
        for team in page
    ]
    if not choices:
        console.print("[red]The Linear token has no accessible teams.[/red]")
        sys.exit(1)

    team_id = questionary.select(
        "Select a team to backfill:", choices=choices, use_arrow_keys=True
    ).ask()
    if team_id is None:
        console.print("[yellow]Selection cancelled.[/yellow]")
        sys.exit(0)
    return team_id


def print_result(title: str, result: LinearBackfillResult) -> None:
    table = Table(title=title)
    table.add_column("Count")
    table.add_column("Value", justify="right")
    for field, value in result.model_dump().items():
        style = "red" if field == "errors" and value else None
        table.add_row(field.replace("_", " "), str(value), style=style)
    console.print(table)


async def _build_extractor(sync_db: SyncDBManager) -> LinearApiBackfillExtractor:
    pool = await sync_db.get_pool()
    store = PostgresSyncedEntityRepository(pool, reject_stale_updates=is_stale_update_guard_enabled())
    return LinearApiBackfillExtractor(LinearClient(get_linear_api_key()), LinearWebhookIngestor(store))


@app.command("backfill-team")
def backfill_team(
    team_id: str | None = typer.Option(
        None, "--team-id", help="Linear team id (interactive selection if omitted)"
    ),
    owner_id: str | None = typer.Option(
        None, "--owner-id", "-o", help="Owner key to store records under (default HUB_DATA_OWNER_ID)"
    ),
    skip_comments: bool = typer.Option(False, "--skip-comments", help="Do not fetch issue comments"),
    skip_projects: bool = typer.Option(False, "--skip-projects", help="Do not fetch team projects"),
):
    """Backfill one team's projects, issues and comments."""
    owner_id = resolve_owner_id(owner_id)
    team_id = team_id or get_team_selection(LinearClient(get_linear_api_key()))

    config = LinearTeamBackfillConfig(
        owner_id=owner_id,
        team_id=team_id,
        include_comments=not skip_comments,
        include_projects=not skip_projects,
    )

    async def _backfill() -> LinearBackfillResult:
        sync_db = SyncDBManager()
        try:
            extractor = await _build_extractor(sync_db)
            return await extractor.backfill_team(config)
        finally:
            await sync_db.close()

    console.print(f"[blue]Backfilling team [cyan]{team_id}[/cyan] for owner [cyan]{owner_id}[/cyan]...[/blue]")
    result = asyncio.run(_backfill())
    print_result(f"Team {team_id}", result)
    if result.errors:
        raise typer.Exit(code=1)


@app.command()
def reconcile(
    owner_id: str | None = typer.Option(
        None, "--owner-id", "-o", help="Owner key to store records under (default HUB_DATA_OWNER_ID)"
    ),
    skip_comments: bool = typer.Option(False, "--skip-comments", help="Do not fetch issue comments"),
):
    """Re-sync all teams and initiatives, then every team mapped by an active hub."""
    owner_id = resolve_owner_id(owner_id)
    config = LinearReconcileConfig(owner_id=owner_id, include_comments=not skip_comments)

    async def _reconcile() -> LinearBackfillResult:
        sync_db = SyncDBManager()
        try:
            extractor = await _build_extractor(sync_db)
            mappings = HubMappingRepository(await sync_db.get_pool())
            return await extractor.reconcile(config, mappings)
        finally:
            await sync_db.close()

    console.print(f"[blue]Reconciling hub teams for owner [cyan]{owner_id}[/cyan]...[/blue]")
    result = asyncio.run(_reconcile())
    print_result("Reconcile", result)
    if result.errors:
        raise typer.Exit(code=1)


@app.command()
def migrate(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show pending migrations without applying"),
    timeout: int = typer.Option(300, "--timeout", help="Statement timeout in seconds"),
):
    """Apply pending schema migrations to the sync database."""
    migrations_dir = get_sync_migrations_dir()
    console.print(f"[blue]Migrating from {migrations_dir}[/blue]")
    try:
        applied = asyncio.run(
            migrate_database(get_database_url(), migrations_dir, timeout=timeout, dry_run=dry_run)
        )
    except (MigrationError, ValueError) as e:
        console.print(f"[red]❌ Migration failed: {e}[/red]")
        raise typer.Exit(code=1)

    verb = "Would apply" if dry_run else "Applied"
    console.print(f"[green]✅ {verb} {applied} migration(s)[/green]")


if __name__ == "__main__":
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app()
