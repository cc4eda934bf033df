"""Gatekeeper FastAPI service: Linear webhook ingestion and hub reads."""

import datetime
from contextlib import asynccontextmanager
from pathlib import Path

import newrelic.agent

from src.utils.config import get_sync_environment

# Initialize New Relic with the gatekeeper-specific TOML config and environment
config_path = Path(__file__).parent / "newrelic.toml"
newrelic.agent.initialize(str(config_path), environment=get_sync_environment())

from fastapi import FastAPI, HTTPException, Request

from connectors.linear import LinearWebhookIngestor
from src.clients.sync_db import SyncDBManager
from src.hub_scoping import HubReadService, TeamHubLookup
from src.hub_scoping.routes import router as hub_router
from src.ingest.gatekeeper.routes import router as webhook_router
from src.ingest.repositories.hub_mapping_repository import HubMappingRepository
from src.ingest.repositories.sync_subscription_repository import SyncSubscriptionRepository
from src.ingest.repositories.synced_entity_repository import PostgresSyncedEntityRepository
from src.utils.config import (
    get_config_value,
    get_hub_data_owner_id,
    is_stale_update_guard_enabled,
)
from src.utils.logging import get_logger, get_uvicorn_log_config

logger = get_logger(__name__)

# Allow disabling webhook validation for development/testing
DANGEROUSLY_DISABLE_WEBHOOK_VALIDATION = bool(
    get_config_value("DANGEROUSLY_DISABLE_WEBHOOK_VALIDATION", False)
)

if DANGEROUSLY_DISABLE_WEBHOOK_VALIDATION:
    logger.warning(
        "⚠️ DANGEROUSLY_DISABLE_WEBHOOK_VALIDATION is enabled. "
        "Webhook signatures will NOT be verified!"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup and handle graceful shutdown."""
    logger.info("🚀 Starting Gatekeeper service...")

    sync_db = SyncDBManager()
    db_pool = await sync_db.get_pool()

    store = PostgresSyncedEntityRepository(
        db_pool, reject_stale_updates=is_stale_update_guard_enabled()
    )
    hub_mappings = HubMappingRepository(db_pool)

    app.state.sync_db = sync_db
    app.state.store = store
    app.state.subscriptions = SyncSubscriptionRepository(db_pool)
    app.state.hub_mappings = hub_mappings
    app.state.team_lookup = TeamHubLookup(hub_mappings)
    app.state.ingestor = LinearWebhookIngestor(
        store, verify_signatures=not DANGEROUSLY_DISABLE_WEBHOOK_VALIDATION
    )
    app.state.hub_read_service = HubReadService(store, hub_mappings, get_hub_data_owner_id())
    app.state.dangerously_disable_webhook_validation = DANGEROUSLY_DISABLE_WEBHOOK_VALIDATION

    logger.info("✅ Gatekeeper service startup complete")

    yield

    logger.info("🛑 Shutting down Gatekeeper service...")
    await sync_db.close()
    logger.info("✅ Gatekeeper service shutdown complete")


app = FastAPI(
    title="Linear Sync Gatekeeper",
    description="Linear webhook ingestion with signature verification, and hub-scoped reads",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health/live")
async def liveness_check():
    """Liveness probe endpoint - checks if the application is alive."""
    return {"status": "alive", "timestamp": datetime.datetime.now().isoformat()}


@app.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe endpoint - checks the synced store is reachable."""
    try:
        sync_db: SyncDBManager = request.app.state.sync_db
        pool = await sync_db.get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")

        team_lookup: TeamHubLookup = request.app.state.team_lookup
        configured_teams = await team_lookup.get_all_configured_team_ids()
        return {"status": "ready", "configured_teams": len(configured_teams)}

    except Exception as e:
        newrelic.agent.record_exception()

        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(status_code=503, detail={"status": "not_ready", "error": str(e)})


app.include_router(webhook_router)
app.include_router(hub_router)


def main():
    """Run the gatekeeper service."""
    import uvicorn

    port = get_config_value("GATEKEEPER_PORT", 8001)

    uvicorn.run(
        "src.ingest.gatekeeper.main:app",
        host="0.0.0.0",
        port=port,
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()
