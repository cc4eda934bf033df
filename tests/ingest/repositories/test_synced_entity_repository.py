"""Tests for the synced entity stores."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from connectors.linear.linear_models import (
    CommentColumns,
    IssueColumns,
    RecordQuery,
    SyncedEntityType,
    SyncedRecord,
)
from src.ingest.repositories.synced_entity_repository import (
    MemorySyncedEntityStore,
    PostgresSyncedEntityRepository,
)
from src.utils.errors import StorageUnavailableError

OWNER = "owner-1"


def issue_record(natural_key="issue-1", document=None, updated_at=None, **columns):
    return SyncedRecord(
        entity_type=SyncedEntityType.ISSUE,
        natural_key=natural_key,
        owner_id=OWNER,
        document=document or {"id": natural_key},
        columns=IssueColumns(**columns),
        updated_at=updated_at,
    )


class TestMemorySyncedEntityStore:
    """Test merge and query semantics of the in-process store."""

    @pytest.mark.asyncio
    async def test_merge_keeps_absent_fields(self):
        store = MemorySyncedEntityStore()
        await store.upsert(issue_record(document={"id": "issue-1", "title": "A"}, priority=2, team_id="t1"))
        await store.upsert(issue_record(document={"id": "issue-1", "state": {"name": "Done"}}, state_name="Done"))

        row = await store.get(SyncedEntityType.ISSUE, OWNER, "issue-1")

        assert row.document == {"id": "issue-1", "title": "A", "state": {"name": "Done"}}
        assert row.columns == {"priority": 2, "team_id": "t1", "state_name": "Done"}

    @pytest.mark.asyncio
    async def test_explicit_null_clears_column(self):
        store = MemorySyncedEntityStore()
        await store.upsert(issue_record(assignee_name="Alice"))
        await store.upsert(issue_record(assignee_name=None))

        row = await store.get(SyncedEntityType.ISSUE, OWNER, "issue-1")

        assert row.columns == {"assignee_name": None}

    @pytest.mark.asyncio
    async def test_stale_guard_off_by_default(self):
        store = MemorySyncedEntityStore()
        await store.upsert(issue_record(updated_at=datetime(2026, 2, 2, tzinfo=UTC), priority=1))

        written = await store.upsert(issue_record(updated_at=datetime(2026, 2, 1, tzinfo=UTC), priority=4))

        assert written is True
        row = await store.get(SyncedEntityType.ISSUE, OWNER, "issue-1")
        assert row.columns["priority"] == 4

    @pytest.mark.asyncio
    async def test_stale_guard_skips_older_update(self):
        store = MemorySyncedEntityStore(reject_stale_updates=True)
        await store.upsert(issue_record(updated_at=datetime(2026, 2, 2, tzinfo=UTC), priority=1))

        assert await store.upsert(issue_record(updated_at=datetime(2026, 2, 1, tzinfo=UTC), priority=4)) is False
        # Records without updatedAt are never considered stale
        assert await store.upsert(issue_record(priority=3)) is True

        row = await store.get(SyncedEntityType.ISSUE, OWNER, "issue-1")
        assert row.columns["priority"] == 3

    @pytest.mark.asyncio
    async def test_upsert_many_counts_only_written_rows(self):
        store = MemorySyncedEntityStore(reject_stale_updates=True)

        written = await store.upsert_many(
            [
                issue_record(updated_at=datetime(2026, 2, 2, tzinfo=UTC), priority=1),
                issue_record(updated_at=datetime(2026, 2, 1, tzinfo=UTC), priority=4),
                issue_record("issue-2"),
            ]
        )

        assert written == 2
        row = await store.get(SyncedEntityType.ISSUE, OWNER, "issue-1")
        assert row.columns["priority"] == 1

    @pytest.mark.asyncio
    async def test_query_filters_and_orders(self):
        store = MemorySyncedEntityStore()
        await store.upsert(issue_record("a", updated_at=datetime(2026, 1, 1, tzinfo=UTC), team_id="t1"))
        await store.upsert(issue_record("b", updated_at=datetime(2026, 1, 3, tzinfo=UTC), team_id="t1"))
        await store.upsert(issue_record("c", updated_at=datetime(2026, 1, 2, tzinfo=UTC), team_id="t2"))

        rows = await store.query(SyncedEntityType.ISSUE, OWNER, RecordQuery(any_of={"team_id": ["t1"]}))
        assert [r.natural_key for r in rows] == ["b", "a"]

        rows = await store.query(SyncedEntityType.ISSUE, OWNER, RecordQuery(equals={"linear_id": "c"}))
        assert [r.natural_key for r in rows] == ["c"]

        assert await store.query(SyncedEntityType.ISSUE, OWNER, RecordQuery(any_of={"team_id": []})) == []
        assert await store.query(SyncedEntityType.ISSUE, "other-owner") == []

    @pytest.mark.asyncio
    async def test_query_rejects_unknown_columns(self):
        store = MemorySyncedEntityStore()

        with pytest.raises(ValueError):
            await store.query(SyncedEntityType.COMMENT, OWNER, RecordQuery(equals={"team_id": "t1"}))
        with pytest.raises(ValueError):
            await store.query(SyncedEntityType.ISSUE, OWNER, RecordQuery(order_by="name_asc"))


@pytest.fixture
def mock_pool():
    """Create a mock database pool."""
    return MagicMock()


class TestPostgresSyncedEntityRepository:
    """Test SQL issued by the asyncpg repository."""

    @pytest.mark.asyncio
    async def test_upsert_only_assigns_present_columns(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.fetchrow.return_value = {"linear_id": "issue-1"}
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        written = await repo.upsert(issue_record(document={"id": "issue-1", "priority": 0}, priority=0))

        assert written is True
        sql, *params = mock_conn.fetchrow.call_args.args
        assert "INSERT INTO synced_issues (linear_id, owner_id, data, priority, synced_at)" in sql
        assert "data = synced_issues.data || EXCLUDED.data" in sql
        assert "priority = EXCLUDED.priority" in sql
        assert "state_name" not in sql
        assert "updated_at <=" not in sql
        assert params == ["issue-1", OWNER, json.dumps({"id": "issue-1", "priority": 0}), 0]

    @pytest.mark.asyncio
    async def test_upsert_stale_guard(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.fetchrow.return_value = None
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool, reject_stale_updates=True)

        written = await repo.upsert(issue_record(updated_at=datetime(2026, 2, 1, tzinfo=UTC)))

        assert written is False
        sql = mock_conn.fetchrow.call_args.args[0]
        assert "WHERE synced_issues.updated_at IS NULL OR synced_issues.updated_at <= EXCLUDED.updated_at" in sql

    @pytest.mark.asyncio
    async def test_upsert_connection_error_is_storage_unavailable(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.fetchrow.side_effect = ConnectionRefusedError("connection refused")
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        with pytest.raises(StorageUnavailableError):
            await repo.upsert(issue_record())

    @pytest.mark.asyncio
    async def test_upsert_many_groups_consecutive_shapes(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.transaction = MagicMock()
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        written = await repo.upsert_many(
            [
                issue_record("a", priority=1),
                issue_record("b", priority=2),
                issue_record("c", team_id="t1"),
            ]
        )

        assert written == 3
        assert mock_conn.executemany.await_count == 2
        first_rows = mock_conn.executemany.call_args_list[0].args[1]
        assert [row[0] for row in first_rows] == ["a", "b"]
        mock_conn.transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_upsert_many_keeps_delivery_order_for_same_key(self, mock_pool):
        """Two deliveries for one issue must land in the order they arrived."""
        mock_conn = AsyncMock()
        mock_conn.transaction = MagicMock()
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        await repo.upsert_many(
            [
                issue_record("a", priority=1),
                issue_record("a", state_name="Done"),
                issue_record("a", priority=3),
            ]
        )

        statements = [c.args[0] for c in mock_conn.executemany.call_args_list]
        assert len(statements) == 3
        assert "priority = EXCLUDED.priority" in statements[0]
        assert "state_name = EXCLUDED.state_name" in statements[1]
        assert "priority = EXCLUDED.priority" in statements[2]
        assert [c.args[1][0][-1] for c in mock_conn.executemany.call_args_list] == [1, "Done", 3]

    @pytest.mark.asyncio
    async def test_upsert_many_stale_guard_counts_written_rows(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.transaction = MagicMock()
        mock_conn.fetchrow.side_effect = [{"linear_id": "a"}, None, {"linear_id": "c"}]
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool, reject_stale_updates=True)
        ts = datetime(2026, 2, 1, tzinfo=UTC)

        written = await repo.upsert_many(
            [issue_record("a", updated_at=ts), issue_record("b", updated_at=ts), issue_record("c", updated_at=ts)]
        )

        assert written == 2
        assert [c.args[1] for c in mock_conn.fetchrow.call_args_list] == ["a", "b", "c"]
        mock_conn.executemany.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upsert_many_empty_is_noop(self, mock_pool):
        repo = PostgresSyncedEntityRepository(mock_pool)

        assert await repo.upsert_many([]) == 0

        mock_pool.acquire.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_builds_filters(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.fetch.return_value = [
            {
                "linear_id": "comment-1",
                "owner_id": OWNER,
                "data": '{"body": "LGTM"}',
                "issue_linear_id": "issue-1",
                "created_at": datetime(2026, 1, 1, tzinfo=UTC),
                "updated_at": datetime(2026, 1, 1, tzinfo=UTC),
                "synced_at": datetime(2026, 1, 2, tzinfo=UTC),
            }
        ]
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        rows = await repo.query(
            SyncedEntityType.COMMENT,
            OWNER,
            RecordQuery(equals={"issue_linear_id": "issue-1"}, order_by="created_at_asc"),
        )

        sql, *params = mock_conn.fetch.call_args.args
        assert "WHERE owner_id = $1 AND issue_linear_id = $2" in sql
        assert "ORDER BY created_at ASC NULLS LAST" in sql
        assert params == [OWNER, "issue-1"]
        assert rows[0].document == {"body": "LGTM"}
        assert rows[0].columns == {"issue_linear_id": "issue-1"}

    @pytest.mark.asyncio
    async def test_query_any_of(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.fetch.return_value = []
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        await repo.query(SyncedEntityType.ISSUE, OWNER, RecordQuery(any_of={"team_id": ["t1", "t2"]}))

        sql, *params = mock_conn.fetch.call_args.args
        assert "team_id = ANY($2)" in sql
        assert params == [OWNER, ["t1", "t2"]]

    @pytest.mark.asyncio
    async def test_query_empty_any_of_skips_database(self, mock_pool):
        repo = PostgresSyncedEntityRepository(mock_pool)

        rows = await repo.query(SyncedEntityType.ISSUE, OWNER, RecordQuery(any_of={"team_id": []}))

        assert rows == []
        mock_pool.acquire.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.fetchrow.return_value = None
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        assert await repo.get(SyncedEntityType.ISSUE, OWNER, "missing") is None

    @pytest.mark.asyncio
    async def test_get_interface_error(self, mock_pool):
        mock_conn = AsyncMock()
        mock_conn.fetchrow.side_effect = asyncpg.InterfaceError("pool is closed")
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        repo = PostgresSyncedEntityRepository(mock_pool)

        with pytest.raises(StorageUnavailableError):
            await repo.get(SyncedEntityType.ISSUE, OWNER, "issue-1")


def test_comment_columns_only_issue_link():
    assert CommentColumns(issue_linear_id="issue-1").values() == {"issue_linear_id": "issue-1"}
