"""Schema migrations for the sync database.

Migrations are plain SQL files named `<timestamp>_<description>.sql` under
`migrations/tenant/`. Each file is split into statements with sqlparse and
applied in one transaction together with its row in `schema_migrations`.
"""

import asyncio
import os
from pathlib import Path
from urllib.parse import urlparse

import asyncpg
import sqlparse

from src.utils.logging import get_logger

logger = get_logger(__name__)

MIGRATION_TABLE = "schema_migrations"


class MigrationError(Exception):
    """A migration could not be loaded or applied."""


def get_migrations_dir() -> Path:
    default_path = Path(__file__).parent.parent.parent / "migrations"
    return Path(os.getenv("MIGRATIONS_DIR", str(default_path)))


def get_sync_migrations_dir() -> Path:
    return get_migrations_dir() / "tenant"


def get_migration_files(directory: Path) -> list[Path]:
    """All migration files in a directory, sorted by their timestamp prefix."""
    if not directory.exists():
        return []
    return sorted(directory.glob("*.sql"))


def extract_version_from_filename(filename: str) -> str:
    return filename.split("_")[0]


def parse_sql_statements(sql_content: str) -> list[str]:
    """Split SQL content into individual non-empty statements."""
    return [stmt.strip() for stmt in sqlparse.split(sql_content) if stmt.strip()]


def load_migrations(migrations_dir: Path) -> list[tuple[str, list[str]]]:
    """Load and parse every migration in ``migrations_dir`` as (version, statements), in order."""
    if not migrations_dir.exists():
        raise MigrationError(f"Migrations directory not found: {migrations_dir}")

    migrations = []
    for migration_file in get_migration_files(migrations_dir):
        version = extract_version_from_filename(migration_file.name)
        migrations.append((version, parse_sql_statements(migration_file.read_text())))

    versions = [version for version, _ in migrations]
    if len(set(versions)) != len(versions):
        raise MigrationError(f"Duplicate migration versions in {migrations_dir}")

    logger.info(f"Loaded {len(migrations)} migrations from {migrations_dir}")
    return migrations


async def ensure_migrations_table(conn: asyncpg.Connection) -> None:
    await conn.execute(f"""
        CREATE TABLE IF NOT EXISTS public.{MIGRATION_TABLE} (
            version VARCHAR(255) PRIMARY KEY,
            applied_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );
    """)


async def get_applied_migrations(conn: asyncpg.Connection) -> set[str]:
    exists = await conn.fetchval(
        """
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = $1
        )
        """,
        MIGRATION_TABLE,
    )
    if not exists:
        return set()

    rows = await conn.fetch(f"SELECT version FROM public.{MIGRATION_TABLE}")
    return {row["version"] for row in rows}


async def apply_migration_statements(
    conn: asyncpg.Connection, version: str, statements: list[str], timeout: int = 300
) -> None:
    """Apply one migration's statements and record it, all in one transaction."""
    async with conn.transaction():
        await conn.execute(f"SET LOCAL statement_timeout = '{timeout}s'")

        for statement in statements:
            await conn.execute(statement)

        await conn.execute(f"INSERT INTO public.{MIGRATION_TABLE} (version) VALUES ($1)", version)

    logger.info(f"Applied migration version {version}")


async def apply_pending_migrations(
    conn: asyncpg.Connection,
    migrations: list[tuple[str, list[str]]],
    timeout: int = 300,
    dry_run: bool = False,
) -> int:
    """Apply the migrations not yet recorded in schema_migrations. Returns how many ran.

    Stops at the first failure, raising MigrationError.
    """
    if not dry_run:
        await ensure_migrations_table(conn)
    applied = await get_applied_migrations(conn)

    applied_count = 0
    for version, statements in migrations:
        if version in applied:
            logger.debug(f"Skipping migration {version} (already applied)")
            continue

        if dry_run:
            logger.info(f"DRY RUN: Would apply migration {version} ({len(statements)} statements)")
            applied_count += 1
            continue

        try:
            await apply_migration_statements(conn, version, statements, timeout)
        except asyncpg.PostgresError as e:
            raise MigrationError(f"Failed to apply migration {version}: {e}") from e
        applied_count += 1

    return applied_count


async def migrate_database(
    db_url: str,
    migrations_dir: Path | None = None,
    timeout: int = 300,
    retries: int = 3,
    dry_run: bool = False,
) -> int:
    """Connect to ``db_url`` (with retries) and apply pending migrations.

    Returns the number of migrations applied.
    """
    db_name = urlparse(db_url).path.lstrip("/")
    migrations = load_migrations(migrations_dir or get_sync_migrations_dir())
    if not migrations:
        logger.info(f"No migrations found for {db_name}")
        return 0

    conn = None
    for attempt in range(retries):
        try:
            conn = await asyncpg.connect(db_url)
            break
        except (OSError, asyncpg.PostgresError) as e:
            if attempt == retries - 1:
                raise MigrationError(
                    f"Failed to connect to {db_name} after {retries} attempts: {e}"
                ) from e
            await asyncio.sleep(2**attempt)

    try:
        applied_count = await apply_pending_migrations(conn, migrations, timeout, dry_run)
        logger.info(f"Applied {applied_count}/{len(migrations)} migrations to {db_name}")
        return applied_count
    finally:
        await conn.close()
