"""
Versioned schema for the SQLite document store.

Each migration runs inside its own savepoint and is recorded in
``schema_migrations`` under a component name, so reopening a database only
applies what is missing.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Sequence

from .observability import get_logger

logger = get_logger(__name__)

DOCUMENT_STORE_COMPONENT = "document_store"

SchemaHook = Callable[[sqlite3.Connection], None]


@dataclass(frozen=True)
class SqliteMigration:
    version: int
    name: str
    statements: tuple[str, ...] = ()
    runner: SchemaHook | None = None


def _add_storage_path_column(conn: sqlite3.Connection):
    # Databases created before blob keys were tracked lack this column.
    columns = {row[1] for row in conn.execute("PRAGMA table_info(documents)").fetchall()}
    if "storage_path" not in columns:
        conn.execute("ALTER TABLE documents ADD COLUMN storage_path TEXT")


DOCUMENT_STORE_MIGRATIONS: tuple[SqliteMigration, ...] = (
    SqliteMigration(
        version=1,
        name="create_documents_and_chunks",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                file_name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'processing'
                    CHECK (status IN ('processing', 'processed', 'error')),
                uploaded_at TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS document_chunks (
                id TEXT PRIMARY KEY,
                document_id TEXT NOT NULL REFERENCES documents(id),
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                embedding TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (document_id, chunk_index)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id)",
            "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status)",
        ),
    ),
    SqliteMigration(
        version=2,
        name="add_documents_storage_path",
        runner=_add_storage_path_column,
    ),
    SqliteMigration(
        version=3,
        name="create_ingestion_claims",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS ingestion_claims (
                document_id TEXT PRIMARY KEY REFERENCES documents(id),
                claimed_at TEXT NOT NULL
            )
            """,
        ),
    ),
)


def _ensure_version_table(conn: sqlite3.Connection):
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            component TEXT NOT NULL,
            version INTEGER NOT NULL,
            name TEXT NOT NULL,
            applied_at TEXT NOT NULL,
            PRIMARY KEY(component, version)
        )
        """
    )


def applied_versions(conn: sqlite3.Connection, component: str) -> set[int]:
    _ensure_version_table(conn)
    rows = conn.execute("SELECT version FROM schema_migrations WHERE component = ?", (component,)).fetchall()
    return {int(row[0]) for row in rows}


def apply_sqlite_migrations(
    conn: sqlite3.Connection,
    *,
    component: str,
    migrations: Sequence[SqliteMigration],
) -> list[int]:
    """Applies the missing migrations in version order; returns the versions that ran."""
    done = applied_versions(conn, component)
    ran: list[int] = []
    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version in done:
            continue
        savepoint = f"migration_{component}_{migration.version}"
        conn.execute(f"SAVEPOINT {savepoint}")
        try:
            for statement in migration.statements:
                if statement.strip():
                    conn.execute(statement)
            if migration.runner is not None:
                migration.runner(conn)
            conn.execute(
                "INSERT INTO schema_migrations (component, version, name, applied_at) VALUES (?, ?, ?, ?)",
                (component, migration.version, migration.name, datetime.now(timezone.utc).isoformat(timespec="seconds")),
            )
        except sqlite3.Error:
            conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
            conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            logger.error("db_migration_failed", component=component, version=migration.version, name=migration.name)
            raise
        conn.execute(f"RELEASE SAVEPOINT {savepoint}")
        ran.append(migration.version)
        logger.info("db_migration_applied", component=component, version=migration.version, name=migration.name)
    return ran


def migrate_document_store(conn: sqlite3.Connection) -> list[int]:
    return apply_sqlite_migrations(conn, component=DOCUMENT_STORE_COMPONENT, migrations=DOCUMENT_STORE_MIGRATIONS)
