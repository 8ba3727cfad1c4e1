"""
Database schema management for fresh deployments and migrations.

- Fresh databases: direct schema creation from schema.sql, then alembic stamp
- Existing databases: alembic upgrade head
"""

import subprocess
from pathlib import Path
from typing import List, Optional

import psycopg
from loguru import logger

from ..config import settings

PROJECT_ROOT = Path(__file__).parent.parent.parent

REQUIRED_TABLES = ("customers", "replenishments", "replenishment_payments")


class DatabaseSchemaError(Exception):
    """Base exception for database schema operations."""

    pass


class SchemaFileNotFoundError(DatabaseSchemaError):
    """Raised when the schema SQL file cannot be found."""

    pass


class AlembicError(DatabaseSchemaError):
    """Raised when Alembic operations fail."""

    pass


class SchemaManager:
    """Manages database schema creation and migration detection."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.database_url
        self._schema_file_path = Path(__file__).parent / "schema.sql"

        if not self._schema_file_path.exists():
            raise SchemaFileNotFoundError(
                f"Schema file not found at {self._schema_file_path}"
            )

    def is_fresh_database(self) -> bool:
        """
        Check if database is fresh (no existing Alembic state).

        Raises:
            DatabaseSchemaError: If database connection or query fails
        """
        try:
            with psycopg.connect(self.database_url) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        SELECT EXISTS (
                            SELECT FROM information_schema.tables
                            WHERE table_schema = 'public'
                            AND table_name = 'alembic_version'
                        )
                    """
                    )
                    result = cur.fetchone()
                    if result is None or not result[0]:
                        logger.info("Fresh database: no alembic_version table")
                        return True

                    cur.execute("SELECT version_num FROM alembic_version")
                    result = cur.fetchone()
                    if result is None:
                        logger.info("Fresh database: empty alembic_version table")
                        return True

                    logger.info(f"Existing database: revision {result[0]}")
                    return False

        except psycopg.Error as e:
            raise DatabaseSchemaError(f"Database connection failed: {e}") from e

    def create_fresh_schema(self) -> None:
        """
        Create database schema from SQL file for fresh databases.

        Raises:
            DatabaseSchemaError: If schema creation fails
        """
        try:
            logger.info("Creating fresh schema from SQL file")
            schema_sql = self._schema_file_path.read_text(encoding="utf-8")

            with psycopg.connect(self.database_url) as conn:
                conn.autocommit = True
                with conn.cursor() as cur:
                    statements = [
                        stmt.strip() for stmt in schema_sql.split(";") if stmt.strip()
                    ]
                    for statement in statements:
                        # Bytes bypass psycopg's LiteralString requirement
                        cur.execute(statement.encode("utf-8"))

            logger.info("Fresh schema created successfully")

        except psycopg.Error as e:
            raise DatabaseSchemaError(f"Schema creation failed: {e}") from e
        except OSError as e:
            raise SchemaFileNotFoundError(f"Cannot read schema file: {e}") from e

    def _alembic(self, *args: str, timeout: int = 60) -> str:
        try:
            result = subprocess.run(
                ["alembic", *args],
                cwd=PROJECT_ROOT,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
            )
            return result.stdout
        except subprocess.CalledProcessError as e:
            raise AlembicError(f"alembic {' '.join(args)} failed: {e.stderr}") from e
        except subprocess.TimeoutExpired:
            raise AlembicError(f"alembic {' '.join(args)} timed out") from None

    def stamp_head(self) -> None:
        """Mark database as current revision without running migrations."""
        self._alembic("stamp", "head")
        logger.info("Database stamped at head")

    def run_migrations(self) -> None:
        """Run Alembic migrations for existing databases."""
        logger.info("Running Alembic migrations")
        self._alembic("upgrade", "head", timeout=300)
        logger.info("Migrations completed successfully")

    def missing_tables(self) -> List[str]:
        """
        Tables the service needs that are absent from the public schema.

        Raises:
            DatabaseSchemaError: If database connection or query fails
        """
        try:
            with psycopg.connect(self.database_url) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        SELECT table_name FROM information_schema.tables
                        WHERE table_schema = 'public'
                        AND table_name = ANY(%s)
                    """,
                        (list(REQUIRED_TABLES),),
                    )
                    present = {row[0] for row in cur.fetchall()}
        except psycopg.Error as e:
            raise DatabaseSchemaError(f"Schema verification failed: {e}") from e

        return [table for table in REQUIRED_TABLES if table not in present]
