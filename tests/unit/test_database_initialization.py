"""
Unit tests for database schema bootstrap.
"""

import subprocess
from unittest.mock import MagicMock, Mock, patch

import psycopg
import pytest

from replenisher.database.migrations import (
    DatabaseInitializationError,
    initialize_database,
)
from replenisher.database.schema_manager import (
    AlembicError,
    DatabaseSchemaError,
    SchemaManager,
)


@pytest.fixture
def schema_manager_cls():
    with patch("replenisher.database.migrations.SchemaManager") as cls:
        manager = cls.return_value
        manager.missing_tables.return_value = []
        yield cls


@pytest.mark.unit
class TestInitializeDatabase:
    def test_fresh_database_gets_schema_and_stamp(self, schema_manager_cls):
        manager = schema_manager_cls.return_value
        manager.is_fresh_database.return_value = True

        result = initialize_database("postgresql://db")

        assert result["method"] == "fresh_schema"
        manager.create_fresh_schema.assert_called_once()
        manager.stamp_head.assert_called_once()
        manager.run_migrations.assert_not_called()

    def test_existing_database_is_migrated(self, schema_manager_cls):
        manager = schema_manager_cls.return_value
        manager.is_fresh_database.return_value = False

        result = initialize_database()

        assert result["method"] == "migrations"
        manager.run_migrations.assert_called_once()
        manager.create_fresh_schema.assert_not_called()

    def test_missing_tables_abort(self, schema_manager_cls):
        manager = schema_manager_cls.return_value
        manager.is_fresh_database.return_value = False
        manager.missing_tables.return_value = ["replenishment_payments"]

        with pytest.raises(DatabaseInitializationError, match="replenishment_payments"):
            initialize_database()

    def test_schema_errors_are_wrapped(self, schema_manager_cls):
        manager = schema_manager_cls.return_value
        manager.is_fresh_database.side_effect = DatabaseSchemaError("refused")

        with pytest.raises(DatabaseInitializationError, match="refused"):
            initialize_database()


def _connect_returning(cursor):
    conn = MagicMock()
    conn.__enter__.return_value = conn
    conn.cursor.return_value.__enter__.return_value = cursor
    return Mock(return_value=conn)


@pytest.mark.unit
class TestSchemaManager:
    def test_missing_tables(self):
        cursor = Mock()
        cursor.fetchall.return_value = [("customers",), ("replenishments",)]

        with patch(
            "replenisher.database.schema_manager.psycopg.connect",
            _connect_returning(cursor),
        ):
            missing = SchemaManager("postgresql://db").missing_tables()

        assert missing == ["replenishment_payments"]

    def test_fresh_database_without_alembic_table(self):
        cursor = Mock()
        cursor.fetchone.return_value = (False,)

        with patch(
            "replenisher.database.schema_manager.psycopg.connect",
            _connect_returning(cursor),
        ):
            assert SchemaManager("postgresql://db").is_fresh_database() is True

    def test_connection_failure(self):
        with patch(
            "replenisher.database.schema_manager.psycopg.connect",
            side_effect=psycopg.OperationalError("refused"),
        ):
            with pytest.raises(DatabaseSchemaError, match="refused"):
                SchemaManager("postgresql://db").is_fresh_database()

    def test_alembic_failure(self):
        error = subprocess.CalledProcessError(1, ["alembic"], stderr="bad revision")
        with patch(
            "replenisher.database.schema_manager.subprocess.run", side_effect=error
        ):
            with pytest.raises(AlembicError, match="bad revision"):
                SchemaManager("postgresql://db").run_migrations()
