"""
Database initialization for Replenisher.

Fresh databases get schema.sql applied directly and are stamped at the
alembic head; existing ones are upgraded. Either way the replenishment
tables must exist afterwards or startup is aborted.
"""

import sys
from typing import Any, Dict, Optional

from .schema_manager import AlembicError, DatabaseSchemaError, SchemaManager


class DatabaseInitializationError(Exception):
    """Raised when database initialization fails."""


def initialize_database(database_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Bring the database schema up to date.

    Returns:
        {"method": "fresh_schema" | "migrations", "message": str}

    Raises:
        DatabaseInitializationError: If initialization fails or required
            tables are still missing afterwards
    """
    try:
        schema_manager = SchemaManager(database_url)

        if schema_manager.is_fresh_database():
            schema_manager.create_fresh_schema()
            schema_manager.stamp_head()
            method = "fresh_schema"
        else:
            schema_manager.run_migrations()
            method = "migrations"

        missing = schema_manager.missing_tables()
    except (DatabaseSchemaError, AlembicError) as e:
        raise DatabaseInitializationError(f"Database initialization failed: {e}") from e

    if missing:
        raise DatabaseInitializationError(
            f"Database initialized via {method} but tables are missing: "
            f"{', '.join(missing)}"
        )
    return {"method": method, "message": f"Database ready ({method})"}


def main() -> int:
    """Console entry point (replenisher-init-db)."""
    try:
        result = initialize_database()
    except DatabaseInitializationError as e:
        print(f"❌ {e}")
        return 1
    print(f"✅ {result['message']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
