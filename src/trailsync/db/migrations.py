"""
Database migrations for the local record store.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all(). create_all()
never alters an existing table, so a column added to a model after a
database was first created must also be listed in _COLUMN_ADDITIONS.
"""
from sqlalchemy import text

# (table, column, SQLite column definition), applied in order.
# Empty until the schema changes after its first release.
_COLUMN_ADDITIONS = ()


def run_migrations(engine, additions=None) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times: checks column existence before altering.
    Supports SQLite only (uses PRAGMA table_info).

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
        additions: Column additions to apply. Defaults to _COLUMN_ADDITIONS.
    """
    with engine.connect() as conn:
        for table, column, col_type in (_COLUMN_ADDITIONS if additions is None else additions):
            _add_column_if_missing(conn, table, column, col_type)
        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite column definition, e.g. "INTEGER", "DATETIME".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
