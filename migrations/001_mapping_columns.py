"""
Add columns introduced after the first mappings schema (object storage
targets, extensions, view counts and soft delete).
"""

import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect, text  # noqa: E402

from duk.db import get_engine  # noqa: E402


def ensure_column(table: str, column: str, ddl: str) -> None:
    engine = get_engine()
    inspector = inspect(engine)
    columns = {col["name"] for col in inspector.get_columns(table)}
    if column in columns:
        print(f"{table}.{column} already present")
        return
    with engine.connect() as conn:
        print(f"Adding {column} to {table}")
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
        conn.commit()


def main():
    ensure_column("mappings", "object_key", "VARCHAR")
    ensure_column("mappings", "storage_tier", "VARCHAR")
    ensure_column("mappings", "file_extension", "VARCHAR(8)")
    ensure_column("mappings", "view_count", "INTEGER NOT NULL DEFAULT 0")
    ensure_column("mappings", "is_deleted", "BOOLEAN NOT NULL DEFAULT FALSE")
    ensure_column("mappings", "deleted_at", "TIMESTAMP")


if __name__ == "__main__":
    main()
