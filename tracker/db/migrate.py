"""Create the tracker tables."""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tracker.db.schema import metadata
from tracker.db.session import create_engine_from_env

logger = logging.getLogger(__name__)


def run_migrations(engine: Engine) -> list[str]:
    """Create any missing tables and return the names that were created.

    Nullable columns added to a table after it was first created are added to
    the existing table.
    """
    inspector = inspect(engine)
    existing = set(inspector.get_table_names())
    metadata.create_all(engine)
    created = [name for name in metadata.tables if name not in existing]
    if created:
        logger.info("Created tables: %s", ", ".join(created))

    missing = []
    for name in sorted(existing & set(metadata.tables)):
        present = {column["name"] for column in inspector.get_columns(name)}
        missing.extend(
            (name, column)
            for column in metadata.tables[name].columns
            if column.name not in present and column.nullable
        )
    if missing:
        with engine.begin() as conn:
            for name, column in missing:
                ddl = column.type.compile(dialect=engine.dialect)
                conn.execute(text(f"ALTER TABLE {name} ADD COLUMN {column.name} {ddl}"))
                logger.info("Added column %s.%s", name, column.name)
    return created


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    load_dotenv()
    try:
        run_migrations(create_engine_from_env())
    except SQLAlchemyError as exc:
        logger.error("Migration failed: %s", exc)
        sys.exit(2)


if __name__ == "__main__":
    main()
