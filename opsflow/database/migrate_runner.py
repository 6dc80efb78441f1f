"""Database migration runner for deploys.

Runs `alembic upgrade head`. When the tables already exist but Alembic has no
record of them (schema created by `create_all()` before migrations were turned
on), the expected schema is verified and the database is stamped at head
instead.
"""

from __future__ import annotations

import logging
import sys
from typing import List, Tuple

from alembic import command
from sqlalchemy import inspect

from opsflow.database.database import DATABASE_URL, alembic_config, build_engine

logger = logging.getLogger(__name__)


def _required_schema_checks() -> List[Tuple[str, str]]:
    """Return (table, column) pairs required to safely stamp head."""
    return [
        ("employees", "active_task_count"),
        ("business_events", "processing_status"),
        ("tasks", "event_id"),
        ("tasks", "assignee_id"),
        ("grey_areas", "resolution_deadline"),
        ("grey_areas", "activity_log"),
        ("notifications", "recipient_id"),
    ]


def missing_requirements(engine) -> List[str]:
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    missing: List[str] = []
    for table, column in _required_schema_checks():
        if table not in tables:
            missing.append(f"missing table: {table}")
            continue
        if column not in {c["name"] for c in inspector.get_columns(table)}:
            missing.append(f"missing column: {table}.{column}")
    return list(dict.fromkeys(missing))


def main() -> int:
    try:
        command.upgrade(alembic_config(), "head")
        return 0
    except Exception as e:
        msg = str(e).lower()
        if "already exists" not in msg and "duplicate" not in msg:
            raise

        missing = missing_requirements(build_engine(DATABASE_URL))
        if missing:
            raise RuntimeError(
                "Alembic upgrade failed and schema is not at expected baseline; refusing to stamp head. "
                + "; ".join(missing)
            ) from e

        logger.warning("Schema already present; stamping Alembic head")
        command.stamp(alembic_config(), "head")
        return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
