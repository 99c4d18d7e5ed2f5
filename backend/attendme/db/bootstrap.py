from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from attendme.db.base import Base
import attendme.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "attendance_permissions": {"id", "student_id", "type", "start_date", "end_date", "is_active"},
    "substitutions": {"id", "sender_id", "receiver_id", "date", "slot_id", "status"},
    "class_swaps": {"id", "sender_id", "receiver_id", "date", "slot_a_id", "slot_b_id", "status"},
    "attendance_sessions": {"id", "faculty_id", "date", "slot_id"},
    "hidden_items": {"id", "user_id", "item_id", "item_type"},
    "notifications": {"id", "user_id", "notification_type", "is_read"},
}


def _assert_required_columns(engine: Engine) -> None:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def init_db(engine: Engine) -> None:
    try:
        Base.metadata.create_all(bind=engine)
        _assert_required_columns(engine)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Schema bootstrap failed")
        raise RuntimeError("Schema bootstrap failed") from exc
