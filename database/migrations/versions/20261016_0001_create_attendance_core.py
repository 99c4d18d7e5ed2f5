"""create attendance core tables

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None

ENUM_SPECS: dict[str, tuple[str, ...]] = {
    "permission_type": ("leave", "od"),
    "od_category": ("dept_work", "club_work", "event", "drive", "other"),
    "request_status": ("pending", "accepted", "declined"),
    "hidden_item_type": ("substitution", "swap", "notification"),
    "notification_type": (
        "substitute_request",
        "substitute_accepted",
        "substitute_declined",
        "swap_request",
        "swap_accepted",
        "swap_declined",
        "class_reminder",
        "management_update",
    ),
    "notification_priority": ("low", "normal", "high", "urgent"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUM_SPECS[name], name=name, create_type=False)


def _create_indexes(inspector, table_name: str, index_specs: list[tuple[str, list[str], bool]]) -> None:
    existing_indexes = {item["name"] for item in inspector.get_indexes(table_name)}
    for index_name, columns, unique in index_specs:
        if index_name in existing_indexes:
            continue
        op.create_index(index_name, table_name, columns, unique=unique)


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"
    if is_postgres:
        for name in ENUM_SPECS:
            _enum(name).create(bind, checkfirst=True)

    def enum_column_type(name: str):
        if is_postgres:
            return _enum(name)
        return sa.Enum(*ENUM_SPECS[name], name=name)

    inspector = sa.inspect(bind)

    if not inspector.has_table("attendance_permissions"):
        op.create_table(
            "attendance_permissions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("student_id", sa.String(length=36), nullable=False),
            sa.Column("type", enum_column_type("permission_type"), nullable=False),
            sa.Column("category", enum_column_type("od_category"), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=True),
            sa.Column("end_time", sa.Time(), nullable=True),
            sa.Column("granted_by", sa.String(length=36), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        inspector,
        "attendance_permissions",
        [
            ("ix_attendance_permissions_student_id", ["student_id"], False),
            ("ix_attendance_permissions_granted_by", ["granted_by"], False),
            ("ix_attendance_permissions_student_type_active", ["student_id", "type", "is_active"], False),
        ],
    )

    if not inspector.has_table("substitutions"):
        op.create_table(
            "substitutions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("slot_id", sa.String(length=20), nullable=False),
            sa.Column("sender_id", sa.String(length=36), nullable=False),
            sa.Column("receiver_id", sa.String(length=36), nullable=False),
            sa.Column("subject_id", sa.String(length=36), nullable=True),
            sa.Column("target_dept", sa.String(length=50), nullable=True),
            sa.Column("target_year", sa.Integer(), nullable=True),
            sa.Column("target_section", sa.String(length=10), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("status", enum_column_type("request_status"), nullable=False),
            sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        inspector,
        "substitutions",
        [
            ("ix_substitutions_sender_id", ["sender_id"], False),
            ("ix_substitutions_receiver_id", ["receiver_id"], False),
            ("ix_substitutions_status", ["status"], False),
        ],
    )

    if not inspector.has_table("class_swaps"):
        op.create_table(
            "class_swaps",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("sender_id", sa.String(length=36), nullable=False),
            sa.Column("receiver_id", sa.String(length=36), nullable=False),
            sa.Column("slot_a_id", sa.String(length=20), nullable=False),
            sa.Column("slot_b_id", sa.String(length=20), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("status", enum_column_type("request_status"), nullable=False),
            sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("sender_id != receiver_id", name="ck_class_swaps_different_faculties"),
        )
    _create_indexes(
        inspector,
        "class_swaps",
        [
            ("ix_class_swaps_sender_id", ["sender_id"], False),
            ("ix_class_swaps_receiver_id", ["receiver_id"], False),
            ("ix_class_swaps_status", ["status"], False),
        ],
    )

    if not inspector.has_table("attendance_sessions"):
        op.create_table(
            "attendance_sessions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("faculty_id", sa.String(length=36), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("slot_id", sa.String(length=20), nullable=False),
            sa.Column("subject_id", sa.String(length=36), nullable=True),
            sa.Column("target_dept", sa.String(length=50), nullable=True),
            sa.Column("target_year", sa.Integer(), nullable=True),
            sa.Column("target_section", sa.String(length=10), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        inspector,
        "attendance_sessions",
        [("ix_attendance_sessions_faculty_date_slot", ["faculty_id", "date", "slot_id"], False)],
    )

    if not inspector.has_table("hidden_items"):
        op.create_table(
            "hidden_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("item_type", enum_column_type("hidden_item_type"), nullable=False),
            sa.Column("hidden_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "item_id", name="uq_hidden_items_user_item"),
        )
    _create_indexes(inspector, "hidden_items", [("ix_hidden_items_user_id", ["user_id"], False)])

    if not inspector.has_table("notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("notification_type", enum_column_type("notification_type"), nullable=False),
            sa.Column("priority", enum_column_type("notification_priority"), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(inspector, "notifications", [("ix_notifications_user_id", ["user_id"], False)])

    if not inspector.has_table("student_aggregates"):
        op.create_table(
            "student_aggregates",
            sa.Column("student_id", sa.String(length=36), nullable=False),
            sa.Column("roll_no", sa.String(length=50), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column("dept", sa.String(length=50), nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("section", sa.String(length=10), nullable=False),
            sa.Column("total_sessions", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("present_sessions", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("attendance_percentage", sa.Float(), nullable=False, server_default="100"),
            sa.PrimaryKeyConstraint("student_id"),
        )
    _create_indexes(inspector, "student_aggregates", [("ix_student_aggregates_dept", ["dept"], False)])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in (
        "student_aggregates",
        "notifications",
        "hidden_items",
        "attendance_sessions",
        "class_swaps",
        "substitutions",
        "attendance_permissions",
    ):
        if inspector.has_table(table_name):
            op.drop_table(table_name)

    if bind.dialect.name == "postgresql":
        for name in reversed(list(ENUM_SPECS)):
            _enum(name).drop(bind, checkfirst=True)
