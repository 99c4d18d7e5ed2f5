import uuid
from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, Index, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from attendme.db.base import Base


class PermissionType(str, Enum):
    leave = "leave"
    od = "od"


class OdCategory(str, Enum):
    dept_work = "dept_work"
    club_work = "club_work"
    event = "event"
    drive = "drive"
    other = "other"


class AttendancePermission(Base):
    __tablename__ = "attendance_permissions"
    __table_args__ = (
        Index("ix_attendance_permissions_student_type_active", "student_id", "type", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    type: Mapped[PermissionType] = mapped_column(SAEnum(PermissionType, name="permission_type"), nullable=False)
    category: Mapped[OdCategory | None] = mapped_column(SAEnum(OdCategory, name="od_category"), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Same as start_date for a single day.
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    granted_by: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
