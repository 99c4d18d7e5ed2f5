from sqlalchemy import Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from attendme.db.base import Base


class StudentAggregate(Base):
    """Per-student attendance rollup. Maintained by the backend, read-only here."""

    __tablename__ = "student_aggregates"

    student_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    roll_no: Mapped[str] = mapped_column(String(50), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    dept: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(10), nullable=False)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    present_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attendance_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
