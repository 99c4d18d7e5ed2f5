from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from attendme.core.exceptions import ConflictError, NotFoundError, ValidationError
from attendme.db.errors import remote_call
from attendme.models.permission import AttendancePermission, PermissionType
from attendme.schemas.permission import (
    PermissionCreate,
    PermissionOut,
    PermissionUpdate,
    permission_problems,
)
from attendme.services.intervals import overlaps

logger = logging.getLogger(__name__)


def _find_overlapping(
    db: Session,
    *,
    student_id: str,
    permission_type: PermissionType,
    start_date: date,
    end_date: date,
    exclude_id: str | None = None,
) -> AttendancePermission | None:
    query = select(AttendancePermission).where(
        AttendancePermission.student_id == student_id,
        AttendancePermission.type == permission_type,
        AttendancePermission.is_active.is_(True),
        AttendancePermission.start_date <= end_date,
        AttendancePermission.end_date >= start_date,
    )
    if exclude_id:
        query = query.where(AttendancePermission.id != exclude_id)
    for existing in db.execute(query.order_by(AttendancePermission.start_date)).scalars():
        if overlaps(existing.start_date, existing.end_date, start_date, end_date):
            return existing
    return None


def _overlap_error(existing: AttendancePermission, *, student_id: str, permission_type: PermissionType) -> ConflictError:
    return ConflictError(
        f"Conflict: student already has {permission_type.value} on overlapping date range",
        kind="overlap",
        details={
            "type": permission_type.value,
            "student_id": student_id,
            "conflicting": PermissionOut.model_validate(existing).model_dump(mode="json"),
        },
    )


class PermissionManager:
    """Leave and on-duty grants. Every check re-reads the store inside the writing transaction."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def check_overlap(
        self,
        student_id: str,
        permission_type: PermissionType,
        start_date: date,
        end_date: date,
        exclude_id: str | None = None,
    ) -> bool:
        with remote_call("check permission overlap"), self._session_factory() as db:
            existing = _find_overlapping(
                db,
                student_id=student_id,
                permission_type=PermissionType(permission_type),
                start_date=start_date,
                end_date=end_date,
                exclude_id=exclude_id,
            )
        return existing is not None

    def grant(self, payload: PermissionCreate) -> PermissionOut:
        problems = payload.problems()
        if problems:
            raise ValidationError("; ".join(problems), details={"errors": problems})

        with remote_call("grant permission"), self._session_factory() as db, db.begin():
            existing = _find_overlapping(
                db,
                student_id=payload.student_id,
                permission_type=payload.type,
                start_date=payload.start_date,
                end_date=payload.end_date,
            )
            if existing is not None:
                raise _overlap_error(existing, student_id=payload.student_id, permission_type=payload.type)

            record = AttendancePermission(
                student_id=payload.student_id,
                type=payload.type,
                category=payload.category,
                reason=(payload.reason or "").strip() or None,
                start_date=payload.start_date,
                end_date=payload.end_date,
                start_time=payload.start_time,
                end_time=payload.end_time,
                granted_by=payload.granted_by,
                is_active=True,
            )
            db.add(record)
            db.flush()
            db.refresh(record)
            result = PermissionOut.model_validate(record)

        logger.info(
            "Granted %s to student %s for %s..%s",
            payload.type.value,
            payload.student_id,
            payload.start_date,
            payload.end_date,
        )
        return result

    def update(self, permission_id: str, patch: PermissionUpdate) -> PermissionOut:
        changes = patch.changes()
        with remote_call("update permission"), self._session_factory() as db, db.begin():
            record = db.get(AttendancePermission, permission_id)
            if record is None or not record.is_active:
                raise NotFoundError("Permission", permission_id)

            merged = {
                "type": record.type,
                "category": record.category,
                "reason": record.reason,
                "start_date": record.start_date,
                "end_date": record.end_date,
                "start_time": record.start_time,
                "end_time": record.end_time,
            }
            merged.update(changes)
            merged["type"] = PermissionType(merged["type"])
            problems = permission_problems(**merged)
            if problems:
                raise ValidationError("; ".join(problems), details={"errors": problems})

            if patch.touches_range():
                existing = _find_overlapping(
                    db,
                    student_id=record.student_id,
                    permission_type=merged["type"],
                    start_date=merged["start_date"],
                    end_date=merged["end_date"],
                    exclude_id=record.id,
                )
                if existing is not None:
                    raise _overlap_error(existing, student_id=record.student_id, permission_type=merged["type"])

            for field, value in changes.items():
                setattr(record, field, value)
            db.flush()
            result = PermissionOut.model_validate(record)

        logger.info("Updated permission %s (%s)", permission_id, ", ".join(sorted(changes)))
        return result

    def revoke(self, permission_id: str) -> None:
        with remote_call("revoke permission"), self._session_factory() as db, db.begin():
            result = db.execute(delete(AttendancePermission).where(AttendancePermission.id == permission_id))
        if result.rowcount:
            logger.info("Revoked permission %s", permission_id)
        else:
            logger.debug("Revoke of %s was a no-op", permission_id)

    def get(self, permission_id: str) -> PermissionOut:
        with remote_call("load permission"), self._session_factory() as db:
            record = db.get(AttendancePermission, permission_id)
            if record is None:
                raise NotFoundError("Permission", permission_id)
            return PermissionOut.model_validate(record)

    def list_granted_by(self, faculty_id: str, *, limit: int = 50) -> list[PermissionOut]:
        query = (
            select(AttendancePermission)
            .where(AttendancePermission.granted_by == faculty_id)
            .order_by(AttendancePermission.created_at.desc())
            .limit(limit)
        )
        with remote_call("list permissions"), self._session_factory() as db:
            return [PermissionOut.model_validate(item) for item in db.execute(query).scalars()]

    def list_for_student(self, student_id: str, *, active_only: bool = True) -> list[PermissionOut]:
        query = select(AttendancePermission).where(AttendancePermission.student_id == student_id)
        if active_only:
            query = query.where(AttendancePermission.is_active.is_(True))
        query = query.order_by(AttendancePermission.start_date)
        with remote_call("list student permissions"), self._session_factory() as db:
            return [PermissionOut.model_validate(item) for item in db.execute(query).scalars()]
