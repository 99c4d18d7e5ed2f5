from datetime import date, datetime, time

from pydantic import BaseModel, Field, model_validator

from attendme.models.permission import OdCategory, PermissionType


def permission_problems(
    *,
    type: PermissionType,
    category: OdCategory | None,
    reason: str | None,
    start_date: date,
    end_date: date,
    start_time: time | None,
    end_time: time | None,
) -> list[str]:
    problems: list[str] = []
    if end_date < start_date:
        problems.append("end_date cannot be before start_date")
    if type != PermissionType.od:
        if category is not None:
            problems.append("category is only allowed for on-duty permissions")
        if start_time is not None or end_time is not None:
            problems.append("time range is only allowed for on-duty permissions")
    if category == OdCategory.other and not (reason or "").strip():
        problems.append("reason is required when category is 'other'")
    if start_time is not None and end_time is not None and end_time <= start_time:
        problems.append("end_time must be after start_time")
    return problems


class PermissionCreate(BaseModel):
    student_id: str = Field(min_length=1, max_length=36)
    type: PermissionType
    category: OdCategory | None = None
    reason: str | None = Field(default=None, max_length=1000)
    start_date: date
    end_date: date
    start_time: time | None = None
    end_time: time | None = None
    granted_by: str = Field(min_length=1, max_length=36)

    def problems(self) -> list[str]:
        return permission_problems(
            type=self.type,
            category=self.category,
            reason=self.reason,
            start_date=self.start_date,
            end_date=self.end_date,
            start_time=self.start_time,
            end_time=self.end_time,
        )


NON_NULLABLE_UPDATE_FIELDS = ("type", "start_date", "end_date")


class PermissionUpdate(BaseModel):
    type: PermissionType | None = None
    category: OdCategory | None = None
    reason: str | None = Field(default=None, max_length=1000)
    start_date: date | None = None
    end_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None

    @model_validator(mode="after")
    def require_changes(self) -> "PermissionUpdate":
        if not self.model_fields_set:
            raise ValueError("update must change at least one field")
        cleared = [
            name
            for name in NON_NULLABLE_UPDATE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)

    def touches_range(self) -> bool:
        return bool({"start_date", "end_date", "type"} & self.model_fields_set)


class PermissionOut(BaseModel):
    id: str
    student_id: str
    type: PermissionType
    category: OdCategory | None = None
    reason: str | None = None
    start_date: date
    end_date: date
    start_time: time | None = None
    end_time: time | None = None
    granted_by: str
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
