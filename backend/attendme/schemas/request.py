from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from attendme.models.request import RequestKind, RequestStatus


class SubstitutionCreate(BaseModel):
    sender_id: str = Field(min_length=1, max_length=36)
    receiver_id: str = Field(min_length=1, max_length=36)
    date: date
    slot_id: str = Field(min_length=1, max_length=20)
    subject_id: str | None = Field(default=None, max_length=36)
    target_dept: str | None = Field(default=None, max_length=50)
    target_year: int | None = None
    target_section: str | None = Field(default=None, max_length=10)
    notes: str | None = Field(default=None, max_length=1000)


class SwapCreate(BaseModel):
    sender_id: str = Field(min_length=1, max_length=36)
    receiver_id: str = Field(min_length=1, max_length=36)
    date: date
    slot_a_id: str = Field(min_length=1, max_length=20)
    slot_b_id: str = Field(min_length=1, max_length=20)
    notes: str | None = Field(default=None, max_length=1000)


class RequestOut(BaseModel):
    id: str
    kind: RequestKind
    sender_id: str
    receiver_id: str
    date: date
    slot_id: str | None = None
    slot_a_id: str | None = None
    slot_b_id: str | None = None
    notes: str | None = None
    status: RequestStatus
    requested_at: datetime | None = None
    responded_at: datetime | None = None

    model_config = {"from_attributes": True}


class AttendanceSessionOut(BaseModel):
    id: str
    faculty_id: str
    date: date
    slot_id: str
    subject_id: str | None = None
    target_dept: str | None = None
    target_year: int | None = None
    target_section: str | None = None

    model_config = {"from_attributes": True}


class ScheduleConflict(BaseModel):
    date: date
    slot_id: str
    session: AttendanceSessionOut


RespondAction = Literal["accept", "decline"]


class RespondOutcome(BaseModel):
    request_id: str
    kind: RequestKind
    status: RequestStatus
    applied: bool
    conflict: ScheduleConflict | None = None

    @property
    def needs_confirmation(self) -> bool:
        return self.conflict is not None
