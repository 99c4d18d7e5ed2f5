from datetime import datetime

from pydantic import BaseModel


class WatchlistStudent(BaseModel):
    student_id: str
    roll_no: str
    full_name: str
    attendance_percentage: float

    model_config = {"from_attributes": True}


class CachedWatchlist(BaseModel):
    class_key: str
    threshold: float
    students: list[WatchlistStudent]
    cached_at: datetime
