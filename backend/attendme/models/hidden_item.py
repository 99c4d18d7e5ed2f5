import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from attendme.db.base import Base


class HiddenItemType(str, Enum):
    substitution = "substitution"
    swap = "swap"
    notification = "notification"


class HiddenItem(Base):
    __tablename__ = "hidden_items"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_hidden_items_user_item"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    item_type: Mapped[HiddenItemType] = mapped_column(SAEnum(HiddenItemType, name="hidden_item_type"), nullable=False)
    hidden_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
