from __future__ import annotations

import logging
from typing import Iterable, Protocol, TypeVar
import uuid

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from attendme.db.errors import remote_call
from attendme.models.hidden_item import HiddenItem, HiddenItemType

logger = logging.getLogger(__name__)


class _HasId(Protocol):
    id: str


ItemT = TypeVar("ItemT", bound=_HasId)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _upsert_hidden_item(db: Session, *, user_id: str, item_id: str, item_type: HiddenItemType) -> None:
    dialect = db.get_bind().dialect.name
    insert_factory = _UPSERT_DIALECTS.get(dialect)
    if insert_factory is not None:
        statement = insert_factory(HiddenItem).values(
            id=str(uuid.uuid4()),
            user_id=user_id,
            item_id=item_id,
            item_type=item_type,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[HiddenItem.user_id, HiddenItem.item_id],
            set_={"item_type": statement.excluded.item_type},
        )
        db.execute(statement)
        return

    existing = db.execute(
        select(HiddenItem).where(HiddenItem.user_id == user_id, HiddenItem.item_id == item_id)
    ).scalar_one_or_none()
    if existing is None:
        db.add(HiddenItem(user_id=user_id, item_id=item_id, item_type=item_type))
    else:
        existing.item_type = item_type


class VisibilityCoordinator:
    """Per-user overlay of hidden items. Never touches the shared records themselves."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def hide(self, user_id: str, item_id: str, item_type: HiddenItemType) -> None:
        with remote_call("hide item"), self._session_factory() as db, db.begin():
            _upsert_hidden_item(db, user_id=user_id, item_id=item_id, item_type=HiddenItemType(item_type))
        logger.debug("User %s hid %s %s", user_id, item_type, item_id)

    def hide_many(self, user_id: str, items: Iterable[tuple[str, HiddenItemType]]) -> int:
        count = 0
        with remote_call("hide items"), self._session_factory() as db, db.begin():
            for item_id, item_type in items:
                _upsert_hidden_item(db, user_id=user_id, item_id=item_id, item_type=HiddenItemType(item_type))
                count += 1
        return count

    def hidden_ids(self, user_id: str) -> set[str]:
        with remote_call("load hidden items"), self._session_factory() as db:
            return self.hidden_ids_in(db, user_id)

    @staticmethod
    def hidden_ids_in(db: Session, user_id: str) -> set[str]:
        return set(db.execute(select(HiddenItem.item_id).where(HiddenItem.user_id == user_id)).scalars())

    def is_visible(self, user_id: str, item_id: str) -> bool:
        with remote_call("check visibility"), self._session_factory() as db:
            found = db.execute(
                select(HiddenItem.id).where(HiddenItem.user_id == user_id, HiddenItem.item_id == item_id)
            ).first()
        return found is None

    def list_visible(self, user_id: str, items: Iterable[ItemT]) -> list[ItemT]:
        candidates = list(items)
        if not candidates:
            return []
        hidden = self.hidden_ids(user_id)
        return [item for item in candidates if item.id not in hidden]
