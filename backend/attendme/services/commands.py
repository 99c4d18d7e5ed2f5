"""Serialisable commands replayed by the offline queue.

Each command names a store operation and carries only plain data, so a queued
action survives an app restart. ``run`` executes it against the managers held
by a :class:`CommandContext`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from attendme.core.exceptions import ConflictError, ValidationError
from attendme.models.hidden_item import HiddenItemType
from attendme.models.request import RequestKind
from attendme.schemas.permission import PermissionCreate, PermissionUpdate
from attendme.schemas.request import RespondAction, RespondOutcome
from attendme.services.notifications import NotificationService
from attendme.services.permissions import PermissionManager
from attendme.services.requests import RequestLifecycleManager
from attendme.services.visibility import VisibilityCoordinator


@dataclass(frozen=True)
class CommandContext:
    permissions: PermissionManager
    requests: RequestLifecycleManager
    visibility: VisibilityCoordinator
    notifications: NotificationService


class GrantPermission(BaseModel):
    action: Literal["grant_permission"] = "grant_permission"
    payload: PermissionCreate

    def run(self, context: CommandContext) -> Any:
        return context.permissions.grant(self.payload)


class UpdatePermission(BaseModel):
    action: Literal["update_permission"] = "update_permission"
    permission_id: str
    changes: dict[str, Any]

    @classmethod
    def from_patch(cls, permission_id: str, patch: PermissionUpdate) -> "UpdatePermission":
        return cls(permission_id=permission_id, changes=patch.model_dump(mode="json", exclude_unset=True))

    def run(self, context: CommandContext) -> Any:
        try:
            patch = PermissionUpdate.model_validate(self.changes)
        except PydanticValidationError as exc:
            problems = [error["msg"] for error in exc.errors()]
            raise ValidationError("; ".join(problems), details={"errors": problems}) from exc
        return context.permissions.update(self.permission_id, patch)


class RevokePermission(BaseModel):
    action: Literal["revoke_permission"] = "revoke_permission"
    permission_id: str

    def run(self, context: CommandContext) -> Any:
        return context.permissions.revoke(self.permission_id)


class RespondRequest(BaseModel):
    action: Literal["respond_request"] = "respond_request"
    request_id: str
    response: RespondAction
    responder_id: str
    override: bool = False
    kind: RequestKind | None = None

    def run(self, context: CommandContext) -> RespondOutcome:
        outcome = context.requests.respond(
            self.request_id,
            self.response,
            responder_id=self.responder_id,
            override=self.override,
            kind=self.kind,
        )
        # Callers resubmit with override=True once the clash is confirmed.
        if outcome.conflict is not None:
            conflict = outcome.conflict
            raise ConflictError(
                f"Schedule conflict: {self.responder_id} already teaches slot {conflict.slot_id} on {conflict.date}",
                kind="schedule",
                details={
                    "request_id": self.request_id,
                    "date": conflict.date.isoformat(),
                    "slot_id": conflict.slot_id,
                    "session_id": conflict.session.id,
                },
            )
        return outcome


class CancelRequest(BaseModel):
    action: Literal["cancel_request"] = "cancel_request"
    request_id: str
    sender_id: str
    kind: RequestKind | None = None

    def run(self, context: CommandContext) -> Any:
        return context.requests.cancel(self.request_id, sender_id=self.sender_id, kind=self.kind)


class HideItem(BaseModel):
    action: Literal["hide_item"] = "hide_item"
    user_id: str
    item_id: str
    item_type: HiddenItemType

    def run(self, context: CommandContext) -> Any:
        # Notifications are owned outright, so dismissing one deletes it.
        return context.notifications.dismiss(self.user_id, self.item_id, self.item_type)


Command = Annotated[
    Union[GrantPermission, UpdatePermission, RevokePermission, RespondRequest, CancelRequest, HideItem],
    Field(discriminator="action"),
]
