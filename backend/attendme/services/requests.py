from __future__ import annotations

from datetime import date, datetime, timezone
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from attendme.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from attendme.db.errors import remote_call
from attendme.models.attendance_session import AttendanceSession
from attendme.models.notification import Notification, NotificationPriority, NotificationType
from attendme.models.request import ClassSwap, RequestKind, RequestStatus, Substitution
from attendme.schemas.request import (
    AttendanceSessionOut,
    RequestOut,
    RespondAction,
    RespondOutcome,
    ScheduleConflict,
    SubstitutionCreate,
    SwapCreate,
)
from attendme.services.notifications import NotificationDispatcher, create_notification, dispatch_notifications
from attendme.services.visibility import VisibilityCoordinator

logger = logging.getLogger(__name__)

RequestRecord = Substitution | ClassSwap

REQUEST_MODELS: dict[RequestKind, type[Substitution] | type[ClassSwap]] = {
    RequestKind.substitution: Substitution,
    RequestKind.swap: ClassSwap,
}

RESPONSE_NOTIFICATIONS: dict[tuple[RequestKind, RequestStatus], tuple[NotificationType, str]] = {
    (RequestKind.substitution, RequestStatus.accepted): (NotificationType.substitute_accepted, "Substitute Accepted"),
    (RequestKind.substitution, RequestStatus.declined): (NotificationType.substitute_declined, "Substitute Declined"),
    (RequestKind.swap, RequestStatus.accepted): (NotificationType.swap_accepted, "Swap Accepted"),
    (RequestKind.swap, RequestStatus.declined): (NotificationType.swap_declined, "Swap Declined"),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def _locate(db: Session, request_id: str, kind: RequestKind | None = None) -> RequestRecord | None:
    kinds = [RequestKind(kind)] if kind is not None else list(REQUEST_MODELS)
    for item in kinds:
        record = db.get(REQUEST_MODELS[item], request_id)
        if record is not None:
            return record
    return None


def guarded_transition(
    db: Session,
    model: type[Substitution] | type[ClassSwap],
    request_id: str,
    new_status: RequestStatus,
) -> bool:
    """Write the new status only if the row is still pending. Returns False when another writer won."""
    result = db.execute(
        update(model)
        .where(model.id == request_id, model.status == RequestStatus.pending)
        .values(status=new_status, responded_at=_utc_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _current_status(db: Session, model: type[Substitution] | type[ClassSwap], request_id: str) -> RequestStatus:
    return db.execute(select(model.status).where(model.id == request_id)).scalar_one()


def _slot_label(slot_id: str) -> str:
    return slot_id.upper()


class RequestLifecycleManager:
    """Substitution and swap requests between two faculty members."""

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        dispatcher: NotificationDispatcher | None = None,
        visibility: VisibilityCoordinator | None = None,
        notifications_enabled: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._visibility = visibility
        self._notifications_enabled = notifications_enabled

    # creation

    def create_substitution(self, payload: SubstitutionCreate) -> RequestOut:
        if payload.sender_id == payload.receiver_id:
            raise ValidationError("Cannot request a substitution from yourself")

        notes = _normalize_text(payload.notes)
        with remote_call("create substitution request"), self._session_factory() as db, db.begin():
            record = Substitution(
                date=payload.date,
                slot_id=payload.slot_id,
                sender_id=payload.sender_id,
                receiver_id=payload.receiver_id,
                subject_id=payload.subject_id,
                target_dept=payload.target_dept,
                target_year=payload.target_year,
                target_section=payload.target_section,
                notes=notes,
                status=RequestStatus.pending,
                requested_at=_utc_now(),
            )
            db.add(record)
            db.flush()
            created: list[Notification] = []
            if self._notifications_enabled:
                body = f"{_slot_label(payload.slot_id)} on {payload.date.isoformat()}"
                if notes:
                    body = f"{body} - {notes}"
                created.append(
                    create_notification(
                        db,
                        user_id=payload.receiver_id,
                        notification_type=NotificationType.substitute_request,
                        title="Substitute Request",
                        body=body,
                        data={
                            "request_id": record.id,
                            "kind": RequestKind.substitution.value,
                            "slot_id": payload.slot_id,
                            "date": payload.date.isoformat(),
                        },
                        priority=NotificationPriority.high,
                    )
                )
            result = RequestOut.model_validate(record)

        dispatch_notifications(self._dispatcher, created)
        logger.info("Substitution %s requested by %s from %s", result.id, payload.sender_id, payload.receiver_id)
        return result

    def create_swap(self, payload: SwapCreate) -> RequestOut:
        if payload.sender_id == payload.receiver_id:
            raise ValidationError("Cannot swap a class with yourself")

        notes = _normalize_text(payload.notes)
        with remote_call("create swap request"), self._session_factory() as db, db.begin():
            record = ClassSwap(
                date=payload.date,
                sender_id=payload.sender_id,
                receiver_id=payload.receiver_id,
                slot_a_id=payload.slot_a_id,
                slot_b_id=payload.slot_b_id,
                notes=notes,
                status=RequestStatus.pending,
                requested_at=_utc_now(),
            )
            db.add(record)
            db.flush()
            created: list[Notification] = []
            if self._notifications_enabled:
                body = f"Swap {_slot_label(payload.slot_a_id)} <-> {_slot_label(payload.slot_b_id)}"
                if notes:
                    body = f"{body} - {notes}"
                created.append(
                    create_notification(
                        db,
                        user_id=payload.receiver_id,
                        notification_type=NotificationType.swap_request,
                        title="Swap Request",
                        body=body,
                        data={
                            "request_id": record.id,
                            "kind": RequestKind.swap.value,
                            "slot_a": payload.slot_a_id,
                            "slot_b": payload.slot_b_id,
                            "date": payload.date.isoformat(),
                        },
                        priority=NotificationPriority.high,
                    )
                )
            result = RequestOut.model_validate(record)

        dispatch_notifications(self._dispatcher, created)
        logger.info("Swap %s requested by %s from %s", result.id, payload.sender_id, payload.receiver_id)
        return result

    # lookups

    def get(self, request_id: str, *, kind: RequestKind | None = None) -> RequestOut:
        with remote_call("load request"), self._session_factory() as db:
            record = _locate(db, request_id, kind)
            if record is None:
                raise NotFoundError("Request", request_id)
            return RequestOut.model_validate(record)

    def find_schedule_conflict(self, faculty_id: str, on_date: date, slot_id: str) -> AttendanceSessionOut | None:
        with remote_call("check schedule conflict"), self._session_factory() as db:
            session = self._session_at(db, faculty_id, on_date, slot_id)
            return AttendanceSessionOut.model_validate(session) if session is not None else None

    @staticmethod
    def _session_at(db: Session, faculty_id: str, on_date: date, slot_id: str) -> AttendanceSession | None:
        return db.execute(
            select(AttendanceSession)
            .where(
                AttendanceSession.faculty_id == faculty_id,
                AttendanceSession.date == on_date,
                AttendanceSession.slot_id == slot_id,
            )
            .order_by(AttendanceSession.created_at)
            .limit(1)
        ).scalar_one_or_none()

    def list_incoming(self, user_id: str) -> list[RequestOut]:
        """Pending requests addressed to the user."""
        with remote_call("list incoming requests"), self._session_factory() as db:
            rows: list[RequestRecord] = []
            for model in REQUEST_MODELS.values():
                rows.extend(
                    db.execute(
                        select(model).where(model.receiver_id == user_id, model.status == RequestStatus.pending)
                    ).scalars()
                )
            return self._visible(db, user_id, rows)

    def list_sent(self, user_id: str) -> list[RequestOut]:
        """Requests the user sent that have been answered."""
        with remote_call("list sent requests"), self._session_factory() as db:
            rows: list[RequestRecord] = []
            for model in REQUEST_MODELS.values():
                rows.extend(
                    db.execute(
                        select(model).where(model.sender_id == user_id, model.status != RequestStatus.pending)
                    ).scalars()
                )
            return self._visible(db, user_id, rows)

    def _visible(self, db: Session, user_id: str, rows: list[RequestRecord]) -> list[RequestOut]:
        hidden = VisibilityCoordinator.hidden_ids_in(db, user_id) if self._visibility is not None else set()
        items = [RequestOut.model_validate(row) for row in rows if row.id not in hidden]
        items.sort(key=lambda item: item.requested_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return items

    # transitions

    def respond(
        self,
        request_id: str,
        action: RespondAction,
        *,
        responder_id: str,
        override: bool = False,
        kind: RequestKind | None = None,
    ) -> RespondOutcome:
        if action not in ("accept", "decline"):
            raise ValidationError(f"Unsupported action {action!r}")

        created: list[Notification] = []
        with remote_call("respond to request"), self._session_factory() as db, db.begin():
            record = _locate(db, request_id, kind)
            if record is None:
                raise NotFoundError("Request", request_id)
            if record.receiver_id != responder_id:
                raise AuthorizationError("Only the receiving faculty member can respond to this request")

            model = REQUEST_MODELS[record.kind]
            if record.status != RequestStatus.pending:
                return RespondOutcome(request_id=record.id, kind=record.kind, status=record.status, applied=False)

            if action == "accept" and not override:
                session = self._session_at(db, responder_id, record.date, record.target_slot_id)
                if session is not None:
                    logger.info(
                        "Accept of %s %s held back: %s already has a session at %s %s",
                        record.kind.value,
                        record.id,
                        responder_id,
                        record.date,
                        record.target_slot_id,
                    )
                    return RespondOutcome(
                        request_id=record.id,
                        kind=record.kind,
                        status=RequestStatus.pending,
                        applied=False,
                        conflict=ScheduleConflict(
                            date=record.date,
                            slot_id=record.target_slot_id,
                            session=AttendanceSessionOut.model_validate(session),
                        ),
                    )

            new_status = RequestStatus.accepted if action == "accept" else RequestStatus.declined
            applied = guarded_transition(db, model, record.id, new_status)
            if not applied:
                current = _current_status(db, model, record.id)
                logger.debug("Respond on %s lost the race; status is already %s", record.id, current.value)
                return RespondOutcome(request_id=record.id, kind=record.kind, status=current, applied=False)

            if self._notifications_enabled:
                created.append(self._response_notification(db, record, new_status))
            outcome = RespondOutcome(request_id=record.id, kind=record.kind, status=new_status, applied=True)

        dispatch_notifications(self._dispatcher, created)
        logger.info("%s %s %s by %s", record.kind.value.capitalize(), record.id, new_status.value, responder_id)
        return outcome

    def cancel(self, request_id: str, *, sender_id: str, kind: RequestKind | None = None) -> RespondOutcome:
        with remote_call("cancel request"), self._session_factory() as db, db.begin():
            record = _locate(db, request_id, kind)
            if record is None:
                raise NotFoundError("Request", request_id)
            if record.sender_id != sender_id:
                raise AuthorizationError("Only the sender can cancel this request")

            model = REQUEST_MODELS[record.kind]
            if record.status != RequestStatus.pending:
                return RespondOutcome(request_id=record.id, kind=record.kind, status=record.status, applied=False)

            applied = guarded_transition(db, model, record.id, RequestStatus.declined)
            status = RequestStatus.declined if applied else _current_status(db, model, record.id)
            outcome = RespondOutcome(request_id=record.id, kind=record.kind, status=status, applied=applied)

        if outcome.applied:
            logger.info("%s %s cancelled by %s", record.kind.value.capitalize(), record.id, sender_id)
        return outcome

    def _response_notification(self, db: Session, record: RequestRecord, status: RequestStatus) -> Notification:
        notification_type, title = RESPONSE_NOTIFICATIONS[(record.kind, status)]
        if record.kind == RequestKind.swap:
            body = f"Swap {_slot_label(record.slot_a_id)} <-> {_slot_label(record.slot_b_id)} on {record.date.isoformat()}"
        else:
            body = f"{_slot_label(record.slot_id)} on {record.date.isoformat()}"
        return create_notification(
            db,
            user_id=record.sender_id,
            notification_type=notification_type,
            title=title,
            body=body,
            data={"request_id": record.id, "kind": record.kind.value, "status": status.value},
        )
