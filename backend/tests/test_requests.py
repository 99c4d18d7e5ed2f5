from datetime import date

import pytest
from sqlalchemy import update

from attendme.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from attendme.models.hidden_item import HiddenItemType
from attendme.models.request import ClassSwap, RequestKind, RequestStatus, Substitution
from attendme.schemas.request import SubstitutionCreate, SwapCreate
from attendme.services import requests as requests_module
from attendme.services.requests import RequestLifecycleManager, guarded_transition
from attendme.services.visibility import VisibilityCoordinator

DAY = date(2024, 3, 11)


@pytest.fixture()
def visibility(session_factory):
    return VisibilityCoordinator(session_factory)


@pytest.fixture()
def manager(session_factory, dispatcher, visibility):
    return RequestLifecycleManager(session_factory, dispatcher=dispatcher, visibility=visibility)


def substitution(manager, *, sender="fac-a", receiver="fac-b", slot="p3", notes=None):
    return manager.create_substitution(
        SubstitutionCreate(sender_id=sender, receiver_id=receiver, date=DAY, slot_id=slot, notes=notes)
    )


def swap(manager, *, sender="fac-a", receiver="fac-b", slot_a="p2", slot_b="p5"):
    return manager.create_swap(
        SwapCreate(sender_id=sender, receiver_id=receiver, date=DAY, slot_a_id=slot_a, slot_b_id=slot_b)
    )


def test_create_substitution_is_pending_and_notifies_receiver(manager, dispatcher):
    created = substitution(manager, notes="  Covering lab  ")

    assert created.status == RequestStatus.pending
    assert created.kind == RequestKind.substitution
    assert created.notes == "Covering lab"
    assert created.requested_at is not None
    assert dispatcher.types_for("fac-b") == ["substitute_request"]
    payload = dispatcher.delivered[0][1]["notification"]
    assert payload["priority"] == "high"
    assert payload["data"]["request_id"] == created.id


def test_cannot_request_from_yourself(manager):
    with pytest.raises(ValidationError):
        substitution(manager, sender="fac-a", receiver="fac-a")
    with pytest.raises(ValidationError):
        swap(manager, sender="fac-a", receiver="fac-a")


def test_accept_without_conflict_applies_and_notifies_sender(manager, dispatcher):
    created = substitution(manager)

    outcome = manager.respond(created.id, "accept", responder_id="fac-b")

    assert outcome.applied
    assert outcome.status == RequestStatus.accepted
    assert not outcome.needs_confirmation
    stored = manager.get(created.id)
    assert stored.status == RequestStatus.accepted
    assert stored.responded_at is not None
    assert dispatcher.types_for("fac-a") == ["substitute_accepted"]


def test_accept_with_schedule_conflict_needs_confirmation(manager, dispatcher, add_session):
    created = substitution(manager, slot="p3")
    session_id = add_session("fac-b", DAY, "p3")

    outcome = manager.respond(created.id, "accept", responder_id="fac-b")

    assert not outcome.applied
    assert outcome.needs_confirmation
    assert outcome.status == RequestStatus.pending
    assert outcome.conflict.slot_id == "p3"
    assert outcome.conflict.session.id == session_id
    assert manager.get(created.id).status == RequestStatus.pending
    assert dispatcher.types_for("fac-a") == []


def test_override_skips_conflict_check(manager, add_session):
    created = substitution(manager, slot="p3")
    add_session("fac-b", DAY, "p3")

    outcome = manager.respond(created.id, "accept", responder_id="fac-b", override=True)

    assert outcome.applied
    assert outcome.status == RequestStatus.accepted


def test_session_on_other_slot_is_not_a_conflict(manager, add_session):
    created = substitution(manager, slot="p3")
    add_session("fac-b", DAY, "p4")
    add_session("fac-c", DAY, "p3")

    outcome = manager.respond(created.id, "accept", responder_id="fac-b")
    assert outcome.applied


def test_swap_conflict_checks_the_senders_slot(manager, add_session):
    created = swap(manager, slot_a="p2", slot_b="p5")
    add_session("fac-b", DAY, "p5")

    outcome = manager.respond(created.id, "accept", responder_id="fac-b")
    assert outcome.applied

    second = swap(manager, slot_a="p6", slot_b="p7")
    add_session("fac-b", DAY, "p6")
    blocked = manager.respond(second.id, "accept", responder_id="fac-b", kind=RequestKind.swap)
    assert blocked.needs_confirmation
    assert blocked.conflict.slot_id == "p6"


def test_decline_never_checks_conflicts(manager, dispatcher, add_session):
    created = swap(manager)
    add_session("fac-b", DAY, "p2")

    outcome = manager.respond(created.id, "decline", responder_id="fac-b")

    assert outcome.applied
    assert outcome.status == RequestStatus.declined
    assert dispatcher.types_for("fac-a") == ["swap_declined"]


def test_second_response_is_idempotent(manager, dispatcher):
    created = substitution(manager)

    first = manager.respond(created.id, "decline", responder_id="fac-b")
    second = manager.respond(created.id, "accept", responder_id="fac-b")

    assert first.applied
    assert not second.applied
    assert second.status == RequestStatus.declined
    assert manager.get(created.id).status == RequestStatus.declined
    assert dispatcher.types_for("fac-a") == ["substitute_declined"]


def test_guarded_transition_lets_only_one_writer_win(manager, session_factory):
    created = substitution(manager)

    with session_factory() as db, db.begin():
        assert guarded_transition(db, Substitution, created.id, RequestStatus.accepted)
        assert not guarded_transition(db, Substitution, created.id, RequestStatus.declined)

    assert manager.get(created.id).status == RequestStatus.accepted


def test_guarded_transition_ignores_other_request_kinds(manager, session_factory):
    created = substitution(manager)
    with session_factory() as db, db.begin():
        assert not guarded_transition(db, ClassSwap, created.id, RequestStatus.accepted)


def test_only_receiver_can_respond(manager):
    created = substitution(manager)
    with pytest.raises(AuthorizationError):
        manager.respond(created.id, "accept", responder_id="fac-a")
    assert manager.get(created.id).status == RequestStatus.pending


def test_respond_to_missing_request(manager):
    with pytest.raises(NotFoundError):
        manager.respond("missing", "accept", responder_id="fac-b")


def test_unknown_action_is_rejected(manager):
    created = substitution(manager)
    with pytest.raises(ValidationError):
        manager.respond(created.id, "maybe", responder_id="fac-b")


def test_cancel_by_sender_declines(manager):
    created = swap(manager)

    outcome = manager.cancel(created.id, sender_id="fac-a")

    assert outcome.applied
    assert outcome.status == RequestStatus.declined
    late = manager.respond(created.id, "accept", responder_id="fac-b")
    assert not late.applied
    assert late.status == RequestStatus.declined


def test_cancel_rules(manager):
    created = substitution(manager)
    with pytest.raises(AuthorizationError):
        manager.cancel(created.id, sender_id="fac-b")

    manager.respond(created.id, "accept", responder_id="fac-b")
    outcome = manager.cancel(created.id, sender_id="fac-a")
    assert not outcome.applied
    assert outcome.status == RequestStatus.accepted


def test_incoming_and_sent_lists_respect_hidden_items(manager, visibility):
    pending = substitution(manager)
    answered = swap(manager)
    manager.respond(answered.id, "accept", responder_id="fac-b")

    assert [item.id for item in manager.list_incoming("fac-b")] == [pending.id]
    assert [item.id for item in manager.list_sent("fac-a")] == [answered.id]

    visibility.hide("fac-a", answered.id, HiddenItemType.swap)
    assert manager.list_sent("fac-a") == []
    # The other party still sees the shared record.
    assert manager.get(answered.id).status == RequestStatus.accepted
    visibility.hide("fac-b", pending.id, HiddenItemType.substitution)
    assert manager.list_incoming("fac-b") == []


def test_notifications_can_be_disabled(session_factory, dispatcher):
    manager = RequestLifecycleManager(session_factory, dispatcher=dispatcher, notifications_enabled=False)
    created = substitution(manager)
    manager.respond(created.id, "accept", responder_id="fac-b")
    assert dispatcher.delivered == []


def test_two_rapid_declines_both_report_declined(manager, dispatcher):
    created = substitution(manager)

    outcomes = [manager.respond(created.id, "decline", responder_id="fac-b") for _ in range(2)]

    assert [item.applied for item in outcomes] == [True, False]
    assert {item.status for item in outcomes} == {RequestStatus.declined}
    assert dispatcher.types_for("fac-a") == ["substitute_declined"]


@pytest.fixture()
def concurrent_writer(monkeypatch):
    """Lets another writer settle the request between the read and the guarded write."""

    def install(status):
        real_locate = requests_module._locate

        def stale_locate(db, request_id, kind=None):
            record = real_locate(db, request_id, kind)
            monkeypatch.setattr(requests_module, "_locate", real_locate)
            model = type(record)
            db.execute(
                update(model)
                .where(model.id == request_id)
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            return record

        monkeypatch.setattr(requests_module, "_locate", stale_locate)

    return install


def test_respond_that_loses_the_race_reports_the_winner(manager, dispatcher, concurrent_writer):
    created = substitution(manager)
    concurrent_writer(RequestStatus.declined)

    outcome = manager.respond(created.id, "accept", responder_id="fac-b")

    assert not outcome.applied
    assert outcome.status == RequestStatus.declined
    assert outcome.conflict is None
    assert manager.get(created.id).status == RequestStatus.declined
    assert dispatcher.types_for("fac-a") == []


def test_cancel_that_loses_the_race_reports_the_winner(manager, concurrent_writer):
    created = swap(manager)
    concurrent_writer(RequestStatus.accepted)

    outcome = manager.cancel(created.id, sender_id="fac-a")

    assert not outcome.applied
    assert outcome.status == RequestStatus.accepted
    assert manager.get(created.id).status == RequestStatus.accepted
