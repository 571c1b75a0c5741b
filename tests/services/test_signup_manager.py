# tests/services/test_signup_manager.py
import threading
from datetime import timedelta

import pytest

from signup_service.constants.signup import EventStatus, InstanceStatus, SignupStatus
from signup_service.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OfferExpiredError,
    RateLimitedError,
)
from signup_service.models.notification import Notification
from signup_service.models.signup import Signup
from signup_service.services.signup_manager import SignupManager
from signup_service.utils.dates import ensure_utc, utcnow
from tests.utils.factories import (
    add_signup,
    admin,
    create_event,
    create_instance,
    parent,
    statuses,
    student,
)


def _published_events(notifier):
    return [call.args[0] for call in notifier.publish.call_args_list]


# --- CreateSignup ---

def test_signup_confirms_while_capacity_remains(db_session, manager, notifier):
    instance = create_instance(db_session, student_capacity=2)

    result = manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)

    assert result.status == SignupStatus.CONFIRMED
    assert result.signup.user_id == "u1"
    assert "signup-created" in _published_events(notifier)
    notifier.send_email.assert_called_once()
    assert notifier.send_email.call_args.args[0] == "SIGNUP_CONFIRMATION"


def test_signup_waitlists_when_role_pool_full(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(db_session, instance=instance, user_id="u1")

    result = manager.create_signup(db_session, participant=student("u2"), instance_id=instance.id)

    assert result.status == SignupStatus.WAITLIST
    assert "waitlist" in result.message


def test_role_pools_are_independent(db_session, manager):
    instance = create_instance(db_session, student_capacity=1, parent_capacity=1)
    add_signup(db_session, instance=instance, user_id="s1")

    result = manager.create_signup(db_session, participant=parent("p1"), instance_id=instance.id)

    assert result.status == SignupStatus.CONFIRMED
    assert result.signup.role == "PARENT"


def test_pending_offer_holds_its_seat(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(
        db_session,
        instance=instance,
        user_id="offered",
        status=SignupStatus.WAITLIST_PENDING,
        waitlist_notified_at=utcnow(),
    )

    result = manager.create_signup(db_session, participant=student("late"), instance_id=instance.id)

    assert result.status == SignupStatus.WAITLIST


def test_full_with_waitlist_disabled_is_conflict(db_session, manager, notifier):
    instance = create_instance(db_session, student_capacity=1, waitlist_enabled=False)
    add_signup(db_session, instance=instance, user_id="u1")

    with pytest.raises(ConflictError) as exc_info:
        manager.create_signup(db_session, participant=student("u2"), instance_id=instance.id)

    assert "waitlist is disabled" in exc_info.value.message
    assert statuses(db_session, instance.id) == {"u1": SignupStatus.CONFIRMED}
    notifier.publish.assert_not_called()


def test_zero_capacity_without_waitlist_creates_no_row(db_session, manager):
    instance = create_instance(db_session, student_capacity=0, waitlist_enabled=False)

    with pytest.raises(ConflictError):
        manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)

    assert statuses(db_session, instance.id) == {}


def test_duplicate_active_signup_is_conflict(db_session, manager):
    instance = create_instance(db_session)
    add_signup(db_session, instance=instance, user_id="u1")

    with pytest.raises(ConflictError):
        manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)


def test_resignup_inside_debounce_window_is_rate_limited(db_session, manager):
    instance = create_instance(db_session, student_capacity=5)
    manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)

    with pytest.raises(RateLimitedError):
        manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)


def test_unknown_instance_is_not_found(db_session, manager):
    with pytest.raises(NotFoundError):
        manager.create_signup(db_session, participant=student("u1"), instance_id="inst_missing")


def test_unpublished_event_is_forbidden_except_for_admins(db_session, manager):
    event = create_event(db_session, status=EventStatus.DRAFT)
    instance = create_instance(db_session, event=event)

    with pytest.raises(ForbiddenError):
        manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)

    result = manager.create_signup(db_session, participant=admin("a1"), instance_id=instance.id)
    assert result.signup.role == "PARENT"


def test_disabled_or_cancelled_instance_is_forbidden(db_session, manager):
    disabled = create_instance(db_session, enabled=False)
    cancelled = create_instance(db_session, status=InstanceStatus.CANCELLED)

    with pytest.raises(ForbiddenError):
        manager.create_signup(db_session, participant=student("u1"), instance_id=disabled.id)
    with pytest.raises(ForbiddenError):
        manager.create_signup(db_session, participant=student("u1"), instance_id=cancelled.id)


def test_cancelled_row_is_revived_at_the_back_of_the_queue(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(db_session, instance=instance, user_id="holder")
    add_signup(db_session, instance=instance, user_id="waiter", status=SignupStatus.WAITLIST)
    old = add_signup(db_session, instance=instance, user_id="u1", status=SignupStatus.CANCELLED)

    result = manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)

    assert result.signup.id == old.id
    assert result.status == SignupStatus.WAITLIST
    assert result.signup.cancelled_at is None
    assert db_session.query(Signup).filter(Signup.instance_id == instance.id).count() == 3


def test_concurrent_signups_never_exceed_capacity(session_factory, manager):
    setup = session_factory()
    instance = create_instance(setup, student_capacity=3)
    instance_id = instance.id
    setup.close()

    participants = 10
    barrier = threading.Barrier(participants)
    errors = []

    def sign_up(index):
        db = session_factory()
        try:
            barrier.wait()
            manager.create_signup(db, participant=student(f"u{index}"), instance_id=instance_id)
        except Exception as e:  # collected and asserted below
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=sign_up, args=(i,)) for i in range(participants)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    check = session_factory()
    result = statuses(check, instance_id)
    check.close()
    assert list(result.values()).count(SignupStatus.CONFIRMED) == 3
    assert list(result.values()).count(SignupStatus.WAITLIST) == participants - 3


def test_concurrent_signups_with_waitlist_disabled_reject_the_overflow(session_factory, manager):
    setup = session_factory()
    instance = create_instance(setup, student_capacity=2, waitlist_enabled=False)
    instance_id = instance.id
    setup.close()

    participants = 6
    barrier = threading.Barrier(participants)
    outcomes = []

    def sign_up(index):
        db = session_factory()
        try:
            barrier.wait()
            manager.create_signup(db, participant=student(f"u{index}"), instance_id=instance_id)
            outcomes.append("ok")
        except ConflictError:
            outcomes.append("conflict")
        finally:
            db.close()

    threads = [threading.Thread(target=sign_up, args=(i,)) for i in range(participants)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 2
    assert outcomes.count("conflict") == participants - 2
    check = session_factory()
    assert list(statuses(check, instance_id).values()) == [SignupStatus.CONFIRMED] * 2
    check.close()


# --- Cancel / delete ---

def test_cancel_promotes_first_waiter(db_session, manager, notifier):
    instance = create_instance(db_session, student_capacity=1)
    holder = add_signup(db_session, instance=instance, user_id="holder")
    now = utcnow()
    add_signup(db_session, instance=instance, user_id="first", status=SignupStatus.WAITLIST,
               signup_date=now - timedelta(minutes=3))
    add_signup(db_session, instance=instance, user_id="second", status=SignupStatus.WAITLIST,
               signup_date=now - timedelta(minutes=2))

    result = manager.cancel_signup(db_session, signup_id=holder.id, actor=student("holder"))

    assert result.signup.status == SignupStatus.CANCELLED
    assert result.signup.cancelled_at is not None
    assert [s.user_id for s in result.promoted] == ["first"]
    assert result.promoted[0].waitlist_notified_at is not None
    assert statuses(db_session, instance.id) == {
        "holder": SignupStatus.CANCELLED,
        "first": SignupStatus.WAITLIST_PENDING,
        "second": SignupStatus.WAITLIST,
    }
    assert "waitlist-promoted" in _published_events(notifier)
    assert "signup-updated" in _published_events(notifier)


def test_cancelling_a_waitlist_entry_promotes_nobody(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(db_session, instance=instance, user_id="holder")
    waiter = add_signup(db_session, instance=instance, user_id="waiter", status=SignupStatus.WAITLIST)
    add_signup(db_session, instance=instance, user_id="other", status=SignupStatus.WAITLIST)

    result = manager.cancel_signup(db_session, signup_id=waiter.id, actor=student("waiter"))

    assert result.promoted == []
    assert statuses(db_session, instance.id)["other"] == SignupStatus.WAITLIST


def test_cancel_someone_elses_signup_requires_admin(db_session, manager):
    instance = create_instance(db_session)
    signup = add_signup(db_session, instance=instance, user_id="owner")

    with pytest.raises(ForbiddenError):
        manager.cancel_signup(db_session, signup_id=signup.id, actor=student("intruder"))


def test_admin_cancel_notifies_the_participant(db_session, manager):
    instance = create_instance(db_session)
    signup = add_signup(db_session, instance=instance, user_id="owner")

    manager.cancel_signup(db_session, signup_id=signup.id, actor=admin())

    titles = [n.title for n in db_session.query(Notification).filter(Notification.user_id == "owner")]
    assert titles == ["Removed from Event"]


def test_cancel_twice_is_conflict(db_session, manager):
    instance = create_instance(db_session)
    signup = add_signup(db_session, instance=instance, user_id="owner")
    manager.cancel_signup(db_session, signup_id=signup.id, actor=student("owner"))

    with pytest.raises(ConflictError):
        manager.cancel_signup(db_session, signup_id=signup.id, actor=student("owner"))


def test_delete_removes_row_and_promotes(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    holder = add_signup(db_session, instance=instance, user_id="holder")
    add_signup(db_session, instance=instance, user_id="waiter", status=SignupStatus.WAITLIST)

    result = manager.delete_signup(db_session, signup_id=holder.id, actor=admin())

    assert result.signup_id == holder.id
    assert [s.user_id for s in result.promoted] == ["waiter"]
    assert statuses(db_session, instance.id) == {"waiter": SignupStatus.WAITLIST_PENDING}


def test_bulk_remove_is_best_effort(db_session, manager):
    instance = create_instance(db_session, student_capacity=2)
    first = add_signup(db_session, instance=instance, user_id="u1")
    second = add_signup(db_session, instance=instance, user_id="u2")

    results = manager.bulk_remove(
        db_session, signup_ids=[first.id, "sgn_missing", second.id], actor=admin()
    )

    assert [r.success for r in results] == [True, False, True]
    assert results[1].error_code == "NOT_FOUND"
    assert statuses(db_session, instance.id) == {}


def test_bulk_remove_requires_admin(db_session, manager):
    with pytest.raises(ForbiddenError):
        manager.bulk_remove(db_session, signup_ids=["sgn_1"], actor=student("u1"))


def test_bulk_remove_reports_unexpected_errors_and_continues(db_session, notifier):
    instance = create_instance(db_session, student_capacity=2)
    broken_id = add_signup(db_session, instance=instance, user_id="u1").id
    other_id = add_signup(db_session, instance=instance, user_id="u2").id

    class BrokenDeleteManager(SignupManager):
        def delete_signup(self, db, *, signup_id, actor):
            if signup_id == broken_id:
                raise RuntimeError("boom")
            return super().delete_signup(db, signup_id=signup_id, actor=actor)

    results = BrokenDeleteManager(notifier=notifier).bulk_remove(
        db_session, signup_ids=[broken_id, other_id], actor=admin()
    )

    assert [r.success for r in results] == [False, True]
    assert results[0].error_code == "INTERNAL"
    assert statuses(db_session, instance.id) == {"u1": SignupStatus.CONFIRMED}


# --- Offers ---

def test_cancel_then_accept_scenario(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    x = manager.create_signup(db_session, participant=student("x"), instance_id=instance.id)
    y = manager.create_signup(db_session, participant=student("y"), instance_id=instance.id)
    assert (x.status, y.status) == (SignupStatus.CONFIRMED, SignupStatus.WAITLIST)

    manager.cancel_signup(db_session, signup_id=x.signup.id, actor=student("x"))
    assert statuses(db_session, instance.id)["y"] == SignupStatus.WAITLIST_PENDING

    accepted = manager.accept_offer(db_session, participant=student("y"), instance_id=instance.id)

    assert accepted.signup.status == SignupStatus.CONFIRMED
    assert accepted.signup.waitlist_notified_at is None
    assert accepted.signup.signup_date > y.signup.signup_date
    assert statuses(db_session, instance.id) == {
        "x": SignupStatus.CANCELLED,
        "y": SignupStatus.CONFIRMED,
    }


def test_accept_without_offer_is_not_found(db_session, manager):
    instance = create_instance(db_session)
    add_signup(db_session, instance=instance, user_id="u1", status=SignupStatus.WAITLIST)

    with pytest.raises(NotFoundError):
        manager.accept_offer(db_session, participant=student("u1"), instance_id=instance.id)


def test_accept_after_window_is_expired(db_session, manager):
    instance = create_instance(db_session)
    add_signup(
        db_session,
        instance=instance,
        user_id="u1",
        status=SignupStatus.WAITLIST_PENDING,
        waitlist_notified_at=utcnow() - timedelta(hours=13),
    )

    with pytest.raises(OfferExpiredError):
        manager.accept_offer(db_session, participant=student("u1"), instance_id=instance.id)


def test_accept_after_capacity_reduced_is_conflict(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(db_session, instance=instance, user_id="holder")
    add_signup(
        db_session,
        instance=instance,
        user_id="offered",
        status=SignupStatus.WAITLIST_PENDING,
        waitlist_notified_at=utcnow(),
    )

    with pytest.raises(ConflictError):
        manager.accept_offer(db_session, participant=student("offered"), instance_id=instance.id)


def test_decline_deletes_and_offers_next(db_session, manager, notifier):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(
        db_session,
        instance=instance,
        user_id="offered",
        status=SignupStatus.WAITLIST_PENDING,
        waitlist_notified_at=utcnow(),
    )
    add_signup(db_session, instance=instance, user_id="next", status=SignupStatus.WAITLIST)

    result = manager.decline_offer(db_session, participant=student("offered"), instance_id=instance.id)

    assert result.next_promoted.user_id == "next"
    assert statuses(db_session, instance.id) == {"next": SignupStatus.WAITLIST_PENDING}
    assert "waitlist-declined" in _published_events(notifier)

    with pytest.raises(NotFoundError):
        manager.decline_offer(db_session, participant=student("offered"), instance_id=instance.id)


def test_expire_offer_skips_fresh_offers(db_session, manager):
    instance = create_instance(db_session)
    fresh = add_signup(
        db_session,
        instance=instance,
        user_id="u1",
        status=SignupStatus.WAITLIST_PENDING,
        waitlist_notified_at=utcnow() - timedelta(hours=1),
    )

    assert manager.expire_offer(db_session, signup_id=fresh.id) is None
    assert statuses(db_session, instance.id) == {"u1": SignupStatus.WAITLIST_PENDING}


def test_notifier_failure_does_not_undo_the_signup(db_session, manager, notifier):
    notifier.publish.side_effect = RuntimeError("broker down")
    notifier.send_email.side_effect = RuntimeError("broker down")
    instance = create_instance(db_session)

    result = manager.create_signup(db_session, participant=student("u1"), instance_id=instance.id)

    assert result.status == SignupStatus.CONFIRMED
    assert statuses(db_session, instance.id) == {"u1": SignupStatus.CONFIRMED}


# --- Read-only queries ---

def test_waitlist_position_counts_pending_and_waiting(db_session, manager):
    instance = create_instance(db_session, student_capacity=1)
    now = utcnow()
    add_signup(db_session, instance=instance, user_id="pending", status=SignupStatus.WAITLIST_PENDING,
               signup_date=now - timedelta(minutes=5), waitlist_notified_at=now)
    add_signup(db_session, instance=instance, user_id="a", status=SignupStatus.WAITLIST,
               signup_date=now - timedelta(minutes=4))
    add_signup(db_session, instance=instance, user_id="b", status=SignupStatus.WAITLIST,
               signup_date=now - timedelta(minutes=3))
    add_signup(db_session, instance=instance, user_id="parent", role="PARENT",
               status=SignupStatus.WAITLIST, signup_date=now - timedelta(minutes=6))

    position = manager.get_waitlist_position(db_session, participant=student("b"), instance_id=instance.id)

    assert position.position == 3
    assert position.total == 3

    with pytest.raises(NotFoundError):
        manager.get_waitlist_position(db_session, participant=student("nobody"), instance_id=instance.id)


def test_check_conflicts_reports_overlapping_reservations(db_session, manager):
    start = utcnow() + timedelta(days=3)
    target = create_instance(db_session, start_date=start, end_date=start + timedelta(hours=2))
    overlapping = create_instance(
        db_session, start_date=start + timedelta(hours=1), end_date=start + timedelta(hours=3)
    )
    adjacent = create_instance(
        db_session, start_date=start + timedelta(hours=2), end_date=start + timedelta(hours=4)
    )
    waitlisted = create_instance(db_session, start_date=start, end_date=start + timedelta(hours=1))
    add_signup(db_session, instance=overlapping, user_id="u1")
    add_signup(db_session, instance=adjacent, user_id="u1")
    add_signup(db_session, instance=waitlisted, user_id="u1", status=SignupStatus.WAITLIST)

    conflicts = manager.check_conflicts(db_session, participant=student("u1"), instance_id=target.id)

    assert [c.instance_id for c in conflicts] == [overlapping.id]
    assert ensure_utc(conflicts[0].start_date) == ensure_utc(overlapping.start_date)
