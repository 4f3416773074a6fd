import pytest

from courtbook.errors import AlreadyRegistered, NotFound, NotRegistered, TransactionConflict
from courtbook.models import CONFIRMED, REMOVED, WAITLISTED
from courtbook.service import BookingService, run_with_retry

from tests.conftest import confirmed_count


def fill(service, key, names):
    for n in names:
        assert service.book(n, key).status == CONFIRMED


def test_book_empty_slot(service, store, quotas, make_slot):
    key = make_slot()
    res = service.book("X", key)
    assert res.status == CONFIRMED
    assert res.reason is None
    assert store.get(key).confirmed == ["X"]
    assert quotas.get_and_maybe_reset("X").confirmed_hours == 1


def test_book_full_slot_goes_to_waitlist(service, store, quotas, make_slot):
    key = make_slot()
    fill(service, key, ["A", "B", "C", "D"])
    res = service.book("Y", key)
    assert res.status == WAITLISTED
    assert "full" in res.reason
    view = store.get(key)
    assert view.confirmed == ["A", "B", "C", "D"]
    assert view.waitlist == ["Y"]
    assert quotas.get_and_maybe_reset("Y").confirmed_hours == 0


def test_weekly_limit_beats_vacancy(service, store, make_slot):
    first = make_slot(day="Thursday")
    second = make_slot(day="Friday")
    vacant = make_slot(day="Wednesday")
    fill(service, first, ["X"])
    fill(service, second, ["X"])

    res = service.book("X", vacant)
    assert res.status == WAITLISTED
    assert "limit" in res.reason
    view = store.get(vacant)
    assert view.confirmed == []
    assert view.waitlist == ["X"]


def test_cancel_promotes_waitlist_head(service, store, quotas, notified, make_slot):
    key = make_slot()
    fill(service, key, ["A", "B", "C", "D"])
    service.book("E", key)
    service.book("F", key)

    res = service.cancel("A", key)
    assert res.status == REMOVED
    assert res.promoted == "E"
    view = store.get(key)
    assert view.confirmed == ["B", "C", "D", "E"]
    assert view.waitlist == ["F"]
    assert quotas.get_and_maybe_reset("A").confirmed_hours == 0
    assert quotas.get_and_maybe_reset("E").confirmed_hours == 1
    assert notified == [("E", key)]


def test_cancel_promotion_ignores_weekly_limit(service, quotas, make_slot):
    key = make_slot()
    other1 = make_slot(day="Thursday")
    other2 = make_slot(day="Friday")
    fill(service, other1, ["E"])
    fill(service, other2, ["E"])
    fill(service, key, ["A", "B", "C", "D"])
    assert service.book("E", key).status == WAITLISTED

    assert service.cancel("A", key).promoted == "E"
    assert quotas.get_and_maybe_reset("E").confirmed_hours == 3


def test_cancel_without_waitlist(service, store, notified, make_slot):
    key = make_slot()
    fill(service, key, ["A"])
    res = service.cancel("A", key)
    assert res.promoted is None
    assert store.get(key).confirmed == []
    assert notified == []


def test_already_registered(service, make_slot):
    key = make_slot()
    service.book("A", key)
    with pytest.raises(AlreadyRegistered):
        service.book("A", key)
    with pytest.raises(AlreadyRegistered):
        service.join_waitlist("A", key)
    service.join_waitlist("B", key)
    with pytest.raises(AlreadyRegistered):
        service.book("B", key)


def test_not_registered(service, make_slot):
    key = make_slot()
    service.join_waitlist("W", key)
    with pytest.raises(NotRegistered):
        service.cancel("W", key)
    service.book("A", key)
    with pytest.raises(NotRegistered):
        service.leave_waitlist("A", key)
    with pytest.raises(NotRegistered):
        service.cancel("nobody", key)


def test_unknown_slot(service):
    with pytest.raises(NotFound):
        service.book("A", "Sunday:noon")


def test_waitlist_does_not_use_quota(service, store, quotas, make_slot):
    key = make_slot()
    res = service.join_waitlist("W", key)
    assert res.status == WAITLISTED
    assert store.get(key).waitlist == ["W"]
    assert store.get(key).confirmed == []
    assert quotas.get_and_maybe_reset("W").confirmed_hours == 0

    assert service.leave_waitlist("W", key).status == REMOVED
    assert store.get(key).waitlist == []


def test_book_then_cancel_restores_state(service, store, quotas, make_slot):
    key = make_slot()
    fill(service, key, ["A", "B"])
    before = store.get(key)
    hours = quotas.get_and_maybe_reset("Z").confirmed_hours

    service.book("Z", key)
    service.cancel("Z", key)

    after = store.get(key)
    assert (after.confirmed, after.waitlist) == (before.confirmed, before.waitlist)
    assert quotas.get_and_maybe_reset("Z").confirmed_hours == hours


def test_notification_failure_keeps_promotion(store, make_slot):
    def broken(requester_id, key):
        raise ConnectionError("rabbitmq down")

    service = BookingService(store, max_weekly_hours=2, notify=broken)
    key = make_slot(capacity=1)
    service.book("A", key)
    service.book("B", key)
    assert service.cancel("A", key).promoted == "B"
    assert store.get(key).confirmed == ["B"]


def test_quota_matches_confirmed_slots(service, store, quotas, make_slot):
    keys = [make_slot(day=d, capacity=2) for d in ("Wednesday", "Thursday", "Friday")]
    for name in ("A", "B", "C"):
        for key in keys:
            service.book(name, key)
    service.cancel("A", keys[0])
    service.cancel("B", keys[1])
    service.leave_waitlist("A", keys[2])

    for name in ("A", "B", "C"):
        assert quotas.get_and_maybe_reset(name).confirmed_hours == confirmed_count(store, name)
    for view in store.list():
        assert len(view.confirmed) <= view.capacity
        assert not set(view.confirmed) & set(view.waitlist)


def test_registrations(service, make_slot):
    first = make_slot(day="Thursday")
    second = make_slot(day="Friday", capacity=1)
    service.book("A", first)
    service.book("B", second)
    service.book("A", second)
    regs = [(r.slot_key, r.status) for r in service.registrations("A")]
    assert sorted(regs) == sorted([(first, CONFIRMED), (second, WAITLISTED)])


def test_run_with_retry_replays_until_success():
    calls = []

    def op():
        calls.append(1)
        if len(calls) < 3:
            raise TransactionConflict("busy")
        return "ok"

    assert run_with_retry(op, attempts=3, backoff=0) == "ok"
    assert len(calls) == 3


def test_run_with_retry_gives_up():
    def op():
        raise TransactionConflict("busy")

    with pytest.raises(TransactionConflict):
        run_with_retry(op, attempts=2, backoff=0)
