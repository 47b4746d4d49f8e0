"""Alert store lifecycle tests, run against both backends."""

import threading

import pytest

from smartsos.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from smartsos.services.records import AlertStatus, PeerNotification
from tests.conftest import CHENNAI


@pytest.fixture
def store(services):
    return services.alerts


def _peer(clock, name, km=1.0):
    return PeerNotification(peer_user_id=name, distance_km=km, notified_at=clock.now())


def test_create_alert_starts_pending(store, clock):
    alert = store.create_alert("a", *CHENNAI, "help", 12.5)

    assert alert.status == AlertStatus.PENDING
    assert alert.created_at == clock.now()
    assert alert.distance_from_border == 12.5
    assert alert.peers_notified == ()
    assert store.get_alert(alert.id) == alert
    assert store.get_active_alert("a") == alert


def test_create_alert_conflicts_while_active(store):
    first = store.create_alert("a", *CHENNAI)

    with pytest.raises(ConflictError) as exc:
        store.create_alert("a", *CHENNAI)

    assert exc.value.alert_id == first.id
    assert store.get_active_alert("a").id == first.id


def test_create_alert_validates_input(store):
    with pytest.raises(InvalidArgumentError):
        store.create_alert("", *CHENNAI)
    with pytest.raises(InvalidArgumentError):
        store.create_alert("a", 95, 0)


def test_new_alert_allowed_after_cancel(store, clock):
    first = store.create_alert("a", *CHENNAI)
    store.cancel(first.id)
    clock.advance(1)

    second = store.create_alert("a", *CHENNAI)

    assert second.id != first.id
    assert store.get_active_alert("a").id == second.id
    assert store.get_alert(first.id).status == AlertStatus.CANCELED


def test_set_peers_notified_moves_pending_to_peers_alerted(store, clock):
    alert = store.create_alert("a", *CHENNAI)

    updated = store.set_peers_notified(alert.id, [_peer(clock, "b", 5.0)])

    assert updated.status == AlertStatus.PEERS_ALERTED
    assert [p.peer_user_id for p in updated.peers_notified] == ["b"]
    assert store.get_alert(alert.id).peers_notified == updated.peers_notified


def test_set_peers_notified_with_no_peers_still_transitions(store):
    alert = store.create_alert("a", *CHENNAI)
    assert store.set_peers_notified(alert.id, []).status == AlertStatus.PEERS_ALERTED


def test_set_peers_notified_is_idempotent_on_status(store, clock):
    alert = store.create_alert("a", *CHENNAI)
    store.set_peers_notified(alert.id, [_peer(clock, "b")])

    again = store.set_peers_notified(alert.id, [_peer(clock, "c")])

    assert again.status == AlertStatus.PEERS_ALERTED
    assert [p.peer_user_id for p in again.peers_notified] == ["b", "c"]


def test_set_peers_notified_leaves_closed_alert_untouched(store, clock):
    alert = store.create_alert("a", *CHENNAI)
    store.cancel(alert.id)

    updated = store.set_peers_notified(alert.id, [_peer(clock, "b")])

    assert updated.status == AlertStatus.CANCELED
    assert updated.peers_notified == ()
    assert store.get_alert(alert.id).peers_notified == ()


def test_escalate_from_peers_alerted(store, clock):
    alert = store.create_alert("a", *CHENNAI)
    store.set_peers_notified(alert.id, [])
    clock.advance(90)

    result = store.escalate(alert.id)

    assert result.applied
    assert result.previous_status == AlertStatus.PEERS_ALERTED
    assert result.alert.status == AlertStatus.ESCALATED
    assert result.alert.escalated_at == clock.now()
    # Escalated is still active
    assert store.get_active_alert("a").id == alert.id


def test_escalate_twice_is_noop(store):
    alert = store.create_alert("a", *CHENNAI)
    store.escalate(alert.id)

    second = store.escalate(alert.id)

    assert second.noop
    assert second.previous_status == AlertStatus.ESCALATED


def test_escalate_after_cancel_is_noop(store):
    alert = store.create_alert("a", *CHENNAI)
    store.cancel(alert.id)

    result = store.escalate(alert.id)

    assert result.noop
    assert result.previous_status == AlertStatus.CANCELED
    assert store.get_alert(alert.id).status == AlertStatus.CANCELED
    assert store.get_alert(alert.id).escalated_at is None


def test_cancel_sets_resolved_at_and_frees_user(store, clock):
    alert = store.create_alert("a", *CHENNAI)
    clock.advance(10)

    result = store.cancel(alert.id)

    assert result.applied
    assert result.previous_status == AlertStatus.PENDING
    assert result.alert.status == AlertStatus.CANCELED
    assert result.alert.resolved_at == clock.now()
    assert store.get_active_alert("a") is None


def test_cancel_after_escalation_is_allowed(store):
    alert = store.create_alert("a", *CHENNAI)
    store.escalate(alert.id)

    result = store.cancel(alert.id)

    assert result.applied
    assert result.previous_status == AlertStatus.ESCALATED
    assert result.alert.escalated_at is not None


@pytest.mark.parametrize("close", ["cancel", "resolve"])
def test_terminal_states_reject_further_transitions(store, close):
    alert = store.create_alert("a", *CHENNAI)
    getattr(store, close)(alert.id)
    terminal = store.get_alert(alert.id)

    for op in (store.cancel, store.resolve, store.escalate):
        result = op(alert.id)
        assert result.noop
        assert result.alert.status == terminal.status
        assert result.alert.resolved_at == terminal.resolved_at


def test_resolve_from_escalated(store):
    alert = store.create_alert("a", *CHENNAI)
    store.escalate(alert.id)

    result = store.resolve(alert.id)

    assert result.applied
    assert result.alert.status == AlertStatus.RESOLVED
    assert store.get_active_alert("a") is None


def test_unknown_alert(store):
    assert store.get_alert("missing") is None
    assert store.get_active_alert("nobody") is None
    for op in (store.cancel, store.resolve, store.escalate):
        with pytest.raises(NotFoundError):
            op("missing")
    with pytest.raises(NotFoundError):
        store.set_peers_notified("missing", [])


def test_list_alerts_newest_first(store, clock):
    ids = []
    for _ in range(3):
        alert = store.create_alert("a", *CHENNAI)
        store.cancel(alert.id)
        ids.append(alert.id)
        clock.advance(60)
    store.create_alert("other", *CHENNAI)

    history = store.list_alerts("a")

    assert [a.id for a in history] == list(reversed(ids))
    assert len(store.list_alerts("a", limit=2)) == 2


def test_list_escalatable(store):
    pending = store.create_alert("a", *CHENNAI)
    escalated = store.create_alert("b", *CHENNAI)
    store.escalate(escalated.id)
    canceled = store.create_alert("c", *CHENNAI)
    store.cancel(canceled.id)

    assert {a.id for a in store.list_escalatable()} == {pending.id}


def test_concurrent_create_for_same_user_only_one_wins(store):
    """N racing creates for one user: exactly one succeeds, the rest conflict."""
    n = 12
    barrier = threading.Barrier(n)
    created, conflicts, errors = [], [], []

    def attempt():
        barrier.wait()
        try:
            created.append(store.create_alert("racer", *CHENNAI))
        except ConflictError:
            conflicts.append(1)
        except Exception as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(created) == 1
    assert len(conflicts) == n - 1
    assert store.get_active_alert("racer").id == created[0].id


def test_concurrent_cancel_and_escalate_one_wins(store):
    for i in range(10):
        alert = store.create_alert(f"user{i}", *CHENNAI)
        barrier = threading.Barrier(2)
        results = {}

        def run(name, op):
            barrier.wait()
            results[name] = op(alert.id)

        threads = [
            threading.Thread(target=run, args=("cancel", store.cancel)),
            threading.Thread(target=run, args=("escalate", store.escalate)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        final = store.get_alert(alert.id)
        assert final.status == AlertStatus.CANCELED
        if results["escalate"].applied:
            # Escalation got there first; the cancel saw it
            assert results["cancel"].previous_status == AlertStatus.ESCALATED
        else:
            assert results["escalate"].previous_status == AlertStatus.CANCELED
            assert final.escalated_at is None


def test_snapshots_are_not_live(store, clock):
    alert = store.create_alert("a", *CHENNAI)
    store.cancel(alert.id)
    assert alert.status == AlertStatus.PENDING
    assert store.get_alert(alert.id).created_at == alert.created_at
