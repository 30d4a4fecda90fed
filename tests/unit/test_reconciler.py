"""Unit tests for the per-session notification reconciler"""

import random
import pytest
from dataclasses import replace
from datetime import datetime, timezone

from broker_gateway.domain.events import NotificationDeleted, NotificationInserted, NotificationUpdated
from broker_gateway.domain.exceptions import NotFoundError
from broker_gateway.domain.models import Notification, NotificationType
from broker_gateway.infrastructure.bus.notification_bus import NotificationBus
from broker_gateway.services.reconciler import ClientReconciler


def make_notification(notification_id, recipient="broker-1", read=False) -> Notification:
    return Notification(
        id=notification_id,
        recipient_user_id=recipient,
        type=NotificationType.CREDIT_CHECK_COMPLETED,
        title="Credit check completed",
        message=f"Notification {notification_id}",
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        read=read,
    )


class FakeNotificationService:
    """In-memory stand-in for NotificationService; records commands, never pushes"""

    def __init__(self, stored=None):
        self.stored = list(stored or [])
        self.commands = []
        self.fail_with = None
        self.during = None

    def list_notifications(self, user_id, limit=None):
        rows = [n for n in self.stored if n.recipient_user_id == user_id]
        return sorted(rows, key=lambda n: n.id, reverse=True)[:limit]

    def _run(self, *command):
        self.commands.append(command)
        if self.during is not None:
            self.during()
        if self.fail_with is not None:
            raise self.fail_with

    def mark_as_read(self, notification_id, user_id=None):
        self._run("mark_as_read", notification_id, user_id)

    def mark_all_as_read(self, user_id):
        self._run("mark_all_as_read", user_id)
        return 0

    def delete_notification(self, notification_id, user_id=None):
        self._run("delete_notification", notification_id, user_id)

    def delete_all_read(self, user_id):
        self._run("delete_all_read", user_id)
        return 0


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def assert_consistent(reconciler):
    assert reconciler.unread_count == sum(1 for n in reconciler.notifications if not n.read)
    ids = [n.id for n in reconciler.notifications]
    assert len(ids) == len(set(ids))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alerts():
    return []


@pytest.fixture
def service():
    return FakeNotificationService()


@pytest.fixture
def reconciler(service, clock, alerts):
    reconciler = ClientReconciler(
        NotificationBus(), service, on_alert=alerts.append, window=10, replay_window_seconds=1.0, clock=clock
    )
    reconciler.connect("broker-1")
    return reconciler


def test_connect_catches_up_from_history(clock):
    service = FakeNotificationService([make_notification(1), make_notification(2, read=True), make_notification(3)])
    reconciler = ClientReconciler(NotificationBus(), service, window=10, clock=clock)

    reconciler.connect("broker-1")

    assert [n.id for n in reconciler.notifications] == [3, 2, 1]
    assert reconciler.unread_count == 2


def test_duplicate_insert_is_ignored(reconciler):
    reconciler.handle_insert(make_notification(5))
    reconciler.handle_insert(make_notification(5))

    assert [n.id for n in reconciler.notifications] == [5]
    assert reconciler.unread_count == 1


def test_update_flips_read_state(reconciler):
    reconciler.handle_insert(make_notification(5))
    reconciler.handle_update(make_notification(5, read=True))

    assert reconciler.unread_count == 0
    reconciler.handle_update(make_notification(5, read=False))
    assert reconciler.unread_count == 1


def test_update_for_unknown_notification_is_ignored(reconciler):
    reconciler.handle_update(make_notification(42, read=True))

    assert reconciler.notifications == []
    assert reconciler.unread_count == 0


def test_pushed_read_update_after_optimistic_read_does_not_double_count(reconciler, service):
    """A pushed update that matches the optimistic change must not double-count"""
    reconciler.handle_insert(make_notification(5))

    reconciler.mark_read(5)
    assert reconciler.unread_count == 0

    reconciler.handle_update(make_notification(5, read=True))
    assert reconciler.unread_count == 0
    assert service.commands == [("mark_as_read", 5, "broker-1")]


def test_delete_of_unread_decrements(reconciler):
    reconciler.handle_insert(make_notification(5))
    reconciler.handle_insert(make_notification(6, read=True))

    reconciler.handle_delete(5)
    reconciler.handle_delete(6)
    reconciler.handle_delete(7)

    assert reconciler.notifications == []
    assert reconciler.unread_count == 0


def test_counter_matches_window_under_random_event_sequences(reconciler):
    rng = random.Random(2024)
    for _ in range(500):
        notification_id = rng.randrange(1, 15)
        roll = rng.random()
        if roll < 0.4:
            change = NotificationInserted(make_notification(notification_id, read=rng.random() < 0.3))
        elif roll < 0.8:
            change = NotificationUpdated(make_notification(notification_id, read=rng.random() < 0.5))
        else:
            change = NotificationDeleted(notification_id, "broker-1")
        reconciler.apply(change)
        assert_consistent(reconciler)
        assert len(reconciler.notifications) <= reconciler.window


def test_window_trim_drops_oldest_and_adjusts_count(reconciler):
    for notification_id in range(1, 13):
        reconciler.handle_insert(make_notification(notification_id))

    assert len(reconciler.notifications) == 10
    assert reconciler.notifications[0].id == 12
    assert reconciler.notifications[-1].id == 3
    assert reconciler.unread_count == 10


def test_alerts_suppressed_during_replay_window(reconciler, clock, alerts):
    clock.now += 0.5
    reconciler.handle_insert(make_notification(1))
    assert alerts == []

    clock.now += 1.0
    reconciler.handle_insert(make_notification(2))
    assert [n.id for n in alerts] == [2]


def test_bus_events_reach_a_connected_reconciler(service, clock):
    bus = NotificationBus()
    reconciler = ClientReconciler(bus, service, window=10, clock=clock)
    reconciler.connect("broker-1")

    bus.publish("broker-1", NotificationInserted(make_notification(1)))
    bus.publish("broker-1", NotificationUpdated(make_notification(1, read=True)))

    assert [n.read for n in reconciler.notifications] == [True]
    assert reconciler.unread_count == 0


def test_switch_identity_stops_old_channel(service, clock):
    bus = NotificationBus()
    reconciler = ClientReconciler(bus, service, window=10, clock=clock)
    reconciler.connect("broker-1")

    reconciler.switch_identity("client-1")
    bus.publish("broker-1", NotificationInserted(make_notification(1)))
    bus.publish("client-1", NotificationInserted(make_notification(2, recipient="client-1")))

    assert reconciler.user_id == "client-1"
    assert [n.id for n in reconciler.notifications] == [2]
    assert bus.subscriber_count == 1


def test_disconnect_twice_is_harmless(reconciler):
    reconciler.disconnect()
    reconciler.disconnect()

    assert reconciler.user_id is None
    assert reconciler.bus.subscriber_count == 0


def test_mark_all_read_zeroes_counter(reconciler, service):
    for notification_id in (1, 2, 3):
        reconciler.handle_insert(make_notification(notification_id))

    reconciler.mark_all_read()

    assert reconciler.unread_count == 0
    assert all(n.read for n in reconciler.notifications)
    assert service.commands == [("mark_all_as_read", "broker-1")]


def test_delete_all_read_keeps_unread(reconciler):
    reconciler.handle_insert(make_notification(1, read=True))
    reconciler.handle_insert(make_notification(2))

    reconciler.delete_all_read()

    assert [n.id for n in reconciler.notifications] == [2]
    assert reconciler.unread_count == 1


def test_failed_command_reverts_optimistic_change(reconciler, service):
    reconciler.handle_insert(make_notification(1))
    reconciler.handle_insert(make_notification(2))
    before = [replace(n) for n in reconciler.notifications]
    service.fail_with = NotFoundError("Notification 1 not found")

    with pytest.raises(NotFoundError):
        reconciler.mark_read(1)
    with pytest.raises(NotFoundError):
        reconciler.delete(2)
    with pytest.raises(NotFoundError):
        reconciler.mark_all_read()

    assert reconciler.notifications == before
    assert reconciler.unread_count == 2


def test_read_then_stale_unread_update_keeps_counter_consistent(reconciler):
    reconciler.handle_insert(make_notification(5))
    reconciler.handle_insert(make_notification(6))

    reconciler.mark_read(5)
    # Update carrying the pre-read state arrives after the local change
    reconciler.handle_update(make_notification(5, read=False))

    unread_in_window = sum(1 for n in reconciler.notifications if not n.read)
    assert reconciler.unread_count == unread_in_window
    assert 0 <= reconciler.unread_count <= unread_in_window
    assert_consistent(reconciler)


def test_insert_during_failed_command_survives_revert(reconciler, service):
    reconciler.handle_insert(make_notification(5))
    service.during = lambda: reconciler.bus.publish("broker-1", NotificationInserted(make_notification(6)))
    service.fail_with = NotFoundError("Notification 5 not found")

    with pytest.raises(NotFoundError):
        reconciler.mark_read(5)

    assert [n.id for n in reconciler.notifications] == [6, 5]
    assert reconciler.unread_count == 2
    assert_consistent(reconciler)


def test_delete_during_failed_command_is_not_resurrected(reconciler, service):
    reconciler.handle_insert(make_notification(5))
    service.during = lambda: reconciler.bus.publish("broker-1", NotificationDeleted(5, "broker-1"))
    service.fail_with = NotFoundError("Notification 5 not found")

    with pytest.raises(NotFoundError):
        reconciler.mark_read(5)
    assert reconciler.notifications == []
    assert reconciler.unread_count == 0

    reconciler.handle_insert(make_notification(7))
    service.during = lambda: reconciler.bus.publish("broker-1", NotificationDeleted(7, "broker-1"))
    with pytest.raises(NotFoundError):
        reconciler.delete(7)
    assert reconciler.notifications == []
    assert reconciler.unread_count == 0


def test_read_update_during_failed_command_is_kept(reconciler, service):
    """Another session marked the row read while our command failed"""
    reconciler.handle_insert(make_notification(5))
    service.during = lambda: reconciler.bus.publish("broker-1", NotificationUpdated(make_notification(5, read=True)))
    service.fail_with = RuntimeError("store unavailable")

    with pytest.raises(RuntimeError):
        reconciler.mark_read(5)

    assert reconciler.notifications[0].read
    assert reconciler.unread_count == 0


def test_failed_delete_all_read_restores_in_order(reconciler, service):
    for notification_id, read in ((1, True), (2, False), (3, True)):
        reconciler.handle_insert(make_notification(notification_id, read=read))
    service.during = lambda: reconciler.bus.publish("broker-1", NotificationInserted(make_notification(4)))
    service.fail_with = RuntimeError("store unavailable")

    with pytest.raises(RuntimeError):
        reconciler.delete_all_read()

    assert [n.id for n in reconciler.notifications] == [4, 3, 2, 1]
    assert reconciler.unread_count == 2
    assert_consistent(reconciler)
