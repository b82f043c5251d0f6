from herdalert import notifications as notifications_mod
from herdalert.notifications import NotificationStore
from herdalert.presentation import LONG_DURATION_MS, SHORT_DURATION_MS, toast_background
from tests.conftest import StaticSession, mrl_alert


def _alert(n, **overrides):
    return mrl_alert(type="WITHDRAWAL_BREACH", severity="warning",
                     title=f"alert #{n}", message=f"message #{n}", **overrides)


def test_critical_alert_becomes_unread_notification_and_long_toast(live_store, channels, toasts):
    channels.last.simulate_alert(mrl_alert())

    [n] = live_store.notifications
    assert n.alert.type == "MRL_VIOLATION"
    assert n.alert.title == "X"
    assert n.alert.message == "Y"
    assert n.read is False
    assert n.id.startswith("MRL_VIOLATION_")
    assert live_store.unread_count == 1

    [toast] = toasts
    assert toast.duration_ms == LONG_DURATION_MS == 10000
    assert toast.background == toast_background("critical")
    assert toast.icon == "🚨"
    assert toast.position == "top-right"
    assert (toast.title, toast.message) == ("X", "Y")


def test_start_without_token_never_connects(manager, channels, timers):
    store = NotificationStore(manager, StaticSession(None), timer_factory=timers)

    assert store.start() is False
    assert timers.timers == []
    assert channels.instances == []
    assert store.is_connected is False
    assert store.phase == "idle"


def test_start_reads_session_token_after_debounce(store, channels, timers):
    assert store.start() is True
    assert channels.instances == []
    assert timers.last.interval == store.connect_delay
    assert store.phase == "connecting"

    timers.last.fire()

    assert channels.last.token == "tok-123"


def test_explicit_token_wins_over_session(store, channels, timers):
    store.start("tok-explicit")
    timers.last.fire()
    assert channels.last.token == "tok-explicit"


def test_stop_before_debounce_cancels_connect(store, channels, timers):
    store.start()
    timer = timers.last
    store.stop()
    timer.fire()

    assert timer.cancelled
    assert channels.instances == []
    assert store.phase == "idle"


def test_repeated_start_collapses_to_one_connection(store, channels, timers):
    store.start()
    store.start()
    for t in timers.timers:
        t.fire()

    assert timers.timers[0].cancelled
    assert len(channels.instances) == 1


def test_sixty_alerts_keep_newest_fifty(live_store, channels):
    for i in range(1, 61):
        channels.last.simulate_alert(_alert(i))

    assert len(live_store.notifications) == 50
    assert [n.alert.title for n in live_store.notifications] == [f"alert #{i}" for i in range(60, 10, -1)]
    # eviction never lowers the badge
    assert live_store.unread_count == 60


def test_cap_never_exceeded(manager, timers, channels):
    store = NotificationStore(manager, StaticSession("tok"), max_notifications=5,
                              on_toast=lambda t: None, timer_factory=timers)
    store.start()
    timers.last.fire()
    channels.last.simulate_connected()

    for i in range(12):
        channels.last.simulate_alert(_alert(i))
        assert len(store.notifications) <= 5

    assert [n.alert.title for n in store.notifications] == [f"alert #{i}" for i in range(11, 6, -1)]


def test_ids_are_unique_within_one_millisecond(live_store, channels, monkeypatch):
    monkeypatch.setattr(notifications_mod.time, "time", lambda: 1714637700.0)
    channels.last.simulate_alert(mrl_alert())
    channels.last.simulate_alert(mrl_alert())

    ids = [n.id for n in live_store.notifications]
    assert ids == ["MRL_VIOLATION_1714637700001", "MRL_VIOLATION_1714637700000"]


def test_every_read_of_a_retained_notification_counts(live_store, channels):
    channels.last.simulate_alert(mrl_alert())
    first = live_store.notifications[0]
    assert live_store.mark_as_read(first.id) is True
    channels.last.simulate_alert(_alert(2))

    assert live_store.mark_as_read(first.id) is True

    assert first.read is True
    assert live_store.unread_count == 0
    ack = ("alert:acknowledge", {
        "alertType": "MRL_VIOLATION",
        "alertId": first.id,
        "timestamp": channels.last.pushed[0][1]["timestamp"],
    })
    assert len(channels.last.pushed) == 2
    assert channels.last.pushed[0] == ack
    assert channels.last.pushed[1][1]["alertId"] == first.id


def test_restart_while_live_keeps_the_session_live(live_store, timers, channels):
    events = []
    live_store.subscribe(lambda event, payload: events.append((event, payload)))

    assert live_store.start() is True
    assert live_store.phase == "connecting"
    timers.last.fire()

    assert len(channels.instances) == 1
    assert live_store.phase == "live"
    assert live_store.is_connected is True
    assert events[-1] == ("state", live_store.snapshot())
    assert events[-1][1]["phase"] == "live"


def test_mark_as_read_unknown_id_changes_nothing(live_store, channels):
    channels.last.simulate_alert(mrl_alert())
    before = [(n.id, n.read) for n in live_store.notifications]

    assert live_store.mark_as_read("BLOCKED_SALE_123") is False

    assert [(n.id, n.read) for n in live_store.notifications] == before
    assert live_store.unread_count == 1
    assert channels.last.pushed == []


def test_mark_as_read_evicted_notification_is_not_acknowledged(manager, timers, channels):
    store = NotificationStore(manager, StaticSession("tok"), max_notifications=2,
                              on_toast=lambda t: None, timer_factory=timers)
    store.start()
    timers.last.fire()
    channels.last.simulate_connected()
    channels.last.simulate_alert(_alert(1))
    evicted_id = store.notifications[0].id
    channels.last.simulate_alert(_alert(2))
    channels.last.simulate_alert(_alert(3))

    assert store.mark_as_read(evicted_id) is False
    assert store.unread_count == 3
    assert channels.last.pushed == []


def test_mark_as_read_offline_is_local_only(live_store, channels):
    channels.last.simulate_alert(mrl_alert())
    channels.last.simulate_drop()
    n = live_store.notifications[0]

    assert live_store.mark_as_read(n.id) is True

    assert n.read is True
    assert live_store.unread_count == 0
    assert channels.last.pushed == []


def test_unread_count_floors_at_zero(live_store, channels):
    channels.last.simulate_alert(mrl_alert())
    live_store.unread_count = 0

    live_store.mark_as_read(live_store.notifications[0].id)

    assert live_store.unread_count == 0


def test_mark_all_as_read_is_local(live_store, channels):
    for i in range(3):
        channels.last.simulate_alert(_alert(i))

    live_store.mark_all_as_read()

    assert all(n.read for n in live_store.notifications)
    assert live_store.unread_count == 0
    assert channels.last.pushed == []


def test_clear_all_empties_history(live_store, channels):
    for i in range(3):
        channels.last.simulate_alert(_alert(i))

    live_store.clear_all()

    assert live_store.notifications == []
    assert live_store.unread_count == 0
    assert channels.last.pushed == []


def test_phases_follow_connection(store, channels, timers):
    store.start()
    timers.last.fire()
    ch = channels.last
    assert (store.phase, store.is_connected) == ("connecting", False)

    ch.simulate_connected()
    assert (store.phase, store.is_connected) == ("live", True)

    ch.simulate_drop("transport close")
    assert (store.phase, store.is_connected) == ("reconnecting", False)

    ch.simulate_connected()
    assert (store.phase, store.is_connected) == ("live", True)

    ch.simulate_drop("transport error")
    ch.simulate_failed()
    assert (store.phase, store.is_connected) == ("failed", False)


def test_stop_tears_down_session(live_store, channels, manager):
    ch = channels.last

    live_store.stop()
    ch.simulate_alert(mrl_alert())

    assert ch.closed
    assert live_store.phase == "idle"
    assert live_store.is_connected is False
    assert live_store.notifications == []
    assert manager._listeners == []


def test_malformed_alert_passes_through_with_default_toast(live_store, channels, toasts):
    channels.last.simulate_alert({"type": "OUTBREAK"})

    n = live_store.notifications[0]
    assert n.alert.title is None
    assert n.alert.severity is None
    assert toasts[0].duration_ms == SHORT_DURATION_MS
    assert toasts[0].icon == "ℹ️"


def test_extra_alert_fields_are_kept(live_store, channels):
    channels.last.simulate_alert(mrl_alert(action={"type": "navigate", "url": "/farmer/mrl-compliance"}))

    data = live_store.notifications[0].to_dict()
    assert data["alert"]["action"]["url"] == "/farmer/mrl-compliance"
    assert data["alert"]["data"]["drugName"] == "Oxytetracycline"
    assert data["read"] is False


def test_listeners_see_toasts_and_state(live_store, channels):
    events = []
    unsubscribe = live_store.subscribe(lambda event, payload: events.append((event, payload)))

    channels.last.simulate_alert(mrl_alert())
    unsubscribe()
    channels.last.simulate_alert(mrl_alert())

    assert [e for e, _ in events] == ["toast", "state"]
    assert events[0][1]["duration_ms"] == 10000
    assert events[1][1]["unread_count"] == 1


def test_broken_toast_sink_does_not_lose_alert(manager, timers, channels):
    def boom(toast):
        raise RuntimeError("renderer gone")
    store = NotificationStore(manager, StaticSession("tok"), on_toast=boom, timer_factory=timers)
    store.start()
    timers.last.fire()
    channels.last.simulate_connected()

    channels.last.simulate_alert(mrl_alert())

    assert store.unread_count == 1
