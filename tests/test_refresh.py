import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from linkdash.exceptions import EventSourceError
from linkdash.jobs.refresh import DashboardRefresher, RefresherRegistry
from linkdash.services.aggregator import DashboardQuery
from linkdash.services.event_source import EventSource
from linkdash.services.notifier import InMemoryChangeNotifier


class ScriptedSource(EventSource):
    """Returns ``count`` fresh clicks per fetch; can be told to fail."""
    name = "scripted"

    def __init__(self, count: int = 3, delay: float = 0.0):
        self.count = count
        self.delay = delay
        self.fail = False
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def fetch(self, user_id, since):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail:
                raise EventSourceError("backend unavailable")
            now = datetime.now(timezone.utc)
            return [
                {"id": i, "clicked_at": now - timedelta(minutes=i), "link": {"title": "L", "platform": "Amazon"}}
                for i in range(self.count)
            ]
        finally:
            with self._lock:
                self.active -= 1


def _wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def test_refresh_now_publishes_snapshot():
    refresher = DashboardRefresher(1, DashboardQuery(), ScriptedSource(count=4), interval_seconds=30)
    state = refresher.refresh_now()
    assert state.snapshot.total_clicks == 4
    assert state.generation == 1
    assert state.stale is False
    assert state.last_refreshed_at is not None


def test_failure_keeps_last_known_good_snapshot():
    source = ScriptedSource(count=2)
    refresher = DashboardRefresher(1, DashboardQuery(), source, interval_seconds=30)
    refresher.refresh_now()

    source.fail = True
    source.count = 9
    state = refresher.refresh_now()
    assert state.snapshot.total_clicks == 2
    assert state.consecutive_failures == 1
    assert state.last_error == "backend unavailable"
    assert state.stale is True

    source.fail = False
    state = refresher.refresh_now()
    assert state.snapshot.total_clicks == 9
    assert state.consecutive_failures == 0


def test_stale_generation_is_discarded():
    source = ScriptedSource(count=1)
    refresher = DashboardRefresher(1, DashboardQuery(), source, interval_seconds=30)
    older = refresher._new_generation()
    newer = refresher._new_generation()
    assert refresher._run_cycle(newer) is True

    source.count = 5
    assert refresher._run_cycle(older) is False
    state = refresher.state()
    assert state.snapshot.total_clicks == 1
    assert state.generation == newer
    assert refresher.cycles_discarded == 1


def test_failure_of_superseded_cycle_leaves_state_fresh():
    source = ScriptedSource(count=2)
    refresher = DashboardRefresher(1, DashboardQuery(), source, interval_seconds=30)
    older = refresher._new_generation()
    newer = refresher._new_generation()
    assert refresher._run_cycle(newer) is True

    source.fail = True
    assert refresher._run_cycle(older) is False
    state = refresher.state()
    assert state.consecutive_failures == 0
    assert state.last_error is None
    assert state.stale is False
    assert state.snapshot.total_clicks == 2


def test_registry_keeps_refresher_running_when_initial_load_errors():
    class ExplodingSource(ScriptedSource):
        def fetch(self, user_id, since):
            self.calls += 1
            raise RuntimeError("unexpected")

    source = ExplodingSource()
    registry = RefresherRegistry(source, max_refreshers=2, interval_seconds=0.05)
    try:
        with pytest.raises(RuntimeError):
            registry.get_or_start(1, DashboardQuery())
        assert len(registry) == 1
        refresher = registry.get_or_start(1, DashboardQuery())
        assert refresher.running is True
        assert _wait_for(lambda: source.calls >= 2)
    finally:
        registry.stop_all()


def test_cycles_never_overlap():
    source = ScriptedSource(delay=0.05)
    refresher = DashboardRefresher(1, DashboardQuery(), source, interval_seconds=30)
    threads = [threading.Thread(target=refresher.refresh_now) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert source.calls == 4
    assert source.max_active == 1


def test_change_notification_triggers_background_refresh():
    notifier = InMemoryChangeNotifier()
    source = ScriptedSource(count=1)
    refresher = DashboardRefresher(1, DashboardQuery(), source, notifier, interval_seconds=60)
    refresher.refresh_now()
    refresher.start()
    try:
        source.count = 6
        notifier.publish("clicks")
        assert _wait_for(lambda: refresher.state().snapshot.total_clicks == 6)
    finally:
        refresher.stop()


def test_interval_tick_refreshes_without_notifications():
    source = ScriptedSource(count=1)
    refresher = DashboardRefresher(1, DashboardQuery(), source, interval_seconds=0.05)
    refresher.start()
    try:
        assert _wait_for(lambda: source.calls >= 2)
    finally:
        refresher.stop()


def test_stop_cancels_subscriptions_and_thread():
    notifier = InMemoryChangeNotifier()
    refresher = DashboardRefresher(1, DashboardQuery(), ScriptedSource(), notifier, interval_seconds=60)
    refresher.start()
    assert notifier.subscriber_count("clicks") == 1
    assert notifier.subscriber_count("conversions") == 1
    refresher.stop()
    assert notifier.subscriber_count("clicks") == 0
    assert notifier.subscriber_count("conversions") == 0
    assert refresher.running is False


def test_registry_reuses_and_evicts_refreshers():
    notifier = InMemoryChangeNotifier()
    registry = RefresherRegistry(ScriptedSource(), notifier, max_refreshers=2, interval_seconds=60)
    try:
        first = registry.get_or_start(1, DashboardQuery(window_days=7))
        assert registry.get_or_start(1, DashboardQuery(window_days=7)) is first
        assert first.state().snapshot is not None

        registry.get_or_start(1, DashboardQuery(window_days=30))
        registry.get_or_start(2, DashboardQuery(window_days=7))
        assert len(registry) == 2
        assert first.running is False
    finally:
        registry.stop_all()
    assert len(registry) == 0
    assert notifier.subscriber_count("clicks") == 0
