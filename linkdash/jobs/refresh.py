"""Live dashboard refresh coordinator.

A ``DashboardRefresher`` keeps the latest ``AggregateSnapshot`` for one
(user, window, platform, status) key. A daemon thread recomputes it on a
fixed interval and whenever the change notifier reports new clicks or
conversions. Every trigger takes the next generation number; a finished
cycle only replaces the published snapshot when its generation is newer
than the published one, so a slow cycle can never overwrite a fresher one.
On fetch failure the last-known-good snapshot stays in place.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from linkdash.config import CHANGE_STREAMS, REFRESH_SETTINGS
from linkdash.exceptions import EventSourceError
from linkdash.services.aggregator import AggregateSnapshot, DashboardQuery, aggregate_with_comparison
from linkdash.services.event_source import EventSource
from linkdash.services.notifier import ChangeNotifier, Subscription
from linkdash.utils import get_logger, timed
from linkdash.utils.time import comparison_bounds, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class RefreshState:
    snapshot: Optional[AggregateSnapshot]
    generation: int
    last_refreshed_at: Optional[datetime]
    consecutive_failures: int
    last_error: Optional[str]
    interval_seconds: float

    @property
    def stale(self) -> bool:
        if self.snapshot is None or self.last_refreshed_at is None or self.consecutive_failures:
            return True
        age = (utc_now() - self.last_refreshed_at).total_seconds()
        return age > 2 * self.interval_seconds


class DashboardRefresher:
    def __init__(
        self,
        user_id: int,
        query: DashboardQuery,
        event_source: EventSource,
        notifier: Optional[ChangeNotifier] = None,
        *,
        interval_seconds: Optional[float] = None,
    ):
        self.user_id = user_id
        self.query = query
        self.event_source = event_source
        self.notifier = notifier
        self.interval_seconds = float(interval_seconds if interval_seconds is not None else REFRESH_SETTINGS["interval_seconds"])

        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._subscriptions: list[Subscription] = []

        self._next_generation = 0
        self._pending_generation = 0
        self._published_generation = 0
        self._snapshot: Optional[AggregateSnapshot] = None
        self._last_refreshed_at: Optional[datetime] = None
        self._consecutive_failures = 0
        self._last_error: Optional[str] = None
        self.cycles_run = 0
        self.cycles_discarded = 0

    # ------------------------------------------------------------------ #
    def _new_generation(self) -> int:
        with self._state_lock:
            self._next_generation += 1
            return self._next_generation

    def trigger(self, reason: str = "manual") -> int:
        """Request a refresh from the background loop; returns its generation."""
        generation = self._new_generation()
        with self._state_lock:
            self._pending_generation = max(self._pending_generation, generation)
        logger.debug("Refresh triggered", user_id=self.user_id, reason=reason, generation=generation)
        self._wake.set()
        return generation

    def _on_change(self, stream: str, payload: dict) -> None:
        self.trigger(f"change:{stream}")

    def refresh_now(self) -> RefreshState:
        """Run one cycle on the calling thread (initial load)."""
        self._run_cycle(self._new_generation())
        return self.state()

    def _run_cycle(self, generation: int) -> bool:
        with self._cycle_lock:
            since, boundary = comparison_bounds(self.query.window_days)
            try:
                with timed("dashboard.refresh", user_id=self.user_id, generation=generation) as perf:
                    events = self.event_source.fetch(self.user_id, since)
                    snapshot = aggregate_with_comparison(events, boundary=boundary, query=self.query)
                    perf["events"] = len(events)
            except EventSourceError as e:
                with self._state_lock:
                    if generation <= self._published_generation:
                        # A newer snapshot is already out; this failure says nothing about it
                        logger.debug("Ignoring failure of superseded cycle", generation=generation)
                        return False
                    self._consecutive_failures += 1
                    self._last_error = str(e)
                    failures = self._consecutive_failures
                logger.warning(
                    "Refresh cycle failed; keeping last snapshot",
                    user_id=self.user_id,
                    generation=generation,
                    consecutive_failures=failures,
                    error=str(e),
                )
                return False

            with self._state_lock:
                self.cycles_run += 1
                if generation <= self._published_generation:
                    self.cycles_discarded += 1
                    logger.debug("Discarding stale snapshot", generation=generation, published=self._published_generation)
                    return False
                self._published_generation = generation
                self._snapshot = snapshot
                self._last_refreshed_at = utc_now()
                self._consecutive_failures = 0
                self._last_error = None
            return True

    # ------------------------------------------------------------------ #
    def start(self) -> None:
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._stop_event.clear()
        if self.notifier is not None and not self._subscriptions:
            self._subscriptions = [self.notifier.subscribe(stream, self._on_change) for stream in CHANGE_STREAMS]
        self._thread = threading.Thread(
            target=self._loop, name=f"dashboard-refresher-{self.user_id}", daemon=True
        )
        self._thread.start()
        logger.info("Dashboard refresher started", user_id=self.user_id, window_days=self.query.window_days)

    def stop(self, timeout: float = 5.0) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        self._stop_event.set()
        self._wake.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None
        logger.info("Dashboard refresher stopped", user_id=self.user_id)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            woken = self._wake.wait(timeout=self.interval_seconds)
            if self._stop_event.is_set():
                break
            if woken:
                self._wake.clear()
                with self._state_lock:
                    generation, self._pending_generation = self._pending_generation, 0
                if not generation:
                    continue
            else:
                generation = self._new_generation()
            try:
                self._run_cycle(generation)
            except Exception as e:  # pragma: no cover
                logger.error("Refresher loop error", user_id=self.user_id, error=str(e), exc_info=True)

    def state(self) -> RefreshState:
        with self._state_lock:
            return RefreshState(
                snapshot=self._snapshot,
                generation=self._published_generation,
                last_refreshed_at=self._last_refreshed_at,
                consecutive_failures=self._consecutive_failures,
                last_error=self._last_error,
                interval_seconds=self.interval_seconds,
            )


RefresherKey = tuple[int, int, Optional[str], str]


class RefresherRegistry:
    """One refresher per (user, window, platform, status), least recently used evicted."""

    def __init__(
        self,
        event_source: EventSource,
        notifier: Optional[ChangeNotifier] = None,
        *,
        max_refreshers: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.event_source = event_source
        self.notifier = notifier
        self.max_refreshers = int(max_refreshers if max_refreshers is not None else REFRESH_SETTINGS["max_refreshers"])
        self.interval_seconds = interval_seconds
        self._lock = threading.Lock()
        self._refreshers: "OrderedDict[RefresherKey, DashboardRefresher]" = OrderedDict()

    @staticmethod
    def key_for(user_id: int, query: DashboardQuery) -> RefresherKey:
        status = getattr(query.status, "value", str(query.status))
        return (user_id, query.window_days, query.platform, status)

    def get_or_start(self, user_id: int, query: DashboardQuery) -> DashboardRefresher:
        key = self.key_for(user_id, query)
        evicted: list[DashboardRefresher] = []
        with self._lock:
            refresher = self._refreshers.get(key)
            if refresher is not None:
                self._refreshers.move_to_end(key)
                return refresher
            refresher = DashboardRefresher(
                user_id, query, self.event_source, self.notifier, interval_seconds=self.interval_seconds
            )
            self._refreshers[key] = refresher
            while len(self._refreshers) > self.max_refreshers:
                _, oldest = self._refreshers.popitem(last=False)
                evicted.append(oldest)

        for old in evicted:
            old.stop()
        # Running before the initial load: an unexpected error there still
        # leaves a registered refresher that retries on its interval
        refresher.start()
        refresher.refresh_now()
        return refresher

    def stop_all(self) -> None:
        with self._lock:
            refreshers = list(self._refreshers.values())
            self._refreshers.clear()
        for refresher in refreshers:
            refresher.stop()
        if refreshers:
            logger.info("Stopped dashboard refreshers", count=len(refreshers))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {"active_refreshers": len(self._refreshers), "max_refreshers": self.max_refreshers}

    def __len__(self) -> int:
        with self._lock:
            return len(self._refreshers)


__all__ = ["RefreshState", "DashboardRefresher", "RefresherRegistry"]
