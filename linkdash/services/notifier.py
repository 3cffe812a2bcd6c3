"""Change notifications for the ``clicks`` and ``conversions`` streams.

Writers publish once per committed batch; subscribers (dashboard refreshers)
get a callback and re-fetch. Payloads carry no row data: a notification only
means "something changed, recompute".

Two backends mirror the queue setup: an in-process registry and Redis
pub/sub for multi-process deployments. ``create_notifier`` falls back to the
in-memory registry when Redis is unreachable.

SQLAlchemy session hooks (``install_change_hooks``) record which streams a
flush touched and publish after commit, so a bulk insert of N clicks yields
one ``clicks`` notification, not N. Deleted rows count too, and so does a
changed or deleted link, since its clicks change what a dashboard shows.
"""
from __future__ import annotations

import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import redis
from sqlalchemy import event
from sqlalchemy.orm import Session

from linkdash.config import CHANGE_STREAMS, NOTIFIER_SETTINGS
from linkdash.models.db import AffiliateLink, ClickEvent, Conversion
from linkdash.utils import get_logger

logger = get_logger(__name__)

ChangeCallback = Callable[[str, dict], None]


def _check_stream(stream: str) -> None:
    if stream not in CHANGE_STREAMS:
        raise ValueError(f"Unknown change stream '{stream}'")


class Subscription:
    """Handle returned by ``subscribe``; ``cancel()`` is idempotent."""

    def __init__(self, stream: str, cancel_fn: Callable[[], None]):
        self.stream = stream
        self._cancel_fn = cancel_fn
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return not self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._cancel_fn()


class ChangeNotifier(ABC):
    backend: str = "base"

    @abstractmethod
    def publish(self, stream: str, payload: Optional[dict] = None) -> None:
        pass

    @abstractmethod
    def subscribe(self, stream: str, callback: ChangeCallback) -> Subscription:
        pass

    def close(self) -> None:
        pass

    def snapshot(self) -> dict:
        return {"backend": self.backend}


class InMemoryChangeNotifier(ChangeNotifier):
    """Process-local fan-out. Callbacks run synchronously on the publisher's thread."""
    backend = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscribers: dict[str, dict[int, ChangeCallback]] = {s: {} for s in CHANGE_STREAMS}
        self._seq = 0
        self.published: dict[str, int] = {s: 0 for s in CHANGE_STREAMS}

    def publish(self, stream: str, payload: Optional[dict] = None) -> None:
        _check_stream(stream)
        with self._lock:
            self.published[stream] += 1
            callbacks = list(self._subscribers[stream].values())
        message = dict(payload or {})
        for callback in callbacks:
            try:
                callback(stream, message)
            except Exception as e:
                # One broken subscriber must not fail the writer's commit
                logger.error("Change subscriber failed", stream=stream, error=str(e), exc_info=True)

    def subscribe(self, stream: str, callback: ChangeCallback) -> Subscription:
        _check_stream(stream)
        with self._lock:
            self._seq += 1
            token = self._seq
            self._subscribers[stream][token] = callback

        def _cancel() -> None:
            with self._lock:
                self._subscribers[stream].pop(token, None)

        return Subscription(stream, _cancel)

    def subscriber_count(self, stream: str) -> int:
        with self._lock:
            return len(self._subscribers[stream])

    def close(self) -> None:
        with self._lock:
            for subscribers in self._subscribers.values():
                subscribers.clear()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "backend": self.backend,
                "subscribers": {s: len(subs) for s, subs in self._subscribers.items()},
                "published": dict(self.published),
            }


class RedisChangeNotifier(ChangeNotifier):
    """Redis pub/sub on channels ``<channel_prefix><stream>``.

    Each subscription owns a PubSub object and a listener thread
    (``PubSub.run_in_thread``); cancelling stops the thread.
    """
    backend = "redis"

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        self._redis_url = str(NOTIFIER_SETTINGS.get("redis_url", "redis://localhost:6379/0"))
        self._prefix = str(NOTIFIER_SETTINGS.get("channel_prefix", "linkdash:changes:"))
        self._timeout = float(NOTIFIER_SETTINGS.get("redis_health_check_timeout", 2.0))  # type: ignore[arg-type]
        self._client = client or redis.from_url(self._redis_url, socket_connect_timeout=self._timeout)
        self._lock = threading.Lock()
        self._threads: list[Any] = []

    def channel(self, stream: str) -> str:
        return f"{self._prefix}{stream}"

    def health_check(self) -> bool:
        try:
            self._client.ping()
            return True
        except (redis.RedisError, ConnectionError) as e:
            logger.warning("Redis notifier unavailable", url=self._redis_url, error=str(e))
            return False

    def publish(self, stream: str, payload: Optional[dict] = None) -> None:
        _check_stream(stream)
        message = json.dumps({"stream": stream, "published_at": time.time(), **(payload or {})})
        try:
            self._client.publish(self.channel(stream), message)
        except redis.RedisError as e:
            # Subscribers still refresh on their timer
            logger.warning("Change publish failed", stream=stream, error=str(e))

    def subscribe(self, stream: str, callback: ChangeCallback) -> Subscription:
        _check_stream(stream)
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)

        def _handler(message: dict) -> None:
            data = message.get("data")
            try:
                payload = json.loads(data) if data else {}
            except (TypeError, ValueError):
                payload = {}
            try:
                callback(stream, payload)
            except Exception as e:
                logger.error("Change subscriber failed", stream=stream, error=str(e), exc_info=True)

        pubsub.subscribe(**{self.channel(stream): _handler})
        worker = pubsub.run_in_thread(sleep_time=0.5, daemon=True)
        with self._lock:
            self._threads.append(worker)

        def _cancel() -> None:
            worker.stop()
            try:
                pubsub.close()
            except redis.RedisError as e:
                logger.debug("PubSub close failed", stream=stream, error=str(e))
            with self._lock:
                if worker in self._threads:
                    self._threads.remove(worker)

        return Subscription(stream, _cancel)

    def close(self) -> None:
        with self._lock:
            workers, self._threads = self._threads, []
        for worker in workers:
            worker.stop()

    def snapshot(self) -> dict:
        with self._lock:
            listeners = len(self._threads)
        return {"backend": self.backend, "listeners": listeners, "url": self._redis_url}


def create_notifier() -> ChangeNotifier:
    """Create the notifier selected by NOTIFIER_SETTINGS (Redis with in-memory fallback)."""
    if NOTIFIER_SETTINGS.get("use_redis", False):
        try:
            notifier = RedisChangeNotifier()
            if notifier.health_check():
                logger.info("Using Redis change notifier", url=notifier._redis_url)
                return notifier
            logger.warning("Redis change notifier unreachable; using in-memory notifier")
        except redis.RedisError as e:
            logger.warning("Error initializing Redis notifier, using in-memory notifier", error=str(e))
    logger.info("Using in-memory change notifier")
    return InMemoryChangeNotifier()


# ------------------------------ session hooks ------------------------------ #

_STREAM_BY_MODEL: dict[type, str] = {
    ClickEvent: "clicks",
    Conversion: "conversions",
}
_PENDING_KEY = "linkdash_changed_streams"
_installed_hooks: list[tuple[str, Callable[..., None]]] = []


def install_change_hooks(notifier: ChangeNotifier) -> None:
    """Publish one notification per stream for each committed session batch."""
    remove_change_hooks()

    def _after_flush(session: Session, flush_context: Any) -> None:
        # new/dirty/deleted still hold the pre-flush state here
        touched = session.info.setdefault(_PENDING_KEY, set())
        for obj in list(session.new) + list(session.deleted):
            stream = _STREAM_BY_MODEL.get(type(obj))
            if stream:
                touched.add(stream)
        for obj in session.deleted:
            if isinstance(obj, AffiliateLink):
                touched.add("clicks")
        for obj in session.dirty:
            if isinstance(obj, AffiliateLink) and session.is_modified(obj, include_collections=False):
                touched.add("clicks")

    def _after_commit(session: Session) -> None:
        touched = session.info.pop(_PENDING_KEY, None)
        if not touched:
            return
        for stream in sorted(touched):
            notifier.publish(stream, {"source": "db_commit"})

    def _after_rollback(session: Session, previous_transaction: Any) -> None:
        session.info.pop(_PENDING_KEY, None)

    for name, fn in (("after_flush", _after_flush), ("after_commit", _after_commit), ("after_soft_rollback", _after_rollback)):
        event.listen(Session, name, fn)
        _installed_hooks.append((name, fn))


def remove_change_hooks() -> None:
    while _installed_hooks:
        name, fn = _installed_hooks.pop()
        if event.contains(Session, name, fn):
            event.remove(Session, name, fn)


__all__ = [
    "ChangeCallback",
    "Subscription",
    "ChangeNotifier",
    "InMemoryChangeNotifier",
    "RedisChangeNotifier",
    "create_notifier",
    "install_change_hooks",
    "remove_change_hooks",
]
