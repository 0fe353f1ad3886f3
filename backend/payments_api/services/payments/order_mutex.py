"""
Per-order mutual exclusion.

Every mutation of an order's payments (notification application, redirect
return, synchronous gateway actions) runs inside ``with_lock`` for the
order's number. Acquisition waits at most ``timeout`` seconds and then
raises LockFailed without running the critical section. Release happens
on every exit path.

Two backends:
- DatabaseOrderMutex: a row in ``order_mutex`` keyed by the order number.
  The unique key turns acquisition into one atomic INSERT, so it works
  across processes sharing the database. Default.
- RedisOrderMutex: a redis-py Lock, for deployments that already run Redis.

Usage:
    mutex = build_order_mutex()
    result = mutex.with_lock("R100", lambda: processor.process(notification))
"""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import TypeVar

import redis
from redis.exceptions import LockError
from redis.lock import Lock as RedisLock
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from shared.config.logging import get_logger
from shared.config.settings import Settings, settings as default_settings
from payments_api.models import OrderMutex as OrderMutexRow
from .exceptions import LockFailed

logger = get_logger(__name__)

T = TypeVar("T")


class OrderMutex(ABC):
    """Scoped, bounded-wait lock keyed by order number."""

    def __init__(self, timeout: float = 10.0, poll_interval: float = 0.05):
        self.timeout = timeout
        self.poll_interval = poll_interval

    @abstractmethod
    def acquire(self, order_key: str, timeout: float) -> str:
        """Block up to ``timeout`` seconds. Returns an owner token or raises LockFailed."""

    @abstractmethod
    def release(self, order_key: str, token: str) -> None:
        """Release a lock previously returned by acquire."""

    @contextmanager
    def hold(self, order_key: str, timeout: float | None = None) -> Generator[None, None, None]:
        """
        Context manager form of with_lock.

        Raises:
            LockFailed: the lock was not acquired in time; the body did not run.
        """
        wait = self.timeout if timeout is None else timeout
        token = self.acquire(order_key, wait)
        logger.debug("Order lock acquired", order_key=order_key)
        try:
            yield
        finally:
            self.release(order_key, token)
            logger.debug("Order lock released", order_key=order_key)

    def with_lock(
        self,
        order_key: str,
        fn: Callable[[], T],
        timeout: float | None = None,
    ) -> T:
        """Run ``fn`` while holding the lock for ``order_key`` and return its result."""
        with self.hold(order_key, timeout):
            return fn()


# =============================================================================
# Database backend
# =============================================================================


class DatabaseOrderMutex(OrderMutex):
    """
    Lock rows in the ``order_mutex`` table.

    Each acquire/release uses its own short-lived session so the lock row is
    committed independently of the caller's transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        timeout: float = 10.0,
        poll_interval: float = 0.05,
        stale_after: float = 120.0,
    ):
        super().__init__(timeout, poll_interval)
        self.session_factory = session_factory
        self.stale_after = stale_after

    def acquire(self, order_key: str, timeout: float) -> str:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + timeout
        attempts = 0

        while True:
            attempts += 1
            if self._try_insert(order_key, token):
                return token

            if time.monotonic() >= deadline:
                logger.warning(
                    "Order lock timed out",
                    order_key=order_key,
                    timeout=timeout,
                    attempts=attempts,
                )
                raise LockFailed(order_key, timeout)

            time.sleep(self.poll_interval)

    def _try_insert(self, order_key: str, token: str) -> bool:
        with self.session_factory() as db:
            db.add(
                OrderMutexRow(
                    order_key=order_key,
                    owner=token,
                    acquired_at=datetime.now(timezone.utc),
                )
            )
            try:
                db.commit()
                return True
            except IntegrityError:
                db.rollback()

            self._expire_stale(db, order_key)
            return False

    def _expire_stale(self, db: Session, order_key: str) -> None:
        """Drop a lock row older than stale_after, left by a crashed worker."""
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.stale_after)
        result = db.execute(
            delete(OrderMutexRow).where(
                OrderMutexRow.order_key == order_key,
                OrderMutexRow.acquired_at < cutoff,
            )
        )
        db.commit()
        if result.rowcount:
            logger.warning("Expired stale order lock", order_key=order_key)

    def release(self, order_key: str, token: str) -> None:
        with self.session_factory() as db:
            result = db.execute(
                delete(OrderMutexRow).where(
                    OrderMutexRow.order_key == order_key,
                    OrderMutexRow.owner == token,
                )
            )
            db.commit()
        if not result.rowcount:
            # Expired as stale while we were still working
            logger.warning("Order lock was no longer held at release", order_key=order_key)

    def list_held(self) -> list[OrderMutexRow]:
        """All currently held lock rows, oldest first."""
        with self.session_factory() as db:
            return list(db.scalars(select(OrderMutexRow).order_by(OrderMutexRow.acquired_at)))

    def force_release(self, order_key: str) -> bool:
        """Delete the lock row for ``order_key`` regardless of owner."""
        with self.session_factory() as db:
            result = db.execute(delete(OrderMutexRow).where(OrderMutexRow.order_key == order_key))
            db.commit()
        released = bool(result.rowcount)
        if released:
            logger.warning("Order lock force-released", order_key=order_key)
        return released


# =============================================================================
# Redis backend
# =============================================================================


class RedisOrderMutex(OrderMutex):
    """
    redis-py Lock per order.

    The key expires after ``stale_after`` seconds so a crashed worker cannot
    hold an order forever.
    """

    KEY_PREFIX = "order_mutex:"

    def __init__(
        self,
        client: redis.Redis,
        timeout: float = 10.0,
        poll_interval: float = 0.05,
        stale_after: float = 120.0,
    ):
        super().__init__(timeout, poll_interval)
        self.client = client
        self.stale_after = stale_after
        self._held: dict[str, RedisLock] = {}

    def acquire(self, order_key: str, timeout: float) -> str:
        token = uuid.uuid4().hex
        lock = self.client.lock(
            f"{self.KEY_PREFIX}{order_key}",
            timeout=self.stale_after,
            sleep=self.poll_interval,
            blocking_timeout=timeout,
        )
        if not lock.acquire(blocking=True, token=token):
            logger.warning("Order lock timed out", order_key=order_key, timeout=timeout, backend="redis")
            raise LockFailed(order_key, timeout)

        self._held[token] = lock
        return token

    def release(self, order_key: str, token: str) -> None:
        lock = self._held.pop(token, None)
        if lock is None:
            return
        try:
            lock.release()
        except LockError:
            logger.warning("Order lock expired before release", order_key=order_key, backend="redis")


def build_order_mutex(
    config: Settings = default_settings,
    session_factory: sessionmaker[Session] | None = None,
) -> OrderMutex:
    """Create the mutex backend selected by ``order_mutex_backend``."""
    if config.order_mutex_backend == "redis":
        from shared.infrastructure.redis import get_redis_sync_client

        return RedisOrderMutex(
            get_redis_sync_client(),
            timeout=config.order_mutex_timeout_seconds,
            poll_interval=config.order_mutex_poll_interval,
            stale_after=config.order_mutex_stale_after_seconds,
        )

    if session_factory is None:
        from shared.infrastructure.db import SessionLocal

        session_factory = SessionLocal

    return DatabaseOrderMutex(
        session_factory,
        timeout=config.order_mutex_timeout_seconds,
        poll_interval=config.order_mutex_poll_interval,
        stale_after=config.order_mutex_stale_after_seconds,
    )
