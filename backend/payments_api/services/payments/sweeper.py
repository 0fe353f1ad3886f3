"""
Sweeper for notifications that were stored but never applied.

A delivery refused because its order was locked is normally redelivered by
the provider. The sweeper covers the case where it is not: every interval
it re-applies unapplied notifications older than the configured minimum
age, each under its order mutex. A sweep that hits a locked order leaves
the notification for the next run.

Usage:
    # From application startup
    asyncio.create_task(start_notification_sweeper(SessionLocal, mutex))

    # One pass from the CLI
    sweep_unapplied_notifications(SessionLocal, mutex)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from shared.config.logging import notification_logger as logger
from shared.config.settings import settings
from shared.infrastructure.correlation import correlation_scope
from .ingestion import IngestOutcome, NotificationIngestionService
from .notification_store import NotificationStore
from .order_mutex import OrderMutex


@dataclass
class SweepResult:
    """Counts for one sweep."""

    scanned: int = 0
    applied: int = 0
    skipped: int = 0
    deferred: list[int] = field(default_factory=list)


def sweep_unapplied_notifications(
    session_factory: sessionmaker[Session],
    mutex: OrderMutex,
    min_age_seconds: float | None = None,
    batch_size: int | None = None,
) -> SweepResult:
    """Run one sweep and return what it did."""
    min_age = settings.notification_sweep_min_age_seconds if min_age_seconds is None else min_age_seconds
    limit = batch_size or settings.notification_sweep_batch_size
    result = SweepResult()

    with correlation_scope("sweep"), session_factory() as db:
        pending = NotificationStore(db).list_unapplied(older_than_seconds=min_age, limit=limit)
        service = NotificationIngestionService(db, mutex)

        for notification in pending:
            result.scanned += 1
            outcome = service.apply(notification)
            if outcome is IngestOutcome.ACCEPTED:
                result.applied += 1
            elif outcome is IngestOutcome.DUPLICATE:
                result.skipped += 1
            else:
                result.deferred.append(notification.id)

    if result.scanned:
        logger.info(
            "Notification sweep finished",
            scanned=result.scanned,
            applied=result.applied,
            skipped=result.skipped,
            deferred=len(result.deferred),
        )
    return result


async def start_notification_sweeper(
    session_factory: sessionmaker[Session],
    mutex: OrderMutex,
    interval_seconds: float | None = None,
) -> None:
    """
    Background loop; runs until cancelled.

    Each sweep runs in the threadpool since the mutex and the database are blocking.
    """
    interval = interval_seconds or settings.notification_sweep_interval_seconds
    logger.info(f"Starting notification sweeper (interval: {interval}s)")

    while True:
        try:
            await run_in_threadpool(sweep_unapplied_notifications, session_factory, mutex)
        except Exception as e:
            logger.error(f"Notification sweeper error: {e}", exc_info=True)

        await asyncio.sleep(interval)
