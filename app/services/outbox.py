"""
Notification outbox backed by the notification_outbox table.

Usage:
    row_id = await outbox.enqueue(db, "invoice", f"invoice:{intent_id}", payload)
    await db.commit()                      # same commit as the state change
    await outbox.deliver_many(db, fanout, [row_id])

Delivery claims a row with a guarded UPDATE (status='pending' -> 'processing'),
so two dispatchers racing on the same row deliver it once.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.models.notification_outbox import NotificationOutbox
from app.utils.logger import logger
from app.utils.metrics import inc


async def enqueue(
    db: AsyncSession,
    kind: str,
    dedupe_key: str,
    payload: Dict[str, Any],
    max_attempts: int = 3,
) -> Optional[str]:
    """
    Stage a notification in the caller's transaction; the caller commits.
    Returns None when a row with this dedupe key already exists.
    """
    existing = await db.execute(
        select(NotificationOutbox.id).where(NotificationOutbox.dedupe_key == dedupe_key)
    )
    if existing.scalar_one_or_none():
        logger.info("outbox.duplicate", extra={"kind": kind, "dedupe_key": dedupe_key})
        return None

    row = NotificationOutbox(
        kind=kind,
        dedupe_key=dedupe_key,
        status="pending",
        payload=payload,
        max_attempts=max_attempts,
    )
    db.add(row)
    await db.flush()
    return row.id


async def claim(db: AsyncSession, outbox_id: str) -> Optional[NotificationOutbox]:
    """Atomically move a pending row to processing; None if someone else has it."""
    result = await db.execute(
        update(NotificationOutbox)
        .where(
            and_(
                NotificationOutbox.id == outbox_id,
                NotificationOutbox.status == "pending",
                NotificationOutbox.attempts < NotificationOutbox.max_attempts,
            )
        )
        .values(
            status="processing",
            attempts=NotificationOutbox.attempts + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount != 1:
        return None

    row = await db.get(NotificationOutbox, outbox_id, populate_existing=True)
    logger.info("outbox.claimed", extra={"outbox_id": outbox_id, "kind": row.kind, "attempt": row.attempts})
    return row


async def next_pending_id(db: AsyncSession) -> Optional[str]:
    result = await db.execute(
        select(NotificationOutbox.id)
        .where(
            NotificationOutbox.status == "pending",
            NotificationOutbox.attempts < NotificationOutbox.max_attempts,
        )
        .order_by(NotificationOutbox.created_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def mark_delivered(db: AsyncSession, outbox_id: str) -> None:
    now = datetime.now(timezone.utc)
    await db.execute(
        update(NotificationOutbox)
        .where(NotificationOutbox.id == outbox_id)
        .values(status="delivered", last_error=None, delivered_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    inc("outbox.delivered")
    logger.info("outbox.delivered", extra={"outbox_id": outbox_id})


async def mark_failed(
    db: AsyncSession,
    outbox_id: str,
    kind: str,
    attempts: int,
    max_attempts: int,
    error: str,
) -> None:
    """Return the row to pending, or park it as failed once attempts are used up."""
    status = "failed" if attempts >= max_attempts else "pending"
    await db.execute(
        update(NotificationOutbox)
        .where(NotificationOutbox.id == outbox_id)
        .values(status=status, last_error=error[:1000], updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    inc("outbox.error")
    logger.error(
        "outbox.delivery_failed",
        extra={"outbox_id": outbox_id, "kind": kind, "attempt": attempts, "status": status, "error": error[:200]},
    )


async def release_stale(db: AsyncSession, max_age_minutes: int = 15) -> int:
    """Return rows stuck in processing (dispatcher died mid-delivery) to pending."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=max_age_minutes)
    result = await db.execute(
        update(NotificationOutbox)
        .where(NotificationOutbox.status == "processing", NotificationOutbox.updated_at < cutoff)
        .values(status="pending", updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    count = result.rowcount or 0
    if count:
        logger.warning(f"outbox.released_stale count={count}")
    return count


async def deliver(db: AsyncSession, fanout, outbox_id: str) -> bool:
    """Claim and deliver one row. Delivery errors are recorded, never raised."""
    row = await claim(db, outbox_id)
    if row is None:
        return False
    kind, payload, attempts, max_attempts = row.kind, dict(row.payload or {}), row.attempts, row.max_attempts

    try:
        await fanout.handle(db, kind, payload)
    except Exception as exc:
        await db.rollback()
        await mark_failed(db, outbox_id, kind, attempts, max_attempts, f"{type(exc).__name__}: {exc}")
        return False

    await mark_delivered(db, outbox_id)
    return True


async def deliver_many(db: AsyncSession, fanout, outbox_ids: Iterable[str]) -> List[str]:
    """Deliver rows independently; returns the ids that were delivered."""
    delivered = []
    for outbox_id in outbox_ids:
        if await deliver(db, fanout, outbox_id):
            delivered.append(outbox_id)
    return delivered
