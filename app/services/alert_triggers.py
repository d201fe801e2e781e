"""
Account and staging alerts.

    client_registered    once per client, right after sign-up
    no_sale_job_staged   once per job left unpaid in draft for over an hour
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.client import Client
from app.models.job_post import JobPost
from app.services import outbox
from app.services.notifications import CLIENT_REGISTERED, NO_SALE_JOB_STAGED
from app.utils.logger import logger

NEW_CLIENT_WINDOW = timedelta(minutes=30)
NO_SALE_MIN_AGE = timedelta(hours=1)


async def stage_client_registered_alert(
    db: AsyncSession,
    client_id: str,
    now: datetime = None,
) -> Tuple[str, Optional[str]]:
    """
    Flip welcome_email_sent and stage the alert in one commit.

    Returns (outcome, outbox_id); outcome is one of 'queued', 'not_found',
    'already_sent', 'too_old'.
    """
    now = now or datetime.utcnow()
    client = await db.get(Client, client_id)
    if client is None:
        return "not_found", None
    if client.welcome_email_sent:
        return "already_sent", None
    if client.created_at and client.created_at < now - NEW_CLIENT_WINDOW:
        logger.info("client_registered.skipped account older than 30 minutes", extra={"client_id": client_id})
        return "too_old", None

    # Guarded flip: only one caller wins the false -> true update
    result = await db.execute(
        update(Client)
        .where(Client.id == client_id, Client.welcome_email_sent.is_(False))
        .values(welcome_email_sent=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        return "already_sent", None

    outbox_id = await outbox.enqueue(
        db, CLIENT_REGISTERED, f"{CLIENT_REGISTERED}:{client_id}", {"client_id": client_id}
    )
    await db.commit()
    logger.info("client_registered.queued", extra={"client_id": client_id, "outbox_id": outbox_id})
    return "queued", outbox_id


async def stage_no_sale_alerts(db: AsyncSession, now: datetime = None) -> List[str]:
    """Stage one alert per draft, unpaid job created more than an hour ago."""
    now = now or datetime.utcnow()
    result = await db.execute(
        select(JobPost.id)
        .where(
            JobPost.status == "draft",
            JobPost.payment_status != "completed",
            JobPost.created_at < now - NO_SALE_MIN_AGE,
        )
        .order_by(JobPost.created_at.asc())
    )

    staged = []
    for job_post_id in result.scalars().all():
        outbox_id = await outbox.enqueue(
            db, NO_SALE_JOB_STAGED, f"{NO_SALE_JOB_STAGED}:{job_post_id}", {"job_post_id": job_post_id}
        )
        if outbox_id:
            staged.append(outbox_id)
    await db.commit()

    if staged:
        logger.info(f"no_sale.staged count={len(staged)}")
    return staged
