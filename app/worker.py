"""
Notification outbox worker: polls notification_outbox and delivers rows.

Can run as:
  1. Standalone worker (separate Railway service): python -m app.worker
  2. Imported and scheduled by another process via worker_loop()

Handles every kind the NotificationFanout knows: invoice, new_job_posted,
client_registered, no_sale_job_staged. Also runs the periodic no-sale sweep
and releases rows left in processing by a crashed dispatcher.
"""
import asyncio

from app.database import AsyncSessionLocal
from app.services import outbox
from app.services.alert_triggers import stage_no_sale_alerts
from app.services.notifications import NotificationFanout, build_fanout
from app.utils.logger import logger


async def worker_loop(
    fanout: NotificationFanout,
    session_factory=AsyncSessionLocal,
    poll_interval: float = 2.0,
    max_idle_interval: float = 10.0,
) -> None:
    """
    Poll for pending outbox rows and deliver them.

    Uses adaptive polling: starts at poll_interval, backs off to max_idle_interval
    when nothing is pending, resets when a row is found.
    """
    current_interval = poll_interval
    logger.info(f"worker.started poll_interval={poll_interval}")

    while True:
        try:
            async with session_factory() as db:
                outbox_id = await outbox.next_pending_id(db)
                if outbox_id:
                    current_interval = poll_interval
                    await outbox.deliver(db, fanout, outbox_id)
                    continue
                current_interval = min(current_interval * 1.5, max_idle_interval)
        except Exception as exc:
            logger.error("worker.poll_error", extra={"error": str(exc)[:500]})
            current_interval = max_idle_interval

        await asyncio.sleep(current_interval)


async def run_periodic(session_factory=AsyncSessionLocal, interval_minutes: int = 15) -> None:
    """Stage no-sale alerts and release stale rows on a fixed interval."""
    while True:
        try:
            async with session_factory() as db:
                await outbox.release_stale(db)
                await stage_no_sale_alerts(db)
        except Exception as exc:
            logger.error("worker.periodic_error", extra={"error": str(exc)[:200]})
        await asyncio.sleep(interval_minutes * 60)


async def main() -> None:
    """Run worker as standalone process."""
    from app.database import init_db
    await init_db()

    fanout = build_fanout()
    await asyncio.gather(
        worker_loop(fanout),
        run_periodic(),
    )


if __name__ == "__main__":
    asyncio.run(main())
