"""
Stripe webhook reconciler.

Authenticates a delivery, then folds the event into the PaymentTransaction and
JobPost rows found by the event's payment intent id (never by ids the payload
could carry in metadata).

Once the signature checks out the handler always acknowledges: persistence or
notification failures are logged, because Stripe retrying cannot fix them.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import Settings, get_settings
from app.models.job_post import JobPost
from app.models.payment_transaction import PaymentTransaction
from app.services.errors import InvalidTransition, MalformedEvent
from app.services.notifications import notify_on_payment_success, stage_payment_success_notifications
from app.services.payment_state import PaymentEvent, next_job_state, next_transaction_state
from app.utils.logger import logger
from app.utils.metrics import inc, track_duration

# Outcomes of applying an event to one row
APPLIED = "applied"
DUPLICATE = "duplicate"
REJECTED = "rejected"
MISSING = "missing"
ERROR = "error"


def _charge_id(intent: Dict[str, Any]) -> Optional[str]:
    charge = intent.get("latest_charge")
    if isinstance(charge, dict):
        return charge.get("id")
    return charge


def _payment_method(intent: Dict[str, Any]) -> Optional[str]:
    types = intent.get("payment_method_types") or []
    return types[0] if types else None


class WebhookReconciler:

    def __init__(self, processor, fanout, session_factory, settings: Settings = None):
        self.processor = processor
        self.fanout = fanout
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._background: Set[asyncio.Task] = set()

    async def handle_webhook_event(self, db: AsyncSession, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Raises InvalidSignature / MalformedEvent before any state is touched.
        Otherwise returns {"received": True}.
        """
        event = await self.processor.verify_event(raw_body, signature)
        event_type = event["type"]
        event_id = event.get("id")

        kind = PaymentEvent.from_event_type(event_type)
        if kind is None:
            logger.info("webhook.unhandled", extra={"event_id": event_id, "event_type": event_type})
            inc("webhook.unhandled")
            return {"received": True}

        intent = (event.get("data") or {}).get("object") or {}
        intent_id = intent.get("id") if isinstance(intent, dict) else None
        if not isinstance(intent_id, str) or not intent_id:
            raise MalformedEvent("Event is missing its payment intent")

        logger.info(
            "webhook.processing",
            extra={"event_id": event_id, "event_type": event_type, "payment_intent_id": intent_id},
        )

        async with track_duration("webhook", kind.name.lower()):
            tx_outcome, job_post_id = await self._apply_to_transaction(db, kind, intent)
            if tx_outcome == REJECTED:
                # Stale delivery for an intent that already settled the other way
                logger.warning(
                    "webhook.stale_event job post left unchanged",
                    extra={"event_id": event_id, "event_type": event_type, "payment_intent_id": intent_id},
                )
                return {"received": True}

            outbox_ids = await self._apply_to_job_post(db, kind, intent, job_post_id)
            if outbox_ids:
                await self._fan_out(outbox_ids, intent_id)

        return {"received": True}

    async def _apply_to_transaction(
        self, db: AsyncSession, kind: PaymentEvent, intent: Dict[str, Any]
    ) -> Tuple[str, Optional[str]]:
        """Returns (outcome, job_post_id of the transaction row, if found)."""
        intent_id = intent["id"]
        try:
            result = await db.execute(
                select(PaymentTransaction).where(PaymentTransaction.stripe_payment_intent_id == intent_id)
            )
            transaction = result.scalar_one_or_none()
            if transaction is None:
                logger.warning("payment_transaction.not_found", extra={"payment_intent_id": intent_id})
                return MISSING, None
            job_post_id = transaction.job_post_id

            try:
                transition = next_transaction_state(transaction.status, kind)
            except InvalidTransition as exc:
                logger.warning(
                    f"payment_transaction.transition_rejected {exc}",
                    extra={"payment_intent_id": intent_id, "transaction_id": transaction.id},
                )
                return REJECTED, job_post_id
            if transition.duplicate:
                return DUPLICATE, job_post_id

            transaction.status = transition.status
            if kind is PaymentEvent.SUCCEEDED:
                transaction.stripe_charge_id = _charge_id(intent)
                transaction.payment_method = _payment_method(intent)
                transaction.failure_reason = None
                transaction.processed_at = datetime.utcnow()
            elif kind is PaymentEvent.FAILED:
                error = intent.get("last_payment_error") or {}
                transaction.failure_reason = error.get("message") or "Payment failed"
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.error(
                "payment_transaction.update_failed",
                extra={"payment_intent_id": intent_id, "error": str(exc)[:200], "error_type": type(exc).__name__},
            )
            return ERROR, None

        logger.info(
            "payment_transaction.updated",
            extra={"payment_intent_id": intent_id, "status": transition.status},
        )
        return APPLIED, job_post_id

    async def _apply_to_job_post(
        self,
        db: AsyncSession,
        kind: PaymentEvent,
        intent: Dict[str, Any],
        job_post_id: Optional[str] = None,
    ) -> List[str]:
        """
        Transition the job post; returns outbox rows staged with the change.

        The job is found through its transaction row when there is one, so a
        payment on an intent replaced by a later checkout still posts the job.
        Without a transaction row the job's current intent id is used.
        """
        intent_id = intent["id"]
        outbox_ids: List[str] = []
        try:
            query = select(JobPost).options(selectinload(JobPost.client))
            if job_post_id:
                query = query.where(JobPost.id == job_post_id)
            else:
                query = query.where(JobPost.stripe_payment_intent_id == intent_id)
            job_post = (await db.execute(query)).scalar_one_or_none()
            if job_post is None:
                logger.warning("job_post.not_found", extra={"payment_intent_id": intent_id})
                return []

            if job_post.stripe_payment_intent_id != intent_id:
                if kind is not PaymentEvent.SUCCEEDED:
                    # Failure or cancel of a replaced intent; the open checkout owns the job
                    logger.info(
                        "job_post.superseded_intent_ignored",
                        extra={"payment_intent_id": intent_id, "job_post_id": job_post.id},
                    )
                    return []
                logger.warning(
                    f"job_post.paid_by_superseded_intent open_intent={job_post.stripe_payment_intent_id}",
                    extra={"payment_intent_id": intent_id, "job_post_id": job_post.id},
                )

            try:
                transition = next_job_state(job_post.status, job_post.payment_status, kind)
            except InvalidTransition as exc:
                logger.warning(
                    f"job_post.transition_rejected {exc}",
                    extra={"payment_intent_id": intent_id, "job_post_id": job_post.id},
                )
                return []
            if transition.duplicate:
                logger.info("job_post.duplicate_event", extra={"payment_intent_id": intent_id, "job_post_id": job_post.id})
                return []

            job_post.status = transition.status
            job_post.payment_status = transition.payment_status
            if kind is PaymentEvent.SUCCEEDED:
                job_post.posted_at = datetime.utcnow()
                job_post.stripe_payment_intent_id = intent_id
                outbox_ids = await stage_payment_success_notifications(
                    db, job_post, intent, self.settings.outbox_max_attempts
                )
            job_post_id = job_post.id
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.error(
                "job_post.update_failed",
                extra={"payment_intent_id": intent_id, "error": str(exc)[:200], "error_type": type(exc).__name__},
            )
            return []

        logger.info(
            "job_post.updated",
            extra={
                "payment_intent_id": intent_id,
                "job_post_id": job_post_id,
                "status": f"{transition.status}/{transition.payment_status}",
            },
        )
        return outbox_ids

    async def _fan_out(self, outbox_ids: List[str], intent_id: str) -> None:
        """Deliver staged notifications, waiting at most notification_wait_seconds."""
        task = asyncio.create_task(self._deliver(outbox_ids, intent_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        done, _ = await asyncio.wait({task}, timeout=self.settings.notification_wait_seconds)
        if not done:
            logger.warning(
                "webhook.fanout_still_running, continuing in background",
                extra={"payment_intent_id": intent_id},
            )

    async def _deliver(self, outbox_ids: List[str], intent_id: str) -> None:
        try:
            async with self.session_factory() as session:
                await notify_on_payment_success(session, self.fanout, outbox_ids)
        except Exception as exc:
            # Rows stay pending for the outbox worker
            logger.error(
                "webhook.fanout_failed",
                extra={"payment_intent_id": intent_id, "error": str(exc)[:200], "error_type": type(exc).__name__},
            )

    async def drain(self) -> None:
        """Wait for background deliveries (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
