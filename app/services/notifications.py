"""
Notification fanout for payment and account events.

A succeeded payment stages two outbox rows in the same commit that posts the
job:
    invoice:{intent}         receipt email to the client's account address
    new_job_posted:{intent}  one alert call to admins + configured recipients
Each row is delivered on its own, so a mail outage never blocks the alert and
vice versa. The fanout gets its mailer and alert dispatcher at construction.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import Settings, get_settings
from app.models.client import Client, Profile
from app.models.email_alert import EmailAlert, EmailNotification
from app.models.job_post import JobPost
from app.services import outbox
from app.services.alert_dispatcher import build_alert_dispatcher
from app.services.mailer import build_mailer
from app.services.receipts import build_receipt, build_receipt_email
from app.utils.logger import logger

INVOICE = "invoice"
NEW_JOB_POSTED = "new_job_posted"
CLIENT_REGISTERED = "client_registered"
NO_SALE_JOB_STAGED = "no_sale_job_staged"


async def collect_alert_recipients(db: AsyncSession, alert_type: str) -> List[str]:
    """Admin account emails ∪ active configured recipients for alert_type, deduplicated."""
    admins = await db.execute(select(Profile.email).where(Profile.role == "admin"))
    configured = await db.execute(
        select(EmailAlert.recipient_email).where(
            EmailAlert.alert_type == alert_type,
            EmailAlert.is_active.is_(True),
        )
    )

    recipients: List[str] = []
    seen = set()
    for email in list(admins.scalars()) + list(configured.scalars()):
        if not email:
            continue
        key = email.strip().lower()
        if key not in seen:
            seen.add(key)
            recipients.append(email.strip())
    return recipients


def intent_snapshot(intent: Dict[str, Any]) -> Dict[str, Any]:
    """Fields of a PaymentIntent the receipt needs, safe to store as JSON"""
    charge = intent.get("latest_charge")
    return {
        "id": intent["id"],
        "amount": intent.get("amount"),
        "currency": intent.get("currency"),
        "created": intent.get("created"),
        "payment_method_types": intent.get("payment_method_types") or [],
        "payment_method": intent.get("payment_method") if isinstance(intent.get("payment_method"), dict) else None,
        "latest_charge": charge.get("id") if isinstance(charge, dict) else charge,
    }


async def stage_payment_success_notifications(
    db: AsyncSession,
    job_post: JobPost,
    intent: Dict[str, Any],
    max_attempts: int = 3,
) -> List[str]:
    """Add the invoice and new-job alert rows to the caller's transaction."""
    intent_id = intent["id"]
    payload = {"job_post_id": job_post.id, "client_id": job_post.client_id, "intent": intent_snapshot(intent)}
    ids = [
        await outbox.enqueue(db, INVOICE, f"{INVOICE}:{intent_id}", payload, max_attempts),
        await outbox.enqueue(db, NEW_JOB_POSTED, f"{NEW_JOB_POSTED}:{intent_id}", payload, max_attempts),
    ]
    return [row_id for row_id in ids if row_id]


async def notify_on_payment_success(db: AsyncSession, fanout: "NotificationFanout", outbox_ids: List[str]) -> List[str]:
    """Deliver the staged invoice and alert rows; failures stay in the outbox."""
    return await outbox.deliver_many(db, fanout, outbox_ids)


class NotificationFanout:

    def __init__(self, mailer, alerts, settings: Settings = None):
        self.mailer = mailer
        self.alerts = alerts
        self.settings = settings or get_settings()
        self._handlers = {
            INVOICE: self._handle_invoice,
            NEW_JOB_POSTED: self._handle_new_job,
            CLIENT_REGISTERED: self._handle_client_registered,
            NO_SALE_JOB_STAGED: self._handle_no_sale,
        }

    async def handle(self, db: AsyncSession, kind: str, payload: Dict[str, Any]) -> None:
        handler = self._handlers.get(kind)
        if handler is None:
            raise ValueError(f"No handler registered for notification kind: {kind}")
        await handler(db, payload)

    async def _handle_invoice(self, db, payload):
        job_post = await _load_job_post(db, payload["job_post_id"])
        await self.send_invoice(db, job_post, payload["intent"])

    async def _handle_new_job(self, db, payload):
        job_post = await _load_job_post(db, payload["job_post_id"])
        await self.send_new_job_alert(db, job_post)

    async def _handle_client_registered(self, db, payload):
        client = await db.get(Client, payload["client_id"])
        await self.send_client_registered_alert(db, client)

    async def _handle_no_sale(self, db, payload):
        job_post = await _load_job_post(db, payload["job_post_id"])
        await self.send_no_sale_alert(db, job_post)

    # ------------------------------------------------------------------
    # Step A: invoice email
    # ------------------------------------------------------------------

    async def send_invoice(self, db: AsyncSession, job_post: Optional[JobPost], intent: Dict[str, Any]) -> Optional[str]:
        """
        Email the receipt at most once per client and intent. Returns the provider message id.

        The delivery row is committed as "sending" before the mailer is called
        and only a "failed" row is retried. If the provider accepted the mail
        but the final status commit was lost, the row stays "sending" and a
        retry skips it rather than mailing the client twice.
        """
        client = job_post.client if job_post else None
        if client is None or not client.email:
            logger.warning(
                "invoice.skipped missing job post or client email",
                extra={"payment_intent_id": intent.get("id")},
            )
            return None

        result = await db.execute(
            select(EmailNotification).where(
                EmailNotification.client_id == client.id,
                EmailNotification.email_type == INVOICE,
                EmailNotification.stripe_payment_intent_id == intent["id"],
            )
        )
        record = result.scalars().first()
        if record is not None and record.status != "failed":
            if record.status == "sending":
                logger.warning(
                    "invoice.unconfirmed previous send may have gone out, not resending",
                    extra={"payment_intent_id": intent["id"], "client_id": client.id},
                )
            else:
                logger.info("invoice.already_sent", extra={"payment_intent_id": intent["id"]})
            return None

        receipt = build_receipt(intent)
        message = build_receipt_email(receipt, job_post, client.email)

        if record is None:
            record = EmailNotification(
                client_id=client.id,
                recipient_email=client.email,
                email_type=INVOICE,
                stripe_payment_intent_id=intent["id"],
            )
            db.add(record)
        record.subject = message.subject
        record.status = "sending"
        await db.commit()

        try:
            message_id = await self.mailer.send(message)
        except Exception:
            record.status = "failed"
            await db.commit()
            raise

        record.status = "sent" if message_id else "logged"
        record.resend_email_id = message_id
        await db.commit()
        logger.info(
            "invoice.sent",
            extra={"payment_intent_id": intent["id"], "client_id": client.id, "message_id": message_id or "logged-only"},
        )
        return message_id

    # ------------------------------------------------------------------
    # Step B: internal alerts
    # ------------------------------------------------------------------

    async def send_new_job_alert(self, db: AsyncSession, job_post: Optional[JobPost]) -> int:
        if job_post is None or job_post.client is None:
            logger.warning("alert.skipped missing job post or client")
            return 0
        client = job_post.client
        return await self._dispatch(db, NEW_JOB_POSTED, {
            "clientName": client.display_name,
            "companyName": job_post.company_name or "Company",
            "clientEmail": client.email,
            "clientId": client.id,
            "jobTitle": job_post.title,
            "dashboardUrl": f"{self.settings.dashboard_url}/manage-jobs",
        })

    async def send_client_registered_alert(self, db: AsyncSession, client: Optional[Client]) -> int:
        if client is None:
            logger.warning("alert.skipped client not found")
            return 0
        return await self._dispatch(db, CLIENT_REGISTERED, {
            "clientName": client.display_name,
            "clientEmail": client.email or "",
            "companyName": client.company_name or "Company",
            "signupDate": client.created_at.isoformat() if client.created_at else None,
            "dashboardUrl": self.settings.dashboard_url,
        })

    async def send_no_sale_alert(self, db: AsyncSession, job_post: Optional[JobPost]) -> int:
        if job_post is None or job_post.client is None:
            logger.warning("alert.skipped missing job post or client")
            return 0
        # Paid since the sweep staged it
        if job_post.status != "draft" or job_post.payment_status == "completed":
            return 0
        client = job_post.client
        return await self._dispatch(db, NO_SALE_JOB_STAGED, {
            "clientName": client.display_name,
            "clientEmail": client.email or "",
            "jobTitle": job_post.title,
            "signupDate": job_post.created_at.isoformat() if job_post.created_at else None,
            "dashboardUrl": f"{self.settings.dashboard_url}/job-staging",
        })

    async def _dispatch(self, db: AsyncSession, alert_type: str, fields: Dict[str, Any]) -> int:
        recipients = await collect_alert_recipients(db, alert_type)
        if not recipients:
            logger.info(f"alert.no_recipients type={alert_type}")
            return 0
        await self.alerts.dispatch({"alertType": alert_type, "recipientEmails": recipients, **fields})
        return len(recipients)


async def _load_job_post(db: AsyncSession, job_post_id: str) -> Optional[JobPost]:
    result = await db.execute(
        select(JobPost).options(selectinload(JobPost.client)).where(JobPost.id == job_post_id)
    )
    return result.scalar_one_or_none()


def build_fanout(settings: Settings = None) -> NotificationFanout:
    settings = settings or get_settings()
    return NotificationFanout(build_mailer(settings), build_alert_dispatcher(settings), settings)
