import httpx
import pytest

from app.models.email_alert import EmailNotification
from app.models.notification_outbox import NotificationOutbox
from app.services import outbox
from app.services.alert_dispatcher import HttpAlertDispatcher
from app.services.errors import AlertDispatchError, MailerError
from app.services.gateway import ServiceGateway
from app.services.mailer import EmailMessage, LoggingMailer, ResendMailer
from app.services.notifications import NotificationFanout, _load_job_post, collect_alert_recipients
from app.services.receipts import (
    build_receipt,
    format_payment_date,
    invoice_number,
    mask_payment_method,
)


async def test_recipients_union_of_admins_and_active_alerts(db, seeded):
    recipients = await collect_alert_recipients(db, "new_job_posted")
    assert sorted(r.lower() for r in recipients) == ["admin@groundup.test", "ops@groundup.test"]

    recipients = await collect_alert_recipients(db, "client_registered")
    assert sorted(recipients) == ["admin@groundup.test", "sales@groundup.test"]

    recipients = await collect_alert_recipients(db, "no_sale_job_staged")
    assert recipients == ["admin@groundup.test"]


async def test_recipients_empty_without_seed(db):
    assert await collect_alert_recipients(db, "new_job_posted") == []


def test_invoice_number_and_date():
    assert invoice_number("pi_3PqRsTuVwXyZ1234") == "INV-WXYZ1234"
    assert format_payment_date(1792368000) == "October 19, 2026"


def test_mask_payment_method():
    intent = {"payment_method": {"card": {"brand": "visa", "last4": "4242"}}}
    assert mask_payment_method(intent) == "VISA •••• 4242"
    assert mask_payment_method({"payment_method_types": ["us_bank_account"]}) == "US_BANK_ACCOUNT"
    assert mask_payment_method({}) == "Card"


def test_build_receipt():
    receipt = build_receipt({"id": "pi_abc12345678", "amount": 150000, "created": 1792368000})
    assert receipt.amount == "1500.00"
    assert receipt.invoice_number == "INV-12345678"
    assert receipt.transaction_id == "pi_abc12345678"


async def test_logged_only_invoice_recorded_without_message_id(db, seeded, alerts, settings, checkout, fetch):
    opened = (await checkout("STANDARD")).json()
    fanout = NotificationFanout(LoggingMailer(), alerts, settings)
    job_post = await _load_job_post(db, opened["jobPostId"])

    message_id = await fanout.send_invoice(db, job_post, {"id": opened["paymentIntentId"], "amount": 50000})
    assert message_id is None
    [record] = await fetch(EmailNotification)
    assert record.status == "logged"
    assert record.resend_email_id is None


async def test_lost_delivery_record_never_resends(db, seeded, fanout, mailer, checkout, session_factory, fetch, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from sqlalchemy.ext.asyncio import AsyncSession

    opened = (await checkout("STANDARD")).json()
    intent = {"id": opened["paymentIntentId"], "amount": 50000}
    job_post = await _load_job_post(db, opened["jobPostId"])

    original_commit = AsyncSession.commit

    async def commit_until_mail_goes_out(self):
        if mailer.sent:
            raise OperationalError("COMMIT", {}, Exception("connection reset"))
        return await original_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", commit_until_mail_goes_out)
    with pytest.raises(OperationalError):
        await fanout.send_invoice(db, job_post, intent)
    monkeypatch.undo()
    await db.rollback()
    assert len(mailer.sent) == 1

    # The outbox retries in a fresh session
    async with session_factory() as session:
        retry_job = await _load_job_post(session, opened["jobPostId"])
        assert await fanout.send_invoice(session, retry_job, intent) is None

    assert len(mailer.sent) == 1
    [record] = await fetch(EmailNotification)
    assert record.status == "sending"


async def test_failed_invoice_is_retried(db, seeded, fanout, mailer, checkout, fetch):
    opened = (await checkout("STANDARD")).json()
    intent = {"id": opened["paymentIntentId"], "amount": 50000}
    job_post = await _load_job_post(db, opened["jobPostId"])

    mailer.error = "Resend returned 503"
    with pytest.raises(MailerError):
        await fanout.send_invoice(db, job_post, intent)
    [record] = await fetch(EmailNotification)
    assert record.status == "failed"

    mailer.error = None
    assert await fanout.send_invoice(db, job_post, intent) == "re_1"
    [record] = await fetch(EmailNotification)
    assert record.status == "sent"
    assert record.resend_email_id == "re_1"


def test_receipt_html_escapes_job_fields():
    from types import SimpleNamespace

    from app.services.receipts import build_receipt_email

    job_post = SimpleNamespace(
        title="Welder <script>alert(1)</script>",
        company_name="Smith & Sons",
        classification="STANDARD",
        location="Austin, TX",
        job_type="Full-time",
    )
    receipt = build_receipt({"id": "pi_abc12345678", "amount": 50000, "created": 1792368000})
    message = build_receipt_email(receipt, job_post, "owner@acme.test")

    assert "<script>" not in message.html
    assert "&lt;script&gt;" in message.html
    assert "Smith &amp; Sons" in message.html
    assert "Amount: $500.00 USD" in message.text
    assert "Job: Welder <script>alert(1)</script>" in message.text
    assert message.subject == "Payment Receipt INV-12345678 - Welder <script>alert(1)</script>"


async def test_invoice_sent_once_per_intent(db, seeded, fanout, mailer, checkout):
    opened = (await checkout("STANDARD")).json()
    job_post = await _load_job_post(db, opened["jobPostId"])
    intent = {"id": opened["paymentIntentId"], "amount": 50000}

    assert await fanout.send_invoice(db, job_post, intent) == "re_1"
    assert await fanout.send_invoice(db, job_post, intent) is None
    assert len(mailer.sent) == 1


async def test_outbox_dedupe_and_claim(db):
    row_id = await outbox.enqueue(db, "client_registered", "client_registered:c-1", {"client_id": "missing"})
    assert await outbox.enqueue(db, "client_registered", "client_registered:c-1", {}) is None
    await db.commit()

    row = await outbox.claim(db, row_id)
    assert row.status == "processing"
    assert row.attempts == 1
    # Already claimed
    assert await outbox.claim(db, row_id) is None


async def test_outbox_parks_row_after_max_attempts(db, fanout, alerts, seeded):
    alerts.error = "edge function returned 500"
    row_id = await outbox.enqueue(
        db, "client_registered", "client_registered:retry", {"client_id": seeded["client_id"]}, max_attempts=2
    )
    await db.commit()

    assert await outbox.deliver(db, fanout, row_id) is False
    assert await outbox.next_pending_id(db) == row_id
    assert await outbox.deliver(db, fanout, row_id) is False

    row = await db.get(NotificationOutbox, row_id, populate_existing=True)
    assert row.status == "failed"
    assert row.attempts == 2
    assert await outbox.next_pending_id(db) is None


async def test_unknown_kind_is_recorded_as_failure(db, fanout):
    row_id = await outbox.enqueue(db, "carrier_pigeon", "carrier_pigeon:1", {}, max_attempts=1)
    await db.commit()

    assert await outbox.deliver(db, fanout, row_id) is False
    row = await db.get(NotificationOutbox, row_id, populate_existing=True)
    assert row.status == "failed"
    assert "carrier_pigeon" in row.last_error


async def test_resend_mailer_posts_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.read()
        return httpx.Response(200, json={"id": "re_abc"})

    mailer = ResendMailer("re_key", "billing@groundup.test", ServiceGateway(), httpx.MockTransport(handler))
    message_id = await mailer.send(EmailMessage(to=["owner@acme.test"], subject="Receipt", html="<p>hi</p>"))

    assert message_id == "re_abc"
    assert seen["auth"] == "Bearer re_key"
    assert b"owner@acme.test" in seen["body"]


async def test_resend_mailer_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "bad from"}))
    mailer = ResendMailer("re_key", "billing@groundup.test", ServiceGateway(), transport)
    with pytest.raises(MailerError):
        await mailer.send(EmailMessage(to=["owner@acme.test"], subject="Receipt", html=""))


async def test_alert_dispatcher_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    dispatcher = HttpAlertDispatcher("https://edge.test/send-email-alert", "key", ServiceGateway(), transport)
    with pytest.raises(AlertDispatchError):
        await dispatcher.dispatch({"alertType": "new_job_posted", "recipientEmails": ["a@b.test"]})
