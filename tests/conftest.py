"""
Shared fixtures for the payment backend tests.

Each test gets its own SQLite file, fake Stripe intent creation, and a
recording mailer / alert dispatcher. Webhooks are signed with a real
Stripe-Signature header and verified by the Stripe SDK.
"""
import hashlib
import hmac
import json
import os
import time

os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "service-role-test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_TO_FILE"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.database import get_db, init_db
from app.main import app
from app.middleware.rate_limit import limiter
from app.models.client import Client, Profile
from app.models.email_alert import EmailAlert
from app.services.errors import AlertDispatchError, MailerError
from app.services.gateway import ServiceGateway
from app.services.notifications import NotificationFanout
from app.services.stripe_processor import CreatedIntent, StripeProcessor
from app.services.webhook_reconciler import WebhookReconciler

WEBHOOK_SECRET = "whsec_test_secret"
SERVICE_KEY = "service-role-test"


class FakeProcessor(StripeProcessor):
    """Real signature verification, canned intent creation"""

    def __init__(self, settings):
        super().__init__(settings, ServiceGateway())
        self.created = []
        self.error = None

    async def create_payment_intent(self, amount_cents, currency, metadata, description):
        if self.error is not None:
            raise self.error
        self.created.append({
            "amount": amount_cents,
            "currency": currency,
            "metadata": metadata,
            "description": description,
        })
        intent_id = f"pi_test{len(self.created):08d}"
        return CreatedIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_abc",
            amount=amount_cents,
            currency=currency,
        )


class FakeMailer:

    def __init__(self):
        self.sent = []
        self.error = None

    async def send(self, message):
        if self.error is not None:
            raise MailerError(self.error)
        self.sent.append(message)
        return f"re_{len(self.sent)}"


class FakeAlerts:

    def __init__(self):
        self.dispatched = []
        self.error = None

    async def dispatch(self, payload):
        if self.error is not None:
            raise AlertDispatchError(self.error)
        self.dispatched.append(payload)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def processor(settings):
    return FakeProcessor(settings)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def alerts():
    return FakeAlerts()


@pytest.fixture
def fanout(mailer, alerts, settings):
    return NotificationFanout(mailer, alerts, settings)


@pytest.fixture
def reconciler(processor, fanout, session_factory, settings):
    return WebhookReconciler(processor, fanout, session_factory, settings)


@pytest.fixture
async def seeded(session_factory):
    """An admin, one client account, and configured alert recipients."""
    async with session_factory() as session:
        session.add_all([
            Profile(user_id="user-admin", email="admin@groundup.test", full_name="Ada Admin", role="admin"),
            Profile(user_id="user-client", email="owner@acme.test", full_name="Carl Client", role="client"),
            Profile(user_id="user-other", email="other@builders.test", role="client"),
        ])
        await session.flush()
        client = Client(user_id="user-client", company_name="Acme Builders")
        other = Client(user_id="user-other", company_name="Other Builders")
        session.add_all([client, other])
        session.add_all([
            EmailAlert(alert_type="new_job_posted", recipient_email="ops@groundup.test"),
            EmailAlert(alert_type="new_job_posted", recipient_email="ADMIN@groundup.test"),
            EmailAlert(alert_type="new_job_posted", recipient_email="retired@groundup.test", is_active=False),
            EmailAlert(alert_type="client_registered", recipient_email="sales@groundup.test"),
        ])
        await session.commit()
        return {"client_id": client.id, "other_client_id": other.id}


@pytest.fixture
async def api(session_factory, processor, fanout, reconciler):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.processor = processor
    app.state.fanout = fanout
    app.state.reconciler = reconciler
    limiter.enabled = False

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await reconciler.drain()
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def fetch(session_factory):
    """Read rows in a fresh session so assertions see committed state."""

    async def _fetch(model, *criteria):
        async with session_factory() as session:
            result = await session.execute(select(model).where(*criteria))
            return list(result.scalars().unique().all())

    return _fetch


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def build_event(event_type: str, intent_id: str, **intent_fields) -> dict:
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": 50000,
        "currency": "usd",
        "created": 1792368000,
        "payment_method_types": ["card"],
        "latest_charge": f"ch_{intent_id[3:]}",
        "status": "succeeded",
    }
    intent.update(intent_fields)
    return {
        "id": f"evt_{intent_id[3:]}_{event_type.rsplit('.', 1)[-1]}",
        "object": "event",
        "type": event_type,
        "data": {"object": intent},
    }


@pytest.fixture
def send_event(api):
    """POST an event to /stripe-webhook with a valid signature."""

    async def _send(event, secret=WEBHOOK_SECRET, body=None):
        payload = body if body is not None else json.dumps(event).encode()
        return await api.post(
            "/stripe-webhook",
            content=payload,
            headers={"stripe-signature": sign_payload(payload, secret), "content-type": "application/json"},
        )

    return _send


@pytest.fixture
def checkout(api, seeded):
    """Open a checkout through the API; returns the response JSON."""

    async def _checkout(classification="STANDARD", client_id=None, existing_job_id=None, **job_fields):
        body = {
            "jobPostData": {
                "title": job_fields.pop("title", "Journeyman Electrician"),
                "type": "Full-time",
                "classification": classification,
                "location": "Austin, TX",
                "salary": "$40/hr",
                "description": "Commercial wiring",
                **job_fields,
            },
            "companyData": {"name": "Acme Builders", "email": "hiring@acme.test"},
            "clientId": client_id or seeded["client_id"],
        }
        if existing_job_id:
            body["existingJobId"] = existing_job_id
        return await api.post("/create-payment-intent", json=body)

    return _checkout


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def sign():
    return sign_payload
