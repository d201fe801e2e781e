# Database models package
from app.models.client import Profile, Client
from app.models.job_post import JobPost
from app.models.payment_transaction import PaymentTransaction
from app.models.email_alert import EmailAlert, EmailNotification
from app.models.notification_outbox import NotificationOutbox

__all__ = [
    "Profile",
    "Client",
    "JobPost",
    "PaymentTransaction",
    "EmailAlert",
    "EmailNotification",
    "NotificationOutbox",
]
