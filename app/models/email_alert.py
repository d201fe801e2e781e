from sqlalchemy import Column, String, DateTime, Boolean, Text, ForeignKey
from datetime import datetime
from app.database import Base
import uuid

# Alert types: 'new_job_posted', 'client_registered', 'no_sale_job_staged'
ALERT_TYPES = {'new_job_posted', 'client_registered', 'no_sale_job_staged'}


class EmailAlert(Base):
    """Admin-configured extra recipient for an alert type"""
    __tablename__ = "email_alerts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    alert_type = Column(String(50), nullable=False, index=True)
    recipient_email = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class EmailNotification(Base):
    """Delivery record for emails sent to clients (invoices)"""
    __tablename__ = "email_notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    recipient_email = Column(String, nullable=False)
    email_type = Column(String(50), nullable=False, index=True)
    subject = Column(Text)
    status = Column(String(20), nullable=False, default="sending")  # sending, sent, logged, failed
    resend_email_id = Column(String, nullable=True)
    stripe_payment_intent_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
