"""
SQLAlchemy model for the notification_outbox table.

Rows are written in the same commit as the state change that causes them and
delivered afterwards, inline by the webhook or by the outbox worker.
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, func
from app.database import Base
import uuid


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String(50), nullable=False, index=True)

    # e.g. 'invoice:pi_123' - one row per notification, ever
    dedupe_key = Column(String(255), nullable=False, unique=True)

    # Status: pending → processing → delivered | failed
    status = Column(String(20), nullable=False, default="pending", index=True)
    payload = Column(JSON, nullable=False, default=dict)
    last_error = Column(Text, nullable=True)

    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
