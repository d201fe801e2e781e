from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid


class PaymentTransaction(Base):
    """One row per Stripe payment intent; a retried checkout opens a new intent and a new row"""
    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_post_id = Column(String(36), ForeignKey("job_posts.id"), nullable=False, index=True)

    stripe_payment_intent_id = Column(String, unique=True, nullable=False, index=True)
    stripe_charge_id = Column(String, nullable=True)

    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")

    # Status: pending -> succeeded | failed | canceled
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_method = Column(String, nullable=True)
    failure_reason = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    job_post = relationship("JobPost", back_populates="transactions")
