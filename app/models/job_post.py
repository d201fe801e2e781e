from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid

# Statuses: 'draft' -> 'pending_payment' -> 'posted'
JOB_STATUSES = ('draft', 'pending_payment', 'posted')
PAYMENT_STATUSES = ('pending', 'completed', 'failed')


class JobPost(Base):
    """
    Paid job posting.

    Invariant: status == 'posted' implies payment_status == 'completed'.
    Never deleted by the payment flow.
    """
    __tablename__ = "job_posts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)

    # Job details
    title = Column(String, nullable=False)
    job_type = Column(String)
    classification = Column(String(20), nullable=False)  # 'STANDARD' | 'PREMIUM'
    location = Column(String)
    salary = Column(String)
    description = Column(Text)
    requirements = Column(Text)
    benefits = Column(Text)

    # Company snapshot at posting time
    company_name = Column(String, default="")
    company_address = Column(String, default="")
    company_phone = Column(String, default="")
    company_email = Column(String, default="")
    company_website = Column(String, default="")
    company_description = Column(Text, default="")

    status = Column(String(20), nullable=False, default='draft', index=True)
    payment_status = Column(String(20), nullable=False, default='pending', index=True)

    amount_cents = Column(Integer)
    stripe_price_id = Column(String)
    stripe_payment_intent_id = Column(String, unique=True, nullable=True, index=True)

    posted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="job_posts")
    transactions = relationship("PaymentTransaction", back_populates="job_post")

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "title": self.title,
            "job_type": self.job_type,
            "classification": self.classification,
            "location": self.location,
            "salary": self.salary,
            "company_name": self.company_name,
            "status": self.status,
            "payment_status": self.payment_status,
            "amount_cents": self.amount_cents,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
            "posted_at": self.posted_at.isoformat() if self.posted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
