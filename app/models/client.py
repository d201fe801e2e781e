from sqlalchemy import Column, String, DateTime, Boolean, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid


class Profile(Base):
    """User account as seen by the payments service (admins and clients)"""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), unique=True, nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    full_name = Column(String)
    role = Column(String(20), nullable=False, default="client", index=True)  # 'admin' | 'client'
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Client(Base):
    """
    Company profile bound 1:1 to a user account.
    Read-only for payments, except welcome_email_sent which flips exactly once.
    """
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("profiles.user_id"), unique=True, nullable=False, index=True)

    company_name = Column(String)
    contact_phone = Column(String)
    address = Column(Text)

    welcome_email_sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    profile = relationship("Profile", lazy="joined")
    job_posts = relationship("JobPost", back_populates="client")

    @property
    def email(self):
        return self.profile.email if self.profile else None

    @property
    def display_name(self) -> str:
        if self.profile and self.profile.full_name:
            return self.profile.full_name
        return "Client"
