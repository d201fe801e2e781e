from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
import os

class Settings(BaseSettings):
    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_version: str = "2024-12-18.acacia"
    stripe_timeout_seconds: float = 10.0
    webhook_tolerance_seconds: int = 300

    # Supabase (service credential for the alert edge function)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Email - Resend; empty key means log-only delivery
    resend_api_key: str = ""
    email_from: str = "GroundUp Careers <billing@groundupcareers.com>"

    # Internal alert endpoint, defaults to the send-email-alert edge function
    alert_dispatch_url: Optional[str] = None

    # Public base URL used for dashboard deep links
    app_url: str = "https://groundupcareers.com"

    # Upper bound the webhook waits on inline notification delivery
    notification_wait_seconds: float = 5.0
    outbox_max_attempts: int = 3

    # Database - Railway provides DATABASE_URL, fallback to SQLite for local
    database_url: str = None

    # App Settings
    app_name: str = "GroundUp Payments"
    app_version: str = "1.0.0"
    debug: bool = False

    # API Settings
    backend_host: str = "0.0.0.0"
    backend_port: int = int(os.getenv("PORT", "8000"))
    allowed_origins: str = "*"
    payment_rate_limit: str = "20/minute"

    class Config:
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Auto-detect database URL
        if self.database_url is None:
            railway_db = os.getenv("DATABASE_URL")
            if railway_db:
                # SQLAlchemy async needs postgresql+asyncpg://
                if railway_db.startswith("postgres://"):
                    self.database_url = railway_db.replace("postgres://", "postgresql+asyncpg://", 1)
                elif railway_db.startswith("postgresql://"):
                    self.database_url = railway_db.replace("postgresql://", "postgresql+asyncpg://", 1)
                else:
                    self.database_url = railway_db
            else:
                # Fallback to local SQLite
                self.database_url = "sqlite+aiosqlite:///./groundup_payments.db"

        if self.alert_dispatch_url is None and self.supabase_url:
            self.alert_dispatch_url = f"{self.supabase_url.rstrip('/')}/functions/v1/send-email-alert"

    @property
    def dashboard_url(self) -> str:
        return self.app_url.rstrip("/") + "/dashboard"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
