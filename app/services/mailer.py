"""
Email delivery capability.

The fanout receives a mailer at construction time:
  - ResendMailer when RESEND_API_KEY is set (Resend HTTP API via httpx)
  - LoggingMailer otherwise; it logs the would-be email and returns no id
"""
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from app.config import Settings
from app.services.errors import MailerError
from app.services.gateway import ServiceGateway, get_gateway
from app.utils.logger import logger

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html: str
    text: str = ""
    tags: dict = field(default_factory=dict)


class LoggingMailer:
    """Stand-in used when no provider key is configured"""

    async def send(self, message: EmailMessage) -> Optional[str]:
        summary = " ".join(f"{k}={v}" for k, v in message.tags.items())
        logger.info(
            f"email.logged_only subject={message.subject!r} {summary}".rstrip(),
            extra={"recipients": message.to},
        )
        return None


class ResendMailer:
    """Sends through the Resend REST API; returns the provider message id"""

    def __init__(self, api_key: str, sender: str, gateway: ServiceGateway = None, transport=None):
        self.api_key = api_key
        self.sender = sender
        self.gateway = gateway or get_gateway()
        self._transport = transport

    async def _post(self, message: EmailMessage) -> str:
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": message.to,
                    "subject": message.subject,
                    "html": message.html,
                    "text": message.text or None,
                },
            )
        if response.status_code >= 400:
            raise MailerError(f"Resend returned {response.status_code}: {response.text[:200]}")
        return response.json().get("id")

    async def send(self, message: EmailMessage) -> Optional[str]:
        try:
            message_id = await self.gateway.execute("resend", self._post, message)
        except MailerError:
            raise
        except Exception as exc:
            raise MailerError(str(exc)) from exc
        logger.info("email.sent", extra={"message_id": message_id, "recipients": message.to})
        return message_id


def build_mailer(settings: Settings):
    if settings.resend_api_key:
        return ResendMailer(settings.resend_api_key, settings.email_from)
    logger.info("RESEND_API_KEY not set, invoice emails will be logged only")
    return LoggingMailer()
