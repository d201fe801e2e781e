"""
Internal alert dispatch.

Alerts (new job posted, client registered, unpaid staged job) are handed to
the send-email-alert endpoint as one JSON call carrying the recipient list.
"""
from typing import Any, Dict

import httpx

from app.config import Settings
from app.services.errors import AlertDispatchError
from app.services.gateway import ServiceGateway, get_gateway
from app.utils.logger import logger


class LoggingAlertDispatcher:

    async def dispatch(self, payload: Dict[str, Any]) -> None:
        logger.info(
            f"alert.logged_only type={payload.get('alertType')}",
            extra={"recipients": payload.get("recipientEmails")},
        )


class HttpAlertDispatcher:

    def __init__(self, url: str, service_key: str, gateway: ServiceGateway = None, transport=None):
        self.url = url
        self.service_key = service_key
        self.gateway = gateway or get_gateway()
        self._transport = transport

    async def _post(self, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.service_key}"},
                json=payload,
            )
        if not response.is_success:
            raise AlertDispatchError(f"Alert endpoint returned {response.status_code}: {response.text[:200]}")

    async def dispatch(self, payload: Dict[str, Any]) -> None:
        try:
            await self.gateway.execute("alerts", self._post, payload)
        except AlertDispatchError:
            raise
        except Exception as exc:
            raise AlertDispatchError(str(exc)) from exc
        logger.info(
            f"alert.sent type={payload.get('alertType')}",
            extra={"recipients": payload.get("recipientEmails")},
        )


def build_alert_dispatcher(settings: Settings):
    if settings.alert_dispatch_url:
        return HttpAlertDispatcher(settings.alert_dispatch_url, settings.supabase_service_role_key)
    logger.info("No alert endpoint configured, alerts will be logged only")
    return LoggingAlertDispatcher()
