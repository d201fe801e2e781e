"""
Stripe payment processor adapter.

Two operations are used by the payment flow:
  - create_payment_intent: opens one PaymentIntent with automatic payment
    methods enabled.
  - verify_event: checks the Stripe-Signature header against the webhook
    signing secret and returns the parsed event as a plain dict.

Both are bounded by STRIPE_TIMEOUT_SECONDS; intent creation also goes
through the service gateway's circuit breaker. The Stripe SDK is synchronous,
so calls run in a worker thread.
"""
import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from app.config import Settings, get_settings
from app.services.errors import InvalidSignature, MalformedEvent, ProcessorError
from app.services.gateway import CircuitOpenError, ServiceGateway, get_gateway
from app.utils.logger import logger


@dataclass(frozen=True)
class CreatedIntent:
    id: str
    client_secret: str
    amount: int
    currency: str


class StripeProcessor:
    """Thin async wrapper over the Stripe SDK"""

    def __init__(self, settings: Settings = None, gateway: ServiceGateway = None):
        self.settings = settings or get_settings()
        self.gateway = gateway or get_gateway()

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        description: str,
    ) -> CreatedIntent:
        if not self.settings.stripe_secret_key:
            raise ProcessorError("Stripe secret key is not configured")

        def _create():
            return stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                metadata=metadata,
                description=description,
                automatic_payment_methods={"enabled": True},
                api_key=self.settings.stripe_secret_key,
                stripe_version=self.settings.stripe_api_version,
            )

        try:
            intent = await self.gateway.execute("stripe", asyncio.to_thread, _create)
        except asyncio.TimeoutError as exc:
            raise ProcessorError("Timed out creating payment intent") from exc
        except CircuitOpenError as exc:
            raise ProcessorError(str(exc)) from exc
        except stripe.StripeError as exc:
            raise ProcessorError(getattr(exc, "user_message", None) or str(exc)) from exc

        return CreatedIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
        )

    async def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Authenticate a webhook delivery before anything reads it.

        Raises InvalidSignature for a missing/bad/expired signature (or a
        verification timeout) and MalformedEvent when the authenticated body
        is not a JSON event.
        """
        if not signature:
            raise InvalidSignature("Missing stripe signature")
        if not self.settings.stripe_webhook_secret:
            raise InvalidSignature("Webhook signing secret is not configured")

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedEvent() from exc

        def _verify():
            return stripe.WebhookSignature.verify_header(
                text,
                signature,
                self.settings.stripe_webhook_secret,
                self.settings.webhook_tolerance_seconds,
            )

        # Local HMAC check, never counted against the stripe circuit
        try:
            await asyncio.wait_for(
                asyncio.to_thread(_verify),
                timeout=self.settings.stripe_timeout_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignature() from exc
        except asyncio.TimeoutError as exc:
            raise InvalidSignature("Signature verification timed out") from exc

        try:
            event = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedEvent() from exc

        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise MalformedEvent()
        logger.debug("webhook.verified", extra={"event_id": event.get("id"), "event_type": event["type"]})
        return event
