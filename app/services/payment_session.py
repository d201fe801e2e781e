"""
Checkout session controller (headless counterpart of the payment modal).

    idle -> creating_intent -> ready -> submitting -> succeeded | failed

A failed confirmation reports FAILED and leaves the session in READY so the
same intent can be resubmitted. close() always returns to IDLE and drops the
client secret; the next open() asks the server for a fresh intent.
"""
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from app.services.errors import InvalidTransition
from app.utils.logger import logger


class CheckoutState(str, Enum):
    IDLE = "idle"
    CREATING_INTENT = "creating_intent"
    READY = "ready"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PaymentSession:
    """
    create_intent(request) -> {"clientSecret", "jobPostId", "paymentIntentId"}
    confirm(client_secret) -> None on success, or the processor's error message
    on_success() is called once after a confirmed payment.
    """

    def __init__(
        self,
        create_intent: Callable[[Dict[str, Any]], Awaitable[Dict[str, str]]],
        confirm: Callable[[str], Awaitable[Optional[str]]],
        on_success: Callable[[], Any] = None,
    ):
        self._create_intent = create_intent
        self._confirm = confirm
        self._on_success = on_success
        self.state = CheckoutState.IDLE
        self.client_secret: Optional[str] = None
        self.job_post_id: Optional[str] = None
        self.message: Optional[str] = None
        self.can_retry = False

    def _require(self, action: str, *states: CheckoutState) -> None:
        if self.state not in states:
            raise InvalidTransition("checkout", self.state.value, action)

    async def open(self, request: Dict[str, Any]) -> CheckoutState:
        self._require("open", CheckoutState.IDLE)
        self.state = CheckoutState.CREATING_INTENT
        self.message = None
        self.can_retry = False
        try:
            response = await self._create_intent(request)
            secret = response["clientSecret"]
        except Exception as exc:
            logger.warning(f"checkout.intent_failed {exc}")
            self.state = CheckoutState.IDLE
            self.message = str(exc) or "There was an error setting up payment. Please try again."
            self.can_retry = True
            return self.state

        self.client_secret = secret
        self.job_post_id = response.get("jobPostId")
        self.state = CheckoutState.READY
        return self.state

    async def submit(self) -> CheckoutState:
        """Confirm the held intent; returns SUCCEEDED or FAILED."""
        self._require("submit", CheckoutState.READY)
        self.state = CheckoutState.SUBMITTING
        self.message = None
        try:
            error = await self._confirm(self.client_secret)
        except Exception as exc:
            error = str(exc) or "An unexpected error occurred"

        if error:
            self.message = error
            self.state = CheckoutState.READY
            return CheckoutState.FAILED

        self.state = CheckoutState.SUCCEEDED
        self.message = "Payment successful!"
        if self._on_success is not None:
            self._on_success()
        self.close()
        return CheckoutState.SUCCEEDED

    def close(self) -> None:
        self.state = CheckoutState.IDLE
        self.client_secret = None
        self.job_post_id = None
        self.can_retry = False
