"""
Payment state machine for job posts and payment transactions.

Webhook events are folded into rows through explicit transition tables instead
of unconditional overwrites, so a late or out-of-order delivery can never move
a row backwards (e.g. a stale cancel arriving after the job was posted).

    next_job_state("pending_payment", PaymentEvent.SUCCEEDED)
        -> Transition(status="posted", payment_status="completed")
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from app.services.errors import InvalidTransition


class PaymentEvent(str, Enum):
    SUCCEEDED = "payment_intent.succeeded"
    FAILED = "payment_intent.payment_failed"
    CANCELED = "payment_intent.canceled"

    @classmethod
    def from_event_type(cls, event_type: str) -> Optional["PaymentEvent"]:
        """Map a Stripe event type; None for kinds we only acknowledge."""
        try:
            return cls(event_type)
        except ValueError:
            return None


@dataclass(frozen=True)
class Transition:
    status: str
    payment_status: Optional[str] = None
    # True when the row is already in the target state (redelivered event)
    duplicate: bool = False


# (job status, event) -> (new status, new payment_status)
JOB_TRANSITIONS: Dict[Tuple[str, PaymentEvent], Tuple[str, str]] = {
    ("pending_payment", PaymentEvent.SUCCEEDED): ("posted", "completed"),
    ("pending_payment", PaymentEvent.FAILED): ("draft", "failed"),
    ("pending_payment", PaymentEvent.CANCELED): ("draft", "pending"),
    # A declined card leaves the intent open; the checkout form resubmits it
    ("draft", PaymentEvent.SUCCEEDED): ("posted", "completed"),
    ("draft", PaymentEvent.FAILED): ("draft", "failed"),
    ("draft", PaymentEvent.CANCELED): ("draft", "pending"),
}

# Redelivery of the event that produced the current state
JOB_DUPLICATES = {
    ("posted", PaymentEvent.SUCCEEDED),
}

TRANSACTION_TRANSITIONS: Dict[Tuple[str, PaymentEvent], str] = {
    ("pending", PaymentEvent.SUCCEEDED): "succeeded",
    ("pending", PaymentEvent.FAILED): "failed",
    ("pending", PaymentEvent.CANCELED): "canceled",
    ("failed", PaymentEvent.SUCCEEDED): "succeeded",
    ("failed", PaymentEvent.CANCELED): "canceled",
}

TRANSACTION_DUPLICATES = {
    ("succeeded", PaymentEvent.SUCCEEDED),
    ("failed", PaymentEvent.FAILED),
    ("canceled", PaymentEvent.CANCELED),
}


def next_job_state(status: str, payment_status: str, event: PaymentEvent) -> Transition:
    """Return the job post's next (status, payment_status) or raise InvalidTransition."""
    if (status, event) in JOB_DUPLICATES:
        return Transition(status=status, payment_status=payment_status, duplicate=True)

    target = JOB_TRANSITIONS.get((status, event))
    if target is None:
        raise InvalidTransition("job_post", status, event.value)

    new_status, new_payment_status = target
    duplicate = (new_status, new_payment_status) == (status, payment_status)
    return Transition(status=new_status, payment_status=new_payment_status, duplicate=duplicate)


def next_transaction_state(status: str, event: PaymentEvent) -> Transition:
    """Return the transaction's next status or raise InvalidTransition."""
    if (status, event) in TRANSACTION_DUPLICATES:
        return Transition(status=status, duplicate=True)

    target = TRANSACTION_TRANSITIONS.get((status, event))
    if target is None:
        raise InvalidTransition("payment_transaction", status, event.value)
    return Transition(status=target)
