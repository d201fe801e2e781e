"""Payment receipt email built from a succeeded PaymentIntent snapshot"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.services.email_templates import get_renderer
from app.services.mailer import EmailMessage


@dataclass(frozen=True)
class Receipt:
    invoice_number: str
    payment_date: str
    amount: str
    payment_method: str
    transaction_id: str


def invoice_number(payment_intent_id: str) -> str:
    return f"INV-{payment_intent_id[-8:].upper()}"


def format_payment_date(created: Optional[int]) -> str:
    moment = datetime.fromtimestamp(created, tz=timezone.utc) if created else datetime.now(timezone.utc)
    return f"{moment:%B} {moment.day}, {moment.year}"


def mask_payment_method(intent: Dict[str, Any]) -> str:
    """'VISA •••• 4242' when card details were expanded, else the method type"""
    method = intent.get("payment_method")
    if isinstance(method, dict) and method.get("card"):
        card = method["card"]
        return f"{(card.get('brand') or 'card').upper()} •••• {card.get('last4', '????')}"
    types = intent.get("payment_method_types") or []
    return types[0].upper() if types else "Card"


def build_receipt(intent: Dict[str, Any]) -> Receipt:
    return Receipt(
        invoice_number=invoice_number(intent["id"]),
        payment_date=format_payment_date(intent.get("created")),
        amount=f"{(intent.get('amount') or 0) / 100:.2f}",
        payment_method=mask_payment_method(intent),
        transaction_id=intent["id"],
    )


def build_receipt_email(receipt: Receipt, job_post, recipient: str) -> EmailMessage:
    subject = f"Payment Receipt {receipt.invoice_number} - {job_post.title}"
    rows = [
        ("Invoice", receipt.invoice_number),
        ("Date", receipt.payment_date),
        ("Amount", f"${receipt.amount} USD"),
        ("Payment method", receipt.payment_method),
        ("Transaction ID", receipt.transaction_id),
        ("Job", job_post.title),
        ("Company", job_post.company_name or ""),
        ("Classification", job_post.classification),
        ("Location", job_post.location or ""),
        ("Type", job_post.job_type or ""),
    ]
    renderer = get_renderer()
    return EmailMessage(
        to=[recipient],
        subject=subject,
        html=renderer.render("receipt.html", rows=rows),
        text=renderer.render("receipt.txt", rows=rows),
        tags={
            "invoice": receipt.invoice_number,
            "amount": receipt.amount,
            "job": job_post.title,
        },
    )
