"""
Job posting price list.

The server-side table is authoritative: a client-supplied classification only
selects a row, the amount always comes from here.
"""
from dataclasses import dataclass, field
from typing import Dict, Tuple

from app.services.errors import InvalidClassification


@dataclass(frozen=True)
class PriceTier:
    classification: str
    price_cents: int
    label: str
    description: str
    stripe_price_id: str
    features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def price_dollars(self) -> int:
        return self.price_cents // 100

    def to_dict(self) -> dict:
        return {
            "classification": self.classification,
            "price_cents": self.price_cents,
            "price": self.price_dollars,
            "label": self.label,
            "description": self.description,
            "features": list(self.features),
        }


JOB_PRICING: Dict[str, PriceTier] = {
    "STANDARD": PriceTier(
        classification="STANDARD",
        price_cents=50000,
        label="Standard (Worker/Tradesman)",
        description="For general tradesmen positions",
        stripe_price_id="price_standard_job",
        features=(
            "Job posting visibility",
            "Basic candidate matching",
            "Standard support",
        ),
    ),
    "PREMIUM": PriceTier(
        classification="PREMIUM",
        price_cents=150000,
        label="Premium (Project Manager, Superintendent, Executive)",
        description="For leadership and management positions",
        stripe_price_id="price_premium_job",
        features=(
            "Premium job posting visibility",
            "Advanced candidate matching",
            "Priority support",
            "Enhanced analytics",
            "Dedicated account manager",
        ),
    ),
}


def get_price_tier(classification) -> PriceTier:
    """Look up a tier; unknown or non-string classifications are rejected."""
    if not isinstance(classification, str) or classification not in JOB_PRICING:
        raise InvalidClassification()
    return JOB_PRICING[classification]
