"""Confidence scoring and validation rules shared by every strategy.

Every candidate offer goes through :class:`ValidationEngine` before it can
leave a strategy as a success, so the confidence floor, the placeholder
image denylist and the price-order rule are enforced in one place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from offer_scraper.configs import Settings, settings

from .models import LowConfidence, OfferCandidate, ProductOffer, ValidationFailure

logger = logging.getLogger("offer_scraper.confidence")

CONFIDENCE_FLOOR = 50

COMPLETENESS_BASE = 70
MISSING_NAME_PENALTY = 30
MISSING_IMAGE_PENALTY = 20
MISSING_SALE_PRICE_PENALTY = 20
PLACEHOLDER_IMAGE_PENALTY = 20
INVALID_ORIGINAL_PRICE_PENALTY = 20
PRICE_ORDER_PENALTY = 25


def clamp_confidence(value: int) -> int:
    return max(0, min(100, int(value)))


@dataclass(slots=True)
class ConfidenceScore:
    """A 0-100 confidence value with an audit trail of adjustments."""

    value: int
    adjustments: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.value = clamp_confidence(self.value)

    def adjust(self, delta: int, reason: str) -> None:
        if not delta:
            return
        self.value = clamp_confidence(self.value + delta)
        self.adjustments.append(f"{delta:+d}: {reason}")


@dataclass(frozen=True)
class PriceBand:
    """Inclusive plausible range for a sale price; either bound may be open."""

    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None

    def contains(self, price: Decimal) -> bool:
        if self.minimum is not None and price < self.minimum:
            return False
        if self.maximum is not None and price > self.maximum:
            return False
        return True

    def describe(self) -> str:
        low = f"${self.minimum}" if self.minimum is not None else "-inf"
        high = f"${self.maximum}" if self.maximum is not None else "+inf"
        return f"[{low}, {high}]"


class ValidationEngine:
    """Downgrade or reject candidate offers according to shared rules."""

    def __init__(
        self,
        price_band: Optional[PriceBand] = None,
        placeholder_hosts: Optional[Iterable[str]] = None,
    ) -> None:
        self.price_band = price_band or PriceBand()
        hosts = settings.PLACEHOLDER_IMAGE_HOSTS if placeholder_hosts is None else placeholder_hosts
        self.placeholder_hosts = frozenset(host.lower().strip() for host in hosts)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ValidationEngine":
        return cls(
            price_band=PriceBand(config.PRICE_BAND_MIN, config.PRICE_BAND_MAX),
            placeholder_hosts=config.PLACEHOLDER_IMAGE_HOSTS,
        )

    def is_placeholder_image(self, image_url: Optional[str]) -> bool:
        """True for inline data URLs and images served from a denylisted host."""
        if not image_url:
            return False
        if image_url.strip().lower().startswith("data:"):
            return True
        try:
            host = (urlparse(image_url).hostname or "").lower()
        except ValueError:
            return False
        return any(
            host == blocked or host.endswith("." + blocked)
            for blocked in self.placeholder_hosts
        )

    def score_completeness(
        self, candidate: OfferCandidate, base: int = COMPLETENESS_BASE
    ) -> ConfidenceScore:
        """Arithmetic confidence for heuristic extractions that report none."""
        score = ConfidenceScore(base)
        if not candidate.name:
            score.adjust(-MISSING_NAME_PENALTY, "no product name")
        if not candidate.image_url:
            score.adjust(-MISSING_IMAGE_PENALTY, "no product image")
        elif self.is_placeholder_image(candidate.image_url):
            score.adjust(-PLACEHOLDER_IMAGE_PENALTY, "placeholder image")
        if not candidate.sale_price:
            score.adjust(-MISSING_SALE_PRICE_PENALTY, "sale price missing or zero")
        return score

    def enforce_floor(self, score: ConfidenceScore) -> None:
        if score.value < CONFIDENCE_FLOOR:
            raise LowConfidence(
                f"Confidence too low ({score.value}%) - data may be inaccurate"
            )

    def finalize(
        self,
        candidate: OfferCandidate,
        score: ConfidenceScore,
        source_url: str,
        price_order_penalty: int = PRICE_ORDER_PENALTY,
    ) -> ProductOffer:
        """Apply every rule and build the offer, or raise a typed failure.

        Raises:
            ValidationFailure: missing required field, placeholder or
                non-http(s) image, or sale price outside the configured band.
            LowConfidence: remaining confidence below the floor.
        """
        missing = [
            label
            for label, value in (
                ("name", candidate.name),
                ("imageUrl", candidate.image_url),
                ("salePrice", candidate.sale_price),
            )
            if not value
        ]
        if missing:
            raise ValidationFailure(
                f"Missing required product fields ({', '.join(missing)})"
            )

        if self.is_placeholder_image(candidate.image_url):
            raise ValidationFailure(f"Placeholder image URL: {candidate.image_url}")
        if not candidate.image_url.lower().startswith(("http://", "https://")):
            raise ValidationFailure(f"Image URL is not absolute http(s): {candidate.image_url}")

        sale_price = candidate.sale_price
        if sale_price <= 0:
            raise ValidationFailure(f"Invalid sale price: {sale_price}")
        if not self.price_band.contains(sale_price):
            raise ValidationFailure(
                f"Sale price ${sale_price} outside plausible band {self.price_band.describe()}"
            )

        original_price = candidate.original_price
        if original_price is not None:
            if original_price <= 0 or not self.price_band.contains(original_price):
                logger.info("Discarding implausible original price %s", original_price)
                original_price = None
                score.adjust(-INVALID_ORIGINAL_PRICE_PENALTY, "implausible original price")
            elif original_price <= sale_price:
                logger.info(
                    "Original price %s not above sale price %s, discarding it",
                    original_price,
                    sale_price,
                )
                original_price = None
                score.adjust(-price_order_penalty, "original price not above sale price")

        self.enforce_floor(score)

        return ProductOffer(
            name=candidate.name,
            brand=candidate.brand or None,
            image_url=candidate.image_url,
            sale_price=sale_price,
            original_price=original_price,
            source_url=source_url,
        )
