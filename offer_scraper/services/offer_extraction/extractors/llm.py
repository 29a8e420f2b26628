"""Language-model backed field extractor."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..html_excerpt import EXCERPT_CHAR_BUDGET, build_excerpt
from ..models import (
    ConfigurationError,
    ExtractionContext,
    OfferCandidate,
    ParseFailure,
    ValidationFailure,
)
from ..utils import first_json_object, normalize_whitespace, resolve_url, to_decimal
from .base import FieldExtractor

DEFAULT_MODEL_CONFIDENCE = 50

SYSTEM_PROMPT = """You are a product page parser. The HTML below comes from a retail product page, possibly a department store fetched through a rendering proxy. Extract the commercial offer and return ONLY a JSON object.

PRICE RULES
You must tell the ORIGINAL price apart from the SALE price when a sale is active:
1. ORIGINAL PRICE is the higher, struck-through, "was" price.
2. SALE PRICE is the lower, current, active price a shopper pays now.

ORIGINAL PRICE markers:
- Inside <s>, <del> or <strike> tags, or styled line-through
- Classes such as "compare-price", "compare-at-price", "was-price", "original-price", "price-regular"
- Text such as "Was $", "Originally $", "Compare at $", "Regular price $"
- Attributes such as data-testid="price-regular" or data-test="regular-price"

SALE PRICE markers:
- The prominent, active price
- Classes such as "sale-price", "price-sale", "current-price", "final-price"
- Attributes such as data-testid="price-sale" or data-test="sale-price"

DEPARTMENT STORE PATTERNS
- Nordstrom: data-testid="price-regular" is the original price, data-testid="price-sale" is the sale price
- Saks: data-test="product-price" is the sale price, the regular price is the struck-through price nearby
- Neiman Marcus: class*="price-sale" is the sale price, class*="price-regular" is the original price
- Shopify JSON: "price" and "compare_at_price" are in cents, divide by 100

Return exactly this structure:
{
  "name": "Product name without the brand",
  "brand": "Brand or null",
  "imageUrl": "Absolute URL of the main product image",
  "originalPrice": 435.00,
  "salePrice": 131.00,
  "confidence": 85
}

CONFIDENCE
- 90-100: both prices clearly present in structured markup
- 70-89: prices visible in plain HTML
- 50-69: only one price, or the prices are ambiguous
- below 50: data is missing

VALIDATION
- Prices are numbers, never strings with currency symbols.
- If only one price exists, originalPrice is null.
- originalPrice MUST be greater than salePrice when both exist.
- imageUrl must be an absolute http(s) URL that appears in the page. NEVER invent one and NEVER use placeholder hosts such as example.com, placeholder.com or placehold.it.
- If the name, image or sale price is not visibly present, do not guess: return {"error": "<what is missing>"}."""


class ExtractedOfferPayload(BaseModel):
    """Shape of the JSON object the model must return."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    brand: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    original_price: Optional[Decimal] = Field(default=None, alias="originalPrice")
    sale_price: Optional[Decimal] = Field(default=None, alias="salePrice")
    confidence: int = Field(default=DEFAULT_MODEL_CONFIDENCE)
    error: Optional[str] = None

    @field_validator("original_price", "sale_price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        parsed = to_decimal(value)
        if parsed is None:
            raise ValueError(f"not a price: {value!r}")
        return parsed

    @field_validator("confidence", mode="before")
    @classmethod
    def _parse_confidence(cls, value: Any) -> Any:
        if value is None or value == "":
            return DEFAULT_MODEL_CONFIDENCE
        try:
            return max(0, min(100, int(float(value))))
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"not a confidence: {value!r}") from exc


class LLMFieldExtractor(FieldExtractor):
    """Send a trimmed HTML excerpt to the model and parse its JSON reply."""

    name = "llm"

    def __init__(
        self,
        char_budget: int = EXCERPT_CHAR_BUDGET,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> None:
        self.char_budget = char_budget
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_messages(
        self,
        excerpt: str,
        image_hint: Optional[str],
        partial: Optional[OfferCandidate] = None,
    ) -> list[dict[str, str]]:
        user_prompt = f"Extract the product offer from this HTML:\n\n{excerpt}"
        if partial is not None and partial.sale_price and partial.original_price:
            user_prompt += (
                "\n\nCONFIRMED prices from page markup: "
                f"salePrice={partial.sale_price}, originalPrice={partial.original_price}"
            )
        if partial is not None and partial.source == "json-ld" and partial.name:
            user_prompt += f"\n\nCONFIRMED product name from JSON-LD: {partial.name}"
        if image_hint:
            user_prompt += (
                f"\n\nNOTE: Pre-extracted image URL: {image_hint} - use this for imageUrl."
            )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]

    def parse_reply(self, reply: str) -> ExtractedOfferPayload:
        """Parse the first JSON object in the reply.

        Raises:
            ParseFailure: no object found, or the object has the wrong shape.
        """
        data = first_json_object(reply)
        if data is None:
            raise ParseFailure("Failed to parse AI response: no JSON object found")
        try:
            return ExtractedOfferPayload.model_validate(data)
        except ValidationError as exc:
            raise ParseFailure(f"Failed to parse AI response: {exc.errors()[0]['msg']}") from exc

    def extract(
        self,
        html: str,
        page_url: str,
        context: ExtractionContext,
        image_hint: Optional[str] = None,
        partial: Optional[OfferCandidate] = None,
    ) -> OfferCandidate:
        if context.llm is None:
            raise ConfigurationError("A language-model client is required for AI extraction")

        excerpt = build_excerpt(html, self.char_budget)
        context.logger.info(
            "Sending %d chars of HTML (of %d) to the model for %s",
            len(excerpt),
            len(html),
            page_url,
        )
        context.raise_if_cancelled()
        reply = context.llm.complete(
            self.build_messages(excerpt, image_hint, partial),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        context.raise_if_cancelled()
        context.logger.debug("AI response: %s", reply)

        payload = self.parse_reply(reply)
        if payload.error:
            raise ValidationFailure(f"Model reported: {payload.error}")

        image_url = image_hint or resolve_url(payload.image_url, page_url)
        return OfferCandidate(
            name=normalize_whitespace(payload.name) if payload.name else None,
            brand=normalize_whitespace(payload.brand) if payload.brand else None,
            image_url=image_url,
            original_price=payload.original_price,
            sale_price=payload.sale_price,
            confidence=payload.confidence,
            source="ai-extraction",
            image_source="meta-tag" if image_hint else "model",
        )
