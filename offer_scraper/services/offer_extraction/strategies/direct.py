"""Direct-fetch strategy: plain HTTP, structured data first, model second."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import requests

from ..confidence import ConfidenceScore, ValidationEngine
from ..extractors.base import FieldExtractor
from ..extractors.llm import DEFAULT_MODEL_CONFIDENCE, LLMFieldExtractor
from ..extractors.structured_data import StructuredDataFieldExtractor, find_page_prices
from ..html_excerpt import find_meta_image
from ..models import (
    ErrorKind,
    ExtractionContext,
    IncompleteStructuredData,
    NavigationTimeout,
    OfferCandidate,
    ProductOffer,
    UpstreamError,
    ValidationFailure,
)
from ..shopping import GoogleShoppingLookup
from ..utils import DEFAULT_HEADERS, compute_percent_off, declared_charset
from .base import BaseExtractionStrategy

HYBRID_CONFIDENCE = 90
CONFIRMED_PRICES_CONFIDENCE = 88
JSON_LD_NAME_BONUS = 10
META_IMAGE_BONUS = 5
REASONABLE_DISCOUNT_BONUS = 3


class DirectFetchStrategy(BaseExtractionStrategy):
    """Fetch the page without a browser; cheap, but blocked by many retailers.

    With a Serper key configured, a Google Shopping listing supplies name,
    brand and image while the fetched page supplies live prices. Otherwise,
    or when either half is missing, structured data is read first and the
    model is the fallback.
    """

    name = "direct"
    timeout_seconds = 10

    def __init__(
        self,
        engine: Optional[ValidationEngine] = None,
        structured_extractor: Optional[FieldExtractor] = None,
        fallback_extractor: Optional[FieldExtractor] = None,
        shopping_lookup: Optional[GoogleShoppingLookup] = None,
    ) -> None:
        super().__init__(engine)
        self.structured_extractor = structured_extractor or StructuredDataFieldExtractor()
        self.fallback_extractor = fallback_extractor or LLMFieldExtractor()
        self.shopping_lookup = shopping_lookup or GoogleShoppingLookup()

    def _extract_impl(
        self,
        url: str,
        context: ExtractionContext,
        diagnostics: Dict[str, Any],
    ) -> Tuple[ProductOffer, ConfidenceScore]:
        listing = self.shopping_lookup.search(url, context)
        context.raise_if_cancelled()

        html = self.fetch(url, context)
        diagnostics.update({"phase": "direct-fetch", "html_chars": len(html)})

        if listing is not None:
            hybrid = self.combine_with_page_prices(listing, html)
            if hybrid is not None:
                context.logger.info("[direct] Google Shopping hybrid for %s", url)
                diagnostics.update(
                    {
                        "phase": hybrid.source,
                        "extractor": "google-shopping",
                        "image_source": hybrid.image_source,
                    }
                )
                score = ConfidenceScore(HYBRID_CONFIDENCE)
                diagnostics["confidence_adjustments"] = score.adjustments
                return self.engine.finalize(hybrid, score, url), score
            context.logger.info("[direct] No live sale price on the page, skipping the listing")

        image_hint, hint_source = find_meta_image(html)
        partial = None
        fell_back = False
        try:
            candidate = self.structured_extractor.extract(html, url, context, image_hint=image_hint)
            diagnostics["extractor"] = self.structured_extractor.name
        except ValidationFailure as exc:
            if context.llm is None:
                raise
            if isinstance(exc, IncompleteStructuredData):
                partial = exc.partial
            context.logger.info(
                "[direct] %s, falling back to %s", exc.message, self.fallback_extractor.name
            )
            context.raise_if_cancelled()
            candidate = self.fallback_extractor.extract(
                html, url, context, image_hint=image_hint, partial=partial
            )
            diagnostics["extractor"] = self.fallback_extractor.name
            fell_back = True

        diagnostics["phase"] = candidate.source
        diagnostics["image_source"] = candidate.image_source or hint_source
        confidence = candidate.confidence
        score = ConfidenceScore(DEFAULT_MODEL_CONFIDENCE if confidence is None else confidence)
        if fell_back:
            self.merge_confirmed_fields(candidate, partial, score)
        diagnostics["confidence_adjustments"] = score.adjustments
        offer = self.engine.finalize(candidate, score, url)
        return offer, score

    @staticmethod
    def combine_with_page_prices(
        listing: OfferCandidate, html: str
    ) -> Optional[OfferCandidate]:
        """Listing identity plus the page's live prices; None without a sale price."""
        sale_price, original_price = find_page_prices(html)
        if sale_price is None:
            return None
        return OfferCandidate(
            name=listing.name,
            brand=listing.brand,
            image_url=listing.image_url,
            sale_price=sale_price,
            original_price=listing.original_price or original_price,
            confidence=HYBRID_CONFIDENCE,
            source="google-shopping-hybrid",
            image_source="google-shopping",
        )

    @staticmethod
    def merge_confirmed_fields(
        candidate: OfferCandidate,
        partial: Optional[OfferCandidate],
        score: ConfidenceScore,
    ) -> None:
        """Overlay fields that page markup confirmed onto a model candidate."""
        if partial is not None and partial.source == "json-ld" and partial.name:
            candidate.name = partial.name
            candidate.brand = candidate.brand or partial.brand
            score.adjust(+JSON_LD_NAME_BONUS, "product name from JSON-LD")
        if candidate.image_source == "meta-tag":
            score.adjust(+META_IMAGE_BONUS, "image pre-extracted from meta tags")
        if partial is not None and partial.sale_price and partial.original_price:
            candidate.sale_price = partial.sale_price
            candidate.original_price = partial.original_price
            score.adjust(
                max(0, CONFIRMED_PRICES_CONFIDENCE - score.value),
                "prices confirmed by page markup",
            )
        elif 10 <= compute_percent_off(candidate.original_price, candidate.sale_price) <= 80:
            score.adjust(+REASONABLE_DISCOUNT_BONUS, "discount looks reasonable")

    def fetch(self, url: str, context: ExtractionContext) -> str:
        context.logger.info("[direct] Fetching %s", url)
        try:
            response = requests.get(
                url,
                headers=DEFAULT_HEADERS,
                timeout=self.timeout_seconds,
                allow_redirects=True,
            )
        except requests.exceptions.Timeout as exc:
            raise NavigationTimeout(
                f"Page never loaded within {self.timeout_seconds}s: {url}"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}") from exc

        if response.status_code != 200:
            kind = (
                ErrorKind.UPSTREAM_RATE_LIMIT
                if response.status_code == 429
                else ErrorKind.UPSTREAM_ERROR
            )
            raise UpstreamError(
                f"HTTP {response.status_code} fetching {url}", kind, response.status_code
            )

        response.encoding = (
            declared_charset(response.headers) or response.apparent_encoding or "utf-8"
        )
        html = response.text
        context.logger.info("[direct] Fetched HTML: %d characters", len(html))
        return html
