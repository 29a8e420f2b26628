"""Google Shopping listing lookup through the Serper API."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import requests

from offer_scraper.configs import settings

from .models import ExtractionContext, OfferCandidate
from .utils import normalize_hostname, normalize_whitespace, to_decimal

_TITLE_SEPARATORS = re.compile(r"[|–—-]")
_LEADING_BRAND = re.compile(r"^([A-Z][a-zA-Z&\s]+?)(?:\s+[A-Z][a-z]|\s+\d|\s*$)")


def extract_brand_from_title(title: Optional[str]) -> Optional[str]:
    """Guess the brand from the leading capitalised words of a listing title."""
    if not title:
        return None
    cleaned = _TITLE_SEPARATORS.split(title)[0].strip()
    match = _LEADING_BRAND.match(cleaned)
    if match:
        return match.group(1).strip()
    words = cleaned.split()
    if words and words[0][0].isupper():
        return words[0]
    return None


def pick_best_match(results: List[Dict[str, Any]], url: str) -> Optional[Dict[str, Any]]:
    """Prefer the listing sold by the page's own store, else the first one."""
    listings = [result for result in results if isinstance(result, dict)]
    if not listings:
        return None
    domain = normalize_hostname(url)
    store = domain.split(".")[0]
    for listing in listings:
        if domain in (listing.get("link") or ""):
            return listing
        if store and store in str(listing.get("source") or "").lower():
            return listing
    return listings[0]


class GoogleShoppingLookup:
    """Find a product page's Google Shopping listing by searching for its URL.

    Listing name, brand and image are reliable, but listing prices trail the
    retailer's, so callers pair the result with prices read from the live page.
    Every failure is soft: the lookup logs a warning and returns None.
    """

    service_name = "Serper"
    timeout_seconds = 10
    result_count = 3

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None) -> None:
        self.api_key = api_key or settings.SERPER_API_KEY
        self.api_url = api_url or settings.SERPER_API_URL

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def search(self, url: str, context: ExtractionContext) -> Optional[OfferCandidate]:
        if not self.enabled:
            return None

        context.logger.info("[shopping] Looking up %s on Google Shopping", url)
        try:
            response = requests.post(
                self.api_url,
                headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
                json={"q": url, "num": self.result_count},
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            context.logger.warning("[shopping] %s request failed: %s", self.service_name, exc)
            return None

        if response.status_code != 200:
            context.logger.warning(
                "[shopping] %s error: HTTP %s", self.service_name, response.status_code
            )
            return None
        try:
            data = response.json()
        except ValueError as exc:
            context.logger.warning("[shopping] %s sent invalid JSON: %s", self.service_name, exc)
            return None

        results = None
        if isinstance(data, dict):
            results = data.get("shopping_results") or data.get("shopping")
        listing = pick_best_match(results, url) if isinstance(results, list) else None
        if listing is None:
            context.logger.info("[shopping] No Google Shopping results for %s", url)
            return None

        title = listing.get("title")
        image_url = listing.get("imageUrl") or listing.get("thumbnail")
        if not (isinstance(title, str) and title.strip()) or not isinstance(image_url, str):
            context.logger.info("[shopping] Google Shopping result missing name or image")
            return None

        current_price = to_decimal(listing.get("extracted_price"))
        if current_price is None:
            current_price = to_decimal(listing.get("price"))
        old_price = to_decimal(listing.get("old_price"))
        if old_price is None:
            old_price = to_decimal(listing.get("extracted_old_price"))
        candidate = OfferCandidate(
            name=normalize_whitespace(title),
            brand=extract_brand_from_title(title),
            image_url=image_url,
            sale_price=current_price,
            original_price=old_price,
            source="google-shopping",
            image_source="google-shopping",
        )
        context.logger.info("[shopping] Google Shopping: %s", candidate.name)
        return candidate
