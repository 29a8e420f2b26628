"""Deterministic extractor for JSON-LD, Shopify product JSON and microdata."""

from __future__ import annotations

import json
import logging
import re
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup

from ..html_excerpt import find_meta_image
from ..models import ExtractionContext, IncompleteStructuredData, OfferCandidate
from ..utils import normalize_whitespace, resolve_url, to_decimal
from .base import FieldExtractor

logger = logging.getLogger("offer_scraper.extractor.structured_data")

JSON_LD_CONFIDENCE = 95
PRICE_MARKUP_CONFIDENCE = 88


def _is_product(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    item_type = item.get("@type")
    if isinstance(item_type, list):
        return "Product" in item_type
    return item_type == "Product"


def _iter_json_ld_items(data: Any) -> Iterable[dict]:
    if isinstance(data, list):
        for entry in data:
            yield from _iter_json_ld_items(entry)
        return
    if not isinstance(data, dict):
        return
    graph = data.get("@graph")
    if graph is not None:
        yield from _iter_json_ld_items(graph)
        return
    yield data


def _is_complete(candidate: Optional[OfferCandidate]) -> bool:
    return bool(
        candidate is not None
        and candidate.name
        and candidate.image_url
        and candidate.sale_price
    )


def _first_image(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("url") or value.get("contentUrl")
    return value if isinstance(value, str) else None


def _brand_name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, str) and value.strip():
        return normalize_whitespace(value)
    return None


def _order_prices(
    current: Optional[Decimal], compare: Optional[Decimal]
) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """Return (sale, original) from a current/compare pair in either order."""
    if current is None:
        return compare, None
    if compare is None or compare == current:
        return current, None
    if compare > current:
        return current, compare
    logger.info("Unusual markup: price %s above highPrice %s, swapping", current, compare)
    return compare, current


class StructuredDataFieldExtractor(FieldExtractor):
    """Read offers from machine-readable markup without calling a model."""

    name = "structured-data"

    def extract(
        self,
        html: str,
        page_url: str,
        context: ExtractionContext,
        image_hint: Optional[str] = None,
        partial: Optional[OfferCandidate] = None,
    ) -> OfferCandidate:
        """Return a complete candidate from markup.

        Raises:
            IncompleteStructuredData: nothing complete was found. The best
                partial candidate, if any, rides along for a fallback.
        """
        soup = BeautifulSoup(html, "html.parser")

        json_ld = self._from_json_ld(soup, page_url)
        if _is_complete(json_ld):
            candidate = json_ld
        else:
            candidate = self._from_shopify_json(soup) or self._from_microdata(soup)
            if candidate is not None:
                self._fill_from_meta(candidate, soup, html, page_url, image_hint)

        if not _is_complete(candidate):
            raise IncompleteStructuredData(
                "No complete structured product data found", candidate or json_ld
            )

        context.logger.info(
            "Structured data (%s) gave %s at %s",
            candidate.source,
            candidate.name,
            candidate.sale_price,
        )
        return candidate

    def _from_json_ld(self, soup: BeautifulSoup, page_url: str) -> Optional[OfferCandidate]:
        """First complete JSON-LD Product, else the first partial one."""
        first_partial = None
        for script in soup.find_all("script", type="application/ld+json"):
            raw = script.string or script.get_text()
            if not raw:
                continue
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue

            for item in _iter_json_ld_items(data):
                if not _is_product(item):
                    continue
                offers = item.get("offers")
                if isinstance(offers, list):
                    offers = offers[0] if offers else None
                if not isinstance(offers, dict):
                    offers = {}

                current = to_decimal(offers.get("price") or offers.get("lowPrice"))
                spec = offers.get("priceSpecification")
                compare = to_decimal(offers.get("highPrice"))
                if compare is None and isinstance(spec, dict):
                    compare = to_decimal(spec.get("price"))
                sale_price, original_price = _order_prices(current, compare)

                name = item.get("name")
                if not (isinstance(name, str) and name.strip()):
                    name = None
                candidate = OfferCandidate(
                    name=normalize_whitespace(name) if name else None,
                    brand=_brand_name(item.get("brand")),
                    image_url=resolve_url(_first_image(item.get("image")), page_url),
                    sale_price=sale_price,
                    original_price=original_price,
                    confidence=JSON_LD_CONFIDENCE,
                    source="json-ld",
                    image_source="json-ld",
                )
                if _is_complete(candidate):
                    return candidate
                if first_partial is None:
                    first_partial = candidate
        return first_partial

    def _from_shopify_json(self, soup: BeautifulSoup) -> Optional[OfferCandidate]:
        script = soup.find("script", attrs={"type": "application/json", "data-product-json": True})
        if script is None or not script.string:
            return None
        try:
            data = json.loads(script.string)
        except json.JSONDecodeError as exc:
            logger.info("Failed to parse Shopify product JSON: %s", exc)
            return None
        if not isinstance(data, dict):
            return None

        sources: List[dict] = [data]
        variants = data.get("variants")
        if isinstance(variants, list) and variants and isinstance(variants[0], dict):
            sources.append(variants[0])

        for source in sources:
            price = to_decimal(source.get("price"))
            compare = to_decimal(source.get("compare_at_price"))
            if price and compare:
                # Shopify reports cents.
                return OfferCandidate(
                    name=normalize_whitespace(data["title"]) if data.get("title") else None,
                    brand=_brand_name(data.get("vendor")),
                    sale_price=price / 100,
                    original_price=compare / 100,
                    confidence=PRICE_MARKUP_CONFIDENCE,
                    source="shopify-json",
                )
        return None

    def _from_microdata(self, soup: BeautifulSoup) -> Optional[OfferCandidate]:
        price_tag = soup.find(attrs={"itemprop": "price", "content": True})
        if price_tag is None:
            return None
        compare_tag = soup.find(attrs={"itemprop": ["highPrice", "listPrice"], "content": True})
        current = to_decimal(price_tag["content"])
        compare = to_decimal(compare_tag["content"]) if compare_tag else None
        if current is None or compare is None or compare <= current:
            return None
        return OfferCandidate(
            sale_price=current,
            original_price=compare,
            confidence=PRICE_MARKUP_CONFIDENCE,
            source="microdata",
        )

    def _fill_from_meta(
        self,
        candidate: OfferCandidate,
        soup: BeautifulSoup,
        html: str,
        page_url: str,
        image_hint: Optional[str],
    ) -> None:
        if not candidate.name:
            og_title = soup.find("meta", attrs={"property": "og:title", "content": True})
            heading = soup.find("h1")
            if og_title is not None:
                candidate.name = normalize_whitespace(og_title["content"])
            elif heading is not None and heading.get_text(strip=True):
                candidate.name = normalize_whitespace(heading.get_text())
        if not candidate.image_url:
            image_url, image_source = (image_hint, "hint") if image_hint else find_meta_image(html)
            candidate.image_url = resolve_url(image_url, page_url)
            candidate.image_source = image_source


_SALE_PRICE_PATTERNS = (
    re.compile(
        r'<[^>]*class="[^"]*(?:sale-price|price-sale|final-price|current-price)[^"]*"[^>]*>'
        r"\s*\$?\s*(\d+(?:\.\d{2})?)",
        re.I,
    ),
    re.compile(r'<span[^>]*class="[^"]*price[^"]*"[^>]*>\s*\$?\s*(\d+(?:\.\d{2})?)', re.I),
    re.compile(r'"price":\s*"?(\d+(?:\.\d{2})?)"'),
    re.compile(r'"salePrice":\s*"?(\d+(?:\.\d{2})?)"'),
)
_ORIGINAL_PRICE_PATTERNS = (
    re.compile(
        r'<[^>]*class="[^"]*(?:original-price|was-price|compare-at|price-original)[^"]*"[^>]*>'
        r"\s*\$?\s*(\d+(?:\.\d{2})?)",
        re.I,
    ),
    re.compile(r'"originalPrice":\s*"?(\d+(?:\.\d{2})?)"'),
    re.compile(r'"compareAtPrice":\s*"?(\d+(?:\.\d{2})?)"'),
)
PAGE_PRICE_CEILING = Decimal("10000")


def _json_ld_offer_prices(soup: BeautifulSoup) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or script.get_text())
        except json.JSONDecodeError:
            continue
        for item in _iter_json_ld_items(data):
            if not _is_product(item):
                continue
            offers = item.get("offers")
            if isinstance(offers, list):
                offers = offers[0] if offers else None
            if not isinstance(offers, dict):
                continue
            sale_price = to_decimal(offers.get("price"))
            if sale_price:
                return sale_price, to_decimal(offers.get("highPrice"))
    return None, None


def _first_pattern_price(
    html: str, patterns: Iterable[re.Pattern], above: Decimal = Decimal("0")
) -> Optional[Decimal]:
    for pattern in patterns:
        match = pattern.search(html)
        if match is None:
            continue
        price = Decimal(match.group(1))
        if above < price < PAGE_PRICE_CEILING:
            return price
    return None


def find_page_prices(html: str) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """Read the live (sale, original) prices straight from page markup.

    Tries JSON-LD offers, then price meta tags, then common price class
    names and inline JSON keys. The sale price is None when none is found.
    """
    soup = BeautifulSoup(html, "html.parser")
    sale_price, original_price = _json_ld_offer_prices(soup)

    if not sale_price:
        meta = soup.find(
            "meta",
            attrs={"property": ["og:price:amount", "product:price:amount"], "content": True},
        )
        if meta is not None:
            sale_price = to_decimal(meta["content"])

    if not sale_price:
        sale_price = _first_pattern_price(html, _SALE_PRICE_PATTERNS)

    if not original_price:
        original_price = _first_pattern_price(
            html, _ORIGINAL_PRICE_PATTERNS, above=sale_price or Decimal("0")
        )

    return sale_price or None, original_price
