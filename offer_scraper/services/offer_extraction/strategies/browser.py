"""Headless-browser strategy backed by Playwright."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..confidence import ConfidenceScore, ValidationEngine
from ..models import (
    ConfigurationError,
    ErrorKind,
    ExtractionContext,
    NavigationTimeout,
    OfferCandidate,
    ProductOffer,
    UpstreamError,
)
from ..utils import DEFAULT_HEADERS, normalize_whitespace, resolve_url, to_decimal
from .base import BaseExtractionStrategy

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

TITLE_SELECTORS: Sequence[str] = (
    "h1",
    '[class*="product-title"]',
    '[class*="ProductName"]',
    '[class*="product-name"]',
)

IMAGE_META_SELECTORS: Sequence[str] = (
    'meta[property="og:image"]',
    'meta[name="og:image"]',
    'meta[property="twitter:image"]',
    'meta[name="twitter:image"]',
)

IMAGE_TAG_SELECTORS: Sequence[str] = (
    'img[class*="product"]',
    'img[class*="main"]',
)

SALE_PRICE_SELECTORS: Sequence[str] = (
    '[class*="price"][class*="sale"]',
    '[class*="current-price"]',
    '[class*="currentPrice"]',
    '[data-test*="price"]',
    '[data-testid*="price"]',
    ".price",
    '[itemprop="price"]',
)

ORIGINAL_PRICE_SELECTORS: Sequence[str] = (
    '[class*="price"][class*="original"]',
    '[class*="regular-price"]',
    '[class*="regularPrice"]',
    '[class*="was-price"]',
    '[class*="compare-at-price"]',
    '[itemprop="highPrice"]',
)


def _first_match(soup: BeautifulSoup, selectors: Sequence[str]) -> Optional[Tag]:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None:
            return element
    return None


def _element_text(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    text = normalize_whitespace(element.get_text(" "))
    return text or element.get("content") or None


def _element_price(element: Optional[Tag]):
    price = to_decimal(_element_text(element))
    return price if price else None


def extract_dom_candidate(html: str, page_url: str) -> OfferCandidate:
    """Run the selector heuristics over a rendered document."""
    soup = BeautifulSoup(html, "html.parser")

    name = next(
        (
            text
            for text in (_element_text(soup.select_one(selector)) for selector in TITLE_SELECTORS)
            if text
        ),
        None,
    )
    if not name:
        og_title = soup.select_one('meta[property="og:title"]')
        name = og_title.get("content") if og_title is not None else None
    if not name and soup.title is not None:
        name = normalize_whitespace(soup.title.get_text()) or None

    image_url, image_source = None, None
    meta_image = _first_match(soup, IMAGE_META_SELECTORS)
    if meta_image is not None and meta_image.get("content"):
        image_url, image_source = meta_image["content"], "meta-tag"
    else:
        image_tag = _first_match(soup, IMAGE_TAG_SELECTORS)
        if image_tag is not None and image_tag.get("src"):
            image_url, image_source = image_tag["src"], "img-tag"

    return OfferCandidate(
        name=normalize_whitespace(name) if name else None,
        image_url=resolve_url(image_url, page_url),
        sale_price=_element_price(_first_match(soup, SALE_PRICE_SELECTORS)),
        original_price=_element_price(_first_match(soup, ORIGINAL_PRICE_SELECTORS)),
        source="browser-extraction",
        image_source=image_source,
    )


class HeadlessBrowserStrategy(BaseExtractionStrategy):
    """Render the page in a fresh Chromium context and read it with DOM heuristics."""

    name = "browser"
    navigation_timeout_ms = 30_000
    settle_delay_ms = 2_000

    def __init__(
        self,
        engine: Optional[ValidationEngine] = None,
        playwright_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        super().__init__(engine)
        self._playwright_factory = playwright_factory or sync_playwright

    def _extract_impl(
        self,
        url: str,
        context: ExtractionContext,
        diagnostics: Dict[str, Any],
    ) -> Tuple[ProductOffer, ConfidenceScore]:
        try:
            html, page_url = self._render(url, context)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(f"Browser timed out on {url}: {exc}") from exc
        except PlaywrightError as exc:
            raise UpstreamError(f"Browser error on {url}: {exc}") from exc

        diagnostics.update(
            {"phase": "browser-extraction", "html_chars": len(html), "final_url": page_url}
        )
        candidate = extract_dom_candidate(html, page_url)
        diagnostics["image_source"] = candidate.image_source
        context.logger.debug("[browser] DOM candidate for %s: %s", url, candidate)

        score = self.engine.score_completeness(candidate)
        diagnostics["confidence_adjustments"] = score.adjustments
        self.engine.enforce_floor(score)
        offer = self.engine.finalize(candidate, score, url, price_order_penalty=0)
        return offer, score

    def _render(self, url: str, context: ExtractionContext) -> Tuple[str, str]:
        """Load ``url`` in an isolated context and return (html, final_url)."""
        with self._playwright_factory() as playwright:
            context.logger.info("[browser] Launching browser for %s", url)
            try:
                browser = playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)
            except PlaywrightError as exc:
                raise ConfigurationError(f"Could not launch headless browser: {exc}") from exc

            try:
                browser_context = browser.new_context(
                    user_agent=DEFAULT_HEADERS["User-Agent"],
                    locale="en-US",
                )
                try:
                    page = browser_context.new_page()
                    self._navigate(page, url, context)
                    context.raise_if_cancelled()

                    page.wait_for_timeout(self.settle_delay_ms)
                    context.raise_if_cancelled()

                    return page.content(), page.url
                finally:
                    self._close(browser_context, "context", context)
            finally:
                self._close(browser, "browser", context)

    def _navigate(self, page: Any, url: str, context: ExtractionContext) -> None:
        context.logger.info("[browser] Navigating to %s", url)
        try:
            response = page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(
                f"Page never loaded within {self.navigation_timeout_ms // 1000}s: {url}"
            ) from exc

        if response is not None and response.status >= 400:
            kind = (
                ErrorKind.UPSTREAM_RATE_LIMIT
                if response.status == 429
                else ErrorKind.UPSTREAM_ERROR
            )
            raise UpstreamError(
                f"Page answered HTTP {response.status} (likely blocked): {url}",
                kind,
                response.status,
            )

    @staticmethod
    def _close(resource: Any, label: str, context: ExtractionContext) -> None:
        try:
            resource.close()
        except PlaywrightError as exc:
            context.logger.error("[browser] Error closing %s: %s", label, exc)
