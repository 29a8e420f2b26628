"""Rendering-proxy strategy (ScraperAPI) with model-driven field extraction."""

from __future__ import annotations

import random
import time
from typing import Any, Dict, Optional, Tuple

import requests

from offer_scraper.configs import settings

from ..confidence import ConfidenceScore, ValidationEngine
from ..extractors.base import FieldExtractor
from ..extractors.llm import DEFAULT_MODEL_CONFIDENCE, LLMFieldExtractor
from ..html_excerpt import find_meta_image
from ..models import (
    ConfigurationError,
    ExtractionContext,
    ProductOffer,
    RenderTimeout,
    UpstreamError,
)
from ..utils import declared_charset
from .base import BaseExtractionStrategy


class RenderingProxyStrategy(BaseExtractionStrategy):
    """Fetch through a JavaScript-rendering residential proxy, then extract fields.

    Meant for heavily protected department-store domains where direct and
    browser access get blocked at the network level.
    """

    name = "proxy"
    service_name = "ScraperAPI"
    timeout_seconds = 90
    connect_timeout_seconds = 10
    render_wait_ms = 5_000
    min_expected_html = 1_000
    chunk_size = 64 * 1024

    def __init__(
        self,
        engine: Optional[ValidationEngine] = None,
        field_extractor: Optional[FieldExtractor] = None,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        country_code: Optional[str] = None,
    ) -> None:
        super().__init__(engine)
        self.field_extractor = field_extractor or LLMFieldExtractor()
        self.api_key = api_key or settings.SCRAPER_API_KEY
        self.api_url = api_url or settings.SCRAPER_API_URL
        self.country_code = country_code or settings.SCRAPER_API_COUNTRY_CODE

    def build_params(self, url: str) -> Dict[str, str]:
        """Query parameters for one proxy call; the session id is fresh per call."""
        return {
            "api_key": self.api_key or "",
            "url": url,
            "render": "true",
            "country_code": self.country_code,
            "ultra_premium": "true",
            "wait_for": str(self.render_wait_ms),
            "session_number": str(random.randint(0, 9999)),
        }

    def _extract_impl(
        self,
        url: str,
        context: ExtractionContext,
        diagnostics: Dict[str, Any],
    ) -> Tuple[ProductOffer, ConfidenceScore]:
        html = self.fetch(url, context)
        diagnostics.update({"phase": "proxy-extraction", "html_chars": len(html)})

        image_hint, hint_source = find_meta_image(html)
        if image_hint:
            context.logger.info("[proxy] Pre-extracted %s: %s", hint_source, image_hint)
        diagnostics["image_hint"] = image_hint

        context.raise_if_cancelled()
        candidate = self.field_extractor.extract(html, url, context, image_hint=image_hint)
        diagnostics["extractor"] = self.field_extractor.name
        diagnostics["image_source"] = hint_source if image_hint else candidate.image_source

        confidence = candidate.confidence
        score = ConfidenceScore(DEFAULT_MODEL_CONFIDENCE if confidence is None else confidence)
        diagnostics["confidence_adjustments"] = score.adjustments
        offer = self.engine.finalize(candidate, score, url)
        return offer, score

    def fetch(self, url: str, context: ExtractionContext) -> str:
        """Stream the rendered page, abandoning it on cancellation or deadline.

        Raises:
            ConfigurationError: no proxy API key configured.
            RenderTimeout: the proxy did not answer within ``timeout_seconds``.
            UpstreamError: the proxy answered with a non-success status.
        """
        if not self.api_key:
            raise ConfigurationError(
                "SCRAPER_API_KEY not configured. Sign up at https://www.scraperapi.com/"
            )

        context.logger.info(
            "[proxy] Fetching %s through %s (ultra_premium + render)", url, self.service_name
        )
        deadline = time.monotonic() + self.timeout_seconds
        try:
            with requests.get(
                self.api_url,
                params=self.build_params(url),
                timeout=(self.connect_timeout_seconds, self.timeout_seconds),
                stream=True,
            ) as response:
                if response.status_code != 200:
                    context.logger.error(
                        "[proxy] %s error (%s): %s",
                        self.service_name,
                        response.status_code,
                        response.text[:500],
                    )
                    raise UpstreamError.from_status(self.service_name, response.status_code)

                chunks = []
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    context.raise_if_cancelled()
                    if time.monotonic() > deadline:
                        raise RenderTimeout(
                            f"{self.service_name} did not finish within {self.timeout_seconds}s"
                        )
                    chunks.append(chunk)
                encoding = declared_charset(response.headers) or "utf-8"
        except requests.exceptions.Timeout as exc:
            raise RenderTimeout(
                f"{self.service_name} did not answer within {self.timeout_seconds}s"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise UpstreamError(f"{self.service_name} request failed: {exc}") from exc

        html = b"".join(chunks).decode(encoding, errors="replace")
        context.logger.info("[proxy] Fetched HTML: %d characters", len(html))
        if len(html) < self.min_expected_html:
            context.logger.warning("[proxy] Suspiciously short HTML - might be blocked")
        return html
