"""Base classes for extraction strategies."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from ..confidence import CONFIDENCE_FLOOR, ConfidenceScore, ValidationEngine
from ..models import (
    ErrorKind,
    ExtractionContext,
    ExtractionError,
    ExtractionOutcome,
    ProductOffer,
)
from ..utils import validate_url


def elapsed_ms_since(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class ExtractionStrategy(ABC):
    """Uniform contract: a URL in, an ``ExtractionOutcome`` out, never an exception."""

    name: str

    @abstractmethod
    def extract(self, url: str, context: ExtractionContext) -> ExtractionOutcome:
        """Return a validated offer or a typed failure for ``url``."""
        raise NotImplementedError


class BaseExtractionStrategy(ExtractionStrategy):
    """Common boundary behaviour for concrete strategies.

    Subclasses implement :meth:`_extract_impl` and may raise any
    ``ExtractionError``; :meth:`extract` turns every exception into a failed
    outcome and coerces sub-floor confidences to failure.
    """

    def __init__(self, engine: Optional[ValidationEngine] = None) -> None:
        self.engine = engine or ValidationEngine.from_settings()

    def extract(self, url: str, context: ExtractionContext) -> ExtractionOutcome:
        started = time.monotonic()
        diagnostics: Dict[str, Any] = {}
        log = context.logger

        try:
            validate_url(url)
            context.raise_if_cancelled()
            offer, score = self._extract_impl(url, context, diagnostics)
        except ExtractionError as exc:
            log.warning("[%s] %s failed (%s): %s", self.name, url, exc.kind.value, exc.message)
            return ExtractionOutcome.failed(
                self.name,
                url,
                exc.kind,
                exc.message,
                elapsed_ms=elapsed_ms_since(started),
                diagnostics=self._diagnostics(context, diagnostics),
            )
        except Exception as exc:  # pragma: no cover
            log.exception("[%s] Unexpected error extracting %s", self.name, url)
            return ExtractionOutcome.failed(
                self.name,
                url,
                ErrorKind.UNEXPECTED,
                f"Unexpected error in {self.name}: {exc}",
                elapsed_ms=elapsed_ms_since(started),
                diagnostics=self._diagnostics(context, diagnostics),
            )

        diagnostics["confidence_adjustments"] = list(score.adjustments)
        if score.value < CONFIDENCE_FLOOR:
            return ExtractionOutcome.failed(
                self.name,
                url,
                ErrorKind.LOW_CONFIDENCE,
                f"Confidence too low ({score.value}%)",
                elapsed_ms=elapsed_ms_since(started),
                diagnostics=self._diagnostics(context, diagnostics),
            )

        log.info(
            "[%s] Extracted %r at %s (confidence: %d%%)",
            self.name,
            offer.name,
            offer.sale_price,
            score.value,
        )
        return ExtractionOutcome.succeeded(
            self.name,
            offer,
            score.value,
            elapsed_ms=elapsed_ms_since(started),
            diagnostics=self._diagnostics(context, diagnostics),
        )

    @abstractmethod
    def _extract_impl(
        self,
        url: str,
        context: ExtractionContext,
        diagnostics: Dict[str, Any],
    ) -> Tuple[ProductOffer, ConfidenceScore]:
        """Fetch and interpret ``url``; raise ``ExtractionError`` on failure."""
        raise NotImplementedError

    @staticmethod
    def _diagnostics(
        context: ExtractionContext, diagnostics: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        return diagnostics if context.enable_diagnostics else None
