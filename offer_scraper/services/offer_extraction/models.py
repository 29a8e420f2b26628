"""Domain models for offer extraction results."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .utils import compute_percent_off

if TYPE_CHECKING:  # pragma: no cover
    from offer_scraper.llm.base_llm import BaseLLM

logger = logging.getLogger("offer_scraper.extraction")


class ErrorKind(str, Enum):
    """Typed reasons an extraction can fail."""

    NAVIGATION_TIMEOUT = "navigation_timeout"
    RENDER_TIMEOUT = "render_timeout"
    PARSE_FAILURE = "parse_failure"
    VALIDATION_FAILURE = "validation_failure"
    LOW_CONFIDENCE = "low_confidence"
    UPSTREAM_AUTH = "upstream_auth"
    UPSTREAM_RATE_LIMIT = "upstream_rate_limit"
    UPSTREAM_ERROR = "upstream_error"
    INVALID_URL = "invalid_url"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"
    DOMAIN_SKIPPED = "domain_skipped"
    UNEXPECTED = "unexpected"


class ExtractionError(RuntimeError):
    """Raised inside a strategy when it cannot produce an offer."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class NavigationTimeout(ExtractionError):
    kind = ErrorKind.NAVIGATION_TIMEOUT


class RenderTimeout(ExtractionError):
    kind = ErrorKind.RENDER_TIMEOUT


class ParseFailure(ExtractionError):
    kind = ErrorKind.PARSE_FAILURE


class ValidationFailure(ExtractionError):
    kind = ErrorKind.VALIDATION_FAILURE


class IncompleteStructuredData(ValidationFailure):
    """Markup was found but lacked a required field; ``partial`` keeps what it had."""

    def __init__(self, message: str, partial: Optional["OfferCandidate"] = None) -> None:
        super().__init__(message)
        self.partial = partial


class LowConfidence(ExtractionError):
    kind = ErrorKind.LOW_CONFIDENCE


class InvalidUrl(ExtractionError):
    kind = ErrorKind.INVALID_URL


class ExtractionCancelled(ExtractionError):
    kind = ErrorKind.CANCELLED


class ConfigurationError(ExtractionError):
    kind = ErrorKind.CONFIGURATION


class UpstreamError(ExtractionError):
    """A proxy or model API answered with a non-success status."""

    kind = ErrorKind.UPSTREAM_ERROR

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UPSTREAM_ERROR,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, kind)
        self.status = status

    @classmethod
    def from_status(cls, service: str, status: int) -> "UpstreamError":
        """Classify an HTTP status into auth, rate-limit or generic failures."""
        if status in (401, 403):
            return cls(
                f"{service} authentication failed (HTTP {status})",
                ErrorKind.UPSTREAM_AUTH,
                status,
            )
        if status == 429:
            return cls(
                f"{service} rate limit exceeded (HTTP {status})",
                ErrorKind.UPSTREAM_RATE_LIMIT,
                status,
            )
        return cls(f"{service} error: HTTP {status}", ErrorKind.UPSTREAM_ERROR, status)


@dataclass(slots=True)
class ProductOffer:
    """Commercial offer extracted from a single product page."""

    name: str
    image_url: str
    sale_price: Decimal
    source_url: str
    brand: Optional[str] = None
    original_price: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if self.original_price is not None and self.original_price <= self.sale_price:
            self.original_price = None

    @property
    def percent_off(self) -> int:
        return compute_percent_off(self.original_price, self.sale_price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "brand": self.brand,
            "imageUrl": self.image_url,
            "originalPrice": float(self.original_price)
            if self.original_price is not None
            else None,
            "salePrice": float(self.sale_price),
            "percentOff": self.percent_off,
            "url": self.source_url,
        }


@dataclass(slots=True)
class OfferCandidate:
    """Raw fields pulled from a page before validation."""

    name: Optional[str] = None
    image_url: Optional[str] = None
    sale_price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    brand: Optional[str] = None
    confidence: Optional[int] = None
    source: Optional[str] = None
    image_source: Optional[str] = None


@dataclass(frozen=True)
class ExtractionRequest:
    """Input for a single URL; lives for one orchestrator iteration."""

    url: str
    enable_diagnostics: bool = False
    logger: logging.Logger = logger

    def to_context(
        self,
        llm: Optional["BaseLLM"] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "ExtractionContext":
        return ExtractionContext(
            llm=llm,
            enable_diagnostics=self.enable_diagnostics,
            logger=self.logger,
            cancel_event=cancel_event or threading.Event(),
        )


@dataclass(slots=True)
class ExtractionContext:
    """Collaborators handed to every strategy call."""

    llm: Optional["BaseLLM"] = None
    enable_diagnostics: bool = False
    logger: logging.Logger = logger
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise ExtractionCancelled("Extraction cancelled by caller")


@dataclass(slots=True)
class ExtractionOutcome:
    """Result of one strategy call: an offer or a typed failure."""

    success: bool
    strategy_name: str
    url: str
    confidence: int = 0
    elapsed_ms: int = 0
    offer: Optional[ProductOffer] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    skipped: bool = False
    diagnostics: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.confidence = max(0, min(100, int(self.confidence)))
        if not self.success:
            self.confidence = 0
            self.offer = None

    @classmethod
    def succeeded(
        cls,
        strategy_name: str,
        offer: ProductOffer,
        confidence: int,
        elapsed_ms: int = 0,
        diagnostics: Optional[Dict[str, Any]] = None,
    ) -> "ExtractionOutcome":
        return cls(
            success=True,
            strategy_name=strategy_name,
            url=offer.source_url,
            confidence=confidence,
            elapsed_ms=elapsed_ms,
            offer=offer,
            diagnostics=diagnostics,
        )

    @classmethod
    def failed(
        cls,
        strategy_name: str,
        url: str,
        error_kind: ErrorKind,
        message: str,
        elapsed_ms: int = 0,
        diagnostics: Optional[Dict[str, Any]] = None,
    ) -> "ExtractionOutcome":
        return cls(
            success=False,
            strategy_name=strategy_name,
            url=url,
            elapsed_ms=elapsed_ms,
            error_kind=error_kind,
            message=message,
            diagnostics=diagnostics,
        )

    @classmethod
    def skipped_for_domain(cls, url: str, domain: str) -> "ExtractionOutcome":
        """Failure entry for a URL the circuit breaker never attempted."""
        return cls(
            success=False,
            strategy_name="circuit_breaker",
            url=url,
            error_kind=ErrorKind.DOMAIN_SKIPPED,
            message=f"Skipped {url}: domain {domain} already failed in this batch",
            skipped=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "url": self.url,
            "confidence": self.confidence,
            "strategyName": self.strategy_name,
            "elapsedMs": self.elapsed_ms,
        }
        if self.success and self.offer is not None:
            data["offer"] = self.offer.to_dict()
        else:
            data["errorKind"] = self.error_kind.value if self.error_kind else None
            data["message"] = self.message
            if self.skipped:
                data["skipped"] = True
        if self.diagnostics is not None:
            data["diagnostics"] = self.diagnostics
        return data


@dataclass(slots=True)
class BatchResult:
    """Aggregated outcome of a batch, one entry per input URL."""

    successes: List[ExtractionOutcome] = field(default_factory=list)
    failures: List[ExtractionOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)

    @property
    def skipped_count(self) -> int:
        return sum(1 for failure in self.failures if failure.skipped)

    def render_summary(self) -> str:
        """Turn the batch into a short operator-facing report."""
        lines: List[str] = []
        headline = f"Extracted {len(self.successes)} of {self.total} offers."
        if self.failures:
            headline += f" {len(self.failures)} failed"
            if self.skipped_count:
                headline += (
                    f", {self.skipped_count} of which were skipped due to an "
                    "earlier same-domain failure"
                )
            headline += "."
        lines.append(headline)

        for outcome in self.successes:
            offer = outcome.offer
            if offer is None:
                continue
            price = f"${offer.sale_price:.2f}"
            if offer.original_price is not None:
                price += f" (was ${offer.original_price:.2f}, {offer.percent_off}% off)"
            lines.append(f"- OK {offer.name} {price} [{outcome.confidence}%] {offer.source_url}")

        for outcome in self.failures:
            tag = "SKIPPED" if outcome.skipped else "FAILED"
            lines.append(f"- {tag} {outcome.url}: {outcome.message}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": [outcome.to_dict() for outcome in self.successes],
            "failures": [outcome.to_dict() for outcome in self.failures],
            "total": self.total,
        }
