"""Fallback chaining over several strategies."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence

from ..models import ErrorKind, ExtractionContext, ExtractionOutcome
from .base import ExtractionStrategy, elapsed_ms_since


class StrategyChain(ExtractionStrategy):
    """Try strategies in order until one succeeds with enough confidence.

    A success below ``accept_confidence`` is kept as the best result so far
    while the next strategy is tried.
    """

    DEFAULT_ACCEPT_CONFIDENCE = 60

    def __init__(
        self,
        strategies: Sequence[ExtractionStrategy],
        accept_confidence: int = DEFAULT_ACCEPT_CONFIDENCE,
    ) -> None:
        if not strategies:
            raise ValueError("StrategyChain needs at least one strategy")
        self.strategies = list(strategies)
        self.accept_confidence = accept_confidence
        self.name = "+".join(strategy.name for strategy in self.strategies)

    def extract(self, url: str, context: ExtractionContext) -> ExtractionOutcome:
        started = time.monotonic()
        attempts: List[Dict[str, Any]] = []
        best: Optional[ExtractionOutcome] = None
        failures: List[ExtractionOutcome] = []

        for strategy in self.strategies:
            if context.cancelled:
                break
            context.logger.info("[chain] Attempting %s for %s", strategy.name, url)
            outcome = strategy.extract(url, context)
            attempts.append(
                {
                    "method": strategy.name,
                    "outcome": "success" if outcome.success else "failed",
                    "confidence": outcome.confidence,
                    "elapsed_ms": outcome.elapsed_ms,
                    "error": outcome.message,
                }
            )

            if not outcome.success:
                failures.append(outcome)
                continue
            if best is None or outcome.confidence > best.confidence:
                best = outcome
            if outcome.confidence >= self.accept_confidence:
                break
            context.logger.info(
                "[chain] Low confidence (%d%%) from %s, trying next strategy",
                outcome.confidence,
                strategy.name,
            )

        if best is not None:
            best.elapsed_ms = elapsed_ms_since(started)
            if context.enable_diagnostics:
                best.diagnostics = {**(best.diagnostics or {}), "attempts": attempts}
            return best

        if failures:
            last = failures[-1]
            error_kind = last.error_kind or ErrorKind.UNEXPECTED
            reasons = ", ".join(
                f"{failure.strategy_name}: {failure.message}" for failure in failures
            )
            message = f"All strategies failed. {reasons}"
        else:
            error_kind = ErrorKind.CANCELLED
            message = "Extraction cancelled by caller"

        return ExtractionOutcome.failed(
            self.name,
            url,
            error_kind,
            message,
            elapsed_ms=elapsed_ms_since(started),
            diagnostics={"attempts": attempts} if context.enable_diagnostics else None,
        )
