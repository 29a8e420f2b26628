"""High-level service that orchestrates offer extraction."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional, Sequence, Union

from offer_scraper.configs import settings
from offer_scraper.llm.base_llm import BaseLLM

from .circuit_breaker import DomainFailureSet
from .models import BatchResult, ExtractionOutcome, ExtractionRequest
from .strategies import ExtractionStrategy, StrategySpec, build_strategy
from .utils import normalize_hostname


class OfferExtractionService:
    """Run a strategy over single URLs or sequential, circuit-broken batches."""

    def __init__(
        self,
        strategy: Union[ExtractionStrategy, Sequence[StrategySpec], None] = None,
        llm: Optional[BaseLLM] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if isinstance(strategy, ExtractionStrategy):
            self.strategy = strategy
        else:
            self.strategy = build_strategy(strategy or settings.DEFAULT_STRATEGIES)
        self.llm = llm
        self.logger = logger or logging.getLogger("offer_scraper.service")

    def extract_product(
        self,
        url: str,
        enable_diagnostics: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExtractionOutcome:
        """Extract one URL with the configured strategy."""
        request = ExtractionRequest(
            url=url, enable_diagnostics=enable_diagnostics, logger=self.logger
        )
        context = request.to_context(llm=self.llm, cancel_event=cancel_event)
        self.logger.info("Starting extraction for %s with %s", url, self.strategy.name)
        return self.strategy.extract(request.url, context)

    def extract_batch(
        self,
        urls: Iterable[str],
        enable_diagnostics: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """Extract URLs one at a time, skipping domains that already failed.

        Every input URL appears exactly once in either ``successes`` or
        ``failures``; failures short-circuited by the breaker carry
        ``skipped=True``.
        """
        failed_domains = DomainFailureSet()
        result = BatchResult()
        url_list = list(urls)

        for position, url in enumerate(url_list, start=1):
            domain = normalize_hostname(url)
            if failed_domains.is_open(url):
                self.logger.info(
                    "Skipping %s (%d/%d): domain %s already failed",
                    url,
                    position,
                    len(url_list),
                    domain,
                )
                result.failures.append(ExtractionOutcome.skipped_for_domain(url, domain))
                continue

            outcome = self.extract_product(url, enable_diagnostics, cancel_event)
            if outcome.success:
                result.successes.append(outcome)
            else:
                failed_domains.record_failure(url)
                result.failures.append(outcome)
                self.logger.info(
                    "Failed %s (%d/%d), skipping remaining URLs from %s",
                    url,
                    position,
                    len(url_list),
                    domain,
                )

        self.logger.info(
            "Batch finished: %d succeeded, %d failed (%d skipped)",
            len(result.successes),
            len(result.failures),
            result.skipped_count,
        )
        return result


def extract_product(
    url: str,
    llm: Optional[BaseLLM] = None,
    enable_diagnostics: bool = False,
    logger: Optional[logging.Logger] = None,
    strategies: Union[ExtractionStrategy, Sequence[StrategySpec], None] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ExtractionOutcome:
    """Pipeline entry point for one product page."""
    service = OfferExtractionService(strategies, llm=llm, logger=logger)
    return service.extract_product(url, enable_diagnostics, cancel_event)


def extract_batch(
    urls: Iterable[str],
    llm: Optional[BaseLLM] = None,
    enable_diagnostics: bool = False,
    logger: Optional[logging.Logger] = None,
    strategies: Union[ExtractionStrategy, Sequence[StrategySpec], None] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchResult:
    """Batch entry point used by the "scrape one or many URLs" action."""
    service = OfferExtractionService(strategies, llm=llm, logger=logger)
    return service.extract_batch(urls, enable_diagnostics, cancel_event)
