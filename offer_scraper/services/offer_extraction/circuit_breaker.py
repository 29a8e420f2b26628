"""Batch-scoped domain circuit breaker."""

from __future__ import annotations

from typing import Iterator, Set

from .utils import normalize_hostname


class DomainFailureSet:
    """Hostnames that already produced a failure in the current batch.

    Created at the start of a batch and dropped at its end; it is never
    shared between batches.
    """

    def __init__(self) -> None:
        self._domains: Set[str] = set()

    def __contains__(self, url_or_host: object) -> bool:
        if not isinstance(url_or_host, str):
            return False
        return self._key(url_or_host) in self._domains

    def __len__(self) -> int:
        return len(self._domains)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._domains))

    def is_open(self, url: str) -> bool:
        """True when URLs on this domain must be skipped."""
        return url in self

    def record_failure(self, url: str) -> str:
        domain = self._key(url)
        self._domains.add(domain)
        return domain

    @staticmethod
    def _key(url_or_host: str) -> str:
        if "://" in url_or_host:
            return normalize_hostname(url_or_host)
        host = url_or_host.lower()
        return host[len("www."):] if host.startswith("www.") else host
