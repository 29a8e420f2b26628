"""Base class for field extractors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..models import ExtractionContext, OfferCandidate


class FieldExtractor(ABC):
    """Turn fetched page HTML into an unvalidated offer candidate.

    Strategies own fetching; extractors own interpretation, so a
    deterministic parser can replace the model on domains where one exists.
    """

    name: str

    @abstractmethod
    def extract(
        self,
        html: str,
        page_url: str,
        context: ExtractionContext,
        image_hint: Optional[str] = None,
        partial: Optional[OfferCandidate] = None,
    ) -> OfferCandidate:
        """Return the raw candidate or raise an ``ExtractionError``.

        ``partial`` carries fields an earlier deterministic pass already
        confirmed, for extractors that can use them.
        """
        raise NotImplementedError
