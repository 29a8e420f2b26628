"""Offer extraction pipeline: strategies, validation and batch orchestration."""

from .models import (
    BatchResult,
    ErrorKind,
    ExtractionContext,
    ExtractionOutcome,
    ExtractionRequest,
    ProductOffer,
)
from .service import OfferExtractionService, extract_batch, extract_product

__all__ = [
    "BatchResult",
    "ErrorKind",
    "ExtractionContext",
    "ExtractionOutcome",
    "ExtractionRequest",
    "OfferExtractionService",
    "ProductOffer",
    "extract_batch",
    "extract_product",
]
