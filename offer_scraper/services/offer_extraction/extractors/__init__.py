"""Field extractors that interpret fetched page HTML."""

from .base import FieldExtractor
from .llm import LLMFieldExtractor
from .structured_data import StructuredDataFieldExtractor

__all__ = [
    "FieldExtractor",
    "LLMFieldExtractor",
    "StructuredDataFieldExtractor",
]
