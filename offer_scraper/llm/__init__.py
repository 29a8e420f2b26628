"""Language-model clients used as field-extraction tools."""

from .base_llm import BaseLLM

__all__ = ["BaseLLM"]
