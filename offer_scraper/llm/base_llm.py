"""Base LLM interface used by the field extractors."""

from typing import Any, Dict, List, Optional


class BaseLLM:
    """Abstract base class for LLMs that turn chat messages into text."""

    def complete(
        self,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate a text reply from a chat-formatted message history.

        Args:
            messages (List[Dict[str, Any]]): Prior messages in the
                [{"role": "system"|"user"|"assistant", "content": "..."}] format.
            temperature (Optional[float]): Sampling temperature; provider default when None.
            max_tokens (Optional[int]): Upper bound on generated tokens.

        Returns:
            str: Raw text produced by the model.

        Raises:
            UpstreamError: when the provider rejects or fails the call.
        """
        raise NotImplementedError
