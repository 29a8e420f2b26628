"""OpenAI ChatCompletion client wrapper."""

import logging
from typing import Any, Dict, List, Optional, cast

import openai
from openai import NOT_GIVEN, OpenAI

from offer_scraper.configs import settings
from offer_scraper.llm.base_llm import BaseLLM
from offer_scraper.services.offer_extraction.models import ErrorKind, UpstreamError

logger = logging.getLogger("offer_scraper.llm.openai")


class OpenAILLM(BaseLLM):
    """Wrapper around the OpenAI client to provide chat and complete methods."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        """Initialize client with model name and API key from settings by default."""
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS
        self._api_key = api_key or settings.OPENAI_API_KEY
        self.client = client or OpenAI(
            api_key=self._api_key,
            base_url=base_url or settings.OPENAI_BASE_URL,
            timeout=self.timeout,
            max_retries=1,
        )

    def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Call chat completions and normalize provider errors."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=cast(Any, messages),
                temperature=temperature if temperature is not None else NOT_GIVEN,
                max_tokens=max_tokens if max_tokens is not None else NOT_GIVEN,
            )
        except openai.AuthenticationError as exc:
            raise UpstreamError(
                "OpenAI authentication failed - check OPENAI_API_KEY",
                ErrorKind.UPSTREAM_AUTH,
                getattr(exc, "status_code", None),
            ) from exc
        except openai.RateLimitError as exc:
            raise UpstreamError(
                "OpenAI rate limit exceeded",
                ErrorKind.UPSTREAM_RATE_LIMIT,
                getattr(exc, "status_code", None),
            ) from exc
        except openai.APITimeoutError as exc:
            raise UpstreamError(
                f"OpenAI request timed out after {self.timeout}s",
                ErrorKind.UPSTREAM_ERROR,
            ) from exc
        except openai.APIError as exc:
            logger.error("OpenAI API error: %s", exc)
            raise UpstreamError(
                f"OpenAI API error: {exc}",
                ErrorKind.UPSTREAM_ERROR,
                getattr(exc, "status_code", None),
            ) from exc

        msg = response.choices[0].message
        return {"content": msg.content or ""}

    def complete(
        self,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Compatibility method returning only the content string."""
        out = self.chat(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return cast(str, out["content"])
