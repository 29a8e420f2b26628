from unittest.mock import MagicMock

import httpx
import openai
import pytest

from offer_scraper.llm.base_llm import BaseLLM
from offer_scraper.llm.openai_llm import OpenAILLM
from offer_scraper.services.offer_extraction.models import ErrorKind, UpstreamError

MESSAGES = [{"role": "user", "content": "hi"}]
REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def status_error(cls, status: int):
    response = httpx.Response(status, request=REQUEST)
    return cls("failure", response=response, body=None)


class TestOpenAILLM:
    def setup_method(self):
        self.client = MagicMock()
        self.llm = OpenAILLM(model="gpt-4o-mini", api_key="sk-test", timeout=5, client=self.client)

    def test_complete_returns_message_content(self):
        # Arrange
        choice = MagicMock()
        choice.message.content = '{"salePrice": 10}'
        self.client.chat.completions.create.return_value = MagicMock(choices=[choice])

        # Act
        content = self.llm.complete(MESSAGES, temperature=0.1, max_tokens=500)

        # Assert
        assert content == '{"salePrice": 10}'
        _, kwargs = self.client.chat.completions.create.call_args
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 500

    def test_empty_content_becomes_empty_string(self):
        choice = MagicMock()
        choice.message.content = None
        self.client.chat.completions.create.return_value = MagicMock(choices=[choice])

        assert self.llm.chat(MESSAGES) == {"content": ""}

    @pytest.mark.parametrize(
        "error, kind",
        [
            (status_error(openai.AuthenticationError, 401), ErrorKind.UPSTREAM_AUTH),
            (status_error(openai.RateLimitError, 429), ErrorKind.UPSTREAM_RATE_LIMIT),
            (status_error(openai.InternalServerError, 500), ErrorKind.UPSTREAM_ERROR),
            (openai.APITimeoutError(request=REQUEST), ErrorKind.UPSTREAM_ERROR),
        ],
    )
    def test_provider_errors_are_classified(self, error, kind):
        self.client.chat.completions.create.side_effect = error

        with pytest.raises(UpstreamError) as exc_info:
            self.llm.complete(MESSAGES)

        assert exc_info.value.kind is kind


class TestBaseLLM:
    def test_complete_is_the_only_capability(self):
        llm = BaseLLM()

        with pytest.raises(NotImplementedError):
            llm.complete(MESSAGES)
        assert not hasattr(llm, "chat")
