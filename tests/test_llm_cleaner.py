"""
Tests for the Anthropic-backed payee cleaner: prompt, response parsing, error mapping
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from payee_cleanup.config import EngineConfig
from payee_cleanup.core.errors import LLMRateLimitError, LLMResponseError, LLMServiceError
from payee_cleanup.core.llm_cleaner import (
    AnthropicPayeeCleaner,
    build_user_prompt,
    parse_cleanup_response,
)

API_URL = "https://api.anthropic.com/v1/messages"


def text_message(text: str):
    return SimpleNamespace(content=[SimpleNamespace(type='text', text=text)])


def mock_client(text: str = None, error: Exception = None):
    client = MagicMock()
    if error is not None:
        client.messages.create = AsyncMock(side_effect=error)
    else:
        client.messages.create = AsyncMock(return_value=text_message(text))
    return client


def api_response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", API_URL))


class TestPrompt:

    def test_prompt_contains_payee_and_context(self):
        prompt = build_user_prompt("SQ *BLUE BOTTLE", {"amount": "-4.50", "memo": "coffee"})

        assert 'Original payee name: "SQ *BLUE BOTTLE"' in prompt
        assert "- amount: -4.50" in prompt
        assert "- memo: coffee" in prompt

    def test_prompt_without_context(self):
        assert "Additional context" not in build_user_prompt("SHELL", {})


class TestParseResponse:

    def test_full_response(self):
        response = parse_cleanup_response(json.dumps({
            "cleaned_payee": "Blue Bottle Coffee",
            "confidence": 0.92,
            "rule_suggestion": {
                "pattern": "BLUE BOTTLE",
                "pattern_type": "CONTAINS",
                "replacement": "Blue Bottle Coffee",
            },
        }))

        assert response.cleaned_name == "Blue Bottle Coffee"
        assert response.confidence == 0.92
        assert response.suggestion.pattern == "BLUE BOTTLE"
        assert response.suggestion.pattern_type == "CONTAINS"
        assert response.suggestion.confidence == 0.92

    def test_code_fenced_json(self):
        text = '```json\n{"cleaned_payee": "Netflix", "rule_suggestion": null}\n```'
        response = parse_cleanup_response(text)

        assert response.cleaned_name == "Netflix"
        assert response.confidence is None
        assert response.suggestion is None

    def test_prose_around_json(self):
        text = 'Here you go: {"cleaned_payee": " Lyft "} Hope that helps.'
        assert parse_cleanup_response(text).cleaned_name == "Lyft"

    def test_suggestion_defaults(self):
        response = parse_cleanup_response(json.dumps({
            "cleaned_payee": "Uber",
            "rule_suggestion": {"pattern": "UBER *TRIP"},
        }))

        assert response.suggestion.pattern_type == "CONTAINS"
        assert response.suggestion.replacement == "Uber"
        assert response.suggestion.confidence is None

    def test_string_confidence(self):
        response = parse_cleanup_response('{"cleaned_payee": "Uber", "confidence": "0.7"}')
        assert response.confidence == 0.7

    @pytest.mark.parametrize("text", [
        "I cannot help with that",
        '{"cleaned_payee": }',
        '{"confidence": 0.9}',
        '{"cleaned_payee": "   "}',
    ])
    def test_malformed_responses(self, text):
        with pytest.raises(LLMResponseError):
            parse_cleanup_response(text)


class TestAnthropicPayeeCleaner:

    def test_disabled_without_api_key(self, monkeypatch):
        monkeypatch.delenv('ANTHROPIC_API_KEY', raising=False)
        cleaner = AnthropicPayeeCleaner(api_key=None)
        assert not cleaner.enabled

    def test_from_config(self):
        cleaner = AnthropicPayeeCleaner.from_config(
            EngineConfig(anthropic_api_key="sk-test", llm_model="claude-test", llm_max_tokens=128)
        )
        assert cleaner.enabled
        assert cleaner.model == "claude-test"
        assert cleaner.max_tokens == 128

    @pytest.mark.asyncio
    async def test_cleanup_payee(self):
        client = mock_client('{"cleaned_payee": "Starbucks", "confidence": 0.95}')
        cleaner = AnthropicPayeeCleaner(client=client, model="claude-test")

        response = await cleaner.cleanup_payee("STARBUCKS STORE 1234", {"amount": "-5.75"})

        assert response.cleaned_name == "Starbucks"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["temperature"] == 0.0
        assert "STARBUCKS STORE 1234" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_disabled_cleaner_raises_service_error(self, monkeypatch):
        monkeypatch.delenv('ANTHROPIC_API_KEY', raising=False)
        with pytest.raises(LLMServiceError):
            await AnthropicPayeeCleaner().cleanup_payee("SHELL", {})

    @pytest.mark.asyncio
    async def test_rate_limit_is_mapped(self):
        error = anthropic.RateLimitError("rate limited", response=api_response(429), body=None)
        cleaner = AnthropicPayeeCleaner(client=mock_client(error=error))

        with pytest.raises(LLMRateLimitError) as exc_info:
            await cleaner.cleanup_payee("SHELL", {})
        assert exc_info.value.cause is error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        anthropic.APITimeoutError(request=httpx.Request("POST", API_URL)),
        anthropic.APIConnectionError(request=httpx.Request("POST", API_URL)),
        anthropic.InternalServerError("overloaded", response=api_response(500), body=None),
    ])
    async def test_client_errors_are_mapped(self, error):
        cleaner = AnthropicPayeeCleaner(client=mock_client(error=error))

        with pytest.raises(LLMServiceError) as exc_info:
            await cleaner.cleanup_payee("SHELL", {})
        assert not isinstance(exc_info.value, anthropic.APIError)

    @pytest.mark.asyncio
    async def test_malformed_reply_is_a_response_error(self):
        cleaner = AnthropicPayeeCleaner(client=mock_client("Sorry, no JSON today"))
        with pytest.raises(LLMResponseError):
            await cleaner.cleanup_payee("SHELL", {})

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await AnthropicPayeeCleaner(client=mock_client("OK")).health_check()

        error = anthropic.APIConnectionError(request=httpx.Request("POST", API_URL))
        assert not await AnthropicPayeeCleaner(client=mock_client(error=error)).health_check()
