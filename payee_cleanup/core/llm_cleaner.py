"""
LLM Payee Cleaner

Uses the Claude API to clean payee names that no rule matches.
Features:
- Async client so a slow call never blocks other cleanups
- Better JSON parsing with fallback (code fences, leading/trailing prose)
- Optional rule suggestion returned alongside the cleaned name
- Client errors mapped to the engine's LLMServiceError family
"""
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import anthropic

from .errors import LLMRateLimitError, LLMResponseError, LLMServiceError
from .rules import RuleDraft

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You clean up raw payee names from bank transactions. Convert messy payee text into a clean, consistent merchant or person name that reads well in a budget.

Rules for cleaning payee names:
1. Remove reference numbers, dates, card numbers and terminal ids
2. Remove generic payment wording such as "PAYMENT", "DEBIT", "CARD PURCHASE"
3. Use Title Case for business names instead of ALL CAPS
4. Be consistent: always "McDonald's", never "MCDONALDS" or "Mcdonald"
5. Drop locations unless they distinguish the merchant ("STARBUCKS MAIN ST" -> "Starbucks")
6. Keep information that explains the purpose of the payment

If the raw name contains a stable fragment that identifies the payee in future transactions, suggest a reusable rule for it.

Respond with ONLY a JSON object (no markdown, no explanations):
{
  "cleaned_payee": "Clean name",
  "confidence": 0.9,
  "rule_suggestion": {
    "pattern": "text that matches the raw name",
    "pattern_type": "EXACT | CONTAINS | STARTS_WITH | REGEX",
    "replacement": "Clean name"
  }
}
Use null for rule_suggestion when no reusable pattern exists. confidence must be between 0.0 and 1.0."""


@dataclass(frozen=True)
class LLMCleanupResponse:
    """What the LLM text service returns for one payee"""
    cleaned_name: str
    confidence: Optional[float] = None
    suggestion: Optional[RuleDraft] = None


class LLMTextService(ABC):
    """External text service that cleans a single payee name"""

    enabled = True

    @abstractmethod
    async def cleanup_payee(self, raw_payee: str,
                            context: Dict[str, str]) -> LLMCleanupResponse:
        """
        Raises:
            LLMServiceError: on any failure of the external service
        """


def build_user_prompt(raw_payee: str, context: Dict[str, str]) -> str:
    """Prompt with the raw payee and any transaction context"""
    lines = [
        "Clean up this raw transaction payee name.",
        "",
        f'Original payee name: "{raw_payee}"',
    ]
    if context:
        lines.append("")
        lines.append("Additional context:")
        for key, value in sorted(context.items()):
            lines.append(f"- {key}: {value}")
    lines.append("")
    lines.append("Respond in the JSON format specified in your instructions.")
    return '\n'.join(lines)


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_cleanup_response(response_text: str) -> LLMCleanupResponse:
    """
    Parse the model's JSON answer

    Raises:
        LLMResponseError: if no JSON object with a cleaned_payee can be extracted
    """
    text = response_text.strip()

    # Remove markdown code blocks if present
    if text.startswith('```'):
        lines = text.split('\n')
        text = '\n'.join(line for line in lines if not line.startswith('```'))

    # Extract JSON object (handle cases where there's text before/after)
    start_idx = text.find('{')
    end_idx = text.rfind('}')
    if start_idx == -1 or end_idx <= start_idx:
        raise LLMResponseError(f"No JSON object in LLM response: {response_text[:100]!r}")

    try:
        data = json.loads(text[start_idx:end_idx + 1])
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"LLM response not valid JSON: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise LLMResponseError(f"Expected JSON object, got {type(data).__name__}")

    cleaned = data.get('cleaned_payee')
    if not isinstance(cleaned, str) or not cleaned.strip():
        raise LLMResponseError(f"LLM response missing cleaned_payee: {data}")
    cleaned = cleaned.strip()

    confidence = _as_number(data.get('confidence'))

    suggestion = None
    raw_suggestion = data.get('rule_suggestion')
    if isinstance(raw_suggestion, dict):
        suggestion = RuleDraft(
            pattern=raw_suggestion.get('pattern'),
            pattern_type=raw_suggestion.get('pattern_type', 'CONTAINS'),
            replacement=raw_suggestion.get('replacement', cleaned),
            confidence=_as_number(raw_suggestion.get('confidence', confidence)),
        )

    return LLMCleanupResponse(cleaned_name=cleaned, confidence=confidence, suggestion=suggestion)


class AnthropicPayeeCleaner(LLMTextService):
    """
    Cleans payee names using Claude API
    """

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: str = 'claude-sonnet-4-20250514',
                 max_tokens: int = 300,
                 max_retries: int = 2,
                 client=None):
        """
        Args:
            api_key: Anthropic API key (or read from ANTHROPIC_API_KEY env var)
            model: Claude model name
            max_tokens: Response token budget
            max_retries: Retries performed by the client on connection / 429 / 5xx errors
            client: Pre-built async client (tests)
        """
        self.model = model
        self.max_tokens = max_tokens
        self.api_key = api_key or os.environ.get('ANTHROPIC_API_KEY')

        if client is not None:
            self.client = client
            self.enabled = True
        elif not self.api_key:
            logger.warning("⚠️  No ANTHROPIC_API_KEY found. LLM payee cleanup disabled.")
            self.client = None
            self.enabled = False
        else:
            self.client = anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=max_retries)
            self.enabled = True

    @classmethod
    def from_config(cls, config) -> 'AnthropicPayeeCleaner':
        return cls(
            api_key=config.anthropic_api_key,
            model=config.llm_model,
            max_tokens=config.llm_max_tokens,
            max_retries=config.llm_max_retries,
        )

    async def _create_message(self, system: str, prompt: str, max_tokens: int) -> str:
        if not self.enabled:
            raise LLMServiceError("LLM payee cleanup is disabled (no API key)")

        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=0.0,  # Deterministic
                system=system,
                messages=[{
                    "role": "user",
                    "content": prompt
                }]
            )
        except anthropic.RateLimitError as e:
            raise LLMRateLimitError(f"Claude API rate limit: {e}", cause=e) from e
        except anthropic.APITimeoutError as e:
            raise LLMServiceError("Claude API request timed out", cause=e) from e
        except anthropic.APIError as e:
            raise LLMServiceError(f"Claude API error: {e}", cause=e) from e

        return ''.join(
            block.text for block in message.content if getattr(block, 'type', None) == 'text'
        )

    async def cleanup_payee(self, raw_payee: str,
                            context: Dict[str, str]) -> LLMCleanupResponse:
        """
        Clean a payee name and optionally suggest a rule

        Raises:
            LLMServiceError: client failure, rate limit or malformed response
        """
        response_text = await self._create_message(
            SYSTEM_PROMPT, build_user_prompt(raw_payee, context), self.max_tokens
        )
        return parse_cleanup_response(response_text)

    async def health_check(self) -> bool:
        """Verify the API is reachable and answering"""
        try:
            text = await self._create_message(
                "You are a helpful assistant.",
                "Hello, this is a health check. Please respond with 'OK'.",
                max_tokens=5,
            )
        except LLMServiceError as e:
            logger.warning(f"⚠️  Claude API health check failed: {e}")
            return False
        return 'OK' in text
