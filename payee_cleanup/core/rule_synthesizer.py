"""
LLM Rule Synthesizer

Wraps the LLM text service for payees no rule matches:
- Response cache keyed by the normalized payee, entries expire after a TTL
- Concurrent requests for the same payee share one in-flight call
- A rule draft is handed out once per LLM response
- Hard timeout; on timeout or service failure the raw payee comes back unchanged
- Invalid rule suggestions are dropped, never turned into rules
"""
import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Tuple

from .errors import InvalidRuleDefinition, LLMServiceError
from .llm_cleaner import LLMTextService
from .rules import RuleDraft

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SynthesisResult:
    """Cleaned name plus an optional validated rule draft"""
    cleaned_name: str
    suggested_rule: Optional[RuleDraft] = None
    confidence: Optional[float] = None
    from_llm: bool = False  # False when the raw payee was returned as a fallback


def payee_cache_key(raw_payee: str) -> str:
    """Collapse whitespace and lowercase so trivially different strings share an entry"""
    return ' '.join(raw_payee.split()).lower()


class RuleSynthesizer:
    """
    Produces cleaned names (and rule drafts) through the LLM text service
    """

    def __init__(self,
                 service: Optional[LLMTextService],
                 timeout_seconds: float = 15.0,
                 cache_ttl_seconds: float = 3600.0,
                 cache_max_entries: int = 10000,
                 default_confidence: float = 0.7,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            service: LLM text service (None disables LLM cleanup)
            timeout_seconds: Upper bound on one external call
            cache_ttl_seconds: Lifetime of a cached response
            cache_max_entries: Oldest entries are evicted beyond this size
            default_confidence: Confidence for suggestions that carry none
            clock: Monotonic time source (injectable for tests)
        """
        self.service = service
        self.timeout_seconds = timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache_max_entries = cache_max_entries
        self.default_confidence = default_confidence
        self.clock = clock

        self._cache: "OrderedDict[str, Tuple[float, SynthesisResult]]" = OrderedDict()
        self._inflight: Dict[str, asyncio.Task] = {}

        self.stats = {
            'llm_calls': 0,
            'cache_hits': 0,
            'llm_errors': 0,
            'llm_timeouts': 0,
            'llm_disabled': 0,
            'suggestions_discarded': 0,
        }

    @classmethod
    def from_config(cls, config, service: Optional[LLMTextService]) -> 'RuleSynthesizer':
        return cls(
            service=service if config.llm_enabled else None,
            timeout_seconds=config.llm_timeout_seconds,
            cache_ttl_seconds=config.cache_ttl_seconds,
            cache_max_entries=config.cache_max_entries,
            default_confidence=config.default_llm_confidence,
        )

    @property
    def enabled(self) -> bool:
        return self.service is not None and getattr(self.service, 'enabled', True)

    async def synthesize(self, raw_payee: str,
                         context: Optional[Dict[str, str]] = None) -> SynthesisResult:
        """
        Clean a payee through the cache or the LLM text service

        Never raises for service problems; the worst case is the raw payee
        returned unchanged with no suggestion.
        """
        if not self.enabled:
            self.stats['llm_disabled'] += 1
            return SynthesisResult(cleaned_name=raw_payee)

        key = payee_cache_key(raw_payee)

        # The rule draft goes only to the caller that made the LLM call;
        # cache hits and callers sharing an in-flight call get the name alone
        cached = self._cache_get(key)
        if cached is not None:
            self.stats['cache_hits'] += 1
            return replace(cached, suggested_rule=None)

        task = self._inflight.get(key)
        if task is not None:
            self.stats['cache_hits'] += 1
            result = await asyncio.shield(task)
            return replace(result, suggested_rule=None)

        self.stats['llm_calls'] += 1
        task = asyncio.ensure_future(self._fetch(key, raw_payee, dict(context or {})))
        self._inflight[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))

        # Shielded so one cancelled caller does not cancel the call for the others
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task):
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _fetch(self, key: str, raw_payee: str,
                     context: Dict[str, str]) -> SynthesisResult:
        started = self.clock()
        try:
            response = await asyncio.wait_for(
                self.service.cleanup_payee(raw_payee, context),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self.stats['llm_timeouts'] += 1
            logger.warning(
                f"⚠️  LLM cleanup timed out after {self.clock() - started:.1f}s "
                f"for payee {raw_payee!r}"
            )
            return SynthesisResult(cleaned_name=raw_payee)
        except LLMServiceError as e:
            self.stats['llm_errors'] += 1
            logger.warning(
                f"⚠️  LLM cleanup failed for payee {raw_payee!r} "
                f"after {self.clock() - started:.1f}s ({type(e).__name__}): {e}"
            )
            return SynthesisResult(cleaned_name=raw_payee)
        except Exception:
            self.stats['llm_errors'] += 1
            logger.exception(f"⚠️  Unexpected LLM service failure for payee {raw_payee!r}")
            return SynthesisResult(cleaned_name=raw_payee)

        draft = self._accept_draft(response.suggestion, raw_payee)
        confidence = response.confidence
        if confidence is None and draft is not None:
            confidence = draft.confidence

        result = SynthesisResult(
            cleaned_name=response.cleaned_name,
            suggested_rule=draft,
            confidence=confidence,
            from_llm=True,
        )
        self._cache_put(key, result)
        return result

    def _accept_draft(self, draft: Optional[RuleDraft], raw_payee: str) -> Optional[RuleDraft]:
        """Validated draft, or None when there is no usable suggestion"""
        if draft is None:
            return None

        if draft.confidence is None:
            draft = replace(draft, confidence=self.default_confidence)

        try:
            draft.validate()
        except InvalidRuleDefinition as e:
            self.stats['suggestions_discarded'] += 1
            logger.info(f"Discarding LLM rule suggestion for {raw_payee!r}: {e}")
            return None
        return draft

    def _cache_get(self, key: str) -> Optional[SynthesisResult]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        stored_at, result = entry
        if self.clock() - stored_at >= self.cache_ttl_seconds:
            del self._cache[key]
            return None

        self._cache.move_to_end(key)
        return result

    def _cache_put(self, key: str, result: SynthesisResult):
        self._cache[key] = (self.clock(), result)
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_max_entries:
            self._cache.popitem(last=False)

    def clear_cache(self):
        self._cache.clear()

    def print_stats(self):
        """Print LLM usage statistics"""
        total = self.stats['llm_calls'] + self.stats['cache_hits']
        print("\n" + "=" * 80)
        print("🤖 LLM SYNTHESIZER STATISTICS")
        print("=" * 80)
        print(f"Lookups: {total}")
        print(f"  • External calls: {self.stats['llm_calls']}")
        print(f"  • Cache hits: {self.stats['cache_hits']}")
        print(f"  • Errors: {self.stats['llm_errors']}")
        print(f"  • Timeouts: {self.stats['llm_timeouts']}")
        print(f"  • Skipped (LLM disabled): {self.stats['llm_disabled']}")
        print(f"  • Discarded rule suggestions: {self.stats['suggestions_discarded']}")
        print("=" * 80)
