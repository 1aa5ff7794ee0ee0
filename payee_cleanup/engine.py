"""
Payee Cleanup Engine

Single entry point wiring the rule store, the LLM synthesizer, the cleanup
orchestrator, the review workflow and the feedback recorder together.

Usage:
    engine = PayeeCleanupEngine.from_config(EngineConfig.from_env())
    result = await engine.cleanup("SQ *BLUE BOTTLE COFFEE 1234", transaction_ref="txn-42")
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .config import EngineConfig
from .core.cleanup_orchestrator import CleanupResult, PayeeCleanupOrchestrator
from .core.feedback_recorder import FeedbackRecorder
from .core.llm_cleaner import AnthropicPayeeCleaner, LLMTextService
from .core.review_workflow import ReviewWorkflow
from .core.rule_matcher import find_matching_rules
from .core.rule_synthesizer import RuleSynthesizer
from .core.rules import PatternType, Rule, RuleEdit, create_from_human
from .store.base import RuleStore
from .store.memory import InMemoryRuleStore

logger = logging.getLogger(__name__)


def build_store(config: EngineConfig) -> RuleStore:
    """Rule store for the configured backend"""
    if config.store_backend == 'memory':
        return InMemoryRuleStore()

    # Imported here so the in-memory backend works without a database driver configured
    from .store.postgres import PostgresRuleStore
    return PostgresRuleStore()


class PayeeCleanupEngine:
    """
    Self-learning payee cleanup engine
    """

    def __init__(self,
                 store: RuleStore,
                 synthesizer: RuleSynthesizer,
                 feedback: Optional[FeedbackRecorder] = None):
        self.store = store
        self.synthesizer = synthesizer
        self.orchestrator = PayeeCleanupOrchestrator(store, synthesizer)
        self.review = ReviewWorkflow(store)
        self.feedback = feedback or FeedbackRecorder(store)

    @classmethod
    def from_config(cls,
                    config: Optional[EngineConfig] = None,
                    store: Optional[RuleStore] = None,
                    service: Optional[LLMTextService] = None) -> 'PayeeCleanupEngine':
        """
        Build an engine from configuration

        Args:
            config: Engine configuration (defaults to EngineConfig.from_env())
            store: Rule store (defaults to the configured backend)
            service: LLM text service (defaults to the Anthropic adapter)
        """
        config = config or EngineConfig.from_env()
        config.validate()

        if store is None:
            store = build_store(config)

        if service is None and config.llm_enabled:
            service = AnthropicPayeeCleaner.from_config(config)

        synthesizer = RuleSynthesizer.from_config(config, service)
        if not synthesizer.enabled:
            logger.info("LLM payee cleanup disabled; unmatched payees are returned unchanged")

        return cls(store, synthesizer, FeedbackRecorder.from_config(store, config))

    # Cleanup

    async def cleanup(self, raw_payee: str,
                      transaction_ref: Optional[str] = None,
                      context: Optional[Dict[str, str]] = None) -> CleanupResult:
        return await self.orchestrator.cleanup(raw_payee, transaction_ref, context)

    async def find_matching_rules(self, raw_payee: str) -> List[Rule]:
        """All approved rules matching a payee, best first (diagnostics)"""
        return find_matching_rules(raw_payee, await self.store.list_active())

    # Rules

    async def get_pending_rules(self) -> List[Rule]:
        return await self.review.pending_rules()

    async def get_approved_rules(self) -> List[Rule]:
        return await self.store.list_active()

    async def create_rule(self, pattern: str,
                          pattern_type: Union[str, PatternType],
                          replacement: str) -> Rule:
        """
        Create a human-authored rule; it is approved and used immediately

        Raises:
            InvalidRuleDefinition: if the definition is malformed
        """
        rule = create_from_human(pattern, pattern_type, replacement)
        await self.store.insert(rule)
        logger.info(f"✅ Created rule {rule.id}: {rule.pattern_type.value} "
                    f"{rule.pattern!r} -> {rule.replacement!r}")
        return rule

    # Review

    async def approve_rule(self, rule_id: str,
                           modifications: Union[RuleEdit, Mapping[str, Any], None] = None) -> Rule:
        return await self.review.approve(rule_id, modifications)

    async def reject_rule(self, rule_id: str, reason: Optional[str] = None) -> None:
        await self.review.reject(rule_id, reason)

    # Feedback

    async def record_feedback(self, rule_id: str, was_successful: bool,
                              transaction_ref: Optional[str] = None) -> Rule:
        return await self.feedback.record_feedback(rule_id, was_successful, transaction_ref)

    # Observability

    def stats(self) -> Dict[str, int]:
        """Cleanup and LLM counters in one dict"""
        merged = dict(self.orchestrator.stats)
        merged.update(self.synthesizer.stats)
        return merged

    def print_stats(self):
        self.orchestrator.print_stats()
        self.synthesizer.print_stats()
