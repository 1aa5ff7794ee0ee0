"""
Cleanup Orchestrator

The main engine that cleans payee names using:
1. Rule matching over the approved rules (highest priority)
2. LLM cleanup for payees no rule matches
3. Pending rule creation from LLM suggestions (for human review)

cleanup() is total: whatever happens on the LLM path, a cleaned name comes back
(worst case the raw payee untouched). Storage failures still propagate.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import InvalidRuleDefinition
from .rule_matcher import find_match
from .rule_synthesizer import RuleSynthesizer
from .rules import RuleApplication, RuleDraft, clamp, utc_now

logger = logging.getLogger(__name__)

SOURCE_RULE = 'rule'
SOURCE_LLM = 'llm'
SOURCE_FALLBACK = 'fallback'


@dataclass(frozen=True)
class CleanupResult:
    """Result of cleaning one payee"""
    original: str
    cleaned: str
    confidence: float
    source: str  # 'rule', 'llm' or 'fallback'
    applied_rule: Optional[str] = None
    generated_rule: Optional[str] = None


class PayeeCleanupOrchestrator:
    """
    Orchestrates payee cleanup using rules first and the LLM second
    """

    def __init__(self, store, synthesizer: RuleSynthesizer):
        """
        Args:
            store: Rule store (read fresh on every cleanup)
            synthesizer: LLM rule synthesizer used on a rule miss
        """
        self.store = store
        self.synthesizer = synthesizer

        self.stats = {
            'total': 0,
            'rule_match': 0,
            'llm_cleaned': 0,
            'rules_generated': 0,
            'fallback': 0,
        }

    async def cleanup(self, raw_payee: str,
                      transaction_ref: Optional[str] = None,
                      context: Optional[Dict[str, str]] = None) -> CleanupResult:
        """
        Clean a single payee

        Args:
            raw_payee: Payee text exactly as it appears on the statement
            transaction_ref: Transaction identifier, used to record the rule application
            context: Extra transaction details passed to the LLM (amount, memo, ...)

        Returns:
            CleanupResult

        Raises:
            StorageUnavailable: if the rule store cannot be reached
        """
        self.stats['total'] += 1

        # Step 1: Rule matching over a fresh snapshot of approved rules
        rules = await self.store.list_active()
        rule = find_match(raw_payee, rules)

        if rule:
            recorded = await self.store.record_application(RuleApplication(
                rule_id=rule.id,
                transaction_ref=transaction_ref,
                original_payee=raw_payee,
                cleaned_payee=rule.replacement,
                applied_at=utc_now(),
            ))
            # Re-cleaning an already recorded transaction does not count again
            if recorded:
                await self.store.increment_usage(rule.id)

            self.stats['rule_match'] += 1
            return CleanupResult(
                original=raw_payee,
                cleaned=rule.replacement,
                confidence=rule.confidence,
                source=SOURCE_RULE,
                applied_rule=rule.id,
            )

        # Step 2: LLM cleanup
        synthesis = await self.synthesizer.synthesize(raw_payee, context)
        if not synthesis.from_llm:
            self.stats['fallback'] += 1
            return CleanupResult(
                original=raw_payee,
                cleaned=synthesis.cleaned_name,
                confidence=0.0,
                source=SOURCE_FALLBACK,
            )

        self.stats['llm_cleaned'] += 1
        confidence = synthesis.confidence
        if confidence is None:
            confidence = self.synthesizer.default_confidence

        # Step 3: Persist the suggestion as a pending rule
        generated_rule = None
        if synthesis.suggested_rule is not None:
            generated_rule = await self._persist_suggestion(raw_payee, synthesis.suggested_rule)

        return CleanupResult(
            original=raw_payee,
            cleaned=synthesis.cleaned_name,
            confidence=clamp(confidence),
            source=SOURCE_LLM,
            generated_rule=generated_rule,
        )

    async def _persist_suggestion(self, raw_payee: str, draft: RuleDraft) -> Optional[str]:
        """Insert a pending rule for the draft unless an equivalent rule already exists"""
        try:
            new_rule = draft.to_rule()
        except InvalidRuleDefinition as e:
            logger.info(f"Skipping LLM rule suggestion for {raw_payee!r}: {e}")
            return None

        if not await self.store.insert_if_new_pattern(new_rule):
            logger.info(
                f"A rule for {new_rule.pattern_type.value} {new_rule.pattern!r} "
                f"already exists, not adding another"
            )
            return None
        rule_id = new_rule.id

        self.stats['rules_generated'] += 1
        logger.info(
            f"📝 New pending rule {rule_id}: {new_rule.pattern_type.value} "
            f"{new_rule.pattern!r} -> {new_rule.replacement!r} "
            f"(confidence {new_rule.confidence:.2f})"
        )
        return rule_id

    def print_stats(self):
        """Print cleanup statistics"""
        total = self.stats['total']
        if total == 0:
            print("\n📊 No payees cleaned yet")
            return

        print("\n" + "=" * 80)
        print("📊 PAYEE CLEANUP STATISTICS")
        print("=" * 80)
        print(f"Total payees: {total}")
        print(f"  • Rule matches: {self.stats['rule_match']} "
              f"({self.stats['rule_match'] / total * 100:.1f}%)")
        print(f"  • LLM cleaned: {self.stats['llm_cleaned']} "
              f"({self.stats['llm_cleaned'] / total * 100:.1f}%)")
        print(f"  • Unchanged (fallback): {self.stats['fallback']} "
              f"({self.stats['fallback'] / total * 100:.1f}%)")
        print(f"\n📝 Pending rules generated: {self.stats['rules_generated']}")
        print("=" * 80)
