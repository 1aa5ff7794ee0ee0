"""
Feedback Recorder

Turns downstream confirmations/corrections into rule performance:
- success_rate is an exponentially weighted average of feedback signals
- feedback is tied to a rule application, so the same application is never counted twice
- approved rules whose success rate sinks below a floor (after enough usage) are demoted
"""
import logging
from typing import Optional

from .errors import RuleNotFound
from .review_workflow import AUTO_DEMOTION_REASON, demote_transition
from .rules import Rule, RuleApplication, utc_now

logger = logging.getLogger(__name__)


def smoothed_success_rate(current: float, was_successful: bool, alpha: float) -> float:
    """successRate' = successRate * (1 - alpha) + signal * alpha"""
    signal = 1.0 if was_successful else 0.0
    return current * (1.0 - alpha) + signal * alpha


class FeedbackRecorder:
    """
    Updates usage and success statistics of rules from feedback signals
    """

    def __init__(self, store,
                 alpha: float = 0.2,
                 demotion_min_usage: int = 5,
                 demotion_floor: float = 0.5):
        """
        Args:
            store: Rule store
            alpha: Smoothing factor; weight of the newest signal
            demotion_min_usage: Usage count a rule needs before it can be demoted
            demotion_floor: Success rate below which an approved rule is demoted
        """
        self.store = store
        self.alpha = alpha
        self.demotion_min_usage = demotion_min_usage
        self.demotion_floor = demotion_floor

    @classmethod
    def from_config(cls, store, config) -> 'FeedbackRecorder':
        return cls(
            store,
            alpha=config.feedback_alpha,
            demotion_min_usage=config.demotion_min_usage,
            demotion_floor=config.demotion_floor,
        )

    def should_demote(self, rule: Rule) -> bool:
        return (
            rule.is_active
            and rule.usage_count >= self.demotion_min_usage
            and rule.success_rate < self.demotion_floor
        )

    async def record_feedback(self, rule_id: str, was_successful: bool,
                              transaction_ref: Optional[str] = None) -> Rule:
        """
        Record whether an application of a rule produced the right payee

        The application mark and the success rate update are written together,
        so a call that failed with StorageUnavailable can simply be retried.

        Args:
            rule_id: Rule that was applied
            was_successful: True if the cleaned payee was confirmed, False if corrected
            transaction_ref: Transaction the rule was applied to, when known

        Returns:
            The rule after the update (unchanged if the feedback was ignored)

        Raises:
            RuleNotFound: if the rule no longer exists
        """
        rule = await self.store.get(rule_id)
        if rule is None:
            logger.warning(f"⚠️  Discarding feedback for missing rule {rule_id}")
            raise RuleNotFound(rule_id)

        if not rule.is_active:
            logger.warning(f"⚠️  Ignoring feedback for {rule.status.value} rule {rule_id}")
            return rule

        now = utc_now()
        application = RuleApplication(
            rule_id=rule_id,
            transaction_ref=transaction_ref,
            original_payee=None,
            cleaned_payee=rule.replacement,
            applied_at=now,
            was_confirmed_correct=was_successful,
            feedback_at=now,
        )
        demoted = False

        def mutation(current: Rule, count_usage: bool) -> Rule:
            nonlocal demoted
            if not current.is_active:
                return current
            updated = current.with_changes(
                success_rate=smoothed_success_rate(current.success_rate, was_successful, self.alpha),
                usage_count=current.usage_count + (1 if count_usage else 0),
            )
            if self.should_demote(updated):
                updated = demote_transition(updated, AUTO_DEMOTION_REASON)
                demoted = True
            return updated

        try:
            updated = await self.store.apply_feedback(rule_id, application, mutation)
        except RuleNotFound:
            logger.warning(f"⚠️  Rule {rule_id} was deleted while recording feedback")
            raise

        if updated is None:
            logger.info(f"Feedback already recorded for rule {rule_id} "
                        f"on transaction {transaction_ref}")
            return rule

        if demoted:
            logger.warning(
                f"⚠️  Auto-demoted rule {rule_id} ({updated.pattern!r} -> {updated.replacement!r}): "
                f"success rate {updated.success_rate:.2f} < {self.demotion_floor:.2f} "
                f"after {updated.usage_count} uses"
            )
        return updated
