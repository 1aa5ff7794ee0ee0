"""
Review Workflow

Lifecycle of LLM-proposed rules:

    PENDING --approve--> APPROVED --auto-demote--> REJECTED
       |
       +-----reject----> REJECTED (terminal)

Each transition is a pure function over a rule value, applied through the
store's per-rule serialization point, so two reviewers racing on the same rule
cannot both succeed: the loser sees InvalidRuleState.
"""
import logging
from typing import Any, List, Mapping, Optional, Union

from .errors import InvalidRuleState
from .rules import Rule, RuleEdit, RuleStatus

logger = logging.getLogger(__name__)

AUTO_DEMOTION_REASON = "auto-demoted: success rate below floor"


def approve_transition(rule: Rule, edit: Optional[RuleEdit] = None) -> Rule:
    """PENDING -> APPROVED, applying reviewer edits first"""
    if rule.status != RuleStatus.PENDING:
        raise InvalidRuleState(rule.id, rule.status, 'approve')

    if edit is None:
        return rule.with_changes(status=RuleStatus.APPROVED)

    pattern, pattern_type, replacement = edit.apply_to(rule)
    return rule.with_changes(
        pattern=pattern,
        pattern_type=pattern_type,
        replacement=replacement,
        status=RuleStatus.APPROVED,
    )


def reject_transition(rule: Rule, reason: Optional[str] = None) -> Rule:
    """PENDING -> REJECTED"""
    if rule.status != RuleStatus.PENDING:
        raise InvalidRuleState(rule.id, rule.status, 'reject')
    return rule.with_changes(status=RuleStatus.REJECTED, rejection_reason=reason)


def demote_transition(rule: Rule, reason: str = AUTO_DEMOTION_REASON) -> Rule:
    """APPROVED -> REJECTED; only the feedback recorder takes this path"""
    if rule.status != RuleStatus.APPROVED:
        raise InvalidRuleState(rule.id, rule.status, 'demote')
    return rule.with_changes(status=RuleStatus.REJECTED, rejection_reason=reason)


def _as_edit(modifications: Union[RuleEdit, Mapping[str, Any], None]) -> Optional[RuleEdit]:
    if modifications is None or isinstance(modifications, RuleEdit):
        return modifications
    return RuleEdit.from_mapping(modifications)


class ReviewWorkflow:
    """
    Human review of pending rules
    """

    def __init__(self, store):
        self.store = store

    async def pending_rules(self) -> List[Rule]:
        return await self.store.list_pending()

    async def approve(self, rule_id: str,
                      modifications: Union[RuleEdit, Mapping[str, Any], None] = None) -> Rule:
        """
        Approve a pending rule, optionally with modifications

        Raises:
            RuleNotFound: if the rule does not exist
            InvalidRuleState: if the rule is not PENDING
            InvalidRuleDefinition: if the modifications are invalid
        """
        edit = _as_edit(modifications)
        rule = await self.store.update_atomic(rule_id, lambda r: approve_transition(r, edit))
        logger.info(f"✅ Approved rule {rule.id}: {rule.pattern_type.value} "
                    f"{rule.pattern!r} -> {rule.replacement!r}")
        return rule

    async def reject(self, rule_id: str, reason: Optional[str] = None) -> None:
        """
        Reject a pending rule

        Raises:
            RuleNotFound: if the rule does not exist
            InvalidRuleState: if the rule is not PENDING
        """
        rule = await self.store.update_atomic(rule_id, lambda r: reject_transition(r, reason))
        logger.info(f"🚫 Rejected rule {rule.id} ({rule.pattern!r})"
                    + (f": {reason}" if reason else ""))
