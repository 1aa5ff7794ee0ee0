"""
Rule Store contract

The persistent rule store owns the durable copy of every rule. The engine only
reads values from it and writes new values back through the operations below.

Concurrency requirements:
- increment_usage() is an atomic store-level increment (no lost updates)
- update_atomic() and apply_feedback() serialize read-modify-write per rule
- insert_if_new_pattern() checks and inserts atomically
- apply_feedback() writes the application mark and the rule update together or not at all
- list_* reads return a consistent snapshot and never block on writers
"""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..core.rules import Rule, RuleApplication, RuleStatus

RuleMutation = Callable[[Rule], Rule]

# (current rule, usage still to be counted) -> updated rule
FeedbackMutation = Callable[[Rule, bool], Rule]


class RuleStore(ABC):

    @abstractmethod
    async def list_by_status(self, status: RuleStatus) -> List[Rule]:
        """Snapshot of all rules with the given status"""

    async def list_active(self) -> List[Rule]:
        return await self.list_by_status(RuleStatus.APPROVED)

    async def list_pending(self) -> List[Rule]:
        return await self.list_by_status(RuleStatus.PENDING)

    @abstractmethod
    async def get(self, rule_id: str) -> Optional[Rule]:
        """Current value of a rule, or None"""

    @abstractmethod
    async def insert(self, rule: Rule) -> str:
        """Persist a new rule and return its id"""

    @abstractmethod
    async def insert_if_new_pattern(self, rule: Rule) -> bool:
        """
        Persist a new rule unless a rule of any status already has the same
        pattern type and pattern (case-insensitive). Check and insert are atomic.

        Returns:
            False if such a rule exists and nothing was inserted
        """

    @abstractmethod
    async def update_atomic(self, rule_id: str, mutation: RuleMutation) -> Rule:
        """
        Apply mutation to the current value of a rule under a per-rule
        serialization point and persist the result.

        The mutation may raise to abort (nothing is written). If it returns the
        rule it was given unchanged, nothing is written either.

        Raises:
            RuleNotFound: if the rule does not exist
        """

    @abstractmethod
    async def increment_usage(self, rule_id: str) -> None:
        """Atomically add one to usage_count of an approved rule"""

    @abstractmethod
    async def record_application(self, application: RuleApplication) -> bool:
        """
        Append an application record.

        Returns:
            False if an application of this rule to the same transaction already exists
        """

    @abstractmethod
    async def get_application(self, rule_id: str,
                              transaction_ref: str) -> Optional[RuleApplication]:
        """Application of rule_id to transaction_ref, if any"""

    @abstractmethod
    async def apply_feedback(self, rule_id: str, application: RuleApplication,
                             mutation: FeedbackMutation) -> Optional[Rule]:
        """
        Attach feedback to an application of an approved rule and update the rule,
        as one atomic operation under the rule's serialization point.

        An application without a transaction_ref, or for a transaction the rule
        was never applied to, is recorded with its feedback and mutation is told
        to count the usage. An existing application without feedback gets the
        feedback and mutation is told the usage was already counted.
        If the rule is not approved, nothing is written and the rule comes back unchanged.

        Returns:
            The rule after the update, or None if the application already had feedback

        Raises:
            RuleNotFound: if the rule does not exist
        """

    @abstractmethod
    async def delete(self, rule_id: str) -> None:
        """Administrative removal of a rule and its application history"""
