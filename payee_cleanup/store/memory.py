"""
In-memory rule store

Used for tests and dry runs. Per-rule asyncio locks stand in for the row locks a
database would take, and an optional latency makes every call a real suspension
point so concurrent callers interleave.
"""
import asyncio
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.errors import RuleNotFound, StorageUnavailable
from ..core.rules import Rule, RuleApplication, RuleStatus
from .base import FeedbackMutation, RuleMutation, RuleStore


class InMemoryRuleStore(RuleStore):

    def __init__(self, rules: Optional[Iterable[Rule]] = None, latency: float = 0.0):
        """
        Args:
            rules: Initial rules
            latency: Seconds to sleep at every store call (simulated I/O)
        """
        self._rules: Dict[str, Rule] = {rule.id: rule for rule in rules or []}
        self._applications: Dict[Tuple[str, str], RuleApplication] = {}
        self._unreferenced_applications: List[RuleApplication] = []
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.latency = latency
        self.available = True

    async def _io(self):
        if not self.available:
            raise StorageUnavailable("In-memory store is marked unavailable")
        await asyncio.sleep(self.latency)

    async def list_by_status(self, status: RuleStatus) -> List[Rule]:
        await self._io()
        return [rule for rule in self._rules.values() if rule.status == status]

    async def get(self, rule_id: str) -> Optional[Rule]:
        await self._io()
        return self._rules.get(rule_id)

    async def insert(self, rule: Rule) -> str:
        await self._io()
        self._rules[rule.id] = rule
        return rule.id

    async def insert_if_new_pattern(self, rule: Rule) -> bool:
        await self._io()
        wanted = rule.pattern.lower()
        for existing in self._rules.values():
            if existing.pattern_type == rule.pattern_type and existing.pattern.lower() == wanted:
                return False
        self._rules[rule.id] = rule
        return True

    async def update_atomic(self, rule_id: str, mutation: RuleMutation) -> Rule:
        async with self._locks[rule_id]:
            await self._io()
            current = self._rules.get(rule_id)
            if current is None:
                raise RuleNotFound(rule_id)

            updated = mutation(current)
            if updated is current:
                return current

            await self._io()
            self._rules[rule_id] = updated
            return updated

    async def increment_usage(self, rule_id: str) -> None:
        async with self._locks[rule_id]:
            await self._io()
            rule = self._rules.get(rule_id)
            if rule is not None and rule.is_active:
                self._rules[rule_id] = rule.with_changes(usage_count=rule.usage_count + 1)

    async def record_application(self, application: RuleApplication) -> bool:
        await self._io()
        if application.transaction_ref is None:
            self._unreferenced_applications.append(application)
            return True

        key = (application.rule_id, application.transaction_ref)
        if key in self._applications:
            return False
        self._applications[key] = application
        return True

    async def get_application(self, rule_id: str,
                              transaction_ref: str) -> Optional[RuleApplication]:
        await self._io()
        return self._applications.get((rule_id, transaction_ref))

    async def apply_feedback(self, rule_id: str, application: RuleApplication,
                             mutation: FeedbackMutation) -> Optional[Rule]:
        async with self._locks[rule_id]:
            await self._io()
            current = self._rules.get(rule_id)
            if current is None:
                raise RuleNotFound(rule_id)
            if not current.is_active:
                return current

            key = (rule_id, application.transaction_ref)
            existing = None
            if application.transaction_ref is not None:
                existing = self._applications.get(key)
                if existing is not None and existing.was_confirmed_correct is not None:
                    return None

            # Everything below runs without suspending, so both writes land together
            updated = mutation(current, existing is None)
            if existing is not None:
                self._applications[key] = replace(
                    existing,
                    was_confirmed_correct=application.was_confirmed_correct,
                    feedback_at=application.feedback_at,
                )
            elif application.transaction_ref is not None:
                self._applications[key] = application
            else:
                self._unreferenced_applications.append(application)

            if updated is not current:
                self._rules[rule_id] = updated
            return updated

    async def delete(self, rule_id: str) -> None:
        async with self._locks[rule_id]:
            await self._io()
            self._rules.pop(rule_id, None)
            self._applications = {
                key: app for key, app in self._applications.items() if key[0] != rule_id
            }
            self._unreferenced_applications = [
                app for app in self._unreferenced_applications if app.rule_id != rule_id
            ]

    def applications(self) -> List[RuleApplication]:
        """All recorded applications (inspection helper)"""
        return list(self._applications.values()) + list(self._unreferenced_applications)
