"""
Tests for seeding human rules into the store
"""
import json

import pytest

from payee_cleanup.cli.init_db import load_seed_rules, seed_rules
from payee_cleanup.core.rules import GeneratedBy, RuleStatus

from tests.fakes import pending_rule


class TestSeedRules:

    @pytest.mark.asyncio
    async def test_creates_active_human_rules(self, store):
        created, skipped = await seed_rules([
            {"pattern": "AMZN MKTP", "pattern_type": "CONTAINS", "replacement": "Amazon"},
            {"pattern": "^SQ \\*", "patternType": "REGEX", "replacement": "Square"},
        ], store=store)

        assert (created, skipped) == (2, 0)
        active = await store.list_active()
        assert {rule.replacement for rule in active} == {"Amazon", "Square"}
        assert all(rule.generated_by == GeneratedBy.HUMAN for rule in active)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [RuleStatus.PENDING, RuleStatus.REJECTED])
    async def test_existing_pattern_in_any_status_is_skipped(self, store, status):
        await store.insert(pending_rule("AMZN MKTP", "Amazon").with_changes(status=status))

        created, skipped = await seed_rules(
            [{"pattern": "amzn mktp", "pattern_type": "CONTAINS", "replacement": "Amazon"}],
            store=store,
        )

        assert (created, skipped) == (0, 1)
        assert await store.list_active() == []

    @pytest.mark.asyncio
    async def test_invalid_and_repeated_definitions_are_skipped(self, store):
        created, skipped = await seed_rules([
            {"pattern": "", "pattern_type": "CONTAINS", "replacement": "Nothing"},
            {"pattern": "SHELL", "pattern_type": "CONTAINS", "replacement": "Shell"},
            {"pattern": "Shell", "pattern_type": "CONTAINS", "replacement": "Shell Oil"},
        ], store=store)

        assert (created, skipped) == (1, 2)
        assert [rule.replacement for rule in await store.list_active()] == ["Shell"]


class TestLoadSeedRules:

    def test_loads_list(self, tmp_path):
        rules_file = tmp_path / "rules.json"
        rules_file.write_text(json.dumps([{"pattern": "SHELL", "replacement": "Shell"}]))

        assert load_seed_rules(rules_file) == [{"pattern": "SHELL", "replacement": "Shell"}]

    def test_rejects_non_list(self, tmp_path):
        rules_file = tmp_path / "rules.json"
        rules_file.write_text(json.dumps({"pattern": "SHELL"}))

        with pytest.raises(ValueError):
            load_seed_rules(rules_file)
