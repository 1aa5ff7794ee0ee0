"""
Tests for the rule model: factories, validation and edits
"""
import math

import pytest

from payee_cleanup.core.errors import InvalidRuleDefinition
from payee_cleanup.core.rules import (
    GeneratedBy,
    PatternType,
    RuleDraft,
    RuleEdit,
    RuleStatus,
    create_from_human,
    create_from_llm_suggestion,
    parse_pattern_type,
)


class TestCreateFromHuman:

    def test_human_rule_is_trusted_and_active(self):
        rule = create_from_human("STARBUCKS", PatternType.CONTAINS, "Starbucks")

        assert rule.status == RuleStatus.APPROVED
        assert rule.generated_by == GeneratedBy.HUMAN
        assert rule.confidence == 1.0
        assert rule.usage_count == 0
        assert rule.success_rate == 1.0
        assert rule.is_active

    def test_ids_are_unique(self):
        a = create_from_human("NETFLIX", "EXACT", "Netflix")
        b = create_from_human("NETFLIX", "EXACT", "Netflix")
        assert a.id != b.id

    def test_surrounding_whitespace_is_removed(self):
        rule = create_from_human("  NETFLIX.COM ", "CONTAINS", " Netflix ")
        assert rule.pattern == "NETFLIX.COM"
        assert rule.replacement == "Netflix"

    @pytest.mark.parametrize("pattern", ["", "   ", None])
    def test_empty_pattern_rejected(self, pattern):
        with pytest.raises(InvalidRuleDefinition):
            create_from_human(pattern, "CONTAINS", "Something")

    @pytest.mark.parametrize("replacement", ["", "  ", None])
    def test_empty_replacement_rejected(self, replacement):
        with pytest.raises(InvalidRuleDefinition):
            create_from_human("SHELL OIL", "CONTAINS", replacement)

    def test_unknown_pattern_type_rejected(self):
        with pytest.raises(InvalidRuleDefinition, match="Unsupported pattern type"):
            create_from_human("SHELL", "FUZZY", "Shell")

    def test_malformed_regex_rejected(self):
        with pytest.raises(InvalidRuleDefinition, match="Invalid regex"):
            create_from_human("SQ *(", "REGEX", "Square")

    def test_invalid_definition_is_a_value_error(self):
        with pytest.raises(ValueError):
            create_from_human("", "EXACT", "Nothing")


class TestCreateFromLLMSuggestion:

    def test_llm_rule_waits_for_review(self):
        rule = create_from_llm_suggestion("AMZN MKTP", "CONTAINS", "Amazon", 0.85)

        assert rule.status == RuleStatus.PENDING
        assert rule.generated_by == GeneratedBy.LLM
        assert rule.confidence == 0.85
        assert not rule.is_active

    @pytest.mark.parametrize("confidence", [-0.1, 1.01, math.nan, "high", True, None])
    def test_confidence_out_of_range_rejected(self, confidence):
        with pytest.raises(InvalidRuleDefinition):
            create_from_llm_suggestion("AMZN", "CONTAINS", "Amazon", confidence)

    @pytest.mark.parametrize("confidence", [0, 0.0, 1, 1.0])
    def test_confidence_bounds_are_inclusive(self, confidence):
        rule = create_from_llm_suggestion("AMZN", "CONTAINS", "Amazon", confidence)
        assert rule.confidence == float(confidence)


class TestPatternTypes:

    @pytest.mark.parametrize("value,expected", [
        ("EXACT", PatternType.EXACT),
        ("contains", PatternType.CONTAINS),
        ("STARTS_WITH", PatternType.STARTS_WITH),
        ("startsWith", PatternType.STARTS_WITH),
        ("Regex", PatternType.REGEX),
        (PatternType.REGEX, PatternType.REGEX),
    ])
    def test_accepted_spellings(self, value, expected):
        assert parse_pattern_type(value) == expected

    @pytest.mark.parametrize("value", ["", "glob", 3, None])
    def test_unknown_values(self, value):
        with pytest.raises(InvalidRuleDefinition):
            parse_pattern_type(value)


class TestRuleValues:

    def test_with_changes_returns_new_value(self):
        rule = create_from_human("UBER", "STARTS_WITH", "Uber")
        changed = rule.with_changes(usage_count=3)

        assert rule.usage_count == 0
        assert changed.usage_count == 3
        assert changed.id == rule.id
        assert changed.updated_at >= rule.updated_at

    def test_scores_are_clamped(self):
        rule = create_from_human("UBER", "STARTS_WITH", "Uber")
        assert rule.with_changes(success_rate=1.7).success_rate == 1.0
        assert rule.with_changes(success_rate=-0.2).success_rate == 0.0
        assert rule.with_changes(confidence=2).confidence == 1.0

    def test_rules_are_immutable(self):
        rule = create_from_human("UBER", "STARTS_WITH", "Uber")
        with pytest.raises(AttributeError):
            rule.usage_count = 10


class TestRuleDraft:

    def test_valid_draft_becomes_pending_rule(self):
        draft = RuleDraft(pattern="LYFT", pattern_type="STARTS_WITH",
                          replacement="Lyft", confidence=0.9)
        draft.validate()

        rule = draft.to_rule()
        assert rule.status == RuleStatus.PENDING
        assert rule.pattern_type == PatternType.STARTS_WITH

    def test_invalid_draft(self):
        draft = RuleDraft(pattern="", pattern_type="CONTAINS", replacement="Lyft", confidence=0.9)
        with pytest.raises(InvalidRuleDefinition):
            draft.validate()


class TestRuleEdit:

    def test_from_mapping_accepts_both_type_spellings(self):
        assert RuleEdit.from_mapping({'patternType': 'exact'}).pattern_type == 'exact'
        assert RuleEdit.from_mapping({'pattern_type': 'REGEX'}).pattern_type == 'REGEX'

    def test_from_mapping_rejects_unknown_fields(self):
        with pytest.raises(InvalidRuleDefinition, match="Unknown rule field"):
            RuleEdit.from_mapping({'status': 'APPROVED'})

    def test_apply_keeps_unedited_fields(self):
        rule = create_from_llm_suggestion("AMZN MKTP", "CONTAINS", "Amazon", 0.7)
        pattern, pattern_type, replacement = RuleEdit(replacement="Amazon.com").apply_to(rule)

        assert pattern == "AMZN MKTP"
        assert pattern_type == PatternType.CONTAINS
        assert replacement == "Amazon.com"

    def test_apply_validates_the_result(self):
        rule = create_from_llm_suggestion("AMZN MKTP", "CONTAINS", "Amazon", 0.7)
        with pytest.raises(InvalidRuleDefinition):
            RuleEdit(pattern="   ").apply_to(rule)
