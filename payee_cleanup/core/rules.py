"""
Payee Cleanup Rules

Data model for cleanup rules:
- Rule: pattern -> replacement with provenance, lifecycle status and performance counters
- RuleDraft: an unvalidated rule suggestion coming back from the LLM
- RuleEdit: reviewer modifications applied on approval
- RuleApplication: append-only history of rules applied to transactions

Rules are plain immutable values. The rule store owns the durable copy and every
mutation produces a new value via Rule.with_changes().
"""
import math
import re
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import InvalidRuleDefinition


class PatternType(Enum):
    EXACT = 'EXACT'
    CONTAINS = 'CONTAINS'
    STARTS_WITH = 'STARTS_WITH'
    REGEX = 'REGEX'


class RuleStatus(Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class GeneratedBy(Enum):
    LLM = 'LLM'
    HUMAN = 'HUMAN'


# Accepted spellings for pattern types (wire values, camelCase, lower case)
_PATTERN_TYPE_ALIASES = {
    'exact': PatternType.EXACT,
    'contains': PatternType.CONTAINS,
    'startswith': PatternType.STARTS_WITH,
    'starts_with': PatternType.STARTS_WITH,
    'regex': PatternType.REGEX,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float) -> float:
    """Clamp a score to [0.0, 1.0]"""
    return max(0.0, min(1.0, float(value)))


def parse_pattern_type(value: Union[str, PatternType]) -> PatternType:
    """
    Resolve a pattern type from an enum member or one of its spellings

    Raises:
        InvalidRuleDefinition: if the value is not a supported pattern type
    """
    if isinstance(value, PatternType):
        return value
    if isinstance(value, str):
        pattern_type = _PATTERN_TYPE_ALIASES.get(value.strip().lower())
        if pattern_type:
            return pattern_type
    raise InvalidRuleDefinition(f"Unsupported pattern type: {value!r}")


def validate_confidence(confidence: Any) -> float:
    """Confidence must be a real number inside [0.0, 1.0]"""
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise InvalidRuleDefinition(f"Confidence must be a number, got {confidence!r}")
    if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
        raise InvalidRuleDefinition(f"Confidence must be between 0.0 and 1.0, got {confidence}")
    return float(confidence)


def validate_rule_fields(pattern: Any,
                         pattern_type: Union[str, PatternType],
                         replacement: Any) -> Tuple[str, PatternType, str]:
    """
    Validate the matching part of a rule

    Returns:
        Tuple of (pattern, pattern_type, replacement), with surrounding whitespace
        removed from plain-text patterns and from the replacement

    Raises:
        InvalidRuleDefinition: on empty pattern/replacement, unknown pattern type
        or a regex that does not compile
    """
    pattern_type = parse_pattern_type(pattern_type)

    if not isinstance(pattern, str) or not pattern.strip():
        raise InvalidRuleDefinition("Pattern must be a non-empty string")
    if not isinstance(replacement, str) or not replacement.strip():
        raise InvalidRuleDefinition("Replacement must be a non-empty string")

    if pattern_type == PatternType.REGEX:
        try:
            re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise InvalidRuleDefinition(f"Invalid regex {pattern!r}: {e}") from e
    else:
        pattern = pattern.strip()

    return pattern, pattern_type, replacement.strip()


@dataclass(frozen=True)
class Rule:
    """A single payee cleanup rule"""
    id: str
    pattern: str
    pattern_type: PatternType
    replacement: str
    confidence: float
    generated_by: GeneratedBy
    status: RuleStatus
    created_at: datetime
    updated_at: datetime
    usage_count: int = 0
    success_rate: float = 1.0  # Optimistic until the first feedback signal
    rejection_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        """Only approved rules take part in matching"""
        return self.status == RuleStatus.APPROVED

    def with_changes(self, **changes) -> 'Rule':
        """Return a copy with the given fields changed and updated_at refreshed"""
        if 'confidence' in changes:
            changes['confidence'] = clamp(changes['confidence'])
        if 'success_rate' in changes:
            changes['success_rate'] = clamp(changes['success_rate'])
        changes.setdefault('updated_at', utc_now())
        return replace(self, **changes)


def _new_rule(pattern: str,
              pattern_type: PatternType,
              replacement: str,
              confidence: float,
              generated_by: GeneratedBy,
              status: RuleStatus) -> Rule:
    now = utc_now()
    return Rule(
        id=str(uuid.uuid4()),
        pattern=pattern,
        pattern_type=pattern_type,
        replacement=replacement,
        confidence=confidence,
        generated_by=generated_by,
        status=status,
        created_at=now,
        updated_at=now,
    )


def create_from_human(pattern: str,
                      pattern_type: Union[str, PatternType],
                      replacement: str) -> Rule:
    """
    Create a human-authored rule. Human rules are trusted and active immediately.

    Raises:
        InvalidRuleDefinition: if the definition is malformed
    """
    pattern, pattern_type, replacement = validate_rule_fields(pattern, pattern_type, replacement)
    return _new_rule(pattern, pattern_type, replacement,
                     confidence=1.0,
                     generated_by=GeneratedBy.HUMAN,
                     status=RuleStatus.APPROVED)


def create_from_llm_suggestion(pattern: str,
                               pattern_type: Union[str, PatternType],
                               replacement: str,
                               confidence: float) -> Rule:
    """
    Create a rule from an LLM suggestion. It stays PENDING until a reviewer approves it.

    Raises:
        InvalidRuleDefinition: if the definition or the confidence is malformed
    """
    pattern, pattern_type, replacement = validate_rule_fields(pattern, pattern_type, replacement)
    confidence = validate_confidence(confidence)
    return _new_rule(pattern, pattern_type, replacement,
                     confidence=confidence,
                     generated_by=GeneratedBy.LLM,
                     status=RuleStatus.PENDING)


@dataclass(frozen=True)
class RuleDraft:
    """Rule suggestion as returned by the LLM, not yet validated"""
    pattern: Any
    pattern_type: Any
    replacement: Any
    confidence: Any

    def validate(self) -> None:
        """Raises InvalidRuleDefinition if this draft cannot become a rule"""
        validate_rule_fields(self.pattern, self.pattern_type, self.replacement)
        validate_confidence(self.confidence)

    def to_rule(self) -> Rule:
        return create_from_llm_suggestion(
            self.pattern, self.pattern_type, self.replacement, self.confidence
        )


@dataclass(frozen=True)
class RuleEdit:
    """Optional reviewer modifications applied when approving a rule"""
    pattern: Optional[str] = None
    pattern_type: Optional[Union[str, PatternType]] = None
    replacement: Optional[str] = None

    @classmethod
    def from_mapping(cls, modifications: Mapping[str, Any]) -> 'RuleEdit':
        """
        Build an edit from a plain dict, e.g. {'pattern': 'NETFLIX', 'patternType': 'contains'}
        """
        known = {
            'pattern': 'pattern',
            'replacement': 'replacement',
            'pattern_type': 'pattern_type',
            'patternType': 'pattern_type',
        }
        values: Dict[str, Any] = {}
        for key, value in modifications.items():
            if key not in known:
                raise InvalidRuleDefinition(f"Unknown rule field in edit: {key!r}")
            values[known[key]] = value
        return cls(**values)

    def apply_to(self, rule: Rule) -> Tuple[str, PatternType, str]:
        """Validated (pattern, pattern_type, replacement) after applying this edit to rule"""
        return validate_rule_fields(
            self.pattern if self.pattern is not None else rule.pattern,
            self.pattern_type if self.pattern_type is not None else rule.pattern_type,
            self.replacement if self.replacement is not None else rule.replacement,
        )


@dataclass(frozen=True)
class RuleApplication:
    """One application of a rule to a transaction"""
    rule_id: str
    transaction_ref: Optional[str]
    original_payee: Optional[str]  # None for feedback recorded outside a cleanup
    cleaned_payee: str
    applied_at: datetime
    was_confirmed_correct: Optional[bool] = None  # None until feedback arrives
    feedback_at: Optional[datetime] = None
