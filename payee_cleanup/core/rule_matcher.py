"""
Rule Matcher

Matches raw payee strings against cleanup rules with support for:
- Multiple match types: exact, contains, startswith, regex
- Specificity scoring (longer / more specific matches win)
- Deterministic tie-breaking: specificity, then confidence, then success rate, then id

Everything here is a pure function over values; the caller supplies a fresh
snapshot of rules for each lookup.
"""
import logging
import re
from typing import Iterable, List, Optional, Tuple

from .rules import PatternType, Rule

logger = logging.getLogger(__name__)

# Length of the consumed text; larger is more specific
MatchScore = int


def normalize_payee(text: str) -> str:
    """Trim + lowercase. No stemming or locale folding."""
    return text.strip().lower()


def match_rule(raw: str, rule: Rule) -> Optional[MatchScore]:
    """
    Check if a rule matches the given raw payee

    Args:
        raw: Raw payee text from the bank feed
        rule: Rule to test (status is not checked here)

    Returns:
        Match score if the rule matches, None otherwise
    """
    pattern_type = rule.pattern_type

    if pattern_type == PatternType.REGEX:
        try:
            match = re.search(rule.pattern, raw, re.IGNORECASE)
        except re.error:
            logger.warning(f"⚠️  Invalid regex in rule {rule.id}: {rule.pattern}")
            return None
        if match is None:
            return None
        return len(match.group(0))

    payee = normalize_payee(raw)
    pattern = normalize_payee(rule.pattern)
    if not pattern:
        return None

    if pattern_type == PatternType.EXACT:
        matched = payee == pattern
    elif pattern_type == PatternType.STARTS_WITH:
        matched = payee.startswith(pattern)
    elif pattern_type == PatternType.CONTAINS:
        matched = pattern in payee
    else:
        matched = False

    return len(pattern) if matched else None


def _ranking_key(scored: Tuple[Rule, MatchScore]):
    rule, score = scored
    return (-score, -rule.confidence, -rule.success_rate, rule.id)


def rank_matches(raw: str, rules: Iterable[Rule]) -> List[Tuple[Rule, MatchScore]]:
    """
    All active rules matching raw, best first

    Returns:
        List of (rule, score) pairs ordered by the lookup tie-break
    """
    scored = []
    for rule in rules:
        if not rule.is_active:
            continue
        score = match_rule(raw, rule)
        if score is not None:
            scored.append((rule, score))

    scored.sort(key=_ranking_key)
    return scored


def find_match(raw: str, rules: Iterable[Rule]) -> Optional[Rule]:
    """
    Best active rule for raw, or None on a miss

    Specificity dominates confidence so that a broad high-confidence rule
    never shadows a precise one.
    """
    ranked = rank_matches(raw, rules)
    if not ranked:
        return None
    return ranked[0][0]


def find_matching_rules(raw: str, rules: Iterable[Rule]) -> List[Rule]:
    """Every active rule that would match raw, best first (diagnostics)"""
    return [rule for rule, _ in rank_matches(raw, rules)]
