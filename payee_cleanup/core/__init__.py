"""
Core rule engine: rules, matching, LLM synthesis, review and feedback.
"""

# Expose main classes for easy imports
from .cleanup_orchestrator import CleanupResult, PayeeCleanupOrchestrator
from .errors import (
    InvalidRuleDefinition,
    InvalidRuleState,
    LLMServiceError,
    PayeeCleanupError,
    RuleNotFound,
    StorageUnavailable,
)
from .rule_matcher import find_match
from .rules import GeneratedBy, PatternType, Rule, RuleStatus

__all__ = [
    'CleanupResult',
    'PayeeCleanupOrchestrator',
    'InvalidRuleDefinition',
    'InvalidRuleState',
    'LLMServiceError',
    'PayeeCleanupError',
    'RuleNotFound',
    'StorageUnavailable',
    'find_match',
    'GeneratedBy',
    'PatternType',
    'Rule',
    'RuleStatus',
]
