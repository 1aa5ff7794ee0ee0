"""
Rule store implementations
"""
from .base import RuleStore
from .memory import InMemoryRuleStore

__all__ = [
    'RuleStore',
    'InMemoryRuleStore',
]
