"""
Payee Cleanup

A self-learning rule engine that turns raw bank-statement payee strings into
clean, consistent names. Approved rules clean known payees; the LLM cleans the
rest and proposes new rules for human review.
"""

__version__ = "1.0.0"

from .config import EngineConfig
from .engine import PayeeCleanupEngine

__all__ = [
    'EngineConfig',
    'PayeeCleanupEngine',
]
