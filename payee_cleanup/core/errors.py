"""
Payee Cleanup Errors

Error taxonomy for the cleanup engine:
- Validation and state-machine errors are raised synchronously to the caller
- LLM service errors never leave the rule synthesizer
- Storage errors are the only ones allowed to reach the import pipeline
"""
from typing import Optional


class PayeeCleanupError(Exception):
    """Base class for all engine errors"""


class InvalidRuleDefinition(PayeeCleanupError, ValueError):
    """Malformed pattern, replacement, pattern type or confidence"""


class RuleNotFound(PayeeCleanupError):
    """Referenced rule does not exist"""

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Rule not found: {rule_id}")


class InvalidRuleState(PayeeCleanupError):
    """Attempted a lifecycle transition the rule's current status does not allow"""

    def __init__(self, rule_id: str, current_status, action: str):
        self.rule_id = rule_id
        self.current_status = current_status
        self.action = action
        status = getattr(current_status, 'value', current_status)
        super().__init__(f"Cannot {action} rule {rule_id}: status is {status}")


class StorageUnavailable(PayeeCleanupError):
    """Transient failure talking to the rule store; retry policy belongs to the caller"""


class LLMServiceError(PayeeCleanupError):
    """The LLM text service failed (connection, status or timeout)"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class LLMRateLimitError(LLMServiceError):
    """The LLM text service rejected the call for rate limit or quota reasons"""


class LLMResponseError(LLMServiceError):
    """The LLM text service answered with something we could not parse"""
