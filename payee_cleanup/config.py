"""
Engine configuration

Values come from keyword arguments or, via EngineConfig.from_env(), from the
environment / .env file.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class EngineConfig:
    """Tunable parameters of the cleanup engine"""
    # LLM text service
    llm_enabled: bool = True
    anthropic_api_key: Optional[str] = None
    llm_model: str = 'claude-sonnet-4-20250514'
    llm_max_tokens: int = 300
    llm_max_retries: int = 2
    llm_timeout_seconds: float = 15.0

    # Response cache
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 10000

    # Confidence given to LLM rules when the response carries none
    default_llm_confidence: float = 0.7

    # Feedback / auto-demotion
    feedback_alpha: float = 0.2
    demotion_min_usage: int = 5
    demotion_floor: float = 0.5

    # 'postgres' or 'memory'
    store_backend: str = 'postgres'

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Build a config from environment variables (loads .env first)"""
        load_dotenv()
        config = cls(
            llm_enabled=_env_bool('ENABLE_LLM', 'true'),
            anthropic_api_key=os.getenv('ANTHROPIC_API_KEY'),
            llm_model=os.getenv('PAYEE_LLM_MODEL', cls.llm_model),
            llm_max_tokens=int(os.getenv('PAYEE_LLM_MAX_TOKENS', str(cls.llm_max_tokens))),
            llm_max_retries=int(os.getenv('PAYEE_LLM_MAX_RETRIES', str(cls.llm_max_retries))),
            llm_timeout_seconds=float(os.getenv('PAYEE_LLM_TIMEOUT_SECONDS',
                                                str(cls.llm_timeout_seconds))),
            cache_ttl_seconds=float(os.getenv('PAYEE_CACHE_TTL_SECONDS',
                                              str(cls.cache_ttl_seconds))),
            cache_max_entries=int(os.getenv('PAYEE_CACHE_MAX_ENTRIES',
                                            str(cls.cache_max_entries))),
            default_llm_confidence=float(os.getenv('PAYEE_LLM_DEFAULT_CONFIDENCE',
                                                   str(cls.default_llm_confidence))),
            feedback_alpha=float(os.getenv('PAYEE_FEEDBACK_ALPHA', str(cls.feedback_alpha))),
            demotion_min_usage=int(os.getenv('PAYEE_DEMOTION_MIN_USAGE',
                                             str(cls.demotion_min_usage))),
            demotion_floor=float(os.getenv('PAYEE_DEMOTION_FLOOR', str(cls.demotion_floor))),
            store_backend=os.getenv('PAYEE_STORE', cls.store_backend).strip().lower(),
        )
        config.validate()
        return config

    def validate(self):
        """Raise ValueError on out-of-range parameters"""
        if not 0.0 < self.feedback_alpha <= 1.0:
            raise ValueError(f"feedback_alpha must be in (0, 1], got {self.feedback_alpha}")
        if not 0.0 <= self.demotion_floor <= 1.0:
            raise ValueError(f"demotion_floor must be in [0, 1], got {self.demotion_floor}")
        if self.demotion_min_usage < 0:
            raise ValueError(f"demotion_min_usage must be >= 0, got {self.demotion_min_usage}")
        if not 0.0 <= self.default_llm_confidence <= 1.0:
            raise ValueError(
                f"default_llm_confidence must be in [0, 1], got {self.default_llm_confidence}"
            )
        if self.llm_timeout_seconds <= 0:
            raise ValueError(f"llm_timeout_seconds must be > 0, got {self.llm_timeout_seconds}")
        if self.cache_ttl_seconds <= 0:
            raise ValueError(f"cache_ttl_seconds must be > 0, got {self.cache_ttl_seconds}")
        if self.cache_max_entries <= 0:
            raise ValueError(f"cache_max_entries must be > 0, got {self.cache_max_entries}")
        if self.store_backend not in ('postgres', 'memory'):
            raise ValueError(f"Unknown store backend: {self.store_backend}")
