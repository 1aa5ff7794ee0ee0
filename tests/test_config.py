"""
Tests for engine configuration
"""
import pytest

from payee_cleanup.config import EngineConfig

ENV_VARS = [
    'ENABLE_LLM', 'ANTHROPIC_API_KEY', 'PAYEE_LLM_MODEL', 'PAYEE_LLM_MAX_TOKENS',
    'PAYEE_LLM_MAX_RETRIES', 'PAYEE_LLM_TIMEOUT_SECONDS', 'PAYEE_CACHE_TTL_SECONDS',
    'PAYEE_CACHE_MAX_ENTRIES', 'PAYEE_LLM_DEFAULT_CONFIDENCE', 'PAYEE_FEEDBACK_ALPHA',
    'PAYEE_DEMOTION_MIN_USAGE', 'PAYEE_DEMOTION_FLOOR', 'PAYEE_STORE',
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:

    def test_defaults(self, clean_env):
        config = EngineConfig.from_env()

        assert config.llm_enabled
        assert config.anthropic_api_key is None
        assert config.feedback_alpha == 0.2
        assert config.demotion_min_usage == 5
        assert config.demotion_floor == 0.5
        assert config.store_backend == 'postgres'

    def test_overrides(self, clean_env):
        clean_env.setenv('ENABLE_LLM', 'false')
        clean_env.setenv('PAYEE_FEEDBACK_ALPHA', '0.3')
        clean_env.setenv('PAYEE_DEMOTION_MIN_USAGE', '10')
        clean_env.setenv('PAYEE_DEMOTION_FLOOR', '0.4')
        clean_env.setenv('PAYEE_CACHE_TTL_SECONDS', '120')
        clean_env.setenv('PAYEE_STORE', ' Memory ')

        config = EngineConfig.from_env()

        assert not config.llm_enabled
        assert config.feedback_alpha == 0.3
        assert config.demotion_min_usage == 10
        assert config.demotion_floor == 0.4
        assert config.cache_ttl_seconds == 120.0
        assert config.store_backend == 'memory'

    def test_invalid_value_rejected(self, clean_env):
        clean_env.setenv('PAYEE_FEEDBACK_ALPHA', '1.5')
        with pytest.raises(ValueError, match="feedback_alpha"):
            EngineConfig.from_env()


class TestValidate:

    @pytest.mark.parametrize("changes", [
        {'feedback_alpha': 0.0},
        {'demotion_floor': 1.2},
        {'demotion_min_usage': -1},
        {'default_llm_confidence': -0.1},
        {'llm_timeout_seconds': 0},
        {'cache_ttl_seconds': -5},
        {'cache_max_entries': 0},
        {'store_backend': 'sqlite'},
    ])
    def test_out_of_range(self, changes):
        with pytest.raises(ValueError):
            EngineConfig(**changes).validate()

    def test_defaults_are_valid(self):
        EngineConfig().validate()
