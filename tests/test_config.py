"""
Unit tests for environment-driven configuration.
"""

from pathlib import Path

import pytest

from commit_forge.config import AdaptiveLineCaps, PipelineConfig
from commit_forge.errors import ConfigError


class TestPipelineConfigFromEnv:
    """COMMIT_FORGE_* variables override defaults."""

    def test_defaults(self, monkeypatch):
        for name in ("COMMIT_FORGE_MODEL", "COMMIT_FORGE_MAX_FILES", "COMMIT_FORGE_API_KEY"):
            monkeypatch.delenv(name, raising=False)

        config = PipelineConfig.from_env()

        assert config.model == "anthropic/claude-3-haiku:beta"
        assert config.selection.max_files == 30
        assert config.filter.relevancy_threshold == 0.05
        assert config.cache.ttl_seconds == 86400
        assert config.api_key is None

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COMMIT_FORGE_MODEL", "gpt-4o")
        monkeypatch.setenv("COMMIT_FORGE_PROVIDER", "openai")
        monkeypatch.setenv("COMMIT_FORGE_TEMPERATURE", "0.2")
        monkeypatch.setenv("COMMIT_FORGE_MAX_FILES", "12")
        monkeypatch.setenv("COMMIT_FORGE_RELEVANCY_THRESHOLD", "0.3")
        monkeypatch.setenv("COMMIT_FORGE_AI_SELECTION", "false")
        monkeypatch.setenv("COMMIT_FORGE_CACHE_ENABLED", "0")
        monkeypatch.setenv("COMMIT_FORGE_CACHE_DIR", str(tmp_path))
        monkeypatch.setenv("COMMIT_FORGE_API_KEY", "sk-test")

        config = PipelineConfig.from_env()

        assert config.model == "gpt-4o"
        assert config.provider == "openai"
        assert config.temperature == 0.2
        assert config.selection.max_files == 12
        assert config.selection.ai_enabled is False
        assert config.filter.relevancy_threshold == 0.3
        assert config.cache.enabled is False
        assert config.cache.cache_dir == Path(tmp_path)
        assert config.api_key == "sk-test"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("COMMIT_FORGE_MAX_FILES", "lots"),
            ("COMMIT_FORGE_TEMPERATURE", "warm"),
            ("COMMIT_FORGE_CACHE_TTL", "1d"),
        ],
    )
    def test_invalid_numbers(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            PipelineConfig.from_env()


class TestAdaptiveLineCaps:
    def test_custom_tiers_sorted(self):
        caps = AdaptiveLineCaps(tiers=[(100, 10), (2, 500)], default_cap=5)
        assert caps.cap_for(1) == 500
        assert caps.cap_for(50) == 10
        assert caps.cap_for(101) == 5
