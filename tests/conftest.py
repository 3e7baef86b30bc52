"""Pytest configuration and fixtures for Commit Forge tests."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from commit_forge.config import CacheOptions, PipelineConfig
from commit_forge.pipeline.tokenizer import TokenCounter
from commit_forge.services.cache import ContentCache
from commit_forge.services.llm_client import ModelResponse, TokenUsage


# =============================================================================
# SAMPLE DIFFS
# =============================================================================

APP_TS_LINES = [f"  const value{i} = compute({i});" for i in range(38)] + [
    "  if (!value0) {",
    "    throw new Error('missing value');",
]


def _make_file_diff(
    path: str,
    added: list[str],
    status_header: str = "",
    removed: list[str] | None = None,
) -> str:
    """Build a --no-prefix unified diff section for one file."""
    removed = removed or []
    old_source = "/dev/null" if status_header.startswith("new file") else path
    header = [f"diff --git {path} {path}"]
    if status_header:
        header.append(status_header)
    header.append("index 1234567..abcdefg 100644")
    header.append(f"--- {old_source}")
    header.append(f"+++ {path}")
    header.append(f"@@ -1,{len(removed)} +1,{len(added)} @@")
    body = [f"-{line}" for line in removed] + [f"+{line}" for line in added]
    return "\n".join(header + body) + "\n"


@pytest.fixture
def mixed_commit_diff() -> str:
    """Source file, lock file and a small docs change."""
    return (
        _make_file_diff("src/app.ts", APP_TS_LINES)
        + _make_file_diff(
            "package-lock.json",
            [f'    "dep-{i}": "^1.0.{i}",' for i in range(500)],
        )
        + _make_file_diff("README.md", ["Usage notes", "More usage notes"])
    )


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def char_counter() -> TokenCounter:
    """Deterministic counter that never loads tiktoken encodings."""
    return TokenCounter(use_tiktoken=False)


@pytest.fixture
def fake_clock():
    """Controllable wall clock for TTL tests."""

    class Clock:
        def __init__(self):
            self.now = 1_700_000_000.0

        def __call__(self) -> float:
            return self.now

        def advance(self, seconds: float) -> None:
            self.now += seconds

    return Clock()


@pytest.fixture
def cache(tmp_path: Path, fake_clock) -> ContentCache:
    return ContentCache(tmp_path / "cache", ttl_seconds=3600, clock=fake_clock)


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        model="gpt-4",
        provider="openai",
        api_key="test-key",
        cache=CacheOptions(cache_dir=tmp_path / "cache"),
    )


def _model_response(message: str, model: str = "gpt-4") -> ModelResponse:
    return ModelResponse(
        message=message,
        model=model,
        finish_reason="stop",
        usage=TokenUsage(prompt_tokens=100, completion_tokens=20, total_tokens=120),
    )


@pytest.fixture
def mock_transport():
    """Transport whose send() returns a well-formed JSON commit reply."""
    transport = AsyncMock()
    transport.send.return_value = _model_response(
        '{"commitMessage": "feat(app): validate computed values", '
        '"codeAssessment": "Adds a guard for missing values."}'
    )
    return transport


@pytest.fixture
def file_diff():
    """Factory building a single-file diff section."""
    return _make_file_diff


@pytest.fixture
def make_response():
    """Factory building a ModelResponse with usage."""
    return _model_response
