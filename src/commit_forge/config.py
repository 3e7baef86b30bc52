"""Configuration for the Commit Forge pipeline.

Everything here is consumed, never persisted: callers build a
``PipelineConfig`` directly or from ``COMMIT_FORGE_*`` environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigError


@dataclass
class FilterOptions:
    """Noise filter toggles and relevancy threshold."""

    ignore_whitespace: bool = True
    ignore_generated: bool = True
    ignore_formatter_noise: bool = True
    ignore_lock_files: bool = True
    max_file_size: int = 1024 * 1024  # 1MB
    relevancy_threshold: float = 0.05


@dataclass
class SelectionOptions:
    """File-count bands for file selection."""

    max_files: int = 30
    ai_enabled: bool = True
    small_commit_max: int = 20  # at or below: pass through
    ai_selection_max: int = 150  # above: heuristic only
    selection_model: str | None = None  # defaults to the main model


@dataclass
class AdaptiveLineCaps:
    """Per-file changed-line caps, scaled down as the commit grows.

    Each tier is (max file count, line cap); commits larger than every tier
    use ``default_cap``.
    """

    tiers: list[tuple[int, int]] = field(
        default_factory=lambda: [(5, 200), (20, 100), (50, 50)]
    )
    default_cap: int = 30

    def cap_for(self, total_files: int) -> int:
        for max_files, cap in sorted(self.tiers):
            if total_files <= max_files:
                return cap
        return self.default_cap


@dataclass
class CacheOptions:
    """Content cache settings."""

    enabled: bool = True
    ttl_seconds: float = 24 * 60 * 60
    max_memory_entries: int = 100
    cache_dir: Path = field(
        default_factory=lambda: Path("~/.cache/commit-forge").expanduser()
    )


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""

    # Model request settings
    model: str = "anthropic/claude-3-haiku:beta"
    provider: str = "openrouter"
    temperature: float = 0.6
    max_tokens: int = 500
    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str | None = None
    timeout: float = 60.0

    # Commit message policy
    commit_type: str | None = None
    scope: str | None = None

    # Request queue
    concurrency: int = 3
    max_retries: int = 3

    # Diff parsing
    max_chunk_size: int = 8000

    filter: FilterOptions = field(default_factory=FilterOptions)
    selection: SelectionOptions = field(default_factory=SelectionOptions)
    line_caps: AdaptiveLineCaps = field(default_factory=AdaptiveLineCaps)
    cache: CacheOptions = field(default_factory=CacheOptions)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create configuration from environment variables."""
        defaults = cls()
        cache_dir = os.getenv("COMMIT_FORGE_CACHE_DIR")

        return cls(
            model=os.getenv("COMMIT_FORGE_MODEL", defaults.model),
            provider=os.getenv("COMMIT_FORGE_PROVIDER", defaults.provider),
            temperature=_env_float("COMMIT_FORGE_TEMPERATURE", defaults.temperature),
            max_tokens=_env_int("COMMIT_FORGE_MAX_TOKENS", defaults.max_tokens),
            base_url=os.getenv("COMMIT_FORGE_BASE_URL", defaults.base_url),
            api_key=os.getenv("COMMIT_FORGE_API_KEY"),
            concurrency=_env_int("COMMIT_FORGE_CONCURRENCY", defaults.concurrency),
            filter=FilterOptions(
                relevancy_threshold=_env_float(
                    "COMMIT_FORGE_RELEVANCY_THRESHOLD",
                    defaults.filter.relevancy_threshold,
                ),
            ),
            selection=SelectionOptions(
                max_files=_env_int("COMMIT_FORGE_MAX_FILES", defaults.selection.max_files),
                ai_enabled=_env_bool("COMMIT_FORGE_AI_SELECTION", True),
            ),
            cache=CacheOptions(
                enabled=_env_bool("COMMIT_FORGE_CACHE_ENABLED", True),
                ttl_seconds=_env_float("COMMIT_FORGE_CACHE_TTL", defaults.cache.ttl_seconds),
                cache_dir=Path(cache_dir).expanduser() if cache_dir else defaults.cache.cache_dir,
            ),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}", e) from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}", e) from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
