"""
Usage Tracker Service

Tracks token usage, model calls, and estimated costs for one pipeline run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .llm_client import ModelResponse

# Model pricing in cents per 1M tokens (input/output)
MODEL_PRICING: dict[str, dict[str, float]] = {
    # Anthropic
    "claude-3-haiku": {"input": 25, "output": 125},
    "claude-3-5-haiku": {"input": 80, "output": 400},
    "claude-3-5-sonnet": {"input": 300, "output": 1500},
    "claude-sonnet-4": {"input": 300, "output": 1500},
    "claude-opus-4": {"input": 1500, "output": 7500},
    # OpenAI
    "gpt-4o-mini": {"input": 15, "output": 60},
    "gpt-4o": {"input": 250, "output": 1000},
    "gpt-4-turbo": {"input": 1000, "output": 3000},
    "gpt-3.5-turbo": {"input": 50, "output": 150},
    # Open models on hosted providers
    "llama-3.3-70b": {"input": 0, "output": 0},
    "llama-3.1-8b": {"input": 0, "output": 0},
    "mixtral-8x7b": {"input": 0, "output": 0},
}
DEFAULT_PRICING = {"input": 300, "output": 1500}


@dataclass
class ModelUsage:
    """Usage statistics for a single model."""

    model_id: str
    provider: str
    call_count: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_cents: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "modelId": self.model_id,
            "provider": self.provider,
            "callCount": self.call_count,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "estimatedCostCents": round(self.estimated_cost_cents, 4),
        }


def estimate_cost(model_id: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Estimate cost in cents; longest matching pricing key wins."""
    model_key = model_id.lower()
    pricing = DEFAULT_PRICING
    for key in sorted(MODEL_PRICING, key=len, reverse=True):
        if key in model_key:
            pricing = MODEL_PRICING[key]
            break

    input_cost = (prompt_tokens / 1_000_000) * pricing["input"]
    output_cost = (completion_tokens / 1_000_000) * pricing["output"]
    return input_cost + output_cost


class UsageTracker:
    """
    Per-run usage accumulator.

    Usage:
        tracker = UsageTracker()
        tracker.record(response, provider="openrouter")
        tracker.to_dict()
    """

    def __init__(self):
        self.started_at = datetime.now(timezone.utc)
        self.models: dict[str, ModelUsage] = {}

    @property
    def total_tokens(self) -> int:
        return sum(m.total_tokens for m in self.models.values())

    @property
    def total_calls(self) -> int:
        return sum(m.call_count for m in self.models.values())

    @property
    def total_cost_cents(self) -> float:
        return sum(m.estimated_cost_cents for m in self.models.values())

    def record(self, response: ModelResponse, provider: str) -> None:
        """Record one successful call; responses without usage count as a call only."""
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        self.record_usage(response.model, provider, prompt_tokens, completion_tokens)

    def record_usage(
        self,
        model_id: str,
        provider: str,
        prompt_tokens: int,
        completion_tokens: int,
    ) -> None:
        if model_id not in self.models:
            self.models[model_id] = ModelUsage(model_id=model_id, provider=provider)

        entry = self.models[model_id]
        entry.call_count += 1
        entry.prompt_tokens += prompt_tokens
        entry.completion_tokens += completion_tokens
        entry.total_tokens += prompt_tokens + completion_tokens
        entry.estimated_cost_cents += estimate_cost(model_id, prompt_tokens, completion_tokens)

    def to_dict(self) -> dict[str, Any]:
        """Summary for logging or JSON output."""
        return {
            "startedAt": self.started_at.isoformat(),
            "totalTokens": self.total_tokens,
            "totalCalls": self.total_calls,
            "totalCostCents": round(self.total_cost_cents, 4),
            "models": {k: v.to_dict() for k, v in self.models.items()},
        }
