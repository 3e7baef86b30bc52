"""
Token Counting

Model-aware token counting with a character-based fallback, plus the static
context-window table used to derive per-request token budgets.
"""

import math

import structlog
import tiktoken

logger = structlog.get_logger(__name__)

# Approximate characters per token when no tokenizer is available
CHARS_PER_TOKEN = 4

DEFAULT_ENCODING = "cl100k_base"

# Context windows in tokens. Matched longest key first so "gpt-4-turbo"
# never resolves to "gpt-4".
MODEL_CONTEXT_WINDOWS: dict[str, int] = {
    "gpt-4o-mini": 128000,
    "gpt-4o": 128000,
    "gpt-4-turbo": 128000,
    "gpt-4": 8192,
    "gpt-3.5-turbo-16k": 16384,
    "gpt-3.5-turbo": 4096,
    "o1-mini": 128000,
    "claude-3-5-haiku": 200000,
    "claude-3-5-sonnet": 200000,
    "claude-3-haiku": 200000,
    "claude-3-sonnet": 200000,
    "claude-3-opus": 200000,
    "claude-sonnet-4": 200000,
    "claude-opus-4": 200000,
    "llama-3.3-70b": 131072,
    "llama-3.1-8b": 131072,
    "llama-2-70b": 4096,
    "mixtral-8x7b": 32768,
    "gemini-1.5": 1000000,
}

# Tokens kept back from the raw window
SAFETY_FACTOR = 0.7
# Used as-is for models missing from the table
DEFAULT_CONTEXT_BUDGET = 4000

RESPONSE_TOKENS = 200  # room for the generated commit message
REQUEST_OVERHEAD_TOKENS = 50


class TokenCounter:
    """Count tokens for a model, degrading to a character estimate."""

    def __init__(self, use_tiktoken: bool = True):
        """
        Initialize counter.

        Args:
            use_tiktoken: Use tiktoken encodings; False forces the
                characters-per-token estimate everywhere.
        """
        self.use_tiktoken = use_tiktoken
        self._encoders: dict[str, tiktoken.Encoding | None] = {}

    def count(self, text: str, model: str) -> int:
        """Count tokens in text for a specific model."""
        if not text:
            return 0

        encoder = self._get_encoder(model)
        if encoder is None:
            return estimate_tokens(text)

        try:
            return len(encoder.encode(text, disallowed_special=()))
        except Exception as e:
            logger.warning("Token counting failed, using character estimate", model=model, error=str(e))
            return estimate_tokens(text)

    def context_window(self, model: str) -> int:
        """Usable context budget for a model, safety factor applied."""
        lowered = model.lower()
        for key in sorted(MODEL_CONTEXT_WINDOWS, key=len, reverse=True):
            if key in lowered:
                return math.floor(MODEL_CONTEXT_WINDOWS[key] * SAFETY_FACTOR)
        return DEFAULT_CONTEXT_BUDGET

    def reserved_tokens(self, system_prompt: str, model: str) -> int:
        """Tokens needed for the system prompt, the response and overhead."""
        return self.count(system_prompt, model) + RESPONSE_TOKENS + REQUEST_OVERHEAD_TOKENS

    def available_budget(self, system_prompt: str, model: str) -> int:
        """Tokens left for diff content in one request."""
        return self.context_window(model) - self.reserved_tokens(system_prompt, model)

    def _get_encoder(self, model: str) -> tiktoken.Encoding | None:
        if not self.use_tiktoken:
            return None

        name = encoding_name_for(model)
        if name not in self._encoders:
            try:
                self._encoders[name] = tiktoken.get_encoding(name)
            except Exception as e:
                # Encoding files are fetched lazily and may be unreachable
                logger.warning("Failed to load tokenizer, using character estimate", encoding=name, error=str(e))
                self._encoders[name] = None
        return self._encoders[name]


def encoding_name_for(model: str) -> str:
    """Map a provider model name to a tiktoken encoding name."""
    bare = model.lower().split("/")[-1].split(":")[0]
    try:
        return tiktoken.encoding_name_for_model(bare)
    except KeyError:
        return DEFAULT_ENCODING


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)
