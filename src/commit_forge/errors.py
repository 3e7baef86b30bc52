"""
Error types for Commit Forge.

Every failure that crosses a component boundary is one of these, so callers
can branch on ``code`` and ``is_retryable`` instead of string matching.
"""


class CommitForgeError(Exception):
    """Base class for all pipeline errors."""

    code = "COMMIT_FORGE_ERROR"
    is_retryable = False

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigError(CommitForgeError):
    """Invalid or missing configuration."""

    code = "CONFIG_ERROR"


class ApiError(CommitForgeError):
    """Model provider returned an error or an unusable response."""

    code = "API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause)
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:  # type: ignore[override]
        """Rate limits and server errors are worth another attempt."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or 500 <= self.status_code < 600


class NetworkError(CommitForgeError):
    """Connection-level failure talking to the provider."""

    code = "NETWORK_ERROR"
    is_retryable = True


class AllChunksFailedError(CommitForgeError):
    """No chunk request produced a message."""

    code = "ALL_CHUNKS_FAILED"

    def __init__(self, errors: list[BaseException]):
        super().__init__(
            f"All chunk processing failed. {len(errors)} errors occurred.",
            errors[-1] if errors else None,
        )
        self.errors = errors


class QueueClosedError(CommitForgeError):
    """Work was submitted after the request queue shut down."""

    code = "QUEUE_CLOSED"


class BudgetError(CommitForgeError):
    """Content cannot be fitted into the model's token budget."""

    code = "BUDGET_ERROR"
