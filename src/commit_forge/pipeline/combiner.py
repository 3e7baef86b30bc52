"""
Result Combiner

Merges per-chunk model outputs into one commit message.
"""

import re
from typing import Protocol

import structlog

from ..errors import AllChunksFailedError

logger = structlog.get_logger(__name__)

# "type: ", "type(scope): " or "type(scope)!: " at the start of a message
TYPE_PREFIX = re.compile(r"^(?P<type>[a-zA-Z]+)(?:\((?P<scope>[^)]+)\))?(?P<bang>!)?\s*:\s*")


class ResultCombiner(Protocol):
    """Combine chunk messages into a single message."""

    def combine(self, messages: list[str]) -> str:
        ...


class LongestMessageCombiner:
    """
    Pick the longest chunk message as representative.

    Lossy by construction: other chunk messages are discarded rather than
    merged. When a commit type is required, only the leading
    ``type(scope):`` prefix of the chosen message is rewritten.
    """

    def __init__(self, commit_type: str | None = None, scope: str | None = None):
        self.commit_type = commit_type
        self.scope = scope

    def combine(self, messages: list[str]) -> str:
        if not messages:
            raise AllChunksFailedError([])

        if len(messages) == 1:
            return messages[0]

        # max() keeps the first of equally long messages
        chosen = max(messages, key=len)
        logger.debug(
            "Combined chunk results",
            chunks=len(messages),
            chosen_length=len(chosen),
        )
        return self.enforce_type(chosen)

    def enforce_type(self, message: str) -> str:
        """Rewrite the leading type prefix if it differs from the required one."""
        if not self.commit_type:
            return message

        required = (
            f"{self.commit_type}({self.scope}):" if self.scope else f"{self.commit_type}:"
        )
        match = TYPE_PREFIX.match(message)

        if match:
            same_type = match.group("type").lower() == self.commit_type.lower()
            same_scope = self.scope is None or match.group("scope") == self.scope
            if same_type and same_scope:
                return message
            body = message[match.end():]
        else:
            body = message

        return f"{required} {body}"
