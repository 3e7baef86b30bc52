"""
Token Budget Splitter

Serializes filtered diffs into prompt text and splits that text into units
that each fit a model's token budget.
"""

import re

import structlog

from ..config import AdaptiveLineCaps
from ..errors import BudgetError
from .models import Diff, LineType
from .tokenizer import TokenCounter

logger = structlog.get_logger(__name__)

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


class DiffSerializer:
    """Render a filtered diff as compact prompt text."""

    def __init__(self, line_caps: AdaptiveLineCaps | None = None):
        self.line_caps = line_caps or AdaptiveLineCaps()

    def serialize(self, diff: Diff) -> str:
        """
        Render a diff for the model.

        Each file gets a header, each chunk its context summary, and changed
        lines are capped per file by the adaptive cap for the commit size.
        """
        cap = self.line_caps.cap_for(len(diff.files))
        sections = [
            f"Summary: {len(diff.files)} files changed, {diff.total_lines} lines modified\n"
        ]

        for file in diff.files:
            if file.is_binary:
                sections.append(f"File: {file.path} ({file.status.value}) - Binary file")
                continue

            sections.append(f"File: {file.path} ({file.status.value})")
            remaining = cap

            for chunk in file.chunks:
                if chunk.context:
                    sections.append(f"Context: {chunk.context}")

                if remaining <= 0:
                    continue

                changed = [
                    f"{'+' if line.type == LineType.ADDED else '-'}{line.content}"
                    for line in chunk.lines
                    if line.is_change
                ][:remaining]
                remaining -= len(changed)

                if changed:
                    sections.append("\n".join(changed))

            sections.append("")  # Empty line between files

        return "\n".join(sections)


class TokenBudgetSplitter:
    """Split text into units that fit a model's available token budget."""

    def __init__(self, counter: TokenCounter | None = None):
        self.counter = counter or TokenCounter()

    def budget_for(self, model: str, system_prompt: str = "", extra_reserved: int = 0) -> int:
        """Content budget: context window minus reserved tokens."""
        return self.counter.available_budget(system_prompt, model) - extra_reserved

    def split(
        self,
        text: str,
        model: str,
        system_prompt: str = "",
        extra_reserved: int = 0,
    ) -> list[str]:
        """
        Split text into budget-sized units.

        Strategy:
        1. Whole text if it fits
        2. Otherwise accumulate lines until the next would overflow
        3. Lines that alone overflow split at sentences, then words

        Raises:
            BudgetError: If the budget is not positive or a unit cannot be
                made to fit.
        """
        budget = self.budget_for(model, system_prompt, extra_reserved)
        if budget <= 0:
            raise BudgetError(
                f"No room for content: {model} budget is {budget} tokens after reservations"
            )

        total = self.counter.count(text, model)
        if total <= budget:
            return [text] if text.strip() else []

        logger.debug("Splitting content", total_tokens=total, budget=budget)

        units: list[str] = []
        current: list[str] = []
        current_tokens = 0

        for line in text.split("\n"):
            line_tokens = self.counter.count(line + "\n", model)

            if line_tokens > budget:
                if current:
                    self._emit_lines(current, budget, model, units)
                    current, current_tokens = [], 0
                units.extend(self.split_long_line(line, budget, model))
                continue

            if current and current_tokens + line_tokens > budget:
                self._emit_lines(current, budget, model, units)
                current, current_tokens = [], 0

            current.append(line)
            current_tokens += line_tokens

        if current:
            self._emit_lines(current, budget, model, units)

        logger.debug("Split complete", chunks=len(units), budget=budget)
        return units

    def split_long_line(self, line: str, budget: int, model: str) -> list[str]:
        """Split one over-budget line at sentence, then word boundaries."""
        sentences = [s for s in SENTENCE_BOUNDARY.split(line.strip()) if s.strip()]
        if len(sentences) > 1:
            return self._pack(sentences, budget, model, self._split_words)
        return self._split_words(line, budget, model)

    def _split_words(self, text: str, budget: int, model: str) -> list[str]:
        words = text.split()
        if len(words) > 1:
            return self._pack(words, budget, model, self._split_characters)
        return self._split_characters(text.strip(), budget, model)

    def _split_characters(self, word: str, budget: int, model: str) -> list[str]:
        """Last resort for a single token-heavy word: halve until it fits."""
        if not word:
            return []
        if self.counter.count(word, model) <= budget:
            return [word]
        if len(word) == 1:
            raise BudgetError(f"Cannot fit a single character into a {budget}-token budget")
        middle = len(word) // 2
        return (
            self._split_characters(word[:middle], budget, model)
            + self._split_characters(word[middle:], budget, model)
        )

    def _pack(self, pieces: list[str], budget: int, model: str, fallback) -> list[str]:
        """Greedily join pieces with spaces while they fit the budget."""
        units: list[str] = []
        current = ""

        for piece in pieces:
            if self.counter.count(piece, model) > budget:
                if current:
                    units.append(current)
                    current = ""
                units.extend(fallback(piece, budget, model))
                continue

            candidate = f"{current} {piece}" if current else piece
            if self.counter.count(candidate, model) <= budget:
                current = candidate
            else:
                if current:
                    units.append(current)
                current = piece

        if current:
            units.append(current)

        return units

    def _emit_lines(self, lines: list[str], budget: int, model: str, units: list[str]) -> None:
        """Append joined lines, halving the group if the join overflows."""
        text = "\n".join(lines)
        if not text.strip():
            return

        if self.counter.count(text, model) <= budget:
            units.append(text)
            return

        if len(lines) == 1:
            units.extend(self.split_long_line(lines[0], budget, model))
            return

        middle = len(lines) // 2
        self._emit_lines(lines[:middle], budget, model, units)
        self._emit_lines(lines[middle:], budget, model, units)
