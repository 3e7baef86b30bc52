"""
Unit tests for token counting, diff serialization and budget splitting.

Most tests use the character estimator (4 chars per token) so budgets are
predictable and no encoding files are downloaded.
"""

import pytest

from commit_forge.config import AdaptiveLineCaps
from commit_forge.errors import BudgetError
from commit_forge.pipeline.models import (
    Diff,
    DiffChunk,
    DiffFile,
    DiffLine,
    FileStatus,
    LineType,
)
from commit_forge.pipeline.splitter import DiffSerializer, TokenBudgetSplitter
from commit_forge.pipeline.tokenizer import (
    DEFAULT_CONTEXT_BUDGET,
    TokenCounter,
    encoding_name_for,
    estimate_tokens,
)


def make_file(path: str, changed: list[int], status: FileStatus = FileStatus.MODIFIED) -> DiffFile:
    """One chunk per entry, each with that many added lines."""
    chunks = []
    for n, count in enumerate(changed):
        lines = [DiffLine(LineType.ADDED, f"{path} chunk {n} line {i}") for i in range(count)]
        chunks.append(
            DiffChunk(
                header=f"@@ -{n},0 +{n},{count} @@",
                old_start=n,
                old_lines=0,
                new_start=n,
                new_lines=count,
                lines=lines,
                context=f"ctx {n}",
            )
        )
    return DiffFile(path=path, status=status, chunks=chunks)


# =============================================================================
# TOKEN COUNTER
# =============================================================================


class TestTokenCounter:
    """Context windows and counting."""

    def test_estimate(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_character_fallback(self, char_counter):
        assert char_counter.count("a" * 40, "gpt-4") == 10

    def test_longest_key_wins(self, char_counter):
        assert char_counter.context_window("gpt-4-turbo") == int(128000 * 0.7)
        assert char_counter.context_window("gpt-4") == int(8192 * 0.7)

    def test_provider_prefix_and_case(self, char_counter):
        assert char_counter.context_window("anthropic/Claude-3-Haiku:beta") == int(200000 * 0.7)

    def test_unknown_model_default(self, char_counter):
        assert char_counter.context_window("mystery-model") == DEFAULT_CONTEXT_BUDGET

    def test_reserved_tokens(self, char_counter):
        assert char_counter.reserved_tokens("a" * 400, "gpt-4") == 100 + 200 + 50

    def test_available_budget(self, char_counter):
        assert char_counter.available_budget("a" * 400, "mystery-model") == 4000 - 100 - 250

    def test_encoding_name_unknown_model(self):
        assert encoding_name_for("anthropic/claude-3-haiku:beta") == "cl100k_base"


# =============================================================================
# SERIALIZER
# =============================================================================


class TestDiffSerializer:
    """Prompt text rendering of a filtered diff."""

    def test_layout(self):
        diff = Diff.from_files([make_file("src/a.py", [2], FileStatus.ADDED)])
        text = DiffSerializer().serialize(diff)

        lines = text.split("\n")
        assert lines[0] == "Summary: 1 files changed, 2 lines modified"
        assert "File: src/a.py (added)" in lines
        assert "Context: ctx 0" in lines
        assert "+src/a.py chunk 0 line 0" in lines

    def test_binary_file(self):
        binary = DiffFile(path="logo.png", status=FileStatus.ADDED, is_binary=True)
        text = DiffSerializer().serialize(Diff.from_files([binary]))
        assert "File: logo.png (added) - Binary file" in text

    def test_cap_applies_per_file(self):
        caps = AdaptiveLineCaps(tiers=[(5, 3)], default_cap=1)
        diff = Diff.from_files([make_file("src/a.py", [2, 2, 2])])

        text = DiffSerializer(caps).serialize(diff)

        changed = [line for line in text.split("\n") if line.startswith("+")]
        assert len(changed) == 3
        # Every chunk still reports its context
        assert text.count("Context: ") == 3

    @pytest.mark.parametrize(
        "files,cap",
        [(1, 200), (5, 200), (6, 100), (20, 100), (21, 50), (50, 50), (51, 30)],
    )
    def test_adaptive_cap_tiers(self, files, cap):
        assert AdaptiveLineCaps().cap_for(files) == cap


# =============================================================================
# SPLITTER
# =============================================================================


class TestTokenBudgetSplitter:
    """Every unit fits the budget."""

    MODEL = "mystery-model"  # default 4000-token window

    def test_fits_whole(self, char_counter):
        splitter = TokenBudgetSplitter(char_counter)
        assert splitter.split("short text", self.MODEL) == ["short text"]

    def test_empty_text(self, char_counter):
        assert TokenBudgetSplitter(char_counter).split("", self.MODEL) == []

    def test_no_budget_raises(self, char_counter):
        splitter = TokenBudgetSplitter(char_counter)
        with pytest.raises(BudgetError):
            splitter.split("text", self.MODEL, system_prompt="x" * 16000)

    def test_line_accumulation_respects_budget(self, char_counter):
        splitter = TokenBudgetSplitter(char_counter)
        budget = splitter.budget_for(self.MODEL, extra_reserved=3600)
        text = "\n".join(f"+line {i:04d} " + "x" * 40 for i in range(200))

        units = splitter.split(text, self.MODEL, extra_reserved=3600)

        assert len(units) > 1
        assert all(unit.strip() for unit in units)
        assert all(char_counter.count(unit, self.MODEL) <= budget for unit in units)
        # Line order preserved across units
        assert "\n".join(units).split("\n") == text.split("\n")

    def test_long_line_splits_at_sentences(self, char_counter):
        splitter = TokenBudgetSplitter(char_counter)
        sentence = "This sentence is about forty characters."
        text = " ".join([sentence] * 20)

        units = splitter.split(text, self.MODEL, extra_reserved=3700)

        budget = splitter.budget_for(self.MODEL, extra_reserved=3700)
        assert len(units) > 1
        assert all(char_counter.count(u, self.MODEL) <= budget for u in units)
        assert all(u.endswith(".") for u in units)

    def test_giant_word_split_by_characters(self, char_counter):
        splitter = TokenBudgetSplitter(char_counter)
        word = "x" * 2000

        units = splitter.split(word, self.MODEL, extra_reserved=3700)

        budget = splitter.budget_for(self.MODEL, extra_reserved=3700)
        assert "".join(units) == word
        assert all(char_counter.count(u, self.MODEL) <= budget for u in units)

    def test_budget_for(self, char_counter):
        splitter = TokenBudgetSplitter(char_counter)
        assert splitter.budget_for(self.MODEL, "a" * 40, extra_reserved=10) == 4000 - 10 - 250 - 10

    def test_default_counter(self):
        assert isinstance(TokenBudgetSplitter().counter, TokenCounter)
