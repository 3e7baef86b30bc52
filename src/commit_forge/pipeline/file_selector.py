"""
File Selector

Chooses which files of a large commit reach the model. Small commits pass
through, medium commits are triaged by a model, and very large commits are
ranked heuristically.
"""

import math
from pathlib import PurePosixPath
from typing import Awaitable, Callable, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import SelectionOptions
from ..services.llm_client import ChatMessage, ModelRequest, ModelResponse
from . import patterns
from .formatting import load_json_object
from .models import DiffFile, FilePreview, FileStatus, LineType, SelectionResult

logger = structlog.get_logger(__name__)

SELECTION_MAX_TOKENS = 2000
SELECTION_TEMPERATURE = 0.3
DEFAULT_REASONING = "No reasoning provided"
DEFAULT_CONFIDENCE = 0.5

STATUS_BONUSES = {
    FileStatus.ADDED: 30,  # New files are important
    FileStatus.DELETED: 20,  # Deletions indicate refactoring
    FileStatus.MODIFIED: 10,
}
TEST_FILE_PENALTY = 10
DEPTH_LIMIT = 5
DEPTH_PENALTY = 5
MAX_SIZE_BONUS = 50


class SelectionPayload(BaseModel):
    """JSON object the selection model is asked to return."""

    model_config = ConfigDict(populate_by_name=True)

    selected_files: list[str] = Field(alias="selectedFiles")
    reasoning: str = DEFAULT_REASONING
    confidence: float = DEFAULT_CONFIDENCE

    @field_validator("reasoning", mode="before")
    @classmethod
    def default_reasoning(cls, value: object) -> str:
        if value is None or value == "":
            return DEFAULT_REASONING
        return str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, value: object) -> float:
        """Accept percentages and out-of-range numbers; clamp to 0-1."""
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return DEFAULT_CONFIDENCE
        try:
            number = float(value)
        except ValueError:
            return DEFAULT_CONFIDENCE
        if math.isnan(number) or number == 0:
            return DEFAULT_CONFIDENCE
        if 1 < number <= 100:
            number /= 100
        return max(0.0, min(number, 1.0))


class SelectionStrategy(Protocol):
    """Pick at most ``max_files`` files."""

    async def select(self, files: list[DiffFile], max_files: int) -> list[DiffFile]:
        ...


# =============================================================================
# AI-assisted selection
# =============================================================================


class AISelectionStrategy:
    """Ask a model to pick the files that best explain the commit."""

    def __init__(
        self,
        call: Callable[[ModelRequest], Awaitable[ModelResponse]],
        model: str,
        provider: str,
        temperature: float = SELECTION_TEMPERATURE,
        max_tokens: int = SELECTION_MAX_TOKENS,
    ):
        """
        Initialize strategy.

        Args:
            call: Sends one request, typically the request queue's ``submit``
            model: Model used for selection
            provider: Provider name passed through on the request
            temperature: Sampling temperature, low for consistent picks
            max_tokens: Response token limit
        """
        self.call = call
        self.model = model
        self.provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def select(self, files: list[DiffFile], max_files: int) -> list[DiffFile]:
        """
        Select files via the model.

        Raises:
            Any transport error, or ValueError when the reply is unusable.
            The caller decides on fallback.
        """
        previews = [build_preview(f) for f in files]
        request = ModelRequest(
            provider=self.provider,
            model=self.model,
            messages=[ChatMessage(role="user", content=build_selection_prompt(previews, max_files))],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        logger.debug("Sending file selection request", files=len(files), model=self.model)
        response = await self.call(request)
        result = parse_selection_response(response.message)

        wanted = set(result.selected_files)
        selected = [f for f in files if f.path in wanted][:max_files]

        logger.debug(
            "AI file selection completed",
            selected=len(selected),
            confidence=result.confidence,
            reasoning=result.reasoning,
        )
        return selected


def build_preview(file: DiffFile) -> FilePreview:
    """Compact preview sized by the file's priority tier."""
    tier = patterns.priority_tier(file.path)
    changed = [
        f"{'+' if line.type == LineType.ADDED else '-'} {line.content}"
        for chunk in file.chunks
        for line in chunk.lines
        if line.is_change
    ]
    return FilePreview(
        path=file.path,
        status=file.status,
        size=len(changed),
        language=patterns.detect_language(file.path),
        priority=tier,
        preview="\n".join(changed[: patterns.PREVIEW_LINES[tier]]),
    )


def build_selection_prompt(previews: list[FilePreview], max_files: int) -> str:
    entries = []
    for i, p in enumerate(previews, start=1):
        preview = "\n".join(f"   {line}" for line in p.preview.split("\n"))
        entries.append(
            f"[{i}] {p.path}\n"
            f"   Status: {p.status.value} | Size: {p.size} lines | "
            f"Language: {p.language} | Priority: {p.priority.value}\n"
            f"   Preview:\n{preview}\n---"
        )

    prompt_parts = [
        f"You are analyzing a git commit with {len(previews)} changed files.",
        "",
        f"YOUR TASK: Select the TOP {max_files} most important files needed to write "
        "an accurate, comprehensive commit message.",
        "",
        "SELECTION CRITERIA:",
        "1. Core changes: files that represent the main purpose of this commit",
        "2. Source code priority: prefer code over configs/docs (unless config IS the main change)",
        "3. Avoid redundancy: if many test files test the same feature, pick 2-3 representative ones",
        "4. Context matters: include files that explain the changes",
        "5. Watch for patterns: added files are often important, deleted files may "
        "indicate refactoring, modified core modules are usually critical",
        "",
        "FILES TO ANALYZE:",
        "\n".join(entries),
        "",
        "RESPONSE FORMAT (JSON only):",
        "{",
        '  "selectedFiles": ["path/to/file1.ts", "path/to/file2.ts"],',
        '  "reasoning": "Brief explanation of selection strategy (1-2 sentences)",',
        '  "confidence": 0.85',
        "}",
        "",
        "Return ONLY valid JSON, no markdown, no explanations outside JSON.",
    ]
    return "\n".join(prompt_parts)


def parse_selection_response(response: str) -> SelectionResult:
    """
    Parse the selection model's reply.

    Raises:
        ValueError: If no valid ``selectedFiles`` object can be found.
    """
    data = load_json_object(response, "selectedFiles")
    if data is None:
        raise ValueError("No JSON object with selectedFiles in response")

    try:
        payload = SelectionPayload.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid selection payload: {e}") from e

    return SelectionResult(
        selected_files=payload.selected_files,
        reasoning=payload.reasoning,
        confidence=payload.confidence,
    )


# =============================================================================
# Heuristic selection
# =============================================================================


class HeuristicSelectionStrategy:
    """Rank files by type, status, location and size."""

    async def select(self, files: list[DiffFile], max_files: int) -> list[DiffFile]:
        return self.rank(files)[:max_files]

    def rank(self, files: list[DiffFile]) -> list[DiffFile]:
        # sorted() is stable, so ties keep input order
        return sorted(files, key=self.score_file, reverse=True)

    def score_file(self, file: DiffFile) -> float:
        path = file.path.lower()
        score = 0.0

        category = patterns.first_match(patterns.HEURISTIC_CATEGORIES, path)
        if category:
            score += category.value

        score += STATUS_BONUSES.get(file.status, 0)

        for bonus in patterns.HEURISTIC_PREFIX_BONUSES:
            if bonus.pattern.search(path):
                score += bonus.value

        for bonus in patterns.HEURISTIC_NAME_BONUSES:
            if bonus.pattern.search(path):
                score += bonus.value

        if patterns.matches_any(patterns.TEST_FILE_PATTERNS, path):
            score -= TEST_FILE_PENALTY

        depth = len(PurePosixPath(path).parts)
        if depth > DEPTH_LIMIT:
            score -= DEPTH_PENALTY * (depth - DEPTH_LIMIT)

        score += min(file.changed_lines / 10, MAX_SIZE_BONUS)
        return score


# =============================================================================
# Selector
# =============================================================================


class FileSelector:
    """Pick a selection path by file count, falling back to heuristics."""

    def __init__(
        self,
        ai_strategy: SelectionStrategy | None = None,
        heuristic_strategy: SelectionStrategy | None = None,
        options: SelectionOptions | None = None,
    ):
        self.ai_strategy = ai_strategy
        self.heuristic_strategy = heuristic_strategy or HeuristicSelectionStrategy()
        self.options = options or SelectionOptions()

    async def select(self, files: list[DiffFile], max_files: int | None = None) -> list[DiffFile]:
        """
        Select files for the prompt.

        - N <= small_commit_max: unchanged
        - N <= ai_selection_max: AI strategy, heuristic on any failure
        - otherwise: heuristic only
        """
        limit = max_files if max_files is not None else self.options.max_files
        count = len(files)

        if count <= self.options.small_commit_max:
            return list(files)

        use_ai = (
            count <= self.options.ai_selection_max
            and self.options.ai_enabled
            and self.ai_strategy is not None
        )
        if not use_ai:
            logger.debug("Using heuristic file selection", files=count, max_files=limit)
            return await self.heuristic_strategy.select(files, limit)

        try:
            selected = await self.ai_strategy.select(files, limit)
        except Exception as e:
            logger.warning("AI selection failed, falling back to heuristic", error=str(e))
            return await self.heuristic_strategy.select(files, limit)

        if not selected:
            logger.warning("AI selection returned no known files, falling back to heuristic")
            return await self.heuristic_strategy.select(files, limit)

        return selected


def selection_ratio(selected: int, total: int) -> str:
    """Human-readable share of files kept, e.g. ``"30/120 (25%)"``."""
    if total == 0:
        return "0/0 (0%)"
    return f"{selected}/{total} ({math.floor(selected / total * 100)}%)"
