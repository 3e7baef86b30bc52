"""
Noise Filter

Drops irrelevant files and lines from a parsed diff and ranks the survivors
by relevancy. Cheap path-only rejection runs first; line inspection and
scoring only happen for files that survive it.
"""

from dataclasses import replace

import structlog

from ..config import FilterOptions
from . import patterns
from .diff_parser import generate_context
from .models import (
    Diff,
    DiffChunk,
    DiffFile,
    DiffLine,
    FilterSummary,
    LineType,
    RelevancyScore,
    estimate_file_size,
)

logger = structlog.get_logger(__name__)

LARGE_FILE_LINES = 500
LARGE_FILE_PENALTY = 0.7


class RelevancyScorer:
    """Heuristic 0-1 estimate of how much a changed file matters."""

    BASE_SCORE = 0.1

    def score(self, file: DiffFile) -> RelevancyScore:
        """Score a single file."""
        score = self.BASE_SCORE
        reasons: list[str] = []

        type_rule = patterns.first_match(patterns.FILE_TYPE_WEIGHTS, file.path)
        if type_rule:
            score += type_rule.value
            reasons.append(type_rule.reason)
        else:
            score += patterns.DEFAULT_FILE_TYPE_WEIGHT

        for chunk in file.chunks:
            bonus, chunk_reasons = self._chunk_bonus(chunk)
            score += bonus
            reasons.extend(chunk_reasons)

        # Very large files are often generated
        if file.changed_lines > LARGE_FILE_LINES:
            score *= LARGE_FILE_PENALTY
            reasons.append("Large file penalty")

        return RelevancyScore(
            path=file.path,
            score=max(0.0, min(score, 1.0)),
            reasons=reasons,
        )

    def _chunk_bonus(self, chunk: DiffChunk) -> tuple[float, list[str]]:
        """Bonuses for one chunk; each category counts at most once."""
        changed = [line.content for line in chunk.lines if line.is_change]
        bonus = 0.0
        reasons: list[str] = []

        if any(patterns.matches_any(patterns.HIGH_VALUE_PATTERNS, c) for c in changed):
            bonus += patterns.HIGH_VALUE_BONUS
            reasons.append("High-value code pattern")

        for reason, pattern, value in patterns.SIGNAL_TERMS:
            if any(pattern.search(c) for c in changed):
                bonus += value
                reasons.append(reason)

        return bonus, reasons


class NoiseFilter:
    """Filter noise out of a diff and rank what is left."""

    def __init__(
        self,
        options: FilterOptions | None = None,
        scorer: RelevancyScorer | None = None,
    ):
        """
        Initialize filter.

        Args:
            options: Default filter options, overridable per call
            scorer: Relevancy scorer (default heuristic scorer)
        """
        self.options = options or FilterOptions()
        self.scorer = scorer or RelevancyScorer()

    # -------------------------------------------------------------------------
    # Phase 1: path-only quick filter
    # -------------------------------------------------------------------------

    def quick_filter(self, diff: Diff) -> Diff:
        """Drop binaries, lock files, dependency/build/cache dirs by path."""
        kept: list[DiffFile] = []

        for file in diff.files:
            reason = self.quick_reject_reason(file)
            if reason:
                logger.debug("Quick filter: skipping file", path=file.path, reason=reason)
                continue
            kept.append(file)

        logger.debug(
            "Quick filter complete",
            original_files=len(diff.files),
            filtered_files=len(kept),
            removed=len(diff.files) - len(kept),
        )
        return Diff.from_files(kept)

    def quick_reject_reason(self, file: DiffFile) -> str | None:
        """Why a file is rejected by path alone, or None to keep it."""
        path = file.path
        if file.is_binary or patterns.matches_any(patterns.BINARY_EXTENSION_PATTERNS, path):
            return "binary"
        if patterns.matches_any(patterns.LOCK_FILE_PATTERNS, path):
            return "lock file"
        if patterns.matches_any(patterns.DEPENDENCY_DIR_PATTERNS, path):
            return "dependency directory"
        if patterns.matches_any(patterns.BUILD_OUTPUT_PATTERNS, path):
            return "build output"
        if patterns.matches_any(patterns.CACHE_DIR_PATTERNS, path):
            return "cache/temp"
        return None

    # -------------------------------------------------------------------------
    # Phase 2: detailed filter, score, threshold
    # -------------------------------------------------------------------------

    def filter_diff(self, diff: Diff, options: FilterOptions | None = None) -> Diff:
        """Filter files and lines, then keep and rank files above threshold."""
        opts = options or self.options

        filtered: list[DiffFile] = []
        for file in diff.files:
            result = self.filter_file(file, opts)
            if result is not None:
                filtered.append(result)

        scored = [(self.scorer.score(f), f) for f in filtered]
        relevant = [
            (score, f) for score, f in scored if score.score >= opts.relevancy_threshold
        ]
        # sorted() is stable, so ties keep their original order
        relevant = sorted(relevant, key=lambda pair: pair[0].score, reverse=True)

        for score, _ in scored:
            if score.score < opts.relevancy_threshold:
                logger.debug("Below relevancy threshold", path=score.path, score=score.score)

        result = Diff.from_files([f for _, f in relevant])
        logger.debug(
            "Diff filtered",
            original_files=len(diff.files),
            filtered_files=len(result.files),
            original_lines=diff.total_lines,
            filtered_lines=result.total_lines,
        )
        return result

    def filter_file(self, file: DiffFile, options: FilterOptions) -> DiffFile | None:
        """Filter one file; None if nothing relevant remains."""
        path = file.path

        if options.ignore_generated and patterns.matches_any(
            patterns.GENERATED_FILE_PATTERNS, path
        ):
            logger.debug("Skipping generated file", path=path)
            return None

        if options.ignore_lock_files and patterns.matches_any(
            patterns.LOCK_FILE_PATTERNS, path
        ):
            logger.debug("Skipping lock file", path=path)
            return None

        if file.is_binary or patterns.matches_any(patterns.BINARY_EXTENSION_PATTERNS, path):
            logger.debug("Skipping binary file", path=path)
            return None

        if estimate_file_size(file) > options.max_file_size:
            logger.debug("Skipping oversized file", path=path)
            return None

        chunks: list[DiffChunk] = []
        for chunk in file.chunks:
            result = self.filter_chunk(chunk, options)
            if result is not None:
                chunks.append(result)

        if not chunks:
            return None

        return replace(file, chunks=chunks)

    def filter_chunk(self, chunk: DiffChunk, options: FilterOptions) -> DiffChunk | None:
        """Filter one chunk; None if it has no changed lines left."""
        lines = chunk.lines

        if options.ignore_whitespace:
            lines = filter_whitespace_changes(lines)

        if options.ignore_formatter_noise:
            lines = [line for line in lines if not is_formatter_noise(line)]

        if not any(line.is_change for line in lines):
            return None

        return replace(chunk, lines=lines, context=generate_context(lines))

    def filtering_summary(self, original: Diff, filtered: Diff) -> FilterSummary:
        """Summarize what filtering removed."""
        if original.total_size > 0:
            reduction = round((1 - filtered.total_size / original.total_size) * 100)
        else:
            reduction = 0

        return FilterSummary(
            files_removed=len(original.files) - len(filtered.files),
            lines_removed=original.total_lines - filtered.total_lines,
            size_reduction=f"{reduction}%",
        )


def filter_whitespace_changes(lines: list[DiffLine]) -> list[DiffLine]:
    """
    Drop whitespace-only edits.

    A removed line followed (before any context line) by an added line with
    identical trimmed content is a whitespace change: both are dropped.
    Empty or all-whitespace changed lines are dropped too.
    """
    result: list[DiffLine] = []
    skip: set[int] = set()

    for i, line in enumerate(lines):
        if i in skip:
            continue

        if line.type == LineType.CONTEXT:
            result.append(line)
            continue

        if not line.content.strip():
            continue

        if line.type == LineType.REMOVED:
            trimmed = line.content.strip()
            paired = False
            for j in range(i + 1, len(lines)):
                candidate = lines[j]
                if candidate.type == LineType.CONTEXT:
                    break
                if (
                    j not in skip
                    and candidate.type == LineType.ADDED
                    and candidate.content.strip() == trimmed
                ):
                    skip.add(j)
                    paired = True
                    break
            if paired:
                continue

        result.append(line)

    return result


def is_formatter_noise(line: DiffLine) -> bool:
    """Punctuation-only changed lines such as a lone brace or comma."""
    if line.type == LineType.CONTEXT:
        return False
    content = line.content.strip()
    return not content or patterns.matches_any(patterns.FORMATTER_NOISE_PATTERNS, content)
