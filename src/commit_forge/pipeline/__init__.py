"""
Diff-to-prompt pipeline: parse, filter, select, split and combine.
"""

from .combiner import LongestMessageCombiner, ResultCombiner
from .diff_parser import DiffParser
from .file_selector import (
    AISelectionStrategy,
    FileSelector,
    HeuristicSelectionStrategy,
    SelectionStrategy,
)
from .models import (
    Diff,
    DiffChunk,
    DiffFile,
    DiffLine,
    FileStatus,
    LineType,
)
from .noise_filter import NoiseFilter, RelevancyScorer
from .splitter import DiffSerializer, TokenBudgetSplitter
from .tokenizer import TokenCounter

__all__ = [
    "AISelectionStrategy",
    "Diff",
    "DiffChunk",
    "DiffFile",
    "DiffLine",
    "DiffParser",
    "DiffSerializer",
    "FileSelector",
    "FileStatus",
    "HeuristicSelectionStrategy",
    "LineType",
    "LongestMessageCombiner",
    "NoiseFilter",
    "RelevancyScorer",
    "ResultCombiner",
    "SelectionStrategy",
    "TokenBudgetSplitter",
    "TokenCounter",
]
