"""
Data models for the diff-to-prompt pipeline.

Defines all types used between parsing, filtering, selection and splitting.
"""

from dataclasses import dataclass, field
from enum import Enum


class FileStatus(str, Enum):
    """How a file changed between revisions."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"


class LineType(str, Enum):
    """Kind of a single diff line."""

    CONTEXT = "context"  # leading space
    ADDED = "added"  # leading +
    REMOVED = "removed"  # leading -


class PriorityTier(str, Enum):
    """Priority tier used for file-selection previews."""

    HIGH = "high"  # Source code
    MEDIUM = "medium"  # Config, schemas, important root files
    LOW = "low"  # Docs, markup, styles


@dataclass(frozen=True)
class DiffLine:
    """A single line inside a chunk, marker stripped."""

    type: LineType
    content: str

    @property
    def is_change(self) -> bool:
        return self.type != LineType.CONTEXT

    def render(self) -> str:
        """Render back to unified-diff form."""
        marker = {LineType.ADDED: "+", LineType.REMOVED: "-"}.get(self.type, " ")
        return f"{marker}{self.content}"


@dataclass
class DiffChunk:
    """A contiguous block of changed lines plus context (a hunk)."""

    header: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[DiffLine] = field(default_factory=list)
    context: str = ""

    @property
    def changed_lines(self) -> list[DiffLine]:
        return [line for line in self.lines if line.is_change]

    @property
    def content_size(self) -> int:
        """Total bytes of line content, markers excluded."""
        return sum(len(line.content) for line in self.lines)


@dataclass
class DiffFile:
    """Diff for a single file."""

    path: str
    status: FileStatus = FileStatus.MODIFIED
    is_binary: bool = False
    chunks: list[DiffChunk] = field(default_factory=list)
    old_path: str | None = None  # For renames and copies

    @property
    def lines_added(self) -> int:
        return sum(
            1 for c in self.chunks for line in c.lines if line.type == LineType.ADDED
        )

    @property
    def lines_removed(self) -> int:
        return sum(
            1 for c in self.chunks for line in c.lines if line.type == LineType.REMOVED
        )

    @property
    def changed_lines(self) -> int:
        """Total added plus removed lines."""
        return self.lines_added + self.lines_removed

    @property
    def total_lines(self) -> int:
        """All chunk lines, context included."""
        return sum(len(c.lines) for c in self.chunks)


@dataclass
class Diff:
    """Structured representation of every changed file."""

    files: list[DiffFile] = field(default_factory=list)
    total_lines: int = 0
    total_size: int = 0

    @classmethod
    def from_files(cls, files: list[DiffFile], total_size: int | None = None) -> "Diff":
        """Build a diff, recomputing the line total from the files."""
        total_lines = sum(f.total_lines for f in files)
        if total_size is None:
            total_size = sum(estimate_file_size(f) for f in files)
        return cls(files=list(files), total_lines=total_lines, total_size=total_size)


@dataclass
class FilePreview:
    """Compact view of a file sent to the AI selector."""

    path: str
    status: FileStatus
    size: int  # changed lines
    language: str
    priority: PriorityTier
    preview: str


@dataclass
class RelevancyScore:
    """Relevancy score for one file."""

    path: str
    score: float
    reasons: list[str] = field(default_factory=list)


@dataclass
class SelectionResult:
    """Files chosen by a selection strategy."""

    selected_files: list[str]
    reasoning: str = ""
    confidence: float = 0.5


@dataclass
class FilterSummary:
    """What filtering removed."""

    files_removed: int
    lines_removed: int
    size_reduction: str


def estimate_file_size(file: DiffFile) -> int:
    """Approximate serialized size of a file in bytes."""
    size = len(file.path)
    for chunk in file.chunks:
        size += len(chunk.header) + len(chunk.context)
        size += sum(len(line.content) + 1 for line in chunk.lines)
    return size
