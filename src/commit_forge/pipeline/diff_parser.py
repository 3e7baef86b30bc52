"""
Diff Parser

Parses unified diff text into structured Diff/DiffFile/DiffChunk objects.
"""

import re
from collections.abc import Iterable
from dataclasses import replace

import structlog

from .models import Diff, DiffChunk, DiffFile, DiffLine, FileStatus, LineType

logger = structlog.get_logger(__name__)

DEFAULT_MAX_CHUNK_SIZE = 8000  # characters of line content per chunk


class DiffParser:
    """Parse unified diff output into structured data."""

    # Regex patterns for parsing diff output
    FILE_MARKER = "diff --git "
    PREFIXED_PATHS = re.compile(r"^a/(.+) b/(.+)$")
    HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
    RENAME_TO = re.compile(r"^rename to (.+)$")
    COPY_TO = re.compile(r"^copy to (.+)$")
    RENAME_FROM = re.compile(r"^rename from (.+)$")
    COPY_FROM = re.compile(r"^copy from (.+)$")
    NEW_FILE = re.compile(r"^new file mode")
    DELETED_FILE = re.compile(r"^deleted file mode")
    BINARY_FILE = re.compile(r"^Binary files .* differ$")
    NAME_STATUS_CODES = {
        "A": FileStatus.ADDED,
        "M": FileStatus.MODIFIED,
        "D": FileStatus.DELETED,
        "R": FileStatus.RENAMED,
        "C": FileStatus.COPIED,
    }

    def __init__(self, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE):
        """
        Initialize parser.

        Args:
            max_chunk_size: Chunks whose line content exceeds this many
                characters are split into ordered sub-chunks.
        """
        self.max_chunk_size = max_chunk_size

    def parse(self, diff_output: str) -> Diff:
        """Parse full diff output. Malformed sections are skipped."""
        files: list[DiffFile] = []
        total_lines = 0
        total_size = 0

        for section in self.split_sections(diff_output):
            parsed = self.parse_section(section)
            if parsed is None:
                continue
            files.append(parsed)
            total_lines += parsed.total_lines
            total_size += len(section)

        logger.debug("Diff parsed", files=len(files), total_lines=total_lines)
        return Diff(files=files, total_lines=total_lines, total_size=total_size)

    def split_sections(self, diff_output: str) -> list[str]:
        """Split diff text into one section per file marker line."""
        sections: list[str] = []
        current: list[str] = []

        for line in diff_output.replace("\r\n", "\n").split("\n"):
            if line.startswith(self.FILE_MARKER) and current:
                sections.append("\n".join(current))
                current = []
            current.append(line)

        if current:
            sections.append("\n".join(current))

        # Anything before the first marker is preamble, not a file
        return [s for s in sections if s.startswith(self.FILE_MARKER)]

    def parse_section(self, section: str) -> DiffFile | None:
        """Parse a single file section, or None if it is malformed."""
        lines = section.split("\n")
        marker_paths = self._paths_from_marker(lines[0])
        if marker_paths is None:
            logger.debug("Skipping section with unreadable file marker", marker=lines[0])
            return None

        old_path, new_path, prefixed = marker_paths
        header_lines: list[str] = []
        for line in lines[1:]:
            if line.startswith("@@"):
                break
            header_lines.append(line)

        path = self._canonical_path(header_lines, new_path, prefixed)
        if not path:
            logger.debug("Skipping section without a path", marker=lines[0])
            return None

        status = self._determine_status(header_lines)
        source_path = self._source_path(header_lines) or old_path
        is_binary = any(self.BINARY_FILE.match(line) for line in header_lines)

        if is_binary:
            return DiffFile(
                path=path,
                status=status,
                is_binary=True,
                chunks=[],
                old_path=source_path if source_path != path else None,
            )

        chunks = self.parse_chunks(lines[1 + len(header_lines):])
        return DiffFile(
            path=path,
            status=status,
            is_binary=False,
            chunks=self.split_large_chunks(chunks),
            old_path=source_path if source_path != path else None,
        )

    def parse_chunks(self, lines: Iterable[str]) -> list[DiffChunk]:
        """Parse hunk headers and typed lines into chunks."""
        chunks: list[DiffChunk] = []
        current: DiffChunk | None = None

        for line in lines:
            if line.startswith("@@"):
                if current and current.lines:
                    current.context = generate_context(current.lines)
                    chunks.append(current)
                current = self.parse_chunk_header(line)
                if current is None:
                    logger.debug("Skipping malformed hunk header", header=line)
                continue

            # Lines after a malformed header are dropped until the next one
            if current is None:
                continue

            parsed = parse_line(line)
            if parsed is not None:
                current.lines.append(parsed)

        if current and current.lines:
            current.context = generate_context(current.lines)
            chunks.append(current)

        return chunks

    def parse_chunk_header(self, header_line: str) -> DiffChunk | None:
        """Parse an ``@@ -a,b +c,d @@`` header into an empty chunk."""
        match = self.HUNK_HEADER.match(header_line)
        if not match:
            return None

        return DiffChunk(
            header=header_line,
            old_start=int(match.group(1)),
            old_lines=int(match.group(2) or "1"),
            new_start=int(match.group(3)),
            new_lines=int(match.group(4) or "1"),
        )

    def split_large_chunks(self, chunks: list[DiffChunk]) -> list[DiffChunk]:
        """Split chunks whose content exceeds max_chunk_size."""
        result: list[DiffChunk] = []
        for chunk in chunks:
            if chunk.content_size <= self.max_chunk_size:
                result.append(chunk)
            else:
                result.extend(self._split_single_chunk(chunk))
        return result

    def _split_single_chunk(self, chunk: DiffChunk) -> list[DiffChunk]:
        """Split one chunk at line boundaries, preserving order."""
        sub_chunks: list[DiffChunk] = []
        current: list[DiffLine] = []
        current_size = 0

        for line in chunk.lines:
            line_size = len(line.content)
            if current_size + line_size > self.max_chunk_size and current:
                sub_chunks.append(
                    replace(chunk, lines=current, context=generate_context(current))
                )
                current = []
                current_size = 0
            current.append(line)
            current_size += line_size

        if current:
            sub_chunks.append(
                replace(chunk, lines=current, context=generate_context(current))
            )

        logger.debug(
            "Split oversized chunk",
            header=chunk.header,
            size=chunk.content_size,
            parts=len(sub_chunks),
        )
        return sub_chunks or [chunk]

    def parse_name_status(self, output: str) -> list[tuple[str, FileStatus]]:
        """Parse ``git diff --name-status`` output into (path, status) pairs."""
        entries: list[tuple[str, FileStatus]] = []
        for line in output.strip().split("\n"):
            if not line.strip():
                continue
            parts = line.split("\t")
            code = parts[0][:1].upper() if parts[0] else ""
            status = self.NAME_STATUS_CODES.get(code, FileStatus.MODIFIED)
            # Renames and copies list old then new path
            path = parts[-1] if len(parts) > 1 else ""
            if path:
                entries.append((path, status))
        return entries

    def apply_statuses(
        self, diff: Diff, statuses: Iterable[tuple[str, FileStatus]]
    ) -> Diff:
        """Override parsed statuses with an authoritative status list."""
        by_path = dict(statuses)
        files = [
            replace(f, status=by_path[f.path]) if f.path in by_path else f
            for f in diff.files
        ]
        return Diff(files=files, total_lines=diff.total_lines, total_size=diff.total_size)

    def _paths_from_marker(self, marker: str) -> tuple[str, str, bool] | None:
        """Extract (old, new, prefixed) paths from a ``diff --git`` line."""
        rest = marker[len(self.FILE_MARKER):].strip()
        if not rest:
            return None

        match = self.PREFIXED_PATHS.match(rest)
        if match:
            return match.group(1), match.group(2), True

        # --no-prefix output: identical halves when the file was not moved
        half = len(rest) // 2
        if len(rest) % 2 == 1 and rest[:half] == rest[half + 1:]:
            return rest[:half], rest[:half], False

        if " " in rest:
            old, new = rest.rsplit(" ", 1)
            return old, new, False

        return rest, rest, False

    def _canonical_path(
        self, header_lines: list[str], marker_path: str, prefixed: bool
    ) -> str:
        """Post-change path: rename/copy target, then +++ line, then marker."""
        for line in header_lines:
            match = self.RENAME_TO.match(line) or self.COPY_TO.match(line)
            if match:
                return match.group(1).strip()

        for line in header_lines:
            if line.startswith("+++ "):
                target = line[4:].strip()
                if target == "/dev/null":
                    break
                if prefixed and target.startswith("b/"):
                    target = target[2:]
                return target

        return marker_path.strip()

    def _source_path(self, header_lines: list[str]) -> str | None:
        for line in header_lines:
            match = self.RENAME_FROM.match(line) or self.COPY_FROM.match(line)
            if match:
                return match.group(1).strip()
        return None

    def _determine_status(self, header_lines: list[str]) -> FileStatus:
        if any(self.NEW_FILE.match(line) for line in header_lines):
            return FileStatus.ADDED
        if any(self.DELETED_FILE.match(line) for line in header_lines):
            return FileStatus.DELETED
        if any(self.RENAME_FROM.match(line) for line in header_lines):
            return FileStatus.RENAMED
        if any(self.COPY_FROM.match(line) for line in header_lines):
            return FileStatus.COPIED
        return FileStatus.MODIFIED


def parse_line(line: str) -> DiffLine | None:
    """Type a hunk line by its leading marker character."""
    if line.startswith("+"):
        return DiffLine(LineType.ADDED, line[1:])
    if line.startswith("-"):
        return DiffLine(LineType.REMOVED, line[1:])
    if line.startswith(" "):
        return DiffLine(LineType.CONTEXT, line[1:])
    # "\ No newline at end of file" and stray blank lines carry no content
    return None


def generate_context(lines: Iterable[DiffLine]) -> str:
    """Summarize a chunk from its first three non-empty context/added lines."""
    contents = [
        line.content.strip()
        for line in lines
        if line.type in (LineType.CONTEXT, LineType.ADDED) and line.content.strip()
    ]
    return " | ".join(contents[:3])
