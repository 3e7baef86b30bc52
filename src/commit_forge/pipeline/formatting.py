"""
Prompt formatting and model response parsing helpers.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
LEADING_PREAMBLE = re.compile(
    r"^(?:Here is|Here's|This is|The|A)\s+(?:a\s+)?(?:the\s+)?"
    r"(?:commit\s+message|JSON|response|result)[^:{]*:?\s*",
    re.IGNORECASE,
)

COMMIT_TYPES = (
    "feat", "fix", "docs", "style", "refactor", "test",
    "chore", "perf", "ci", "build", "revert",
)


@dataclass
class ParsedCommitResponse:
    """Commit message extracted from a model response."""

    commit_message: str
    assessment: str | None = None


def clean_text(text: str) -> str:
    """Normalize line endings and collapse runs of spaces and blank lines."""
    text = text.strip().replace("\r\n", "\n")
    text = re.sub(r"  +", " ", text)
    text = re.sub(r" +\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text)


def wrap_in_block(name: str, content: str, clean: bool = True) -> str:
    """Wrap content in a named ``[NAME]...[/NAME]`` block."""
    body = clean_text(content) if clean else content
    return f"[{name}]\n{body}\n[/{name}]"


def wrap_diff_content(diff: str) -> str:
    # Diff text is whitespace-sensitive, never cleaned
    return wrap_in_block("DIFF_CONTENT", diff, clean=False)


def build_system_prompt(
    commit_type: str | None = None,
    scope: str | None = None,
    language: str = "English",
) -> str:
    """Default system prompt asking for a Conventional Commits message."""
    instructions = [
        "You are a senior software engineer writing git commit messages.",
        "Analyze the diff in the [DIFF_CONTENT] block and describe what the changes do.",
        "Identify the primary purpose (feature, fix, refactor, ...) and mention",
        "important secondary changes. Changes may arrive in several parts;",
        "describe the part you are given as completely as possible.",
    ]

    rules = [
        "- Be specific: name key functions, components or files when relevant",
        "- Be accurate: every word must reflect the actual changes",
        "- Keep the subject line under 72 characters",
        "- Add a body only if the change is complex",
        f"- Write in {language}",
        "",
        "Conventional Commits format:",
        "<type>[optional scope]: <description>",
        "",
        f"Types: {', '.join(COMMIT_TYPES)}",
    ]
    if commit_type:
        rules.append(f"\nRequired type: {commit_type}")
    if scope:
        rules.append(f"Required scope: {scope}")

    schema = '{\n  "commitMessage": "type(scope): description\\n\\noptional body",\n  "codeAssessment": "One sentence assessment of the change"\n}'

    return "\n\n".join([
        wrap_in_block("INSTRUCTIONS", "\n".join(instructions)),
        wrap_in_block("RULES", "\n".join(rules)),
        wrap_in_block("RESPONSE_SCHEMA", schema, clean=False),
        wrap_in_block(
            "INSTRUCTIONS",
            "Return ONLY a valid JSON object matching RESPONSE_SCHEMA. "
            "Do not wrap it in markdown code blocks.",
        ),
    ])


def extract_balanced_json(text: str, required_key: str | None = None) -> str | None:
    """
    Find the first balanced ``{...}`` object in text.

    Braces inside JSON strings are ignored. With ``required_key``, objects
    that do not mention the key are skipped.
    """
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            return None
        candidate = text[start:end + 1]
        if required_key is None or f'"{required_key}"' in candidate:
            return candidate
        start = text.find("{", start + 1)
    return None


def _balanced_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        char = text[i]
        if escape:
            escape = False
            continue
        if char == "\\" and in_string:
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def load_json_object(response: str, required_key: str) -> dict[str, Any] | None:
    """
    Parse a JSON object out of a model response.

    Tries, in order: fenced code block, the whole (unfenced) text, then the
    first balanced object containing ``required_key``.
    """
    text = response.strip()
    fenced = CODE_FENCE.search(text)
    candidates = []
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(CODE_FENCE.sub(lambda m: m.group(1), text).strip())

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict) and required_key in parsed:
            return parsed

        extracted = extract_balanced_json(candidate, required_key)
        if extracted:
            try:
                parsed = json.loads(extracted)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict) and required_key in parsed:
                return parsed

    return None


def parse_commit_response(response: str) -> ParsedCommitResponse:
    """Extract the commit message; plain-text responses are used as-is."""
    original = response.strip()
    for text in (original, LEADING_PREAMBLE.sub("", original).strip()):
        parsed = load_json_object(text, "commitMessage")
        if parsed and isinstance(parsed.get("commitMessage"), str) and parsed["commitMessage"].strip():
            assessment = parsed.get("codeAssessment")
            return ParsedCommitResponse(
                commit_message=parsed["commitMessage"].strip(),
                assessment=assessment if isinstance(assessment, str) else None,
            )

    return ParsedCommitResponse(commit_message=original)
