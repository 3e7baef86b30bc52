"""
Pattern Tables

Ordered path and content pattern tables shared by the noise filter, the
relevancy scorer and the file selector. Tables are evaluated top to bottom
and the first matching rule wins.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Generic, TypeVar

from .models import PriorityTier

T = TypeVar("T")


@dataclass(frozen=True)
class PatternRule(Generic[T]):
    """One row of an ordered pattern table."""

    pattern: re.Pattern[str]
    value: T
    reason: str = ""


def rule(pattern: str, value: T, reason: str = "", flags: int = 0) -> PatternRule[T]:
    return PatternRule(re.compile(pattern, flags), value, reason)


def first_match(table: list[PatternRule[T]], text: str) -> PatternRule[T] | None:
    """Return the first rule whose pattern is found in text."""
    for entry in table:
        if entry.pattern.search(text):
            return entry
    return None


def matches_any(patterns: list[re.Pattern[str]], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def _compile(patterns: list[str], flags: int = 0) -> list[re.Pattern[str]]:
    return [re.compile(p, flags) for p in patterns]


# =============================================================================
# PATH PATTERNS: noise
# =============================================================================

LOCK_FILE_PATTERNS = _compile([
    r"\.lock$",
    r"package-lock\.json$",
    r"yarn\.lock$",
    r"pnpm-lock\.yaml$",
    r"Gemfile\.lock$",
    r"composer\.lock$",
    r"go\.sum$",
])

BINARY_EXTENSION_PATTERNS = _compile([
    r"\.(zip|rar|7z|tar|gz|bz2|xz)$",  # Archives
    r"\.(exe|dll|so|dylib|app)$",  # Executables
    r"\.(jpg|jpeg|png|gif|bmp|ico|webp|tiff)$",  # Images
    r"\.(mp3|mp4|avi|mov|wmv|flv|webm|ogg|wav)$",  # Media
    r"\.(pdf|doc|docx|xls|xlsx|ppt|pptx)$",  # Documents
    r"\.(bin|dat|db|sqlite|sqlite3)$",  # Databases
    r"\.(woff2?|ttf|eot)$",  # Fonts
    r"\.(pyc|pyo|class|o|obj)$",  # Compiled
], re.I)

DEPENDENCY_DIR_PATTERNS = _compile([
    r"(^|/)(node_modules|vendor|bower_components)/",
])

BUILD_OUTPUT_PATTERNS = _compile([
    r"^(dist|build|out|\.next|\.nuxt)/",
])

CACHE_DIR_PATTERNS = _compile([
    r"(^|/)\.(cache|tmp|temp)/",
])

GENERATED_FILE_PATTERNS = _compile([
    # Lock files
    r"\.lock$",
    r"package-lock\.json$",
    r"pnpm-lock\.yaml$",
    r"go\.sum$",
    # Generated/build directories
    r"(^|/)\.generated\.",
    r"(^|/)(dist|build|out|target|bin|obj)/",
    r"(^|/)\.(next|nuxt|astro|svelte-kit|cache|output)/",
    r"(^|/)public/build/",
    # Test coverage
    r"(^|/)(coverage|\.nyc_output|htmlcov|test-results|\.pytest_cache)/",
    # Dependencies
    r"(^|/)(node_modules|vendor|bower_components|\.pnp|venv|\.venv|env)/",
    # Version control and IDE
    r"(^|/)\.(git|svn|vscode|idea|fleet|vs)/",
    # OS files
    r"(^|/)\.DS_Store$",
    r"(^|/)thumbs\.db$",
    r"(^|/)desktop\.ini$",
    r"(^|/)\._[^/]*$",
    # Code generation
    r"\.g\.(ts|dart|cs|go)$",
    r"_pb2\.py$",
    r"\.pb\.go$",
    r"_grpc\.py$",
    r"\.(min|bundle|chunk)\.(js|css|mjs)$",
    r"\.map$",
    r"\.d\.ts$",
    # Framework artifacts
    r"\.tsbuildinfo$",
    r"(^|/)\.(docusaurus|vercel|netlify)/",
    # Auto-generated migrations
    r"(^|/)migrations/\d+_[^/]*\.(py|sql|js|ts)$",
    # Binary, media, document and font extensions
    r"\.(zip|rar|7z|tar|gz|bz2|xz|tgz)$",
    r"\.(exe|dll|so|dylib|lib|a|app|dmg|pkg)$",
    r"\.(jpg|jpeg|png|gif|bmp|ico|svg|webp|tiff|psd|ai|sketch)$",
    r"\.(mp3|mp4|avi|mov|wmv|flv|webm|ogg|wav|m4a)$",
    r"\.(pdf|doc|docx|xls|xlsx|ppt|pptx)$",
    r"\.(woff2?|ttf|otf|eot)$",
    r"\.(bin|dat|db|sqlite|sqlite3)$",
    # Compiled and cached
    r"(^|/)__pycache__/",
    r"\.(pyc|pyo|class|o|obj)$",
    # Mobile/native
    r"(^|/)ios/Pods/",
    r"(^|/)android/(\.gradle|build)/",
    r"\.xcworkspace/",
    r"(^|/)DerivedData/",
    # Logs and temp
    r"\.log$",
    r"(^|/)(logs|tmp)/",
    r"\.(tmp|swp)$",
    r"~$",
], re.I)


# =============================================================================
# LINE PATTERNS: formatter noise and relevancy signals
# =============================================================================

# Matched against the trimmed line content
FORMATTER_NOISE_PATTERNS = _compile([
    r"^,\s*$",
    r"^;\s*$",
    r"^[\"']\s*$",
    r"^[{\[(]\s*$",
    r"^[}\])]\s*$",
    r"^[}\])]+[,;]?\s*$",
])

HIGH_VALUE_PATTERNS = [
    # Definitions
    re.compile(r"^\s*(?:function|def|class|interface|type|const|let|var)\s+"),
    # Control flow
    re.compile(r"^\s*(?:if|else|for|while|switch|case|try|catch|throw|return)\s+"),
    # API endpoints
    re.compile(r"^\s*(?:@(?:Get|Post|Put|Delete|Patch)|app\.|router\.)"),
    # Database operations
    re.compile(r"^\s*(?:SELECT|INSERT|UPDATE|DELETE|CREATE|DROP|ALTER)\s+", re.I),
    # Error handling
    re.compile(r"^\s*(?:error|throw|catch|except|raise)\s+", re.I),
    # Configuration
    re.compile(r"^\s*(?:config|settings|env|environment)", re.I),
]

# (category, pattern, bonus), each counted at most once per chunk
SIGNAL_TERMS: list[tuple[str, re.Pattern[str], float]] = [
    ("Error handling", re.compile(r"error|exception|catch|throw|raise", re.I), 0.2),
    ("Security-related", re.compile(r"password|token|key|auth|security", re.I), 0.2),
    ("Performance-related", re.compile(r"performance|optimi[sz]e|cache|memory|cpu", re.I), 0.15),
    ("Bug fix", re.compile(r"fix|bug|issue|problem|resolve", re.I), 0.2),
]

HIGH_VALUE_BONUS = 0.3


# =============================================================================
# ORDERED TABLES: file type weight, priority tier, heuristic category
# =============================================================================

FILE_TYPE_WEIGHTS: list[PatternRule[float]] = [
    rule(r"\.(ts|tsx|js|jsx)$", 0.4, "TypeScript/JavaScript source"),
    rule(r"\.(py|rb|php|java|cs|cpp|cc|c|h)$", 0.4, "Source code"),
    rule(r"\.(go|rs|kt|swift|scala)$", 0.4, "Source code"),
    rule(r"\.(vue|svelte|react)$", 0.35, "Component file"),
    rule(r"\.(sql|prisma|graphql)$", 0.3, "Database/API schema"),
    rule(r"\.(yaml|yml|json|toml|ini)$", 0.25, "Configuration"),
    rule(r"\.(md|rst|txt)$", 0.15, "Documentation"),
    rule(r"\.(css|scss|less|sass)$", 0.2, "Styling"),
    rule(r"\.(html|htm|xml)$", 0.2, "Markup"),
    rule(r"Dockerfile|\.dockerignore", 0.25, "Docker configuration"),
    rule(r"package\.json|requirements\.txt|Cargo\.toml", 0.3, "Dependencies"),
    rule(r"(^|/)\.env", 0.35, "Environment configuration"),
]
DEFAULT_FILE_TYPE_WEIGHT = 0.1

PRIORITY_TIERS: list[PatternRule[PriorityTier]] = [
    rule(
        r"\.(ts|tsx|js|jsx|py|rb|php|java|go|rs|cpp|c|h|cs|kt|swift|scala)$",
        PriorityTier.HIGH,
        "Source code",
        re.I,
    ),
    rule(
        r"\.(json|yaml|yml|toml|sql|graphql|prisma|proto)$",
        PriorityTier.MEDIUM,
        "Config or schema",
        re.I,
    ),
    rule(
        r"^(package\.json|tsconfig\.json|dockerfile|makefile|\.env)",
        PriorityTier.MEDIUM,
        "Important root file",
        re.I,
    ),
    rule(
        r"\.(md|txt|css|scss|sass|less|html|htm|xml)$",
        PriorityTier.LOW,
        "Docs, styles or markup",
        re.I,
    ),
]
DEFAULT_PRIORITY_TIER = PriorityTier.MEDIUM

PREVIEW_LINES = {
    PriorityTier.HIGH: 50,
    PriorityTier.MEDIUM: 30,
    PriorityTier.LOW: 20,
}

HEURISTIC_CATEGORIES: list[PatternRule[int]] = [
    rule(r"\.(ts|tsx|js|jsx|py|rb|java|go|rs|cpp|c)$", 100, "Source code", re.I),
    rule(r"\.(json|yaml|yml|toml|sql)$", 50, "Config/data", re.I),
    rule(r"\.(md|txt)$", 20, "Docs", re.I),
    rule(r"\.(css|scss|html)$", 30, "Styles/markup", re.I),
]

HEURISTIC_PREFIX_BONUSES: list[PatternRule[int]] = [
    rule(r"^src/", 20),
    rule(r"^lib/", 15),
    rule(r"^app/", 15),
    rule(r"^core/", 25),
]

HEURISTIC_NAME_BONUSES: list[PatternRule[int]] = [
    rule(r"(^|/)package\.json$", 40, flags=re.I),
    rule(r"(^|/)tsconfig\.json$", 25, flags=re.I),
    rule(r"(^|/)Dockerfile$", 30, flags=re.I),
    rule(r"(^|/)Makefile$", 25, flags=re.I),
    rule(r"(^|/)\.env", 35, flags=re.I),
]

TEST_FILE_PATTERNS = _compile([
    r"\.(test|spec)\.(ts|tsx|js|jsx|py|rb)$",
    r"(^|/)test_[^/]*\.py$",
    r"_test\.(py|go)$",
], re.I)

LANGUAGES = {
    "ts": "TypeScript",
    "tsx": "TypeScript React",
    "js": "JavaScript",
    "jsx": "JavaScript React",
    "py": "Python",
    "rb": "Ruby",
    "php": "PHP",
    "java": "Java",
    "go": "Go",
    "rs": "Rust",
    "cpp": "C++",
    "c": "C",
    "cs": "C#",
    "kt": "Kotlin",
    "swift": "Swift",
    "scala": "Scala",
    "sql": "SQL",
    "graphql": "GraphQL",
    "prisma": "Prisma",
    "proto": "Protocol Buffers",
    "yaml": "YAML",
    "yml": "YAML",
    "json": "JSON",
    "toml": "TOML",
    "md": "Markdown",
}


def priority_tier(path: str) -> PriorityTier:
    """Priority tier for a path, from the ordered tier table."""
    name = PurePosixPath(path).name
    for entry in PRIORITY_TIERS:
        if entry.pattern.search(path) or entry.pattern.search(name):
            return entry.value
    return DEFAULT_PRIORITY_TIER


def detect_language(path: str) -> str:
    """Human-readable language name from the file extension."""
    name = PurePosixPath(path).name
    if "." not in name:
        return "Unknown"
    ext = name.rsplit(".", 1)[1].lower()
    if not ext:
        return "Unknown"
    return LANGUAGES.get(ext, ext.upper())
