#!/usr/bin/env python3
"""Generate a commit message from a unified diff.

Usage:
    git diff --cached --no-prefix | commit-forge
    commit-forge changes.diff --name-status status.txt --type feat
    commit-forge changes.diff --dry-run
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

import structlog

from commit_forge.config import PipelineConfig
from commit_forge.errors import CommitForgeError
from commit_forge.pipeline.formatting import build_system_prompt
from commit_forge.pipeline.orchestrator import CommitMessagePipeline
from commit_forge.services.cache import ContentCache
from commit_forge.services.llm_client import HttpTransport

logger = structlog.get_logger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Console logging on stderr; stdout carries only the message."""
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commit-forge",
        description="Generate a commit message from a unified diff",
    )
    parser.add_argument(
        "diff",
        nargs="?",
        type=Path,
        help="Diff file to read (default: stdin)",
    )
    parser.add_argument(
        "--name-status",
        type=Path,
        help="Output of `git diff --name-status` for authoritative file statuses",
    )
    parser.add_argument("--model", help="Model name")
    parser.add_argument("--provider", help="Provider name")
    parser.add_argument("--max-files", type=int, help="Maximum files to analyze")
    parser.add_argument("--type", dest="commit_type", help="Required commit type")
    parser.add_argument("--scope", help="Required commit scope")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the message cache")
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Delete all cached messages and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the prepared prompt chunks without calling a model",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def apply_overrides(config: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    """Command-line flags win over environment configuration."""
    if args.model:
        config.model = args.model
    if args.provider:
        config.provider = args.provider
    if args.commit_type:
        config.commit_type = args.commit_type
    if args.scope:
        config.scope = args.scope
    if args.max_files is not None:
        config.selection = replace(config.selection, max_files=args.max_files)
    return config


async def run(args: argparse.Namespace) -> int:
    config = apply_overrides(PipelineConfig.from_env(), args)

    if args.clear_cache:
        ContentCache(config.cache.cache_dir).clear()
        print("Cache cleared.")
        return 0

    diff_text = args.diff.read_text(encoding="utf-8") if args.diff else sys.stdin.read()
    name_status = args.name_status.read_text(encoding="utf-8") if args.name_status else None

    transport = HttpTransport(config.base_url, config.api_key, config.timeout)
    pipeline = CommitMessagePipeline(config, transport)
    try:
        if args.dry_run:
            prepared = await pipeline.prepare(diff_text, name_status)
            if prepared.is_empty:
                print("No relevant changes after filtering.")
                return 0
            prompt = build_system_prompt(config.commit_type, config.scope)
            chunks = pipeline.chunk_content(prepared.content, prompt)
            for index, chunk in enumerate(chunks, start=1):
                print(f"===== chunk {index}/{len(chunks)} =====")
                print(chunk)
            return 0

        result = await pipeline.generate(
            diff_text,
            name_status=name_status,
            use_cache=not args.no_cache,
        )
        if not result.message:
            print("No relevant changes after filtering.", file=sys.stderr)
            return 0

        print(result.message)
        logger.debug(
            "Generation complete",
            chunks=result.chunks,
            from_cache=result.from_cache,
            usage=pipeline.usage.to_dict(),
        )
        return 0
    finally:
        await pipeline.aclose()
        await transport.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        return asyncio.run(run(args))
    except CommitForgeError as e:
        logger.error("Commit message generation failed", code=e.code, error=e.message)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
