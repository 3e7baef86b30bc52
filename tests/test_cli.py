"""
Tests for the commit-forge command line.

Only paths that never reach a model provider are exercised here.
"""

import pytest

from commit_forge import cli
from commit_forge.pipeline import orchestrator
from commit_forge.pipeline.tokenizer import TokenCounter


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Point the cache at tmp_path and keep tiktoken encodings unloaded."""
    monkeypatch.setenv("COMMIT_FORGE_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("COMMIT_FORGE_MODEL", "gpt-4")
    monkeypatch.delenv("COMMIT_FORGE_MAX_FILES", raising=False)
    monkeypatch.setattr(orchestrator, "TokenCounter", lambda: TokenCounter(use_tiktoken=False))


class TestDryRun:
    def test_prints_chunks_without_lock_file(self, tmp_path, capsys, mixed_commit_diff):
        diff_path = tmp_path / "changes.diff"
        diff_path.write_text(mixed_commit_diff, encoding="utf-8")

        exit_code = cli.main([str(diff_path), "--dry-run"])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert out.startswith("===== chunk 1/1 =====")
        assert "File: src/app.ts (modified)" in out
        assert "package-lock.json" not in out

    def test_name_status_file(self, tmp_path, capsys, file_diff):
        diff_path = tmp_path / "changes.diff"
        diff_path.write_text(file_diff("src/new.py", ["def run():", "    return 1"]), encoding="utf-8")
        status_path = tmp_path / "status.txt"
        status_path.write_text("A\tsrc/new.py\n", encoding="utf-8")

        exit_code = cli.main([str(diff_path), "--name-status", str(status_path), "--dry-run"])

        assert exit_code == 0
        assert "File: src/new.py (added)" in capsys.readouterr().out

    def test_nothing_relevant(self, tmp_path, capsys, file_diff):
        diff_path = tmp_path / "changes.diff"
        diff_path.write_text(file_diff("yarn.lock", ["dep@1.0.0"]), encoding="utf-8")

        assert cli.main([str(diff_path), "--dry-run"]) == 0
        assert "No relevant changes" in capsys.readouterr().out


class TestClearCache:
    def test_clear_cache(self, tmp_path, capsys):
        cache = cli.ContentCache(tmp_path / "cache")
        cache.set("content", "feat: cached", "gpt-4", "openrouter", 0.7)

        assert cli.main(["--clear-cache"]) == 0
        assert "Cache cleared." in capsys.readouterr().out
        assert list((tmp_path / "cache").glob("*.json")) == []


class TestErrors:
    def test_config_error_exit_code(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COMMIT_FORGE_MAX_FILES", "lots")
        diff_path = tmp_path / "changes.diff"
        diff_path.write_text("", encoding="utf-8")

        assert cli.main([str(diff_path), "--dry-run"]) == 1

    def test_overrides(self):
        args = cli.build_parser().parse_args(["--model", "gpt-4o", "--type", "fix", "--max-files", "5"])
        config = cli.apply_overrides(cli.PipelineConfig(), args)

        assert config.model == "gpt-4o"
        assert config.commit_type == "fix"
        assert config.selection.max_files == 5
