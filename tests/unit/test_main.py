# tests/unit/test_main.py — v2
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from answercache.cache.fingerprint import fingerprint
from answercache.main import _build_parser, main


def _doc(question: str, answer: str, accessed_ms: int, count: int = 1) -> dict:
    return {
        "questionHash": fingerprint(question),
        "question": question,
        "answer": answer,
        "timestamp": 1_700_000_000_000,
        "accessCount": count,
        "lastAccessed": accessed_ms,
    }


@pytest.fixture
def cli_cache(tmp_path: Path, monkeypatch) -> Path:
    """Cache file with three old records; cwd moved away from any .env."""
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "question_cache.json"
    docs = [
        _doc("What is Rust?", "A systems language.", 1_700_000_100_000, count=12),
        _doc("How do I bake bread?", "Knead and bake.", 1_700_000_200_000),
        _doc("What is Go?", "Another language.", 1_700_000_300_000),
    ]
    path.write_text(json.dumps({d["questionHash"]: d for d in docs}), encoding="utf-8")
    return path


def _saved(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self, capsys):
        parser = _build_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_stats_subcommand(self):
        args = _build_parser().parse_args(["stats", "/data/cache.json"])
        assert args.command == "stats"
        assert args.cache_file == Path("/data/cache.json")

    def test_prune_defaults(self):
        args = _build_parser().parse_args(["prune", "c.json"])
        assert args.max_age_days is None
        assert args.min_accesses is None

    def test_lookup_subcommand(self):
        args = _build_parser().parse_args(["lookup", "c.json", "What is Rust?", "--context", "dev"])
        assert args.question == "What is Rust?"
        assert args.context == "dev"

    def test_evict_target(self):
        args = _build_parser().parse_args(["evict", "c.json", "--target", "10"])
        assert args.target == 10


# ---------------------------------------------------------------------------
# Command tests
# ---------------------------------------------------------------------------

class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert main(["stats", str(tmp_path / "nope.json")]) == 1

    def test_stats(self, cli_cache, capsys):
        assert main(["stats", str(cli_cache)]) == 0
        out = capsys.readouterr().out
        assert "Entries:         3" in out
        assert "Total accesses:  14" in out
        assert "'What is Rust?' (12)" in out

    def test_lookup_hit(self, cli_cache, capsys):
        assert main(["lookup", str(cli_cache), "what is rust"]) == 0
        out = capsys.readouterr().out
        assert "Hit (exact" in out
        assert "A systems language." in out
        assert "stale" in out

    def test_lookup_miss(self, cli_cache, capsys):
        assert main(["lookup", str(cli_cache), "Who wrote Hamlet?"]) == 2
        assert "Miss" in capsys.readouterr().out

    def test_prune(self, cli_cache, capsys):
        assert main(["prune", str(cli_cache)]) == 0
        assert "Pruned 2 entries, 1 remain" in capsys.readouterr().out
        assert list(_saved(cli_cache)) == [fingerprint("What is Rust?")]

    def test_evict(self, cli_cache, capsys):
        assert main(["evict", str(cli_cache), "--target", "1"]) == 0
        assert "Evicted 2 entries, 1 remain" in capsys.readouterr().out
        assert list(_saved(cli_cache)) == [fingerprint("What is Go?")]

    def test_logging_follows_settings(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        log_file = tmp_path / "logs" / "cli.log"
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.setenv("LOG_FILE", str(log_file))

        assert main(["stats", str(tmp_path / "nope.json")]) == 1

        for handler in logging.getLogger("answercache").handlers:
            handler.flush()
            handler.close()
        line = log_file.read_text(encoding="utf-8").splitlines()[-1]
        assert "Cache file not found" in json.loads(line)["message"]

    def test_verbose_overrides_level(self, cli_cache, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert main(["-v", "stats", str(cli_cache)]) == 0
        assert logging.getLogger("answercache").level == logging.DEBUG

    def test_invalid_settings(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        assert main(["stats", str(tmp_path / "nope.json")]) == 2
        assert "Invalid configuration" in capsys.readouterr().err
