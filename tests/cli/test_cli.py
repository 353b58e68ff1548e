"""Tests for the coderecall command line."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from coderecall import __version__
from coderecall.cli.main import cli
from coderecall.embedding.gateway import EmbeddingGateway


@pytest.fixture
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, fake_backend) -> Path:
    """Repository with an embedded on-disk vector store and the hashing backend."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "parser.py").write_text("parse json payload into records\n")
    (root / "src" / "view.ts").write_text("render html template with context\n")

    monkeypatch.setenv("CODERECALL__VECTOR__LOCATION", str(tmp_path / "qdrant"))
    monkeypatch.setenv("CODERECALL__INDEXER__ENABLED", "false")
    with (
        patch("coderecall.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml"),
        patch.object(EmbeddingGateway, "from_config", side_effect=lambda _: EmbeddingGateway(fake_backend)),
    ):
        yield root


def _invoke(repo: Path, *args: str):
    return CliRunner().invoke(cli, ["--root", str(repo), *args], catch_exceptions=False)


class TestCliBasics:
    def test_help_lists_commands(self) -> None:
        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        for name in ("index", "search", "stats", "examples"):
            assert name in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_root_rejected(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["--root", str(tmp_path / "missing"), "stats"])
        assert result.exit_code != 0


class TestIndexAndSearch:
    def test_index_then_search(self, repo: Path) -> None:
        result = _invoke(repo, "index")
        assert result.exit_code == 0
        assert (repo / ".coderecall" / "codebase-index.db").exists()

        result = _invoke(repo, "search", "parse json payload into records", "--json")

        assert result.exit_code == 0
        matches = json.loads(result.stdout)
        assert [m["path"] for m in matches] == ["src/parser.py"]
        assert matches[0]["language"] == "python"

    def test_search_without_matches(self, repo: Path) -> None:
        result = _invoke(repo, "search", "nothing indexed yet")

        assert result.exit_code == 0
        assert "No matching chunks" in result.output

    def test_stats_json(self, repo: Path) -> None:
        _invoke(repo, "index")

        result = _invoke(repo, "stats", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["index"]["total_files"] == 2
        assert data["examples"]["total"] == 0
        assert data["vector"]["points_count"] == 0

    def test_stats_table(self, repo: Path) -> None:
        result = _invoke(repo, "stats")

        assert result.exit_code == 0
        assert "Codebase index" in result.output
        assert "Example ledger" in result.output


class TestExamplesCommands:
    @pytest.fixture
    def code_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "snippet.py"
        path.write_text("def fetch(url):\n    return httpx.get(url).json()\n")
        return path

    def test_add_then_similar(self, repo: Path, code_file: Path) -> None:
        result = _invoke(
            repo, "examples", "add",
            "--task", "fetch json from url",
            "--code-file", str(code_file),
            "--language", "python",
            "--tool", "codegen",
        )
        assert result.exit_code == 0

        result = _invoke(repo, "examples", "similar", "fetch json from url", "--json")

        assert result.exit_code == 0
        (hit,) = json.loads(result.stdout)
        assert hit["task"] == "fetch json from url"
        assert hit["success"] is True

    def test_similar_failures(self, repo: Path, code_file: Path) -> None:
        _invoke(
            repo, "examples", "add",
            "--task", "fetch json from url",
            "--code-file", str(code_file),
            "--language", "python",
            "--tool", "codegen",
            "--failed",
            "--error-type", "ImportError",
            "--error-message", "No module named httpx",
        )

        result = _invoke(repo, "examples", "similar", "fetch json from url", "--failures", "--json")

        (hit,) = json.loads(result.stdout)
        assert hit["success"] is False
        assert hit["error_type"] == "ImportError"

    def test_add_rejects_empty_task(self, repo: Path, code_file: Path) -> None:
        result = CliRunner().invoke(
            cli,
            [
                "--root", str(repo), "examples", "add",
                "--task", "   ",
                "--code-file", str(code_file),
                "--language", "python",
                "--tool", "codegen",
            ],
        )

        assert result.exit_code != 0

    def test_error_points_at_configured_log_file(self, repo: Path, code_file: Path, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "coderecall.log"
        (repo / ".coderecall").mkdir()
        (repo / ".coderecall" / "config.yaml").write_text(
            f"logging:\n  outputs:\n    - destination: {log_file}\n      format: json\n"
        )

        result = CliRunner().invoke(
            cli,
            [
                "--root", str(repo), "examples", "add",
                "--task", "   ",
                "--code-file", str(code_file),
                "--language", "python",
                "--tool", "codegen",
            ],
        )

        assert result.exit_code != 0
        assert f"See {log_file} for details" in result.output
        assert log_file.exists()

    def test_prune_and_rebuild(self, repo: Path, code_file: Path) -> None:
        _invoke(
            repo, "examples", "add",
            "--task", "fetch json from url",
            "--code-file", str(code_file),
            "--language", "python",
            "--tool", "codegen",
        )

        result = _invoke(repo, "examples", "rebuild-vectors")
        assert result.exit_code == 0
        assert "Re-synced 1 example(s)" in result.output

        result = _invoke(repo, "examples", "prune", "--days", "30")
        assert result.exit_code == 0
        assert "Deleted 0 example(s)" in result.output
