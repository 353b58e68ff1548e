"""Tests for path exclusion rules."""

from pathlib import Path

from coderecall.indexer.ignore import IgnoreChecker


class TestIgnoreChecker:
    def test_hardcoded_dirs_always_ignored(self, tmp_path: Path) -> None:
        checker = IgnoreChecker(tmp_path)
        assert checker.should_ignore(tmp_path / ".git" / "config.py")
        assert checker.should_ignore(tmp_path / ".coderecall" / "x.py")

    def test_prunable_dirs_ignored(self, tmp_path: Path) -> None:
        checker = IgnoreChecker(tmp_path)
        assert checker.should_ignore(tmp_path / "node_modules" / "lib" / "index.js")
        assert checker.should_ignore(tmp_path / "pkg" / "__pycache__" / "mod.py")
        assert checker.should_prune_dir("node_modules")
        assert not checker.should_prune_dir("src")

    def test_regular_source_kept(self, tmp_path: Path) -> None:
        checker = IgnoreChecker(tmp_path)
        assert not checker.should_ignore(tmp_path / "src" / "app.py")

    def test_default_file_patterns(self, tmp_path: Path) -> None:
        checker = IgnoreChecker(tmp_path)
        assert checker.should_ignore(tmp_path / ".env")
        assert checker.should_ignore(tmp_path / "web" / "bundle.min.js")
        assert checker.should_ignore(tmp_path / "package-lock.json")

    def test_paths_outside_root_ignored(self, tmp_path: Path) -> None:
        checker = IgnoreChecker(tmp_path / "repo")
        assert checker.should_ignore(tmp_path / "other" / "app.py")

    def test_gitignore_patterns(self, tmp_path: Path) -> None:
        (tmp_path / ".gitignore").write_text("# generated\ngenerated/\n*.gen.py\n")
        checker = IgnoreChecker(tmp_path)

        assert checker.should_ignore(tmp_path / "generated" / "models.py")
        assert checker.should_ignore(tmp_path / "src" / "schema.gen.py")
        assert not checker.should_ignore(tmp_path / "src" / "schema.py")

    def test_nested_gitignore_scoped_to_directory(self, tmp_path: Path) -> None:
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / ".gitignore").write_text("local_*.py\n")
        checker = IgnoreChecker(tmp_path)

        assert checker.should_ignore(tmp_path / "pkg" / "local_settings.py")
        assert not checker.should_ignore(tmp_path / "local_settings.py")

    def test_gitignore_can_be_disabled(self, tmp_path: Path) -> None:
        (tmp_path / ".gitignore").write_text("*.py\n")
        checker = IgnoreChecker(tmp_path, respect_gitignore=False)
        assert not checker.should_ignore(tmp_path / "app.py")

    def test_recallignore_negation_restores_file(self, tmp_path: Path) -> None:
        """Last matching pattern wins, as in .gitignore."""
        (tmp_path / ".recallignore").write_text("scripts/*.py\n!scripts/keep.py\n")
        checker = IgnoreChecker(tmp_path)

        assert checker.should_ignore(tmp_path / "scripts" / "drop.py")
        assert not checker.should_ignore(tmp_path / "scripts" / "keep.py")

    def test_negated_prunable_dir_opts_back_in(self, tmp_path: Path) -> None:
        (tmp_path / ".recallignore").write_text("!build/\n")
        checker = IgnoreChecker(tmp_path)

        assert not checker.should_prune_dir("build")
        assert not checker.should_ignore(tmp_path / "build" / "gen.py")
        assert checker.should_prune_dir(".git")

    def test_extra_patterns(self, tmp_path: Path) -> None:
        checker = IgnoreChecker(tmp_path, extra_patterns=["*_test.py"])
        assert checker.should_ignore(tmp_path / "a" / "thing_test.py")
