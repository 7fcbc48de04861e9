"""Tests for index path exclusion."""

from pathlib import Path

import pytest

from coderecall.index._internal.ignore import CRIGNORE_NAME, IgnoreChecker, matches_glob


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    return root


class TestIgnoreChecker:
    """Pattern loading and matching."""

    def test_hardcoded_dirs_always_pruned(self, repo: Path) -> None:
        (repo / CRIGNORE_NAME).write_text("!.git/\n")
        checker = IgnoreChecker(repo)
        assert checker.should_prune_dir(".git")
        assert checker.should_prune_dir(".coderecall")

    def test_default_prunable_dir_and_opt_in(self, repo: Path) -> None:
        checker = IgnoreChecker(repo)
        assert checker.should_prune_dir("node_modules")
        assert checker.is_excluded_rel("node_modules/pkg/index.js")

        (repo / CRIGNORE_NAME).write_text("!node_modules/\n")
        checker = IgnoreChecker(repo)
        assert not checker.should_prune_dir("node_modules")
        assert not checker.is_excluded_rel("node_modules/pkg/index.js")
        assert "node_modules" in checker.negated_dirs

    def test_ordinary_dirs_not_pruned(self, repo: Path) -> None:
        assert not IgnoreChecker(repo).should_prune_dir("src")

    def test_crignore_patterns_and_negation(self, repo: Path) -> None:
        # Given
        (repo / CRIGNORE_NAME).write_text("# generated\n*.gen.ts\n!keep.gen.ts\nbuild-out/\n")
        checker = IgnoreChecker(repo)

        # Then
        assert checker.is_excluded_rel("api.gen.ts")
        assert not checker.is_excluded_rel("keep.gen.ts")
        assert checker.is_excluded_rel("build-out/app.js")
        assert not checker.is_excluded_rel("src/app.ts")

    def test_nested_ignore_file_is_scoped(self, repo: Path) -> None:
        (repo / "src" / CRIGNORE_NAME).write_text("fixtures/\n")
        checker = IgnoreChecker(repo)
        assert checker.is_excluded_rel("src/fixtures/data.py")
        assert not checker.is_excluded_rel("fixtures/data.py")

    def test_gitignore_respected_unless_disabled(self, repo: Path) -> None:
        (repo / ".gitignore").write_text("secret.py\n")
        assert IgnoreChecker(repo).is_excluded_rel("secret.py")
        assert not IgnoreChecker(repo, respect_gitignore=False).is_excluded_rel("secret.py")

    def test_extra_patterns(self, repo: Path) -> None:
        checker = IgnoreChecker(repo, extra_patterns=["*.min.js"])
        assert checker.is_excluded_rel("static/app.min.js")

    def test_should_ignore_outside_root(self, repo: Path, tmp_path: Path) -> None:
        checker = IgnoreChecker(repo)
        assert checker.should_ignore(tmp_path / "elsewhere.py")
        assert not checker.should_ignore(repo / "src" / "main.py")


class TestMatchesGlob:
    """Glob filter used by search filters."""

    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("src/auth.ts", "src/*.ts", True),
            ("auth.ts", "**/*.ts", True),
            ("src/deep/auth.ts", "**/*.ts", True),
            ("src/auth.py", "**/*.ts", False),
        ],
    )
    def test_matches(self, path: str, pattern: str, expected: bool) -> None:
        assert matches_glob(path, pattern) is expected
