"""Tests for crl clear."""

import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from coderecall.cli.clear import clear_repo
from coderecall.cli.main import cli
from coderecall.config.constants import BUILD_LOCK_NAME, CACHE_DB_NAME, INDEX_DB_NAME
from coderecall.config.loader import get_repo_data_dir, load_config
from coderecall.index.ops import _BUILD_LOCKS


@pytest.fixture
def repo(tmp_path: Path, data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "repo"
    (root / ".git").mkdir(parents=True)
    monkeypatch.setattr("coderecall.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.setenv("CODERECALL__STORAGE__DATA_DIR", str(data_dir))
    return root


@pytest.fixture
def stored(repo: Path) -> Path:
    """Fake persisted state: an index with its WAL file, the build lock and a result cache."""
    data = get_repo_data_dir(load_config(repo), repo)
    data.mkdir(parents=True)
    for name in (INDEX_DB_NAME, f"{INDEX_DB_NAME}-wal", BUILD_LOCK_NAME, CACHE_DB_NAME):
        (data / name).write_bytes(b"x")
    return data


class TestClearRepo:
    def test_nothing_to_clear(self, repo: Path) -> None:
        assert clear_repo(repo, yes=True) is True

    def test_keeps_cache_by_default(self, repo: Path, stored: Path) -> None:
        assert clear_repo(repo, yes=True) is True
        assert sorted(p.name for p in stored.iterdir()) == sorted([BUILD_LOCK_NAME, CACHE_DB_NAME])

    def test_include_cache(self, repo: Path, stored: Path) -> None:
        assert clear_repo(repo, yes=True, include_cache=True) is True
        assert [p.name for p in stored.iterdir()] == [BUILD_LOCK_NAME]

    def test_lock_file_alone_is_nothing_to_clear(self, repo: Path, stored: Path) -> None:
        for path in stored.iterdir():
            if path.name != BUILD_LOCK_NAME:
                path.unlink()

        with patch("coderecall.cli.clear.questionary.select") as select:
            assert clear_repo(repo) is True
        select.assert_not_called()

    def test_waits_for_running_build(self, repo: Path, stored: Path) -> None:
        """The index is not removed while a build holds the lock."""
        results: list[bool] = []
        worker = threading.Thread(target=lambda: results.append(clear_repo(repo, yes=True)))

        with _BUILD_LOCKS.hold(str(repo.resolve())):
            worker.start()
            worker.join(timeout=0.3)
            assert worker.is_alive()
            assert (stored / INDEX_DB_NAME).exists()

        worker.join(timeout=5)
        assert results == [True]
        assert not (stored / INDEX_DB_NAME).exists()
        assert (stored / BUILD_LOCK_NAME).exists()

    def test_cancelled_confirmation_keeps_files(self, repo: Path, stored: Path) -> None:
        prompt = MagicMock()
        prompt.ask.return_value = False
        with patch("coderecall.cli.clear.questionary.select", return_value=prompt) as select:
            assert clear_repo(repo) is False

        select.assert_called_once()
        assert (stored / INDEX_DB_NAME).exists()

    def test_confirmed_prompt_deletes(self, repo: Path, stored: Path) -> None:
        prompt = MagicMock()
        prompt.ask.return_value = True
        with patch("coderecall.cli.clear.questionary.select", return_value=prompt):
            assert clear_repo(repo) is True
        assert not (stored / INDEX_DB_NAME).exists()


def test_clear_command(repo: Path, stored: Path) -> None:
    result = CliRunner().invoke(cli, ["clear", str(repo), "--yes", "--cache"])

    assert result.exit_code == 0, result.output
    assert "Index cleared" in result.output
    assert [p.name for p in stored.iterdir()] == [BUILD_LOCK_NAME]
