"""
Tests for git working tree integration.
"""

import subprocess
from types import SimpleNamespace

from repocloak import git
from repocloak.git import get_changed_files, is_git_repo, parse_porcelain


class TestIsGitRepo:
    def test_true_with_git_dir(self, tmp_path):
        (tmp_path / ".git").mkdir()
        assert is_git_repo(tmp_path)

    def test_false_without_git_dir(self, tmp_path):
        assert not is_git_repo(tmp_path)


class TestParsePorcelain:
    def test_statuses(self):
        output = "\n".join([
            " M src/app.js",
            "?? new file.txt",
            "A  added.py",
            " D removed.py",
            "R  old.js -> new.js",
            '?? "with space.md"',
            "",
        ])

        assert parse_porcelain(output) == [
            "src/app.js",
            "new file.txt",
            "added.py",
            "new.js",
            "with space.md",
        ]

    def test_empty_output(self):
        assert parse_porcelain("") == []


class TestGetChangedFiles:
    def test_uses_git_status(self, tmp_path, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append((cmd, kwargs))
            return SimpleNamespace(stdout=" M a.txt\n?? b.txt\n")

        monkeypatch.setattr(git.subprocess, "run", fake_run)

        assert get_changed_files(tmp_path) == ["a.txt", "b.txt"]
        assert calls[0][0] == ["git", "status", "--porcelain", "-u"]
        assert calls[0][1]["cwd"] == str(tmp_path)

    def test_git_failure_returns_empty(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(128, cmd)

        monkeypatch.setattr(git.subprocess, "run", fake_run)
        assert get_changed_files(tmp_path) == []

    def test_missing_git_binary_returns_empty(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr(git.subprocess, "run", fake_run)
        assert get_changed_files(tmp_path) == []
