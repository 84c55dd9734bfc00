"""Tests for git utilities."""
from __future__ import annotations

import subprocess

from vibe_codex.utils.git import (
    get_changed_files,
    get_current_branch,
    get_recent_commits,
    get_remote_urls,
    get_staged_files,
    is_git_repo,
    issue_from_branch,
)


def _init_repo(path):
    subprocess.run(["git", "init"], cwd=str(path), capture_output=True)
    subprocess.run(["git", "config", "user.email", "test@test.com"], cwd=str(path), capture_output=True)
    subprocess.run(["git", "config", "user.name", "Test"], cwd=str(path), capture_output=True)
    (path / "file.py").write_text("x = 1\n")
    subprocess.run(["git", "add", "."], cwd=str(path), capture_output=True)
    subprocess.run(["git", "commit", "-m", "chore: initial"], cwd=str(path), capture_output=True)


class TestGetChangedFiles:
    def test_returns_empty_for_non_git_dir(self, tmp_path):
        assert get_changed_files(tmp_path) == []

    def test_returns_relative_changed_files(self, tmp_path):
        _init_repo(tmp_path)
        (tmp_path / "file.py").write_text("x = 2\n")
        (tmp_path / "new.py").write_text("y = 1\n")
        assert get_changed_files(tmp_path) == ["file.py", "new.py"]

    def test_returns_empty_for_clean_repo(self, tmp_path):
        _init_repo(tmp_path)
        assert get_changed_files(tmp_path) == []

    def test_staged_files(self, tmp_path):
        _init_repo(tmp_path)
        (tmp_path / "staged.py").write_text("z = 1\n")
        subprocess.run(["git", "add", "staged.py"], cwd=str(tmp_path), capture_output=True)
        assert get_staged_files(tmp_path) == ["staged.py"]


class TestRepositoryInfo:
    def test_is_git_repo(self, tmp_path):
        assert not is_git_repo(tmp_path)
        _init_repo(tmp_path)
        assert is_git_repo(tmp_path)

    def test_branch_and_commits(self, tmp_path):
        _init_repo(tmp_path)
        subprocess.run(["git", "checkout", "-b", "bugfix/issue-9-crash"], cwd=str(tmp_path), capture_output=True)
        assert get_current_branch(tmp_path) == "bugfix/issue-9-crash"
        [(sha, subject)] = get_recent_commits(tmp_path)
        assert len(sha) == 40
        assert subject == "chore: initial"

    def test_outside_repo(self, tmp_path):
        assert get_current_branch(tmp_path) is None
        assert get_recent_commits(tmp_path) == []

    def test_remote_urls(self, tmp_path):
        _init_repo(tmp_path)
        assert get_remote_urls(tmp_path) == []
        subprocess.run(
            ["git", "remote", "add", "origin", "https://github.com/example/app.git"],
            cwd=str(tmp_path),
            capture_output=True,
        )
        assert get_remote_urls(tmp_path) == ["https://github.com/example/app.git"]


class TestIssueFromBranch:
    def test_extracts_number(self):
        assert issue_from_branch("feature/issue-123-login") == "123"

    def test_no_issue(self):
        assert issue_from_branch("main") is None
        assert issue_from_branch(None) is None
