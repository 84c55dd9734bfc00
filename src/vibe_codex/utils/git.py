"""Git utilities for vibe-codex."""
from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

logger = logging.getLogger("vibe_codex")

_ISSUE_RE = re.compile(r"issue-(\d+)")

# Unit separator between sha and subject in `git log` output.
_LOG_SEPARATOR = "\x1f"


def _git(project_dir: str | Path, *args: str, timeout: int = 10) -> str | None:
    """Run git and return stdout, or None when git fails or is unavailable."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=project_dir,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        logger.debug("git %s failed", " ".join(args), exc_info=True)
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def _lines(output: str | None) -> list[str]:
    if not output:
        return []
    return [line for line in output.strip().split("\n") if line]


def is_git_repo(project_dir: str | Path) -> bool:
    """Check if the directory is inside a git repository."""
    return _git(project_dir, "rev-parse", "--is-inside-work-tree", timeout=5) is not None


def get_changed_files(project_dir: str | Path) -> list[str]:
    """Project-relative paths changed vs HEAD (staged and unstaged) plus untracked files."""
    files: set[str] = set()
    files.update(_lines(_git(project_dir, "diff", "--name-only", "HEAD")))
    files.update(_lines(_git(project_dir, "ls-files", "--others", "--exclude-standard")))
    return sorted(files)


def get_staged_files(project_dir: str | Path) -> list[str]:
    return _lines(_git(project_dir, "diff", "--cached", "--name-only", "--diff-filter=ACM"))


def get_tracked_files(project_dir: str | Path) -> list[str]:
    return _lines(_git(project_dir, "ls-files"))


def get_current_branch(project_dir: str | Path) -> str | None:
    output = _git(project_dir, "rev-parse", "--abbrev-ref", "HEAD", timeout=5)
    if output is None:
        return None
    branch = output.strip()
    return branch if branch and branch != "HEAD" else None


def get_recent_commits(project_dir: str | Path, limit: int = 10) -> list[tuple[str, str]]:
    """Return ``(sha, subject)`` for the last *limit* commits, newest first."""
    output = _git(project_dir, "log", f"-{limit}", f"--format=%H{_LOG_SEPARATOR}%s")
    commits = []
    for line in _lines(output):
        sha, _, subject = line.partition(_LOG_SEPARATOR)
        commits.append((sha, subject))
    return commits


def issue_from_branch(branch: str | None) -> str | None:
    """Extract the issue number from a ``feature/issue-123-...`` branch name."""
    if not branch:
        return None
    match = _ISSUE_RE.search(branch)
    return match.group(1) if match else None


def get_remote_urls(project_dir: str | Path) -> list[str]:
    """Fetch URLs of every configured remote, deduplicated in ``git remote -v`` order."""
    urls: list[str] = []
    for line in _lines(_git(project_dir, "remote", "-v", timeout=5)):
        parts = line.split()
        if len(parts) >= 2 and parts[1] not in urls:
            urls.append(parts[1])
    return urls
