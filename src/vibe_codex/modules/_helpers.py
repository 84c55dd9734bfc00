"""Shared helpers for built-in modules."""
from __future__ import annotations

import re
from pathlib import Path

# key = "value" assignments for secret-like keys. Placeholder values are
# excluded by the negative lookahead.
SECRET_PATTERNS = [
    re.compile(r"""api[_-]?key\s*[:=]\s*["'][A-Za-z0-9]{16,}["']""", re.IGNORECASE),
    re.compile(r"""password\s*[:=]\s*["'](?!test|mock|example)[^"']+["']""", re.IGNORECASE),
    re.compile(r"""token\s*[:=]\s*["'][A-Za-z0-9]{20,}["']""", re.IGNORECASE),
    re.compile(r"""secret\s*[:=]\s*["'](?!test|mock|example)[^"']+["']""", re.IGNORECASE),
]

CONVENTIONAL_COMMIT_RE = re.compile(r"^(feat|fix|docs|style|refactor|test|chore)(\(.+\))?:\s.+")

_WHITESPACE_RE = re.compile(r"\s+")


def check_for_secrets(content: str) -> list[tuple[int, str]]:
    """Return ``(line_number, pattern)`` for every line matching a secret pattern."""
    found = []
    for lineno, line in enumerate(content.splitlines(), start=1):
        for pattern in SECRET_PATTERNS:
            if pattern.search(line):
                found.append((lineno, pattern.pattern))
    return found


def normalize_text(content: str) -> str:
    return _WHITESPACE_RE.sub(" ", content.lower()).strip()


def calculate_similarity(first: str, second: str) -> float:
    """Jaccard index over the space-separated words of two strings."""
    words_a = set(first.split(" "))
    words_b = set(second.split(" "))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def read_text(path: Path) -> str | None:
    """Return the file's text, or None when it is missing or unreadable."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def first_existing(root: Path, candidates: list[str]) -> Path | None:
    for candidate in candidates:
        path = root / candidate
        if path.exists():
            return path
    return None
