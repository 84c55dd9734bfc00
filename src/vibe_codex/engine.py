"""vibe-codex evaluation engine."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from vibe_codex.config import ProjectConfiguration
from vibe_codex.models import (
    Commit,
    FileEntry,
    HookEvent,
    Severity,
    ValidationContext,
    Violation,
)
from vibe_codex.modules.loader import ModuleLoader
from vibe_codex.utils.git import (
    get_changed_files,
    get_current_branch,
    get_recent_commits,
    get_tracked_files,
    issue_from_branch,
)

logger = logging.getLogger("vibe_codex")

# Files larger than this are passed to rules with empty content.
MAX_CONTENT_BYTES = 512 * 1024


def _read_entry(root: Path, relative: str) -> FileEntry | None:
    path = root / relative
    if not path.is_file():
        return None
    try:
        if path.stat().st_size > MAX_CONTENT_BYTES:
            return FileEntry(path=relative)
        return FileEntry(path=relative, content=path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError):
        return FileEntry(path=relative)


def build_context(
    project_path: str | Path,
    config: ProjectConfiguration | None = None,
    *,
    message: str | None = None,
    commit_limit: int = 10,
) -> ValidationContext:
    """Collect files, branch and commits for *project_path* from git."""
    root = Path(project_path)
    config = config or ProjectConfiguration()

    modified = [e for e in (_read_entry(root, f) for f in get_changed_files(root)) if e]
    tracked = set(get_tracked_files(root)) | {e.path for e in modified}
    files = [e for e in (_read_entry(root, f) for f in sorted(tracked)) if e]

    branch = get_current_branch(root)
    return ValidationContext(
        project_path=root,
        files=files,
        modified_files=modified,
        branch=branch,
        commits=[Commit(sha, subject) for sha, subject in get_recent_commits(root, commit_limit)],
        issue=issue_from_branch(branch),
        message=message,
        config={name: config.module_options(name) for name in config.modules},
    )


@dataclass
class EvaluationResult:
    """Result of evaluating rules against a context."""
    violations: list[Violation] = field(default_factory=list)
    rules_evaluated: int = 0

    @property
    def is_blocking(self) -> bool:
        return any(v.severity == Severity.ERROR for v in self.violations)


class Engine:
    """Runs the rules and hooks of loaded modules."""

    def __init__(self, loader: ModuleLoader):
        self.loader = loader

    def evaluate(self, context: ValidationContext, level: int | None = None) -> EvaluationResult:
        """Evaluate every enabled rule with a check against the context."""
        result = EvaluationResult()

        for rule in self.loader.get_rules(level=level):
            if not rule.enabled or rule.check is None:
                continue

            result.rules_evaluated += 1

            try:
                violations = rule.check(context)
            except Exception:
                logger.exception("Rule %s raised an exception", rule.id)
                continue

            result.violations.extend(violations)

        return result

    def apply_fixes(self, context: ValidationContext, violations: list[Violation]) -> list[str]:
        """Run the fix of every violated rule that has one. Returns fixed rule ids."""
        violated = {v.rule_id for v in violations}
        fixed = []
        for rule in self.loader.get_rules():
            if rule.id not in violated or rule.fix is None:
                continue
            try:
                if rule.fix(context):
                    fixed.append(rule.id)
            except Exception:
                logger.exception("Fix for rule %s raised an exception", rule.id)
        return fixed

    def run_hooks(self, event: HookEvent | str, context: ValidationContext) -> bool:
        """Run every handler for *event*. Returns False if any handler failed."""
        passed = True
        for handler in self.loader.get_hooks(event):
            try:
                ok = handler(context)
            except Exception:
                logger.exception("Hook handler for %s raised an exception", event)
                ok = False
            passed = passed and bool(ok)
        return passed
