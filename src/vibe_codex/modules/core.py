"""Core module: security and git workflow rules every project gets."""
from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from vibe_codex.models import HookEvent, Severity, ValidationContext, ValidatorResult, Violation
from vibe_codex.modules._helpers import (
    CONVENTIONAL_COMMIT_RE,
    calculate_similarity,
    check_for_secrets,
    normalize_text,
)
from vibe_codex.modules.base import ModuleRule, RuleModule

logger = logging.getLogger("vibe_codex")

_PROTECTED_ENV_FILES = {".env", ".env.local", ".env.production"}
_BRANCH_RE = re.compile(r"^(feature|bugfix|hotfix)/issue-\d+-[\w-]+$")
_ISSUE_REF_RE = re.compile(r"#\d+")
_SIMILARITY_THRESHOLD = 0.25


class CoreModule(RuleModule):
    name = "core"
    version = "1.0.0"
    description = "Essential security and git workflow rules"

    def load_rules(self) -> None:
        self.register_rule(ModuleRule(
            id="SEC-1",
            name="No Secrets in Code",
            description="Never commit secrets, API keys, passwords, or credentials",
            category="security",
            severity=Severity.ERROR,
            level=1,
            check=self._check_secrets,
        ))
        self.register_rule(ModuleRule(
            id="SEC-2",
            name="Environment File Protection",
            description="Never overwrite environment files",
            category="security",
            severity=Severity.ERROR,
            level=1,
            check=self._check_env_files,
        ))
        self.register_rule(ModuleRule(
            id="SEC-3",
            name="Environment Example File",
            description="Always create .env.example with documented variables",
            category="security",
            severity=Severity.WARNING,
            level=1,
            check=self._check_env_example,
        ))
        self.register_rule(ModuleRule(
            id="WF-1",
            name="Issue-First Development",
            description="Every code change must start with a GitHub issue",
            category="workflow",
            severity=Severity.ERROR,
            level=2,
            check=self._check_issue,
        ))
        self.register_rule(ModuleRule(
            id="WF-2",
            name="Branch Naming Convention",
            description="Branch must reference issue: feature/issue-{number}-{description}",
            category="workflow",
            severity=Severity.ERROR,
            level=2,
            check=self._check_branch,
        ))
        self.register_rule(ModuleRule(
            id="WF-3",
            name="Commit Message Format",
            description="Commits must follow the conventional commit format",
            category="workflow",
            severity=Severity.WARNING,
            level=2,
            check=self._check_commits,
        ))
        self.register_rule(ModuleRule(
            id="WF-4",
            name="PR Title References Issue",
            description="PR title must reference the issue number",
            category="workflow",
            severity=Severity.ERROR,
            level=2,
            check=self._check_pr_title,
        ))
        self.register_rule(ModuleRule(
            id="WF-5",
            name="Token Efficiency",
            description="Consolidate redundant content for LLM efficiency",
            category="workflow",
            severity=Severity.WARNING,
            level=2,
            check=self._check_duplicate_content,
        ))

    def load_hooks(self) -> None:
        self.register_hook(HookEvent.PRE_COMMIT, self._pre_commit)
        self.register_hook(HookEvent.COMMIT_MSG, self._commit_msg)

    def load_validators(self) -> None:
        self.register_validator("environment", self._validate_environment)
        self.register_validator("git-workflow", self._validate_git_workflow)

    # -- rules ---------------------------------------------------------------

    def _check_secrets(self, context: ValidationContext) -> list[Violation]:
        violations = []
        for entry in context.files:
            for line, _pattern in check_for_secrets(entry.content):
                violations.append(self.violation(
                    "SEC-1",
                    "Potential secret detected",
                    file_path=entry.path,
                    line=line,
                    suggestion="Move the value to an environment variable",
                ))
        return violations

    def _check_env_files(self, context: ValidationContext) -> list[Violation]:
        return [
            self.violation(
                "SEC-2",
                "Environment files should not be modified directly",
                file_path=entry.path,
            )
            for entry in context.modified_files
            if PurePosixPath(entry.path).name in _PROTECTED_ENV_FILES
        ]

    def _check_env_example(self, context: ValidationContext) -> list[Violation]:
        has_env = any(e.path.endswith((".env", ".env.local")) for e in context.files)
        has_example = any(e.path.endswith(".env.example") for e in context.files)
        if has_env and not has_example:
            return [self.violation("SEC-3", "Missing .env.example file")]
        return []

    def _check_issue(self, context: ValidationContext) -> list[Violation]:
        if not context.issue:
            return [self.violation("WF-1", "No associated GitHub issue found")]
        return []

    def _check_branch(self, context: ValidationContext) -> list[Violation]:
        branch = context.branch or ""
        if _BRANCH_RE.match(branch):
            return []
        return [self.violation(
            "WF-2",
            "Branch name must follow pattern: {type}/issue-{number}-{description}",
            suggestion=f"Rename branch {branch!r}" if branch else None,
        )]

    def _check_commits(self, context: ValidationContext) -> list[Violation]:
        return [
            self.violation(
                "WF-3",
                f"Commit {commit.sha[:7]} message should follow conventional format",
            )
            for commit in context.commits
            if not CONVENTIONAL_COMMIT_RE.match(commit.message)
        ]

    def _check_pr_title(self, context: ValidationContext) -> list[Violation]:
        if not context.pr:
            return []
        if _ISSUE_REF_RE.search(context.pr.get("title", "")):
            return []
        return [self.violation("WF-4", "PR title must reference issue number (e.g., #123)")]

    def _check_duplicate_content(self, context: ValidationContext) -> list[Violation]:
        violations = []
        seen: dict[str, str] = {}
        for entry in context.files:
            content = normalize_text(entry.content)
            for other_path, other_content in seen.items():
                similarity = calculate_similarity(content, other_content)
                if similarity > _SIMILARITY_THRESHOLD and entry.path != other_path:
                    violations.append(self.violation(
                        "WF-5",
                        f"Files have {round(similarity * 100)}% similar content: {other_path}",
                        file_path=entry.path,
                    ))
            seen[entry.path] = content
        return violations

    # -- hooks ---------------------------------------------------------------

    def _pre_commit(self, context: ValidationContext) -> bool:
        violations = self.get_rule("SEC-1").check(context)
        for v in violations:
            logger.error("Secret detected in %s:%s", v.file_path, v.line)
        return not violations

    def _commit_msg(self, context: ValidationContext) -> bool:
        if CONVENTIONAL_COMMIT_RE.match(context.message or ""):
            return True
        logger.error(
            "Invalid commit message format. Expected <type>(<scope>): <subject> "
            "with type one of feat, fix, docs, style, refactor, test, chore"
        )
        return False

    # -- validators ----------------------------------------------------------

    def _validate_environment(self, context: ValidationContext) -> ValidatorResult:
        root = context.project_path
        if (root / ".env").exists() and not (root / ".env.example").exists():
            return ValidatorResult(valid=False, message=".env file exists but .env.example is missing")
        return ValidatorResult(valid=True)

    def _validate_git_workflow(self, context: ValidationContext) -> ValidatorResult:
        errors = []
        if not (context.project_path / ".git").exists():
            errors.append("Not a git repository")
        return ValidatorResult(valid=not errors, errors=errors)
