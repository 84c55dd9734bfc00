"""GitHub workflow module: GitHub Actions CI, security and efficiency rules."""
from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml

from vibe_codex.models import HookEvent, Severity, ValidationContext, ValidatorResult, Violation
from vibe_codex.modules._helpers import first_existing, read_text
from vibe_codex.modules.base import ModuleRule, RuleModule
from vibe_codex.utils.git import get_remote_urls

logger = logging.getLogger("vibe_codex")

WORKFLOWS_DIR = ".github/workflows"
DEPENDABOT_CONFIG = ".github/dependabot.yml"
RENOVATE_CONFIGS = ["renovate.json", ".renovaterc", ".renovaterc.json", ".github/renovate.json"]

CI_WORKFLOW = """\
name: CI

on:
  push:
    branches: [ main, develop ]
  pull_request:
    branches: [ main ]

permissions:
  contents: read

jobs:
  test:
    runs-on: ubuntu-latest
    timeout-minutes: 30
    steps:
    - uses: actions/checkout@v4
    - name: Run linter
      run: make lint
    - name: Run tests
      run: make test
"""

DEPENDABOT_TEMPLATE = """\
version: 2
updates:
  - package-ecosystem: "github-actions"
    directory: "/"
    schedule:
      interval: "weekly"
    labels:
      - "dependencies"
"""

_WORKFLOW_SECRET_PATTERNS = [
    re.compile(r"[A-Za-z0-9]{40}"),
    re.compile(r"[A-Za-z0-9]{32}"),
    re.compile(r"""password\s*[:=]\s*["'][^"']+["']""", re.IGNORECASE),
]
_USES_RE = re.compile(r"uses:\s*(\S+)")
_SECURITY_KEYWORDS = ("security", "codeql", "dependabot", "snyk", "trivy", "scan")


def workflow_files(root: Path) -> list[Path]:
    directory = root / WORKFLOWS_DIR
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix in (".yml", ".yaml") and p.is_file())


def workflow_triggers(document) -> set[str]:
    """Event names a workflow runs on.

    YAML 1.1 reads a bare ``on`` key as boolean ``True``, so both keys are
    checked.
    """
    if not isinstance(document, dict):
        return set()
    triggers = document.get("on", document.get(True))
    if isinstance(triggers, str):
        return {triggers}
    if isinstance(triggers, (list, dict)):
        return {str(t) for t in triggers}
    return set()


def _jobs(document) -> dict:
    if not isinstance(document, dict) or not isinstance(document.get("jobs"), dict):
        return {}
    return document["jobs"]


class GitHubWorkflowModule(RuleModule):
    name = "github-workflow"
    version = "1.0.0"
    description = "GitHub Actions workflow validation and best practices"
    dependencies = ["github"]
    default_options = {
        "requireCI": True,
        "requireSecurityScanning": True,
        "requireDependencyUpdates": True,
        "workflowTimeout": 60,
    }

    def load_rules(self) -> None:
        self.register_rule(ModuleRule(
            id="GHW-1",
            name="CI Workflow Exists",
            description="Repository must have a continuous integration workflow",
            category="github-workflow",
            severity=Severity.ERROR,
            level=4,
            check=self._check_ci,
            fix=self._fix_ci,
        ))
        self.register_rule(ModuleRule(
            id="GHW-2",
            name="Workflow Security",
            description="Workflows must follow security best practices",
            category="github-workflow",
            severity=Severity.ERROR,
            level=4,
            check=self._check_security,
        ))
        self.register_rule(ModuleRule(
            id="GHW-3",
            name="Workflow Timeout",
            description="Workflow jobs must have appropriate timeouts",
            category="github-workflow",
            severity=Severity.WARNING,
            level=4,
            check=self._check_timeouts,
        ))
        self.register_rule(ModuleRule(
            id="GHW-4",
            name="Security Scanning",
            description="Repository should have security scanning workflows",
            category="github-workflow",
            severity=Severity.WARNING,
            level=4,
            check=self._check_security_scanning,
        ))
        self.register_rule(ModuleRule(
            id="GHW-5",
            name="Dependency Updates",
            description="Repository should have automated dependency updates",
            category="github-workflow",
            severity=Severity.INFO,
            level=4,
            check=self._check_dependency_updates,
            fix=self._fix_dependency_updates,
        ))
        self.register_rule(ModuleRule(
            id="GHW-6",
            name="Workflow Efficiency",
            description="Workflows should be efficient and use caching",
            category="github-workflow",
            severity=Severity.INFO,
            level=4,
            check=self._check_efficiency,
        ))

    def load_hooks(self) -> None:
        self.register_hook(HookEvent.PRE_COMMIT, self._pre_commit)

    def load_validators(self) -> None:
        self.register_validator("workflow-syntax", self._validate_syntax)
        self.register_validator("github-actions", self._validate_github_actions)

    def _workflows(self, root: Path) -> list[tuple[str, str, object]]:
        """``(relative_path, text, document)`` per workflow; unparsable YAML gives ``None``."""
        workflows = []
        for path in workflow_files(root):
            text = read_text(path) or ""
            try:
                document = yaml.safe_load(text)
            except yaml.YAMLError:
                logger.debug("Cannot parse workflow %s", path, exc_info=True)
                document = None
            workflows.append((path.relative_to(root).as_posix(), text, document))
        return workflows

    # -- rules ---------------------------------------------------------------

    def _check_ci(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "requireCI", True):
            return []
        if not (context.project_path / WORKFLOWS_DIR).is_dir():
            return [self.violation("GHW-1", "No .github/workflows directory found")]
        workflows = self._workflows(context.project_path)
        if not workflows:
            return [self.violation("GHW-1", "No GitHub Actions workflows found")]
        for _path, _text, document in workflows:
            if workflow_triggers(document) & {"push", "pull_request"}:
                return []
        return [self.violation("GHW-1", "No CI workflow triggered on push/pull_request found")]

    def _fix_ci(self, context: ValidationContext) -> bool:
        target = context.project_path / WORKFLOWS_DIR / "ci.yml"
        if target.exists():
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(CI_WORKFLOW, encoding="utf-8")
        logger.info("Created %s", target)
        return True

    def _check_security(self, context: ValidationContext) -> list[Violation]:
        violations = []
        for path, text, document in self._workflows(context.project_path):
            for lineno, line in enumerate(text.splitlines(), start=1):
                if "${{" in line or "secrets." in line or "uses:" in line:
                    continue
                if any(p.search(line) for p in _WORKFLOW_SECRET_PATTERNS):
                    violations.append(self.violation(
                        "GHW-2", "Potential hardcoded secret detected", file_path=path, line=lineno,
                    ))

            if isinstance(document, dict) and "permissions" not in document:
                violations.append(self.violation(
                    "GHW-2",
                    "Workflow should specify permissions explicitly",
                    file_path=path,
                    suggestion="Add a top-level 'permissions:' block",
                ))

            for action in _USES_RE.findall(text):
                action = action.strip("'\"")
                if action.startswith(("./", "docker://")):
                    continue
                if "@" not in action or action.endswith(("@master", "@main")):
                    violations.append(self.violation(
                        "GHW-2",
                        f"Action {action} should be pinned to a specific version or commit SHA",
                        file_path=path,
                    ))
        return violations

    def _check_timeouts(self, context: ValidationContext) -> list[Violation]:
        max_timeout = self.option(context, "workflowTimeout", 60)
        violations = []
        for path, _text, document in self._workflows(context.project_path):
            for job_name, job in _jobs(document).items():
                timeout = job.get("timeout-minutes") if isinstance(job, dict) else None
                if timeout is None:
                    violations.append(self.violation(
                        "GHW-3", f"Job '{job_name}' should have timeout-minutes specified", file_path=path,
                    ))
                elif isinstance(timeout, (int, float)) and timeout > max_timeout:
                    violations.append(self.violation(
                        "GHW-3",
                        f"Job '{job_name}' timeout ({timeout}min) exceeds maximum ({max_timeout}min)",
                        file_path=path,
                    ))
        return violations

    def _check_security_scanning(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "requireSecurityScanning", True):
            return []
        for path, text, _document in self._workflows(context.project_path):
            haystack = f"{path}\n{text}".lower()
            if any(keyword in haystack for keyword in _SECURITY_KEYWORDS):
                return []
        return [self.violation(
            "GHW-4",
            "No security scanning workflow found (CodeQL, Dependabot, etc.)",
        )]

    def _check_dependency_updates(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "requireDependencyUpdates", True):
            return []
        if first_existing(context.project_path, [DEPENDABOT_CONFIG, *RENOVATE_CONFIGS]):
            return []
        return [self.violation(
            "GHW-5",
            "No automated dependency updates configured (Dependabot/Renovate)",
            suggestion=f"Create {DEPENDABOT_CONFIG}",
        )]

    def _fix_dependency_updates(self, context: ValidationContext) -> bool:
        target = context.project_path / DEPENDABOT_CONFIG
        if target.exists():
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(DEPENDABOT_TEMPLATE, encoding="utf-8")
        logger.info("Created %s", target)
        return True

    def _check_efficiency(self, context: ValidationContext) -> list[Violation]:
        violations = []
        for path, text, document in self._workflows(context.project_path):
            if "actions/setup-node" in text and "cache:" not in text:
                violations.append(self.violation(
                    "GHW-6", "Node.js workflow should use dependency caching", file_path=path,
                ))
            if text.count("actions/checkout") > 1:
                violations.append(self.violation(
                    "GHW-6", "Multiple checkout actions detected, consider reusing code", file_path=path,
                ))
            if len(_jobs(document)) > 1 and "actions/upload-artifact" not in text \
                    and "actions/download-artifact" not in text:
                violations.append(self.violation(
                    "GHW-6", "Multi-job workflow could benefit from artifact sharing", file_path=path,
                ))
        return violations

    # -- hooks ---------------------------------------------------------------

    def _pre_commit(self, context: ValidationContext) -> bool:
        for entry in context.modified_files:
            if not (entry.path.startswith(f"{WORKFLOWS_DIR}/") and entry.path.endswith((".yml", ".yaml"))):
                continue
            try:
                yaml.safe_load(entry.content)
            except yaml.YAMLError as exc:
                logger.error("Invalid YAML in %s: %s", entry.path, exc)
                return False
        return True

    # -- validators ----------------------------------------------------------

    def _validate_syntax(self, context: ValidationContext) -> ValidatorResult:
        errors = []
        for path in workflow_files(context.project_path):
            name = path.name
            try:
                document = yaml.safe_load(read_text(path) or "")
            except yaml.YAMLError as exc:
                errors.append(f"{name}: {exc}")
                continue
            if not isinstance(document, dict):
                errors.append(f"{name}: Workflow must be a mapping")
                continue
            if not document.get("name"):
                errors.append(f"{name}: Missing workflow name")
            if not workflow_triggers(document):
                errors.append(f"{name}: Missing trigger events")
            if not _jobs(document):
                errors.append(f"{name}: No jobs defined")
        return ValidatorResult(valid=not errors, errors=errors)

    def _validate_github_actions(self, context: ValidationContext) -> ValidatorResult:
        urls = get_remote_urls(context.project_path)
        if not urls:
            return ValidatorResult(valid=False, message="Unable to verify GitHub repository")
        if not any("github.com" in url for url in urls):
            return ValidatorResult(valid=False, message="GitHub Actions only available for GitHub repositories")
        return ValidatorResult(valid=True)
