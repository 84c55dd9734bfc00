"""GitHub module: repository templates, ownership and CI workflow rules."""
from __future__ import annotations

import logging

import yaml

from vibe_codex.models import Severity, ValidationContext, Violation
from vibe_codex.modules._helpers import first_existing, read_text
from vibe_codex.modules.base import ModuleRule, RuleModule

logger = logging.getLogger("vibe_codex")

PR_TEMPLATE_LOCATIONS = [
    ".github/pull_request_template.md",
    ".github/PULL_REQUEST_TEMPLATE.md",
    ".github/PULL_REQUEST_TEMPLATE/pull_request_template.md",
    "docs/pull_request_template.md",
]
CODEOWNERS_LOCATIONS = [".github/CODEOWNERS", "CODEOWNERS", "docs/CODEOWNERS"]
CONTRIBUTING_LOCATIONS = ["CONTRIBUTING.md", ".github/CONTRIBUTING.md", "docs/CONTRIBUTING.md"]

PR_TEMPLATE = """\
## Description
Please include a summary of the changes and which issue is fixed.

Fixes #(issue)

## Type of change
- [ ] Bug fix (non-breaking change which fixes an issue)
- [ ] New feature (non-breaking change which adds functionality)
- [ ] Breaking change (fix or feature that would cause existing functionality to change)
- [ ] Documentation update

## Checklist
- [ ] My code follows the style guidelines of this project
- [ ] I have performed a self-review of my own code
- [ ] I have added tests that prove my fix is effective or that my feature works
- [ ] New and existing unit tests pass locally with my changes
"""

_TEST_KEYWORDS = ("test", "pytest", "jest", "mocha", "vitest")
_LINT_KEYWORDS = ("lint", "ruff", "flake8", "eslint")


def _workflow_text(document) -> str:
    """Flatten the ``run`` and ``uses`` entries of every job step."""
    if not isinstance(document, dict):
        return ""
    parts = []
    for job_name, job in (document.get("jobs") or {}).items():
        parts.append(str(job_name))
        if not isinstance(job, dict):
            continue
        for step in job.get("steps") or []:
            if isinstance(step, dict):
                parts.extend(str(step.get(k, "")) for k in ("name", "run", "uses"))
    return " ".join(parts).lower()


class GitHubModule(RuleModule):
    name = "github"
    version = "1.0.0"
    description = "GitHub-specific workflow, template, and integration rules"
    dependencies = ["core"]
    default_options = {
        "requireCodeOwners": False,
        "requireContributing": True,
    }

    def load_rules(self) -> None:
        self.register_rule(ModuleRule(
            id="GH-1",
            name="Pull Request Template",
            description="Repository must have a pull request template",
            category="github",
            severity=Severity.WARNING,
            level=4,
            check=self._check_pr_template,
            fix=self._fix_pr_template,
        ))
        self.register_rule(ModuleRule(
            id="GH-2",
            name="Issue Templates",
            description="Repository must have bug report and feature request templates",
            category="github",
            severity=Severity.WARNING,
            level=4,
            check=self._check_issue_templates,
        ))
        self.register_rule(ModuleRule(
            id="GH-3",
            name="CODEOWNERS File",
            description="Repository should have a CODEOWNERS file",
            category="github",
            severity=Severity.INFO,
            level=4,
            check=self._check_codeowners,
        ))
        self.register_rule(ModuleRule(
            id="GH-4",
            name="Contributing Guidelines",
            description="Repository must have contributing guidelines",
            category="github",
            severity=Severity.WARNING,
            level=4,
            check=self._check_contributing,
        ))
        self.register_rule(ModuleRule(
            id="GH-5",
            name="GitHub Actions Workflows",
            description="Repository should have CI workflows that test and lint",
            category="github",
            severity=Severity.INFO,
            level=4,
            check=self._check_workflows,
        ))

    def _check_pr_template(self, context: ValidationContext) -> list[Violation]:
        if first_existing(context.project_path, PR_TEMPLATE_LOCATIONS):
            return []
        return [self.violation(
            "GH-1",
            "No pull request template found",
            suggestion="Create .github/pull_request_template.md",
        )]

    def _fix_pr_template(self, context: ValidationContext) -> bool:
        target = context.project_path / PR_TEMPLATE_LOCATIONS[0]
        if target.exists():
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(PR_TEMPLATE, encoding="utf-8")
        logger.info("Created %s", target)
        return True

    def _check_issue_templates(self, context: ValidationContext) -> list[Violation]:
        template_dir = context.project_path / ".github" / "ISSUE_TEMPLATE"
        if not template_dir.is_dir():
            return [self.violation(
                "GH-2",
                "No issue templates found",
                suggestion="Create .github/ISSUE_TEMPLATE/ with templates",
            )]
        names = [
            p.name.lower() for p in template_dir.iterdir()
            if p.suffix in (".md", ".yml", ".yaml")
        ]
        if not names:
            return [self.violation("GH-2", "Issue template directory exists but contains no templates")]
        missing = []
        if not any("bug" in n for n in names):
            missing.append("bug report")
        if not any("feature" in n for n in names):
            missing.append("feature request")
        if missing:
            return [self.violation("GH-2", f"Missing issue templates for: {', '.join(missing)}")]
        return []

    def _check_codeowners(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "requireCodeOwners", False):
            return []
        if first_existing(context.project_path, CODEOWNERS_LOCATIONS):
            return []
        return [self.violation("GH-3", "No CODEOWNERS file found for automatic review assignments")]

    def _check_contributing(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "requireContributing", True):
            return []
        if first_existing(context.project_path, CONTRIBUTING_LOCATIONS):
            return []
        return [self.violation("GH-4", "No CONTRIBUTING.md file found")]

    def _check_workflows(self, context: ValidationContext) -> list[Violation]:
        workflows_dir = context.project_path / ".github" / "workflows"
        if not workflows_dir.is_dir():
            return [self.violation("GH-5", "No .github/workflows directory found")]
        files = sorted(p for p in workflows_dir.iterdir() if p.suffix in (".yml", ".yaml"))
        if not files:
            return [self.violation("GH-5", "No GitHub Actions workflows found")]

        violations = []
        texts = []
        for path in files:
            try:
                document = yaml.safe_load(read_text(path) or "")
            except yaml.YAMLError as exc:
                violations.append(self.violation(
                    "GH-5", f"Workflow is not valid YAML: {exc}", file_path=str(path.relative_to(context.project_path)),
                ))
                continue
            texts.append(_workflow_text(document))

        combined = " ".join(texts)
        missing = []
        if not any(k in combined for k in _TEST_KEYWORDS):
            missing.append("testing")
        if not any(k in combined for k in _LINT_KEYWORDS):
            missing.append("linting")
        if missing:
            violations.append(self.violation("GH-5", f"Consider adding workflows for: {', '.join(missing)}"))
        return violations
