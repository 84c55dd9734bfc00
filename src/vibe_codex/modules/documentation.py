"""Documentation module: README, changelog and project context rules."""
from __future__ import annotations

import re

from vibe_codex.models import Severity, ValidationContext, ValidatorResult, Violation
from vibe_codex.modules._helpers import first_existing, read_text
from vibe_codex.modules.base import ModuleRule, RuleModule

README_NAMES = ["README.md", "README.rst", "README.txt", "README"]
CHANGELOG_NAMES = ["CHANGELOG.md", "CHANGELOG.rst", "CHANGES.md", "HISTORY.md"]
CONTEXT_NAMES = ["CLAUDE.md", "AGENTS.md", "PROJECT_CONTEXT.md", ".cursorrules"]

_HEADING_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)
_RST_HEADING_RE = re.compile(r"^(.+)\n[=\-~^]{3,}\s*$", re.MULTILINE)


def readme_headings(text: str) -> list[str]:
    headings = _HEADING_RE.findall(text) + _RST_HEADING_RE.findall(text)
    return [h.strip().lower() for h in headings]


class DocumentationModule(RuleModule):
    name = "documentation"
    version = "1.0.0"
    description = "Documentation completeness rules"
    dependencies = ["core"]
    default_options = {
        "readmeSections": ["installation", "usage"],
        "requireChangelog": True,
    }

    def load_rules(self) -> None:
        self.register_rule(ModuleRule(
            id="DOC-1",
            name="README Sections",
            description="README must describe installation and usage",
            category="documentation",
            severity=Severity.WARNING,
            level=3,
            check=self._check_readme_sections,
        ))
        self.register_rule(ModuleRule(
            id="DOC-2",
            name="Changelog",
            description="Project should keep a changelog",
            category="documentation",
            severity=Severity.INFO,
            level=3,
            check=self._check_changelog,
        ))
        self.register_rule(ModuleRule(
            id="DOC-3",
            name="Project Context",
            description="Project should document context for AI assistants",
            category="documentation",
            severity=Severity.INFO,
            level=3,
            check=self._check_project_context,
        ))

    def load_validators(self) -> None:
        self.register_validator("readme", self._validate_readme)

    def _check_readme_sections(self, context: ValidationContext) -> list[Violation]:
        readme = first_existing(context.project_path, README_NAMES)
        if readme is None:
            return [self.violation("DOC-1", "No README found", suggestion="Create README.md")]
        headings = readme_headings(read_text(readme) or "")
        required = self.option(context, "readmeSections", [])
        missing = [s for s in required if not any(s.lower() in h for h in headings)]
        if missing:
            return [self.violation(
                "DOC-1",
                f"README is missing sections: {', '.join(missing)}",
                file_path=readme.name,
            )]
        return []

    def _check_changelog(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "requireChangelog", True):
            return []
        if first_existing(context.project_path, CHANGELOG_NAMES):
            return []
        return [self.violation("DOC-2", "No CHANGELOG.md found")]

    def _check_project_context(self, context: ValidationContext) -> list[Violation]:
        if first_existing(context.project_path, CONTEXT_NAMES):
            return []
        return [self.violation(
            "DOC-3",
            "No project context file found",
            suggestion=f"Create one of: {', '.join(CONTEXT_NAMES)}",
        )]

    def _validate_readme(self, context: ValidationContext) -> ValidatorResult:
        readme = first_existing(context.project_path, README_NAMES)
        if readme is None:
            return ValidatorResult(valid=False, message="README is missing")
        if not (read_text(readme) or "").strip():
            return ValidatorResult(valid=False, message=f"{readme.name} is empty")
        return ValidatorResult(valid=True)
