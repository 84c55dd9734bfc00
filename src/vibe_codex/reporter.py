"""Output formatting for validation results."""
from __future__ import annotations

import json

from vibe_codex.models import Severity, ValidatorResult, Violation


class Reporter:
    """Formats violations and validator results for the terminal or as JSON."""

    def __init__(
        self,
        violations: list[Violation],
        rules_evaluated: int = 0,
        validator_results: dict[str, ValidatorResult] | None = None,
    ):
        self.violations = violations
        self.rules_evaluated = rules_evaluated
        self.validator_results = validator_results or {}

    def has_blocking_violations(self) -> bool:
        return any(v.severity == Severity.ERROR for v in self.violations)

    def failed_validators(self) -> dict[str, ValidatorResult]:
        return {k: r for k, r in self.validator_results.items() if not r.valid}

    def exit_code(self) -> int:
        """1 when any error-severity violation or failed validator exists."""
        if self.has_blocking_violations() or self.failed_validators():
            return 1
        return 0

    def format_text(self) -> str:
        errors = [v for v in self.violations if v.severity == Severity.ERROR]
        warnings = [v for v in self.violations if v.severity == Severity.WARNING]
        infos = [v for v in self.violations if v.severity == Severity.INFO]

        lines = [
            "vibe-codex",
            f"Rules evaluated: {self.rules_evaluated}  |  "
            f"Errors: {len(errors)}  |  Warnings: {len(warnings)}  |  Info: {len(infos)}",
        ]

        for title, group in (("ERRORS:", errors), ("WARNINGS:", warnings), ("INFO:", infos)):
            if not group:
                continue
            lines.append("")
            lines.append(title)
            for v in group:
                location = ""
                if v.file_path:
                    location = f" ({v.file_path}:{v.line})" if v.line else f" ({v.file_path})"
                lines.append(f"  [{v.rule_id}] {v.message}{location}")
                if v.suggestion:
                    lines.append(f"    -> {v.suggestion}")

        failed = self.failed_validators()
        if failed:
            lines.append("")
            lines.append("VALIDATORS:")
            for key, result in failed.items():
                lines.append(f"  [{key}] {result.message or 'failed'}")
                for error in result.errors:
                    lines.append(f"    - {error}")

        if not self.violations and not failed:
            lines.append("")
            lines.append("All checks passed.")

        return "\n".join(lines)

    def format_json(self) -> str:
        return json.dumps(
            {
                "rules_evaluated": self.rules_evaluated,
                "violations": [v.to_dict() for v in self.violations],
                "validators": {k: r.to_dict() for k, r in self.validator_results.items()},
                "passed": self.exit_code() == 0,
            },
            indent=2,
        )
