"""Testing module: coverage, test presence and test hygiene rules."""
from __future__ import annotations

import json
import logging
import re
import shlex
import subprocess
from pathlib import PurePosixPath

from vibe_codex.models import HookEvent, Severity, ValidationContext, ValidatorResult, Violation
from vibe_codex.modules._helpers import first_existing, read_text
from vibe_codex.modules.base import ModuleRule, RuleModule

logger = logging.getLogger("vibe_codex")

_COVERAGE_METRICS = ("lines", "statements", "functions", "branches")
_SOURCE_SUFFIXES = {".py", ".js", ".ts", ".jsx", ".tsx"}
_JS_TEST_RE = re.compile(r"\.(test|spec)\.(js|ts|jsx|tsx)$")
_SKIP_RE = re.compile(
    r"\.(skip|only)\s*\(|\b(xit|xdescribe|fit|fdescribe)\s*\(|@pytest\.mark\.skip\b|@unittest\.skip\b"
)
_TEST_FRAMEWORKS = ("jest", "mocha", "vitest", "ava", "tape")
_PYTHON_TEST_CONFIGS = ["pytest.ini", "tox.ini", "conftest.py", "tests/conftest.py"]
_COVERAGE_CONFIGS = [".coveragerc", ".nycrc", ".nycrc.json", "jest.config.js", "vitest.config.ts"]


def is_test_file(path: str) -> bool:
    pure = PurePosixPath(path)
    if _JS_TEST_RE.search(pure.name):
        return True
    return pure.suffix == ".py" and (pure.name.startswith("test_") or pure.stem.endswith("_test"))


def _candidate_tests(path: str) -> list[str]:
    pure = PurePosixPath(path)
    if pure.suffix == ".py":
        name = f"test_{pure.name}"
        return [str(pure.with_name(name)), f"tests/{name}", f"test/{name}"]
    stem, suffix = pure.stem, pure.suffix
    as_posix = pure.as_posix()
    return [
        str(pure.with_name(f"{stem}.test{suffix}")),
        str(pure.with_name(f"{stem}.spec{suffix}")),
        as_posix.replace("src/", "__tests__/", 1).replace(pure.name, f"{stem}.test{suffix}"),
        as_posix.replace("src/", "test/", 1).replace(pure.name, f"{stem}.test{suffix}"),
    ]


class TestingModule(RuleModule):
    name = "testing"
    version = "1.0.0"
    description = "Test framework, coverage, and test quality rules"
    default_options = {
        "coverageThreshold": 80,
        "testCommand": None,
    }

    def load_rules(self) -> None:
        self.register_rule(ModuleRule(
            id="TEST-1",
            name="Test Coverage Threshold",
            description="Code coverage must meet minimum threshold",
            category="testing",
            severity=Severity.ERROR,
            level=3,
            check=self._check_coverage,
        ))
        self.register_rule(ModuleRule(
            id="TEST-2",
            name="Test Files Exist",
            description="Every source file should have a corresponding test file",
            category="testing",
            severity=Severity.WARNING,
            level=3,
            check=self._check_test_files,
        ))
        self.register_rule(ModuleRule(
            id="TEST-3",
            name="No Skipped Tests",
            description="Tests should not be skipped or focused without justification",
            category="testing",
            severity=Severity.WARNING,
            level=3,
            check=self._check_skipped,
        ))

    def load_hooks(self) -> None:
        self.register_hook(HookEvent.PRE_PUSH, self._pre_push)

    def load_validators(self) -> None:
        self.register_validator("test-framework", self._validate_framework)
        self.register_validator("coverage-config", self._validate_coverage_config)

    def _check_coverage(self, context: ValidationContext) -> list[Violation]:
        threshold = self.option(context, "coverageThreshold", 80)
        report = context.project_path / "coverage" / "coverage-summary.json"
        text = read_text(report)
        if text is None:
            return [self.violation("TEST-1", "Coverage report not found. Run tests with coverage first.")]
        try:
            totals = json.loads(text)["total"]
        except (json.JSONDecodeError, KeyError, TypeError):
            return [self.violation("TEST-1", f"Coverage report {report.name} is malformed")]

        violations = []
        for metric in _COVERAGE_METRICS:
            pct = (totals.get(metric) or {}).get("pct")
            if pct is not None and pct < threshold:
                violations.append(self.violation(
                    "TEST-1",
                    f"{metric} coverage ({pct}%) is below threshold ({threshold}%)",
                ))
        return violations

    def _check_test_files(self, context: ValidationContext) -> list[Violation]:
        known = {entry.path for entry in context.files}
        violations = []
        for entry in context.files:
            pure = PurePosixPath(entry.path)
            if pure.suffix not in _SOURCE_SUFFIXES or is_test_file(entry.path):
                continue
            if "src" not in pure.parts or "node_modules" in pure.parts or pure.name == "__init__.py":
                continue
            candidates = _candidate_tests(entry.path)
            if any(c in known or (context.project_path / c).exists() for c in candidates):
                continue
            violations.append(self.violation(
                "TEST-2", "No test file found for source file", file_path=entry.path,
            ))
        return violations

    def _check_skipped(self, context: ValidationContext) -> list[Violation]:
        violations = []
        for entry in context.files:
            if not is_test_file(entry.path):
                continue
            for lineno, line in enumerate(entry.content.splitlines(), start=1):
                if _SKIP_RE.search(line):
                    violations.append(self.violation(
                        "TEST-3",
                        "Skipped or focused test found without justification",
                        file_path=entry.path,
                        line=lineno,
                    ))
        return violations

    def _pre_push(self, context: ValidationContext) -> bool:
        command = self.option(context, "testCommand")
        if not command:
            logger.debug("No testCommand configured, skipping pre-push tests")
            return True
        logger.info("Running tests before push: %s", command)
        try:
            result = subprocess.run(
                shlex.split(command),
                cwd=context.project_path,
                capture_output=True,
                text=True,
                timeout=600,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.error("Test execution failed: %s", exc)
            return False
        if result.returncode != 0:
            logger.error("Tests failed:\n%s", result.stderr or result.stdout)
            return False
        return True

    def _validate_framework(self, context: ValidationContext) -> ValidatorResult:
        root = context.project_path
        if first_existing(root, _PYTHON_TEST_CONFIGS):
            return ValidatorResult(valid=True)
        package_text = read_text(root / "package.json")
        if package_text is not None:
            try:
                package = json.loads(package_text)
            except json.JSONDecodeError:
                return ValidatorResult(valid=False, message="Unable to detect test framework")
            deps = {**package.get("dependencies", {}), **package.get("devDependencies", {})}
            if any(f in deps for f in _TEST_FRAMEWORKS) or package.get("scripts", {}).get("test"):
                return ValidatorResult(valid=True)
        pyproject = read_text(root / "pyproject.toml") or ""
        if "[tool.pytest" in pyproject:
            return ValidatorResult(valid=True)
        return ValidatorResult(valid=False, message="No test framework configured")

    def _validate_coverage_config(self, context: ValidationContext) -> ValidatorResult:
        root = context.project_path
        if first_existing(root, _COVERAGE_CONFIGS):
            return ValidatorResult(valid=True)
        pyproject = read_text(root / "pyproject.toml") or ""
        if "[tool.coverage" in pyproject:
            return ValidatorResult(valid=True)
        return ValidatorResult(valid=False, message="No coverage configuration found")
