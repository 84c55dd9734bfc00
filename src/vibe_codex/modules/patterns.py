"""Patterns module: code organization and naming rules for JS/TS sources."""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from pathlib import PurePosixPath

from vibe_codex.models import HookEvent, Severity, ValidationContext, ValidatorResult, Violation
from vibe_codex.modules._helpers import first_existing
from vibe_codex.modules.base import ModuleRule, RuleModule

logger = logging.getLogger("vibe_codex")

_SCRIPT_SUFFIXES = (".js", ".ts")
_SOURCE_SUFFIXES = (".js", ".ts", ".jsx", ".tsx")
_COMPONENT_SUFFIXES = (".jsx", ".tsx")
_MAX_NESTING = 5

_FUNCTION_RE = re.compile(r"function\s+(\w+)|(\w+)\s*:\s*function|(\w+)\s*=\s*(?:async\s*)?\(")
_COMPLEXITY_RES = [
    re.compile(p)
    for p in (r"\bif\b", r"\belse\b", r"\bfor\b", r"\bwhile\b", r"\bdo\b",
              r"\bswitch\b", r"\bcase\b", r"\bcatch\b", r"\?\s*:")
]
_VARIABLE_RE = re.compile(r"(?:const|let|var)\s+([a-z_$][\w$]*)")
_CLASS_RE = re.compile(r"class\s+([A-Za-z_$][\w$]*)")
_TEST_NAME_RE = re.compile(r"\.(test|spec)\.(js|ts|jsx|tsx)$")

_ARCHITECTURE_DIRS = {
    "src/components": "Component-based",
    "src/controllers": "MVC",
    "src/services": "Service-oriented",
    "src/domain": "Domain-driven",
}
_LINT_CONFIGS = [
    ".eslintrc", ".eslintrc.js", ".eslintrc.json", ".eslintrc.yml", "eslint.config.js",
    "ruff.toml", ".flake8",
]


def _is_source(path: str, suffixes: tuple[str, ...] = _SOURCE_SUFFIXES) -> bool:
    return path.endswith(suffixes) and "node_modules" not in path


def _is_test_name(path: str) -> bool:
    name = PurePosixPath(path).name
    return ".test." in name or ".spec." in name


def _line_of(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def function_body(content: str, start: int) -> str | None:
    """Text from *start* through the brace closing the first block opened after it."""
    depth = 0
    opened = False
    for index in range(start, len(content)):
        char = content[index]
        if char == "{":
            depth += 1
            opened = True
        elif char == "}":
            depth -= 1
            if opened and depth == 0:
                return content[start:index + 1]
    return None


def complexity(body: str) -> int:
    return 1 + sum(len(pattern.findall(body)) for pattern in _COMPLEXITY_RES)


def _import_kind(line: str) -> str:
    if "from './" in line or 'from "./' in line:
        return "relative"
    if "from '@" in line or 'from "@' in line or "from '~" in line or 'from "~' in line:
        return "internal"
    return "external"


class PatternsModule(RuleModule):
    name = "patterns"
    version = "1.0.0"
    description = "Code organization, architecture patterns, and best practices"
    default_options = {
        "maxFileLength": 500,
        "maxFunctionLength": 50,
        "maxComplexity": 10,
        "requireIndexFiles": True,
        "enforceNamingConventions": True,
    }

    def load_rules(self) -> None:
        self.register_rule(ModuleRule(
            id="PATTERN-1",
            name="File Organization",
            description="Files should be organized in a logical structure",
            category="patterns",
            severity=Severity.WARNING,
            level=5,
            check=self._check_organization,
        ))
        self.register_rule(ModuleRule(
            id="PATTERN-2",
            name="File Length",
            description="Files should not be too long",
            category="patterns",
            severity=Severity.WARNING,
            level=5,
            check=self._check_file_length,
        ))
        self.register_rule(ModuleRule(
            id="PATTERN-3",
            name="Function Complexity",
            description="Functions should not be too complex",
            category="patterns",
            severity=Severity.WARNING,
            level=5,
            check=self._check_functions,
        ))
        self.register_rule(ModuleRule(
            id="PATTERN-4",
            name="Naming Conventions",
            description="Code should follow consistent naming conventions",
            category="patterns",
            severity=Severity.INFO,
            level=5,
            check=self._check_naming,
        ))
        self.register_rule(ModuleRule(
            id="PATTERN-5",
            name="Index Files",
            description="Directories should have index files for exports",
            category="patterns",
            severity=Severity.INFO,
            level=5,
            check=self._check_index_files,
        ))
        self.register_rule(ModuleRule(
            id="PATTERN-6",
            name="Import Organization",
            description="Imports should be organized and grouped",
            category="patterns",
            severity=Severity.INFO,
            level=5,
            check=self._check_imports,
        ))

    def load_hooks(self) -> None:
        self.register_hook(HookEvent.PRE_COMMIT, self._pre_commit)

    def load_validators(self) -> None:
        self.register_validator("architecture", self._validate_architecture)
        self.register_validator("code-quality", self._validate_code_quality)

    # -- rules ---------------------------------------------------------------

    def _check_organization(self, context: ValidationContext) -> list[Violation]:
        violations = []

        if (context.project_path / "src").is_dir():
            for entry in context.files:
                parts = PurePosixPath(entry.path).parts
                if not parts or parts[0] != "src":
                    continue
                depth = len(parts) - 2
                if depth > _MAX_NESTING:
                    violations.append(self.violation(
                        "PATTERN-1", f"File is too deeply nested ({depth} levels)", file_path=entry.path,
                    ))
                if _is_test_name(entry.path) and not {"__tests__", "test", "tests"} & set(parts[:-1]):
                    violations.append(self.violation(
                        "PATTERN-1",
                        "Test files should be in __tests__ directory or test/ folder",
                        file_path=entry.path,
                    ))

        by_dir: dict[str, list[str]] = defaultdict(list)
        for entry in context.files:
            path = PurePosixPath(entry.path)
            by_dir[str(path.parent)].append(path.name.lower())
        for directory, names in by_dir.items():
            concerns = [
                any(n.endswith(_COMPONENT_SUFFIXES) for n in names),
                any("util" in n or "helper" in n for n in names),
                any("model" in n or "schema" in n for n in names),
            ]
            if sum(concerns) > 1:
                violations.append(self.violation(
                    "PATTERN-1",
                    "Directory contains mixed concerns (components, utils, models)",
                    file_path=directory,
                ))
        return violations

    def _check_file_length(self, context: ValidationContext) -> list[Violation]:
        max_length = self.option(context, "maxFileLength", 500)
        violations = []
        for entry in context.files:
            if not _is_source(entry.path) or ".min." in entry.path:
                continue
            lines = len(entry.content.split("\n"))
            if lines > max_length:
                violations.append(self.violation(
                    "PATTERN-2", f"File has {lines} lines (max: {max_length})", file_path=entry.path,
                ))
        return violations

    def _check_functions(self, context: ValidationContext) -> list[Violation]:
        max_complexity = self.option(context, "maxComplexity", 10)
        max_length = self.option(context, "maxFunctionLength", 50)
        violations = []
        for entry in context.files:
            if not _is_source(entry.path, _SCRIPT_SUFFIXES):
                continue
            for match in _FUNCTION_RE.finditer(entry.content):
                body = function_body(entry.content, match.start())
                if body is None:
                    continue
                function = next(g for g in match.groups() if g)
                line = _line_of(entry.content, match.start())
                score = complexity(body)
                if score > max_complexity:
                    violations.append(self.violation(
                        "PATTERN-3",
                        f"Function '{function}' has complexity {score} (max: {max_complexity})",
                        file_path=entry.path,
                        line=line,
                    ))
                length = len(body.split("\n"))
                if length > max_length:
                    violations.append(self.violation(
                        "PATTERN-3",
                        f"Function '{function}' has {length} lines (max: {max_length})",
                        file_path=entry.path,
                        line=line,
                    ))
        return violations

    def _check_naming(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "enforceNamingConventions", True):
            return []
        violations = []
        for entry in context.files:
            if _is_source(entry.path, _SCRIPT_SUFFIXES):
                for match in _VARIABLE_RE.finditer(entry.content):
                    name = match.group(1)
                    if "_" in name and not name.startswith("_"):
                        violations.append(self.violation(
                            "PATTERN-4",
                            f"Variable '{name}' should use camelCase",
                            file_path=entry.path,
                            line=_line_of(entry.content, match.start()),
                        ))
                for match in _CLASS_RE.finditer(entry.content):
                    name = match.group(1)
                    if not name[0].isupper():
                        violations.append(self.violation(
                            "PATTERN-4",
                            f"Class '{name}' should use PascalCase",
                            file_path=entry.path,
                            line=_line_of(entry.content, match.start()),
                        ))

            path = PurePosixPath(entry.path)
            if path.suffix in _COMPONENT_SUFFIXES and "components" in path.parts[:-1] \
                    and not path.stem[:1].isupper():
                violations.append(self.violation(
                    "PATTERN-4", "React component files should use PascalCase", file_path=entry.path,
                ))
            if _is_test_name(entry.path) and not _TEST_NAME_RE.search(entry.path):
                violations.append(self.violation(
                    "PATTERN-4", "Test files should follow pattern: *.test.js or *.spec.js", file_path=entry.path,
                ))
        return violations

    def _check_index_files(self, context: ValidationContext) -> list[Violation]:
        if not self.option(context, "requireIndexFiles", True):
            return []
        by_dir: dict[PurePosixPath, list[str]] = defaultdict(list)
        for entry in context.files:
            path = PurePosixPath(entry.path)
            if not _is_source(entry.path, _SCRIPT_SUFFIXES) or not {"src", "lib"} & set(path.parts[:-1]):
                continue
            by_dir[path.parent].append(path.name)

        violations = []
        for directory, names in by_dir.items():
            non_test = [n for n in names if not _is_test_name(n)]
            if len(non_test) > 1 and not {"index.js", "index.ts"} & set(names):
                violations.append(self.violation(
                    "PATTERN-5",
                    f"Directory with {len(non_test)} files should have an index file",
                    file_path=str(directory),
                ))
        return violations

    def _check_imports(self, context: ValidationContext) -> list[Violation]:
        violations = []
        for entry in context.files:
            if not _is_source(entry.path):
                continue
            imports = [
                (index, line) for index, line in enumerate(entry.content.split("\n"))
                if line.strip().startswith("import ")
            ]
            if len(imports) <= 3:
                continue

            kinds = [_import_kind(line) for _index, line in imports]
            if {"external", "internal", "relative"} <= set(kinds):
                switches = sum(1 for prev, curr in zip(kinds, kinds[1:]) if prev != curr)
                if switches > 2:
                    violations.append(self.violation(
                        "PATTERN-6",
                        "Imports should be grouped by type (external, internal, relative)",
                        file_path=entry.path,
                        line=imports[0][0] + 1,
                    ))

            for (prev_index, _), (index, _) in zip(imports, imports[1:]):
                if index - prev_index > 2:
                    violations.append(self.violation(
                        "PATTERN-6", "Unnecessary blank lines between imports", file_path=entry.path, line=index + 1,
                    ))
        return violations

    # -- hooks ---------------------------------------------------------------

    def _pre_commit(self, context: ValidationContext) -> bool:
        """Warn about leftover debugging and TODO markers; never blocks the commit."""
        for entry in context.modified_files:
            if not _is_source(entry.path):
                continue
            if "console.log" in entry.content and "test" not in entry.path:
                logger.warning("%s contains console.log statements", entry.path)
            if "TODO:" in entry.content or "FIXME:" in entry.content:
                logger.warning("%s contains TODO/FIXME comments", entry.path)
        return True

    # -- validators ----------------------------------------------------------

    def _validate_architecture(self, context: ValidationContext) -> ValidatorResult:
        detected = [
            kind for directory, kind in _ARCHITECTURE_DIRS.items()
            if (context.project_path / directory).is_dir()
        ]
        if len(detected) > 2:
            return ValidatorResult(
                valid=False,
                message=f"Detected: {', '.join(detected)}",
                errors=["Mixed architecture patterns detected"],
            )
        return ValidatorResult(valid=True)

    def _validate_code_quality(self, context: ValidationContext) -> ValidatorResult:
        if first_existing(context.project_path, _LINT_CONFIGS):
            return ValidatorResult(valid=True)
        return ValidatorResult(valid=False, message="No lint configuration found")
