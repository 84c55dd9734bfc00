"""Module loading, dependency validation and aggregation.

:class:`ModuleLoader` turns a project configuration into a set of
initialized :class:`~vibe_codex.modules.base.RuleModule` instances. Every
module name resolves to either :class:`Loaded` or :class:`Skipped`; skipped
modules are logged and left out, so a broken custom module never stops the
rest of the project from being checked.
"""
from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Union

from vibe_codex.config import ProjectConfiguration
from vibe_codex.errors import ModuleDependencyError
from vibe_codex.models import HookEvent, Severity, ValidationContext, ValidatorResult
from vibe_codex.modules import BUILTIN_MODULES
from vibe_codex.modules.base import Hook, ModuleRule, RuleModule, Validator
from vibe_codex.rule_loader import RuleLoader

logger = logging.getLogger("vibe_codex")


class LoaderStatus(Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class Loaded:
    module: RuleModule


@dataclass(frozen=True)
class Skipped:
    name: str
    reason: str


LoadOutcome = Union[Loaded, Skipped]


@dataclass
class DependencyReport:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ModuleInfo:
    name: str
    version: str
    description: str
    rule_count: int
    hook_count: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "rule_count": self.rule_count,
            "hook_count": self.hook_count,
        }


def _dependencies_of(module) -> list[str]:
    if isinstance(module, Mapping):
        return list(module.get("dependencies", []))
    return list(getattr(module, "dependencies", []))


def validate_dependencies(modules: Mapping[str, object]) -> DependencyReport:
    """Check the dependency graph formed by *modules* alone.

    Values may be module objects or mappings with a ``dependencies`` key.
    Missing references and cycles are both collected; every module is used
    as a traversal root so independent cycles are all reported.
    """
    graph = {name: _dependencies_of(module) for name, module in modules.items()}
    errors: list[str] = []

    for name, deps in graph.items():
        for dep in deps:
            if dep not in graph:
                errors.append(f"Module '{name}' requires missing module '{dep}'")

    visited: set[str] = set()
    stack: list[str] = []
    on_stack: set[str] = set()

    def visit(node: str) -> None:
        visited.add(node)
        stack.append(node)
        on_stack.add(node)
        for dep in graph[node]:
            if dep not in graph:
                continue
            if dep in on_stack:
                cycle = stack[stack.index(dep):] + [dep]
                errors.append(f"Circular dependency detected: {' -> '.join(cycle)}")
            elif dep not in visited:
                visit(dep)
        stack.pop()
        on_stack.discard(node)

    for name in graph:
        if name not in visited:
            visit(name)

    return DependencyReport(valid=not errors, errors=errors)


def load_custom_module(path: Path, name: str) -> RuleModule:
    """Import the module file at *path* and return its module instance.

    The file exposes either ``MODULE`` (an instance) or a ``RuleModule``
    subclass defined in that file.
    """
    mod_name = f"vibe_codex_custom.{name.replace('-', '_')}"
    spec = importlib.util.spec_from_file_location(mod_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import {path}")
    py_module = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = py_module
    try:
        spec.loader.exec_module(py_module)
    except Exception:
        sys.modules.pop(mod_name, None)
        raise

    instance = getattr(py_module, "MODULE", None)
    if isinstance(instance, RuleModule):
        return instance
    for _attr_name, attr in inspect.getmembers(py_module, inspect.isclass):
        if (
            issubclass(attr, RuleModule)
            and attr is not RuleModule
            and attr.__module__ == mod_name
            and not inspect.isabstract(attr)
        ):
            return attr()
    raise ImportError(f"{path} defines no RuleModule")


class ModuleLoader:
    """Loads the modules a project configuration enables."""

    def __init__(
        self,
        rule_loader: RuleLoader | None = None,
        registry: Mapping[str, type[RuleModule]] | None = None,
    ):
        self.rule_loader = rule_loader
        self.registry = dict(BUILTIN_MODULES if registry is None else registry)
        self.modules: dict[str, RuleModule] = {}
        self.config = ProjectConfiguration()
        self.project_path = Path.cwd()
        self.status = LoaderStatus.UNINITIALIZED
        self.dependency_errors: list[str] = []
        self.skipped: list[Skipped] = []

    # -- loading -------------------------------------------------------------

    def load_modules(
        self,
        config: ProjectConfiguration | Mapping,
        project_path: str | Path | None = None,
    ) -> dict[str, RuleModule]:
        """Instantiate and initialize every enabled module. Never raises."""
        self.status = LoaderStatus.LOADING
        self.config = ProjectConfiguration.coerce(config)
        if project_path is not None:
            self.project_path = Path(project_path)
        self.modules = {}
        self.skipped = []

        for name in self.config.enabled_module_names():
            outcome = self._resolve(name)
            if isinstance(outcome, Loaded):
                self.modules[name] = outcome.module
                logger.debug("Loaded module %s", name)
            else:
                self.skipped.append(outcome)
                logger.error("Skipping module %s: %s", outcome.name, outcome.reason)

        report = validate_dependencies(self.modules)
        self.dependency_errors = report.errors
        for error in report.errors:
            logger.error("%s", error)

        self.status = LoaderStatus.READY
        return dict(self.modules)

    def _resolve(self, name: str) -> LoadOutcome:
        options = self.config.module_options(name)
        reasons = []

        cls = self.registry.get(name)
        if cls is not None:
            outcome = self._initialize(name, lambda: cls(options))
            if isinstance(outcome, Loaded):
                return outcome
            reasons.append(outcome.reason)

        custom_path = self.config.custom_modules.get(name)
        if custom_path is not None:
            path = self.project_path / custom_path
            outcome = self._initialize(name, lambda: self._custom(path, name, options))
            if isinstance(outcome, Loaded):
                return outcome
            reasons.append(outcome.reason)

        if not reasons:
            reasons.append("not a built-in module and no custom path configured")
        return Skipped(name, "; ".join(reasons))

    @staticmethod
    def _custom(path: Path, name: str, options: dict) -> RuleModule:
        if not path.is_file():
            raise FileNotFoundError(f"Custom module file not found: {path}")
        module = load_custom_module(path, name)
        module.options = {**module.options, **options}
        return module

    def _initialize(self, name: str, factory) -> LoadOutcome:
        try:
            module = factory()
            if not module.name:
                module.name = name
            module.initialize(self.rule_loader)
        except Exception as exc:
            logger.debug("Module %s failed to load", name, exc_info=True)
            return Skipped(name, str(exc))
        return Loaded(module)

    def reload(self, config: ProjectConfiguration | Mapping) -> dict[str, RuleModule]:
        """Discard every loaded module and load again with *config*."""
        logger.debug("Reloading modules")
        self.modules = {}
        return self.load_modules(config, self.project_path)

    # -- dependencies --------------------------------------------------------

    def validate_dependencies(self, modules: Mapping[str, object] | None = None) -> DependencyReport:
        return validate_dependencies(self.modules if modules is None else modules)

    def ensure_dependencies(self) -> None:
        """Raise :class:`ModuleDependencyError` if the loaded set is inconsistent."""
        report = self.validate_dependencies()
        if not report.valid:
            raise ModuleDependencyError(report.errors)

    # -- aggregation ---------------------------------------------------------

    def get_rules(
        self,
        level: int | None = None,
        category: str | None = None,
        severity: Severity | str | None = None,
    ) -> list[ModuleRule]:
        if isinstance(severity, str):
            severity = Severity(severity)
        rules = []
        for module in self.modules.values():
            candidates = module.rules if level is None else module.get_rules_by_level(level)
            for rule in candidates:
                if category is not None and rule.category != category:
                    continue
                if severity is not None and rule.severity != severity:
                    continue
                rules.append(rule)
        return rules

    def get_hooks(self, event: HookEvent | str) -> list[Hook]:
        hooks: list[Hook] = []
        for module in self.modules.values():
            hooks.extend(module.get_hooks(event))
        return hooks

    def get_validators(self) -> dict[str, Validator]:
        return {
            f"{module_name}.{validator_name}": validator
            for module_name, module in self.modules.items()
            for validator_name, validator in module.validators.items()
        }

    def run_validators(self, context: ValidationContext) -> dict[str, ValidatorResult]:
        results = {}
        for key, validator in self.get_validators().items():
            try:
                results[key] = validator(context)
            except Exception as exc:
                logger.exception("Validator %s failed", key)
                results[key] = ValidatorResult(valid=False, message=f"Validator raised: {exc}")
        return results

    # -- queries -------------------------------------------------------------

    def get_module(self, name: str) -> RuleModule | None:
        return self.modules.get(name)

    def get_loaded_modules(self) -> list[RuleModule]:
        return list(self.modules.values())

    def get_module_info(self, name: str) -> ModuleInfo | None:
        module = self.modules.get(name)
        if module is None:
            return None
        return ModuleInfo(
            name=module.name,
            version=module.version,
            description=module.description,
            rule_count=len(module.rules),
            hook_count=sum(len(handlers) for handlers in module.hooks.values()),
        )
