"""Base class for vibe-codex modules.

A module bundles rules, hook handlers and validators behind a name, a
version and a list of modules it depends on. Modules populate their
collections in :meth:`RuleModule.initialize` and are read-only afterwards.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from vibe_codex.errors import VibeCodexError
from vibe_codex.models import (
    DefinitionSeverity,
    HookEvent,
    RuleDefinition,
    Severity,
    ValidationContext,
    ValidatorResult,
    Violation,
)

if TYPE_CHECKING:
    from vibe_codex.rule_loader import RuleLoader

logger = logging.getLogger("vibe_codex")

Check = Callable[[ValidationContext], list[Violation]]
Fix = Callable[[ValidationContext], bool]
Hook = Callable[[ValidationContext], bool]
Validator = Callable[[ValidationContext], ValidatorResult]


def _override_severity(value: str) -> Severity:
    """Map an override severity in either the definition or the violation vocabulary."""
    try:
        return DefinitionSeverity(value).to_severity()
    except ValueError:
        return Severity(value)


class ModuleInitError(VibeCodexError):
    def __init__(self, module_name: str, detail: str) -> None:
        self.module_name = module_name
        super().__init__(f"Failed to initialize module {module_name}: {detail}")


@dataclass
class ModuleRule:
    """A rule contributed by a module.

    Rules backed by a declarative definition carry it in ``definition`` and
    have no ``check``; they are executed by the hook scripts the definition
    names.
    """
    id: str
    name: str
    description: str
    category: str
    severity: Severity
    level: int | None = None
    check: Check | None = None
    fix: Fix | None = None
    enabled: bool = True
    tags: list[str] = field(default_factory=list)
    module: str = ""
    options: dict = field(default_factory=dict)
    definition: RuleDefinition | None = None


class RuleModule(ABC):
    """Base class for all vibe-codex modules."""
    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    dependencies: list[str] = []
    default_options: dict = {}

    def __init__(self, options: dict | None = None):
        self.dependencies = list(type(self).dependencies)
        self.options = {**type(self).default_options, **(options or {})}
        self.rules: list[ModuleRule] = []
        self.hooks: dict[str, list[Hook]] = {}
        self.validators: dict[str, Validator] = {}

    def initialize(self, rule_loader: RuleLoader | None = None) -> None:
        """Populate rules, definition-backed rules, hooks and validators in order."""
        try:
            self.load_rules()
            if rule_loader is not None:
                self.load_definition_rules(rule_loader)
            self.load_hooks()
            self.load_validators()
        except Exception as exc:
            raise ModuleInitError(self.name, str(exc)) from exc

    @abstractmethod
    def load_rules(self) -> None:
        """Register this module's rules."""

    def load_hooks(self) -> None:
        pass

    def load_validators(self) -> None:
        pass

    def load_definition_rules(self, rule_loader: RuleLoader) -> None:
        """Register rules named by the ``rulesets`` and ``definitions`` options."""
        for ruleset_id in self.options.get("rulesets", []):
            ruleset = rule_loader.load_ruleset(ruleset_id)
            for definition in ruleset.loaded_rules:
                self._register_definition(definition, ruleset.override_for(definition.id))
        for definition in rule_loader.load_rules(list(self.options.get("definitions", []))):
            self._register_definition(definition, {})

    def _register_definition(self, definition: RuleDefinition, override: dict) -> None:
        if any(r.id == definition.id for r in self.rules):
            return
        severity = definition.metadata.severity.to_severity()
        if "severity" in override:
            severity = _override_severity(override["severity"])
        self.register_rule(
            ModuleRule(
                id=definition.id,
                name=definition.metadata.name,
                description=definition.metadata.description,
                category=definition.metadata.category.value,
                severity=severity,
                enabled=override.get("enabled", True),
                tags=list(definition.metadata.tags),
                options={**definition.options, **override.get("options", {})},
                definition=definition,
            )
        )

    # -- registration --------------------------------------------------------

    def register_rule(self, rule: ModuleRule) -> None:
        rule.module = self.name
        self.rules.append(rule)

    def register_hook(self, event: HookEvent | str, handler: Hook) -> None:
        key = event.value if isinstance(event, HookEvent) else event
        self.hooks.setdefault(key, []).append(handler)

    def register_validator(self, name: str, validator: Validator) -> None:
        self.validators[name] = validator

    # -- queries -------------------------------------------------------------

    def get_rule(self, rule_id: str) -> ModuleRule:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        raise KeyError(f"Module {self.name} has no rule {rule_id}")

    def get_rules_by_level(self, level: int) -> list[ModuleRule]:
        return [r for r in self.rules if r.level == level]

    def get_hooks(self, event: HookEvent | str) -> list[Hook]:
        key = event.value if isinstance(event, HookEvent) else event
        return list(self.hooks.get(key, []))

    def option(self, context: ValidationContext, key: str, default=None):
        """Look up *key* in the run's module config, then module options."""
        run_config = context.module_config(self.name)
        if key in run_config:
            return run_config[key]
        return self.options.get(key, default)

    def violation(
        self,
        rule_id: str,
        message: str,
        *,
        file_path: str | None = None,
        line: int | None = None,
        suggestion: str | None = None,
    ) -> Violation:
        rule = self.get_rule(rule_id)
        return Violation(
            rule_id=rule_id,
            message=message,
            severity=rule.severity,
            file_path=file_path,
            line=line,
            suggestion=suggestion,
            module=self.name,
        )
