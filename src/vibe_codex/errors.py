"""Exception hierarchy for vibe-codex."""
from __future__ import annotations

from pathlib import Path


class VibeCodexError(Exception):
    """Base user-facing error."""


class DefinitionError(VibeCodexError):
    """A rule or ruleset definition could not be loaded."""


class RuleNotFoundError(DefinitionError):
    def __init__(self, rule_id: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Rule definition not found: {rule_id}")


class RulesetNotFoundError(DefinitionError):
    def __init__(self, ruleset_id: str) -> None:
        self.ruleset_id = ruleset_id
        super().__init__(f"Ruleset not found: {ruleset_id}")


class InvalidDefinitionError(DefinitionError):
    def __init__(self, kind: str, definition_id: str, detail: str) -> None:
        self.kind = kind
        self.definition_id = definition_id
        self.detail = detail
        if kind == "rule":
            message = f"Invalid rule definition for {definition_id}: {detail}"
        else:
            message = f"Invalid ruleset {definition_id}: {detail}"
        super().__init__(message)


class CircularExtensionError(DefinitionError):
    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(f"Circular ruleset extension: {' -> '.join(chain)}")


class DefinitionStoreError(VibeCodexError):
    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Failed to validate directory {path}: {detail}")


class ModuleDependencyError(VibeCodexError):
    """Raised when the loaded module graph has missing or circular dependencies."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Module dependency validation failed: " + "; ".join(self.errors))


class ConfigError(VibeCodexError):
    """Project configuration problem."""


class InvalidConfigError(ConfigError):
    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid configuration ({detail}): {path}")
