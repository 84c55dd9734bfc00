"""Core models for vibe-codex."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping


class Severity(Enum):
    """Violation severity levels reported by module rules."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def is_blocking(self) -> bool:
        return self == Severity.ERROR


def freeze(value: Any) -> Any:
    """Return a read-only copy of parsed JSON: mappings become proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


class HookEvent(Enum):
    """Git hook events modules can register against."""
    PRE_COMMIT = "pre-commit"
    COMMIT_MSG = "commit-msg"
    PRE_PUSH = "pre-push"
    POST_COMMIT = "post-commit"
    POST_MERGE = "post-merge"

    @classmethod
    def from_string(cls, value: str) -> HookEvent:
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown hook event: {value}")


# ---------------------------------------------------------------------------
# Declarative definitions
# ---------------------------------------------------------------------------

class RuleType(Enum):
    RULE = "rule"
    HOOK = "hook"


class Platform(Enum):
    GIT = "git"
    CLAUDE = "claude"
    GITHUB_COPILOT = "github-copilot"
    CURSOR = "cursor"
    ALL = "all"


class Category(Enum):
    SECURITY = "security"
    WORKFLOW = "workflow"
    QUALITY = "quality"
    DOCUMENTATION = "documentation"
    AI_DEVELOPMENT = "ai-development"
    LLM_SPECIFIC = "llm-specific"


class DefinitionSeverity(Enum):
    """Declared impact of a rule definition."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def to_severity(self) -> Severity:
        if self in (DefinitionSeverity.HIGH, DefinitionSeverity.CRITICAL):
            return Severity.ERROR
        if self == DefinitionSeverity.MEDIUM:
            return Severity.WARNING
        return Severity.INFO


@dataclass(frozen=True)
class PlatformImplementation:
    hooks: tuple[str, ...] = ()
    script: str | None = None
    command: str | None = None
    validator: str | None = None
    config: Mapping = field(default_factory=lambda: MappingProxyType({}))
    files: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> PlatformImplementation:
        return cls(
            hooks=tuple(data.get("hooks", [])),
            script=data.get("script"),
            command=data.get("command"),
            validator=data.get("validator"),
            config=freeze(data.get("config", {})),
            files=tuple(data.get("files", [])),
        )


@dataclass(frozen=True)
class RuleMetadata:
    name: str
    description: str
    category: Category
    severity: DefinitionSeverity = DefinitionSeverity.MEDIUM
    tags: tuple[str, ...] = ()
    enabled_by_default: bool = False


@dataclass(frozen=True)
class RuleDefinition:
    """A validated rule or hook definition. Never mutated after load."""
    id: str
    type: RuleType
    platforms: tuple[Platform, ...]
    metadata: RuleMetadata
    implementation: Mapping[str, PlatformImplementation]
    options: Mapping = field(default_factory=lambda: MappingProxyType({}))
    compatibility: Mapping = field(default_factory=lambda: MappingProxyType({}))
    version: str = "1.0"
    raw: Mapping = field(default_factory=lambda: MappingProxyType({}), compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> RuleDefinition:
        """Build from a mapping that already passed schema validation."""
        meta = data["metadata"]
        metadata = RuleMetadata(
            name=meta["name"],
            description=meta["description"],
            category=Category(meta["category"]),
            severity=DefinitionSeverity(meta.get("severity", "medium")),
            tags=tuple(meta.get("tags", [])),
            enabled_by_default=bool(meta.get("enabled_by_default", False)),
        )
        platforms = tuple(Platform(p) for p in data.get("platforms", ["all"]))
        return cls(
            id=data["id"],
            type=RuleType(data["type"]),
            platforms=platforms,
            metadata=metadata,
            implementation=MappingProxyType({
                name: PlatformImplementation.from_dict(impl)
                for name, impl in data["implementation"].items()
            }),
            options=freeze(data.get("options", {})),
            compatibility=freeze(data.get("compatibility", {})),
            version=data.get("version", "1.0"),
            raw=freeze(data),
        )

    def supports(self, platform: Platform | str) -> bool:
        value = platform.value if isinstance(platform, Platform) else platform
        values = {p.value for p in self.platforms}
        return value in values or Platform.ALL.value in values


@dataclass(frozen=True)
class RulesetConfig:
    """Execution settings declared for downstream hook runners."""
    fail_fast: bool = False
    parallel: bool = True
    timeout: int = 30000

    @classmethod
    def from_dict(cls, data: dict) -> RulesetConfig:
        return cls(
            fail_fast=bool(data.get("failFast", False)),
            parallel=bool(data.get("parallel", True)),
            timeout=data.get("timeout", 30000),
        )


@dataclass(frozen=True)
class ExpandedRuleset:
    """A ruleset with its ``extends`` chain flattened into ``rules``."""
    id: str
    name: str
    description: str | None
    extends: list[str]
    rules: list[str]
    hooks: list[str]
    config: RulesetConfig
    overrides: dict[str, dict]
    loaded_rules: list[RuleDefinition]
    version: str = "1.0"

    def override_for(self, rule_id: str) -> dict:
        return dict(self.overrides.get(rule_id, {}))


@dataclass(frozen=True)
class RuleSummary:
    id: str
    name: str
    type: str
    category: str
    platforms: list[str]
    enabled_by_default: bool

    @classmethod
    def from_definition(cls, rule: RuleDefinition) -> RuleSummary:
        return cls(
            id=rule.id,
            name=rule.metadata.name,
            type=rule.type.value,
            category=rule.metadata.category.value,
            platforms=[p.value for p in rule.platforms],
            enabled_by_default=rule.metadata.enabled_by_default,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "category": self.category,
            "platforms": list(self.platforms),
            "enabled_by_default": self.enabled_by_default,
        }


@dataclass(frozen=True)
class RulesetSummary:
    id: str
    name: str
    description: str | None
    rule_count: int
    extends: list[str]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "rule_count": self.rule_count,
            "extends": list(self.extends),
        }


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

@dataclass
class Violation:
    """A single rule violation."""
    rule_id: str
    message: str
    severity: Severity
    file_path: str | None = None
    line: int | None = None
    suggestion: str | None = None
    module: str | None = None

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "message": self.message,
            "severity": self.severity.value,
            "file_path": self.file_path,
            "line": self.line,
            "suggestion": self.suggestion,
            "module": self.module,
        }


@dataclass(frozen=True)
class FileEntry:
    path: str
    content: str = ""


@dataclass(frozen=True)
class Commit:
    sha: str
    message: str


@dataclass
class ValidationContext:
    """Context passed to module rules, hooks and validators."""
    project_path: Path
    files: list[FileEntry] = field(default_factory=list)
    modified_files: list[FileEntry] = field(default_factory=list)
    branch: str | None = None
    commits: list[Commit] = field(default_factory=list)
    issue: str | None = None
    pr: dict | None = None
    # Commit message under inspection (commit-msg hook)
    message: str | None = None
    config: dict[str, dict] = field(default_factory=dict)

    def module_config(self, module_name: str) -> dict:
        return self.config.get(module_name, {})


@dataclass
class ValidatorResult:
    """Outcome of a module validator."""
    valid: bool
    message: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"valid": self.valid}
        if self.message:
            data["message"] = self.message
        if self.errors:
            data["errors"] = list(self.errors)
        return data
