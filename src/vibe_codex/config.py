"""Project configuration loading and parsing for vibe-codex."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from jsonschema import Draft7Validator

from vibe_codex.errors import InvalidConfigError

logger = logging.getLogger("vibe_codex")

CONFIG_FILENAME = ".vibe-codex.json"
CONFIG_FILENAMES = [CONFIG_FILENAME, "vibe-codex.config.json"]
PACKAGE_JSON_KEY = "vibe-codex"

CORE_MODULE = "core"

_MODULE_CONFIG = {
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean"},
        "options": {"type": "object"},
    },
}

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "version": {"type": "string", "pattern": r"^\d+\.\d+\.\d+$"},
        "modules": {"type": "object", "additionalProperties": _MODULE_CONFIG},
        "customModules": {"type": "object", "additionalProperties": {"type": "string"}},
        "issueTracking": {
            "type": "object",
            "properties": {
                "enableReminders": {"type": "boolean"},
                "reminderFrequency": {"type": "string", "pattern": r"^\d+[hmd]$"},
                "autoPrompt": {"type": "boolean"},
                "updateOnPush": {"type": "boolean"},
                "relatedIssueDetection": {"type": "boolean"},
            },
        },
        "customRules": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "path": {"type": "string"},
                    "level": {"type": "integer", "minimum": 1, "maximum": 5},
                    "enabled": {"type": "boolean"},
                },
                "required": ["name", "path", "level"],
            },
        },
    },
}

_config_validator = Draft7Validator(CONFIG_SCHEMA)


@dataclass
class IssueTracking:
    enable_reminders: bool = True
    reminder_frequency: str = "2h"
    auto_prompt: bool = True
    update_on_push: bool = True
    related_issue_detection: bool = True

    @classmethod
    def from_dict(cls, data: Mapping) -> IssueTracking:
        return cls(
            enable_reminders=data.get("enableReminders", True),
            reminder_frequency=data.get("reminderFrequency", "2h"),
            auto_prompt=data.get("autoPrompt", True),
            update_on_push=data.get("updateOnPush", True),
            related_issue_detection=data.get("relatedIssueDetection", True),
        )

    def to_dict(self) -> dict:
        return {
            "enableReminders": self.enable_reminders,
            "reminderFrequency": self.reminder_frequency,
            "autoPrompt": self.auto_prompt,
            "updateOnPush": self.update_on_push,
            "relatedIssueDetection": self.related_issue_detection,
        }


@dataclass
class CustomRule:
    name: str
    path: str
    level: int
    enabled: bool = True

    def to_dict(self) -> dict:
        return {"name": self.name, "path": self.path, "level": self.level, "enabled": self.enabled}


def _module_entries(raw: Any) -> dict[str, dict]:
    """Normalize the ``modules`` mapping: ``true``/``false`` become ``{"enabled": ...}``."""
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("Ignoring 'modules': expected an object, got %s", type(raw).__name__)
        return {}
    modules: dict[str, dict] = {}
    for name, entry in raw.items():
        if isinstance(entry, bool):
            modules[name] = {"enabled": entry}
        elif entry is None:
            modules[name] = {}
        elif isinstance(entry, Mapping):
            modules[name] = dict(entry)
        else:
            logger.warning("Ignoring module %s: expected an object, got %s", name, type(entry).__name__)
    return modules


@dataclass
class ProjectConfiguration:
    """Parsed ``.vibe-codex.json``."""
    version: str = "1.0.0"
    modules: dict[str, dict] = field(default_factory=lambda: {CORE_MODULE: {"enabled": True}})
    custom_modules: dict[str, str] = field(default_factory=dict)
    issue_tracking: IssueTracking = field(default_factory=IssueTracking)
    custom_rules: list[CustomRule] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping) -> ProjectConfiguration:
        return cls(
            version=data.get("version", "1.0.0"),
            modules=_module_entries(data.get("modules")),
            custom_modules=dict(data.get("customModules") or {}),
            issue_tracking=IssueTracking.from_dict(data.get("issueTracking") or {}),
            custom_rules=[
                CustomRule(
                    name=r["name"],
                    path=r["path"],
                    level=r["level"],
                    enabled=r.get("enabled", True),
                )
                for r in data.get("customRules") or []
            ],
        )

    @classmethod
    def coerce(cls, value: ProjectConfiguration | Mapping) -> ProjectConfiguration:
        if isinstance(value, ProjectConfiguration):
            return value
        return cls.from_dict(value)

    def is_module_enabled(self, name: str) -> bool:
        if name == CORE_MODULE:
            return True
        entry = self.modules.get(name)
        if entry is None:
            return False
        return entry.get("enabled") is not False

    def enabled_module_names(self) -> list[str]:
        """Names to load: core first, then every listed module not disabled."""
        names = [CORE_MODULE]
        names.extend(n for n in self.modules if n != CORE_MODULE and self.is_module_enabled(n))
        return names

    def module_options(self, name: str) -> dict:
        options = (self.modules.get(name) or {}).get("options")
        return dict(options) if isinstance(options, Mapping) else {}

    def set_module_enabled(self, name: str, enabled: bool) -> None:
        entry = self.modules.setdefault(name, {})
        entry["enabled"] = enabled

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "version": self.version,
            "modules": {name: dict(entry) for name, entry in self.modules.items()},
        }
        if self.custom_modules:
            data["customModules"] = dict(self.custom_modules)
        data["issueTracking"] = self.issue_tracking.to_dict()
        if self.custom_rules:
            data["customRules"] = [r.to_dict() for r in self.custom_rules]
        return data


def validate_config_data(data: Any, path: Path) -> None:
    """Raise :class:`InvalidConfigError` listing every schema violation."""
    if not isinstance(data, dict):
        raise InvalidConfigError(path, "must be a JSON object")
    errors = []
    for error in _config_validator.iter_errors(data):
        location = ".".join(str(p) for p in error.absolute_path)
        errors.append(f"{error.message} at {location}" if location else error.message)
    if errors:
        raise InvalidConfigError(path, "; ".join(errors))


def find_config_file(project_dir: str | Path) -> Path | None:
    root = Path(project_dir)
    for filename in CONFIG_FILENAMES:
        candidate = root / filename
        if candidate.is_file():
            return candidate
    return None


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidConfigError(path, f"invalid JSON: {exc.msg} at line {exc.lineno}") from exc


def load_config(project_dir: str | Path) -> ProjectConfiguration:
    """Load the project configuration or return the core-only default."""
    root = Path(project_dir)

    config_path = find_config_file(root)
    if config_path is not None:
        data = _read_json(config_path)
        validate_config_data(data, config_path)
        logger.debug("Loaded configuration from %s", config_path)
        return ProjectConfiguration.from_dict(data)

    package_json = root / "package.json"
    if package_json.is_file():
        try:
            package = json.loads(package_json.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Could not parse %s, using default configuration", package_json)
            package = {}
        embedded = package.get(PACKAGE_JSON_KEY) if isinstance(package, dict) else None
        if embedded is not None:
            validate_config_data(embedded, package_json)
            return ProjectConfiguration.from_dict(embedded)

    return ProjectConfiguration()


def save_config(config: ProjectConfiguration, project_dir: str | Path) -> Path:
    """Write *config* to ``.vibe-codex.json`` in *project_dir*."""
    path = Path(project_dir) / CONFIG_FILENAME
    data = config.to_dict()
    validate_config_data(data, path)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path
