"""Schema validation for rule and ruleset definition files.

Definitions are validated with :mod:`jsonschema`. The validator class is
extended so that ``default`` values declared in the schema are written into
the instance while it is validated, which lets loaders rely on optional
fields always being present.
"""
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator, validators

from vibe_codex.errors import DefinitionStoreError
from vibe_codex.models import Category, DefinitionSeverity, Platform, RuleType

logger = logging.getLogger("vibe_codex")

# $ would also accept a trailing newline.
ID_PATTERN = r"^[a-z0-9-]+\Z"


class SchemaType(Enum):
    RULE = "rule"
    RULESET = "ruleset"


_STRING_LIST = {"type": "array", "items": {"type": "string"}}

_IMPLEMENTATION_SCHEMA = {
    "type": "object",
    "properties": {
        "hooks": _STRING_LIST,
        "script": {"type": "string"},
        "command": {"type": "string"},
        "validator": {"type": "string"},
        "config": {"type": "object"},
        "files": _STRING_LIST,
    },
}

RULE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "vibe-codex rule definition",
    "type": "object",
    "properties": {
        "version": {"type": "string", "enum": ["1.0"], "default": "1.0"},
        "id": {"type": "string", "pattern": ID_PATTERN},
        "type": {"type": "string", "enum": [t.value for t in RuleType]},
        "platforms": {
            "type": "array",
            "items": {"type": "string", "enum": [p.value for p in Platform]},
            "minItems": 1,
            "uniqueItems": True,
        },
        "compatibility": {
            "type": "object",
            "properties": {
                "os": {
                    "type": "array",
                    "items": {"type": "string", "enum": ["windows", "linux", "macos", "all"]},
                },
                "shells": {
                    "type": "array",
                    "items": {"type": "string", "enum": ["bash", "powershell", "cmd", "zsh", "fish"]},
                },
                "requirements": _STRING_LIST,
            },
        },
        "metadata": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "description": {"type": "string"},
                "category": {"type": "string", "enum": [c.value for c in Category]},
                "severity": {
                    "type": "string",
                    "enum": [s.value for s in DefinitionSeverity],
                    "default": DefinitionSeverity.MEDIUM.value,
                },
                "tags": _STRING_LIST,
                "enabled_by_default": {"type": "boolean", "default": False},
            },
            "required": ["name", "description", "category"],
        },
        "implementation": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": _IMPLEMENTATION_SCHEMA,
        },
        "options": {"type": "object"},
    },
    "required": ["id", "type", "metadata", "implementation"],
}

RULESET_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "vibe-codex ruleset",
    "type": "object",
    # "properties" must stay ahead of "if" so defaults exist when the
    # conditional is evaluated.
    "properties": {
        "version": {"type": "string", "enum": ["1.0"], "default": "1.0"},
        "id": {"type": "string", "pattern": ID_PATTERN},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "extends": {"type": "array", "items": {"type": "string", "pattern": ID_PATTERN}, "default": []},
        "rules": {"type": "array", "items": {"type": "string"}, "default": []},
        "hooks": {"type": "array", "items": {"type": "string"}, "default": []},
        "config": {
            "type": "object",
            "properties": {
                "failFast": {"type": "boolean", "default": False},
                "parallel": {"type": "boolean", "default": True},
                "timeout": {"type": "number", "minimum": 0, "default": 30000},
            },
            "default": {},
        },
        "overrides": {
            "type": "object",
            "additionalProperties": {"type": "object"},
            "default": {},
        },
    },
    "required": ["id", "name"],
    # A standalone ruleset needs at least one rule of its own.
    "if": {
        "properties": {"extends": {"type": "array", "minItems": 1}},
        "required": ["extends"],
    },
    "else": {"properties": {"rules": {"minItems": 1}}},
}

SCHEMAS: dict[SchemaType, dict[str, Any]] = {
    SchemaType.RULE: RULE_SCHEMA,
    SchemaType.RULESET: RULESET_SCHEMA,
}


def _extend_with_default(validator_class):
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if validator.is_type(instance, "object"):
            for name, subschema in properties.items():
                if "default" in subschema:
                    instance.setdefault(name, copy.deepcopy(subschema["default"]))
        yield from validate_properties(validator, properties, instance, schema)

    return validators.extend(validator_class, {"properties": set_defaults})


DefaultingValidator = _extend_with_default(Draft202012Validator)


def format_schema_error(error: Any) -> str:
    path = ".".join(str(part) for part in error.absolute_path)
    return f"{error.message} at {path}" if path else str(error.message)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one definition. Failures are data, not exceptions."""
    valid: bool
    value: dict | None = None
    error: str | None = None
    file: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"valid": self.valid}
        if self.value is not None:
            data["value"] = self.value
        if self.error is not None:
            data["error"] = self.error
        if self.file is not None:
            data["file"] = self.file
        return data


@dataclass(frozen=True)
class InvalidFile:
    file: str
    error: str


@dataclass
class DirectoryReport:
    valid: list[str] = field(default_factory=list)
    invalid: list[InvalidFile] = field(default_factory=list)
    total: int = 0

    @property
    def all_valid(self) -> bool:
        return not self.invalid


class SchemaValidator:
    """Validates raw definition objects and applies schema defaults."""

    def __init__(self) -> None:
        self._validators = {
            schema_type: DefaultingValidator(schema) for schema_type, schema in SCHEMAS.items()
        }

    @staticmethod
    def _resolve_type(schema_type: SchemaType | str) -> SchemaType | None:
        if isinstance(schema_type, SchemaType):
            return schema_type
        try:
            return SchemaType(schema_type)
        except ValueError:
            return None

    def validate(self, definition: Any, schema_type: SchemaType | str = SchemaType.RULE) -> ValidationResult:
        """Validate *definition*, reporting every violated constraint at once."""
        resolved = self._resolve_type(schema_type)
        if resolved is None:
            return ValidationResult(valid=False, error=f"Unknown schema type: {schema_type}")

        # Defaults are written into the instance, never into the caller's object.
        instance = copy.deepcopy(definition)
        errors = [format_schema_error(e) for e in self._validators[resolved].iter_errors(instance)]
        if errors:
            return ValidationResult(valid=False, error="; ".join(errors))
        return ValidationResult(valid=True, value=instance)

    def validate_file(self, path: str | Path, schema_type: SchemaType | str = SchemaType.RULE) -> ValidationResult:
        path = Path(path)
        try:
            content = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            return ValidationResult(valid=False, error=f"Failed to read file: {exc}", file=str(path))

        result = self.validate(content, schema_type)
        if not result.valid:
            result = replace(result, file=str(path))
        return result

    def validate_directory(
        self, directory: str | Path, schema_type: SchemaType | str = SchemaType.RULE
    ) -> DirectoryReport:
        """Validate every ``*.json`` file in *directory* without stopping on failures."""
        root = Path(directory)
        try:
            files = sorted(p for p in root.iterdir() if p.suffix == ".json" and p.is_file())
        except OSError as exc:
            raise DefinitionStoreError(root, str(exc)) from exc

        report = DirectoryReport()
        for path in files:
            result = self.validate_file(path, schema_type)
            report.total += 1
            if result.valid:
                report.valid.append(path.name)
            else:
                logger.debug("Invalid definition %s: %s", path, result.error)
                report.invalid.append(InvalidFile(file=path.name, error=result.error or ""))
        return report

    def json_schema(self, schema_type: SchemaType | str = SchemaType.RULE) -> dict[str, Any]:
        resolved = self._resolve_type(schema_type)
        if resolved is None:
            raise ValueError(f"Unknown schema type: {schema_type}")
        return copy.deepcopy(SCHEMAS[resolved])
