"""Loading of rule definitions and rulesets from the definition store.

The store is a directory with ``definitions/<id>.json`` and
``rulesets/<id>.json`` files. Every file is validated by
:class:`~vibe_codex.schema.SchemaValidator` before it is used, and validated
objects are cached per loader until :meth:`RuleLoader.clear_cache` is called.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from vibe_codex.errors import (
    CircularExtensionError,
    DefinitionError,
    InvalidDefinitionError,
    RuleNotFoundError,
    RulesetNotFoundError,
)
from vibe_codex.models import (
    Category,
    ExpandedRuleset,
    Platform,
    RuleDefinition,
    RulesetConfig,
    RulesetSummary,
    RuleSummary,
)
from vibe_codex.schema import SchemaType, SchemaValidator

logger = logging.getLogger("vibe_codex")

DEFAULT_RULES_DIR = Path(__file__).parent / "rules"


def default_rules_dir() -> Path:
    """Return the rules directory, honouring ``VIBE_CODEX_RULES_DIR``."""
    override = os.environ.get("VIBE_CODEX_RULES_DIR")
    return Path(override) if override else DEFAULT_RULES_DIR


def _unique(*groups: list[str]) -> list[str]:
    """Concatenate *groups*, keeping the first occurrence of each id."""
    seen: set[str] = set()
    result: list[str] = []
    for group in groups:
        for item in group:
            if item not in seen:
                seen.add(item)
                result.append(item)
    return result


@dataclass
class LoaderState:
    """Per-loader caches of validated definitions."""
    rules: dict[str, RuleDefinition] = field(default_factory=dict)
    rulesets: dict[str, ExpandedRuleset] = field(default_factory=dict)


class RuleLoader:
    """Loads and caches rule definitions and rulesets."""

    def __init__(self, rules_dir: str | Path | None = None, validator: SchemaValidator | None = None):
        self.rules_dir = Path(rules_dir) if rules_dir is not None else default_rules_dir()
        self.definitions_dir = self.rules_dir / "definitions"
        self.rulesets_dir = self.rules_dir / "rulesets"
        self.scripts_dir = self.rules_dir / "scripts"
        self.validator = validator or SchemaValidator()
        self._state = LoaderState()

    @property
    def state(self) -> LoaderState:
        return self._state

    # -- rules ---------------------------------------------------------------

    def load_rule(self, rule_id: str) -> RuleDefinition:
        """Load, validate and cache the definition named *rule_id*."""
        cached = self._state.rules.get(rule_id)
        if cached is not None:
            return cached

        path = self.definitions_dir / f"{rule_id}.json"
        if not path.is_file():
            raise RuleNotFoundError(rule_id)

        raw = self._read_json(path, "rule", rule_id)
        validation = self.validator.validate(raw, SchemaType.RULE)
        if not validation.valid:
            raise InvalidDefinitionError("rule", rule_id, validation.error or "")

        rule = RuleDefinition.from_dict(validation.value)
        self._state.rules[rule_id] = rule
        logger.debug("Loaded rule %s", rule_id)
        return rule

    def load_rules(self, rule_ids: list[str]) -> list[RuleDefinition]:
        """Load several rules; the result follows the order of *rule_ids*."""
        return [self.load_rule(rule_id) for rule_id in rule_ids]

    # -- rulesets ------------------------------------------------------------

    def load_ruleset(self, ruleset_id: str) -> ExpandedRuleset:
        """Load a ruleset with its ``extends`` chain resolved.

        Repeated calls return the same cached object until the cache is
        cleared. A ruleset that extends itself, directly or through its
        parents, raises :class:`CircularExtensionError`.
        """
        return self._expand_ruleset(ruleset_id, ())

    def _expand_ruleset(self, ruleset_id: str, expanding: tuple[str, ...]) -> ExpandedRuleset:
        cached = self._state.rulesets.get(ruleset_id)
        if cached is not None:
            return cached
        if ruleset_id in expanding:
            start = expanding.index(ruleset_id)
            raise CircularExtensionError([*expanding[start:], ruleset_id])

        path = self.rulesets_dir / f"{ruleset_id}.json"
        if not path.is_file():
            raise RulesetNotFoundError(ruleset_id)

        raw = self._read_json(path, "ruleset", ruleset_id)
        validation = self.validator.validate(raw, SchemaType.RULESET)
        if not validation.valid:
            raise InvalidDefinitionError("ruleset", ruleset_id, validation.error or "")
        value = validation.value

        chain = (*expanding, ruleset_id)
        parents = [self._expand_ruleset(parent_id, chain) for parent_id in value["extends"]]

        rules = _unique(*(p.rules for p in parents), value["rules"])
        hooks = _unique(*(p.hooks for p in parents), value["hooks"])
        if not rules:
            raise InvalidDefinitionError("ruleset", ruleset_id, "no rules after resolving extends")

        overrides: dict[str, dict] = {}
        for source in [*(p.overrides for p in parents), value["overrides"]]:
            for rule_id, override in source.items():
                overrides[rule_id] = {**overrides.get(rule_id, {}), **override}

        loaded_rules = self.load_rules(rules)

        ruleset = ExpandedRuleset(
            id=value["id"],
            name=value["name"],
            description=value.get("description"),
            extends=list(value["extends"]),
            rules=rules,
            hooks=hooks,
            config=RulesetConfig.from_dict(value["config"]),
            overrides=overrides,
            loaded_rules=loaded_rules,
            version=value["version"],
        )
        self._state.rulesets[ruleset_id] = ruleset
        logger.debug("Loaded ruleset %s (%d rules)", ruleset_id, len(rules))
        return ruleset

    # -- catalog -------------------------------------------------------------

    def list_rules(self) -> list[RuleSummary]:
        """Summarize every valid definition, skipping files that fail to load."""
        summaries: list[RuleSummary] = []
        for path in self._json_files(self.definitions_dir):
            try:
                rule = self.load_rule(path.stem)
            except DefinitionError as exc:
                logger.warning("Skipping invalid rule %s: %s", path.name, exc)
                continue
            summaries.append(RuleSummary.from_definition(rule))
        return summaries

    def list_rulesets(self) -> list[RulesetSummary]:
        """Summarize every valid ruleset file without expanding it."""
        summaries: list[RulesetSummary] = []
        for path in self._json_files(self.rulesets_dir):
            try:
                raw = self._read_json(path, "ruleset", path.stem)
            except DefinitionError as exc:
                logger.warning("Skipping invalid ruleset %s: %s", path.name, exc)
                continue
            validation = self.validator.validate(raw, SchemaType.RULESET)
            if not validation.valid:
                logger.warning("Skipping invalid ruleset %s: %s", path.name, validation.error)
                continue
            value = validation.value
            summaries.append(
                RulesetSummary(
                    id=value["id"],
                    name=value["name"],
                    description=value.get("description"),
                    rule_count=len(value["rules"]),
                    extends=list(value["extends"]),
                )
            )
        return summaries

    def get_rules_by_platform(self, platform: Platform | str) -> list[RuleSummary]:
        value = platform.value if isinstance(platform, Platform) else platform
        return [
            r for r in self.list_rules()
            if value in r.platforms or Platform.ALL.value in r.platforms
        ]

    def get_rules_by_category(self, category: Category | str) -> list[RuleSummary]:
        value = category.value if isinstance(category, Category) else category
        return [r for r in self.list_rules() if r.category == value]

    def get_script_path(self, rule: RuleDefinition, platform: Platform | str) -> Path | None:
        """Return the script implementing *rule* on *platform*, if it declares one."""
        key = platform.value if isinstance(platform, Platform) else platform
        impl = rule.implementation.get(key)
        if impl is None or not impl.script:
            return None
        return self.scripts_dir / impl.script

    def clear_cache(self) -> None:
        """Drop every cached rule and ruleset in one step."""
        self._state = LoaderState()

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _json_files(directory: Path) -> list[Path]:
        if not directory.is_dir():
            logger.debug("Definition directory %s does not exist", directory)
            return []
        return sorted(p for p in directory.iterdir() if p.suffix == ".json" and p.is_file())

    @staticmethod
    def _read_json(path: Path, kind: str, definition_id: str):
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidDefinitionError(kind, definition_id, f"failed to read {path.name}: {exc}") from exc
