"""Tests for module loading and dependency validation."""
from __future__ import annotations

import json
import sys

import pytest

from vibe_codex.config import ProjectConfiguration
from vibe_codex.errors import ModuleDependencyError
from vibe_codex.models import HookEvent, Severity, ValidationContext, ValidatorResult
from vibe_codex.modules import BUILTIN_MODULES
from vibe_codex.modules.base import ModuleRule, RuleModule
from vibe_codex.modules.loader import (
    LoaderStatus,
    ModuleLoader,
    Skipped,
    validate_dependencies,
)
from vibe_codex.rule_loader import RuleLoader


class ExplodingModule(RuleModule):
    name = "exploding"

    def load_rules(self) -> None:
        raise RuntimeError("boom")


class NeedsGhostModule(RuleModule):
    name = "needs-ghost"
    dependencies = ["ghost"]

    def load_rules(self) -> None:
        pass


class RaisingValidatorModule(RuleModule):
    name = "raising"

    def load_rules(self) -> None:
        pass

    def load_validators(self) -> None:
        def broken(context):
            raise ValueError("bad validator")

        self.register_validator("broken", broken)
        self.register_validator("ok", lambda context: ValidatorResult(valid=True))


CUSTOM_MODULE_SOURCE = """\
from vibe_codex.models import Severity
from vibe_codex.modules.base import ModuleRule, RuleModule


class TeamModule(RuleModule):
    name = "team"
    description = "Team conventions"
    default_options = {"max": 1}

    def load_rules(self):
        self.register_rule(ModuleRule(
            id="TEAM-1",
            name="Team rule",
            description="Always passes",
            category="workflow",
            severity=Severity.INFO,
            level=5,
            check=lambda context: [],
        ))
"""


class TestLoadModules:
    def test_enabled_modules_only(self, tmp_path):
        loader = ModuleLoader()
        modules = loader.load_modules(
            {"modules": {"core": {"enabled": True}, "testing": {"enabled": True}, "github": {"enabled": False}}},
            tmp_path,
        )
        assert set(modules) == {"core", "testing"}
        assert loader.get_module_info("github") is None
        assert loader.status == LoaderStatus.READY

    def test_core_always_loaded(self, tmp_path):
        loader = ModuleLoader()
        modules = loader.load_modules({"modules": {"core": {"enabled": False}}}, tmp_path)
        assert list(modules) == ["core"]

    def test_empty_config_loads_core(self, tmp_path):
        assert list(ModuleLoader().load_modules({}, tmp_path)) == ["core"]

    def test_accepts_project_configuration(self, tmp_path):
        config = ProjectConfiguration.from_dict({"modules": {"documentation": {"enabled": True}}})
        modules = ModuleLoader().load_modules(config, tmp_path)
        assert list(modules) == ["core", "documentation"]

    def test_enabled_flag_defaults_to_true(self, tmp_path):
        modules = ModuleLoader().load_modules({"modules": {"testing": {}}}, tmp_path)
        assert "testing" in modules

    def test_project_options_shallow_merge(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules(
            {"modules": {"testing": {"enabled": True, "options": {"coverageThreshold": 95}}}},
            tmp_path,
        )
        testing = loader.get_module("testing")
        assert testing.options["coverageThreshold"] == 95
        assert "testCommand" in testing.options
        assert BUILTIN_MODULES["testing"].default_options["coverageThreshold"] == 80

    def test_unknown_module_is_skipped(self, tmp_path):
        loader = ModuleLoader()
        modules = loader.load_modules({"modules": {"nonexistent": {"enabled": True}}}, tmp_path)
        assert list(modules) == ["core"]
        assert [s.name for s in loader.skipped] == ["nonexistent"]

    def test_failing_module_is_skipped(self, tmp_path):
        registry = {**BUILTIN_MODULES, "exploding": ExplodingModule}
        loader = ModuleLoader(registry=registry)
        modules = loader.load_modules({"modules": {"exploding": {"enabled": True}}}, tmp_path)
        assert "exploding" not in modules
        assert isinstance(loader.skipped[0], Skipped)
        assert "boom" in loader.skipped[0].reason

    def test_dependency_errors_recorded_not_unwound(self, tmp_path):
        registry = {**BUILTIN_MODULES, "needs-ghost": NeedsGhostModule}
        loader = ModuleLoader(registry=registry)
        modules = loader.load_modules({"modules": {"needs-ghost": {"enabled": True}}}, tmp_path)
        assert "needs-ghost" in modules
        assert loader.dependency_errors == ["Module 'needs-ghost' requires missing module 'ghost'"]
        with pytest.raises(ModuleDependencyError) as exc_info:
            loader.ensure_dependencies()
        assert exc_info.value.errors == loader.dependency_errors

    def test_boolean_entries_are_coerced(self, tmp_path):
        loader = ModuleLoader()
        modules = loader.load_modules({"modules": {"testing": True, "github": False}}, tmp_path)
        assert list(modules) == ["core", "testing"]
        assert loader.skipped == []

    def test_malformed_entries_do_not_raise(self, tmp_path):
        loader = ModuleLoader()
        modules = loader.load_modules(
            {"modules": {"testing": 3, "github": {"options": "strict"}}},
            tmp_path,
        )
        assert list(modules) == ["core", "github"]
        assert modules["github"].options == BUILTIN_MODULES["github"].default_options
        assert loader.status == LoaderStatus.READY

    def test_dependency_chain_through_non_core_module(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"github-workflow": {"enabled": True}}}, tmp_path)
        assert "github-workflow" in loader.modules
        assert loader.dependency_errors == ["Module 'github-workflow' requires missing module 'github'"]

        loader.reload({"modules": {"github": {}, "github-workflow": {}}})
        assert list(loader.modules) == ["core", "github", "github-workflow"]
        assert loader.dependency_errors == []

    def test_all_builtins_satisfy_dependencies(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {name: {"enabled": True} for name in BUILTIN_MODULES}}, tmp_path)
        assert list(loader.modules) == list(BUILTIN_MODULES)
        assert loader.dependency_errors == []
        loader.ensure_dependencies()

    def test_status_starts_uninitialized(self):
        assert ModuleLoader().status == LoaderStatus.UNINITIALIZED


class TestCustomModules:
    def test_loads_from_project_relative_path(self, tmp_path):
        (tmp_path / "team_module.py").write_text(CUSTOM_MODULE_SOURCE)
        loader = ModuleLoader()
        modules = loader.load_modules(
            {
                "modules": {"team": {"enabled": True, "options": {"max": 3}}},
                "customModules": {"team": "team_module.py"},
            },
            tmp_path,
        )
        assert "team" in modules
        assert modules["team"].options == {"max": 3}
        assert [r.id for r in loader.get_rules(level=5)] == ["TEAM-1"]
        assert loader.get_rules(level=5)[0].module == "team"

    def test_module_instance_export(self, tmp_path):
        (tmp_path / "inst.py").write_text(
            CUSTOM_MODULE_SOURCE + "\n\nMODULE = TeamModule({'max': 2})\n"
        )
        loader = ModuleLoader()
        modules = loader.load_modules(
            {"modules": {"inst": {"enabled": True}}, "customModules": {"inst": "inst.py"}},
            tmp_path,
        )
        assert modules["inst"].options == {"max": 2}

    def test_missing_custom_file_is_skipped(self, tmp_path):
        loader = ModuleLoader()
        modules = loader.load_modules(
            {"modules": {"team": {"enabled": True}}, "customModules": {"team": "missing.py"}},
            tmp_path,
        )
        assert "team" not in modules
        assert "not found" in loader.skipped[0].reason

    def test_syntax_error_is_skipped(self, tmp_path):
        (tmp_path / "broken.py").write_text("def oops(:\n")
        loader = ModuleLoader()
        modules = loader.load_modules(
            {"modules": {"broken": {"enabled": True}}, "customModules": {"broken": "broken.py"}},
            tmp_path,
        )
        assert list(modules) == ["core"]
        assert "vibe_codex_custom.broken" not in sys.modules

    def test_file_without_module_is_skipped(self, tmp_path):
        (tmp_path / "plain.py").write_text("VALUE = 1\n")
        loader = ModuleLoader()
        loader.load_modules(
            {"modules": {"plain": {"enabled": True}}, "customModules": {"plain": "plain.py"}},
            tmp_path,
        )
        assert "defines no RuleModule" in loader.skipped[0].reason


class TestDefinitionBackedRules:
    def test_rulesets_option_registers_definitions(self, tmp_path):
        loader = ModuleLoader(rule_loader=RuleLoader())
        loader.load_modules(
            {"modules": {"core": {"enabled": True, "options": {"rulesets": ["minimal"]}}}},
            tmp_path,
        )
        core = loader.get_module("core")
        ids = [r.id for r in core.rules]
        assert ids[-2:] == ["no-secrets", "env-file-protection"]
        secrets = core.get_rule("no-secrets")
        assert secrets.check is None
        assert secrets.definition is not None
        assert secrets.severity == Severity.ERROR
        assert secrets.module == "core"

    def test_ruleset_overrides_apply(self, tmp_path):
        loader = ModuleLoader(rule_loader=RuleLoader())
        loader.load_modules(
            {"modules": {"core": {"enabled": True, "options": {"rulesets": ["full"]}}}},
            tmp_path,
        )
        coverage = loader.get_module("core").get_rule("test-coverage")
        assert coverage.options["threshold"] == 90

    def test_unknown_ruleset_skips_module(self, tmp_path):
        loader = ModuleLoader(rule_loader=RuleLoader())
        modules = loader.load_modules(
            {"modules": {"testing": {"enabled": True, "options": {"rulesets": ["ghost"]}}}},
            tmp_path,
        )
        assert "testing" not in modules
        assert "Ruleset not found: ghost" in loader.skipped[0].reason

    @pytest.mark.parametrize(
        "override, expected",
        [("high", Severity.ERROR), ("low", Severity.INFO), ("warning", Severity.WARNING)],
    )
    def test_override_severity_vocabularies(self, tmp_path, override, expected):
        rules = tmp_path / "rules"
        (rules / "definitions").mkdir(parents=True)
        (rules / "rulesets").mkdir()
        (rules / "definitions" / "r1.json").write_text(json.dumps({
            "id": "r1",
            "type": "rule",
            "metadata": {"name": "R1", "description": "First", "category": "quality", "severity": "low"},
            "implementation": {"git": {"hooks": ["pre-commit"]}},
        }))
        (rules / "rulesets" / "strict.json").write_text(json.dumps({
            "id": "strict",
            "name": "Strict",
            "rules": ["r1"],
            "overrides": {"r1": {"severity": override}},
        }))
        loader = ModuleLoader(rule_loader=RuleLoader(rules))
        modules = loader.load_modules(
            {"modules": {"testing": {"enabled": True, "options": {"rulesets": ["strict"]}}}},
            tmp_path,
        )
        assert loader.skipped == []
        assert modules["testing"].get_rule("r1").severity == expected


class TestValidateDependencies:
    def test_circular(self):
        report = validate_dependencies({"a": {"dependencies": ["b"]}, "b": {"dependencies": ["a"]}})
        assert not report.valid
        assert any("Circular" in e for e in report.errors)

    def test_missing(self):
        report = validate_dependencies({"a": {"dependencies": ["missing"]}})
        assert not report.valid
        assert any("missing" in e for e in report.errors)

    def test_valid_graph(self):
        report = validate_dependencies({
            "core": {"dependencies": []},
            "github": {"dependencies": ["core"]},
            "deployment": {"dependencies": ["core"]},
        })
        assert report.valid
        assert report.errors == []

    def test_self_dependency(self):
        report = validate_dependencies({"a": {"dependencies": ["a"]}})
        assert report.errors == ["Circular dependency detected: a -> a"]

    def test_reports_independent_cycles(self):
        report = validate_dependencies({
            "a": {"dependencies": ["b"]},
            "b": {"dependencies": ["a"]},
            "c": {"dependencies": ["d"]},
            "d": {"dependencies": ["c"]},
        })
        cycles = [e for e in report.errors if "Circular" in e]
        assert len(cycles) == 2
        assert "a -> b -> a" in cycles[0]
        assert "c -> d -> c" in cycles[1]

    def test_missing_and_circular_both_reported(self):
        report = validate_dependencies({
            "a": {"dependencies": ["b", "ghost"]},
            "b": {"dependencies": ["a"]},
        })
        assert any("ghost" in e for e in report.errors)
        assert any("Circular" in e for e in report.errors)

    def test_accepts_module_objects(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"github": {"enabled": True}}}, tmp_path)
        assert loader.validate_dependencies().valid
        report = loader.validate_dependencies({"github": loader.get_module("github")})
        assert report.errors == ["Module 'github' requires missing module 'core'"]


class TestAggregation:
    def test_get_rules_filters(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"testing": {"enabled": True}}}, tmp_path)

        assert {r.id for r in loader.get_rules(level=1)} == {"SEC-1", "SEC-2", "SEC-3"}
        assert {r.id for r in loader.get_rules(category="testing")} == {"TEST-1", "TEST-2", "TEST-3"}
        errors = loader.get_rules(severity="error")
        assert all(r.severity == Severity.ERROR for r in errors)
        assert "TEST-1" in {r.id for r in errors}
        assert loader.get_rules(level=1, severity=Severity.WARNING)[0].id == "SEC-3"

    def test_get_hooks(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"testing": {"enabled": True}}}, tmp_path)
        assert len(loader.get_hooks("pre-commit")) == 1
        assert len(loader.get_hooks(HookEvent.PRE_PUSH)) == 1
        assert loader.get_hooks("post-merge") == []
        assert loader.get_hooks("no-such-event") == []

    def test_get_validators_are_namespaced(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"testing": {"enabled": True}}}, tmp_path)
        assert set(loader.get_validators()) == {
            "core.environment",
            "core.git-workflow",
            "testing.test-framework",
            "testing.coverage-config",
        }

    def test_run_validators_survives_raising_validator(self, tmp_path):
        registry = {**BUILTIN_MODULES, "raising": RaisingValidatorModule}
        loader = ModuleLoader(registry=registry)
        loader.load_modules({"modules": {"raising": {"enabled": True}}}, tmp_path)

        results = loader.run_validators(ValidationContext(project_path=tmp_path))

        assert results["raising.ok"].valid
        assert not results["raising.broken"].valid
        assert "bad validator" in results["raising.broken"].message
        assert results["core.git-workflow"].errors == ["Not a git repository"]


class TestModuleInfo:
    def test_info_for_loaded_module(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({}, tmp_path)
        info = loader.get_module_info("core")
        assert info.name == "core"
        assert info.version == "1.0.0"
        assert info.rule_count == 8
        assert info.hook_count == 2
        assert info.to_dict()["rule_count"] == 8

    def test_unknown_module_returns_none(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({}, tmp_path)
        assert loader.get_module_info("nope") is None
        assert loader.get_module("nope") is None


class TestReload:
    def test_reload_adds_modules(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"core": {"enabled": True}}}, tmp_path)
        before = len(loader.get_loaded_modules())

        loader.reload({"modules": {"core": {"enabled": True}, "testing": {"enabled": True}}})

        assert len(loader.get_loaded_modules()) > before
        assert "testing" in [m.name for m in loader.get_loaded_modules()]
        assert loader.project_path == tmp_path
        assert loader.status == LoaderStatus.READY

    def test_reload_creates_fresh_instances(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({}, tmp_path)
        old_core = loader.get_module("core")
        loader.reload({})
        assert loader.get_module("core") is not old_core

    def test_reload_drops_disabled_modules(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"testing": {"enabled": True}}}, tmp_path)
        loader.reload({"modules": {"testing": {"enabled": False}}})
        assert list(loader.modules) == ["core"]
