"""Tests for the evaluation engine."""
from __future__ import annotations

import subprocess

from vibe_codex.engine import Engine, EvaluationResult, build_context
from vibe_codex.models import FileEntry, HookEvent, Severity, ValidationContext, Violation
from vibe_codex.modules import BUILTIN_MODULES
from vibe_codex.modules.base import ModuleRule, RuleModule
from vibe_codex.modules.loader import ModuleLoader


class FlakyModule(RuleModule):
    name = "flaky"

    def load_rules(self) -> None:
        def explode(context):
            raise RuntimeError("rule bug")

        self.register_rule(ModuleRule(
            id="FLAKY-1", name="Explodes", description="", category="quality",
            severity=Severity.ERROR, level=9, check=explode,
        ))
        self.register_rule(ModuleRule(
            id="FLAKY-2", name="Always fires", description="", category="quality",
            severity=Severity.WARNING, level=9,
            check=lambda context: [self.violation("FLAKY-2", "fired")],
        ))
        self.register_rule(ModuleRule(
            id="FLAKY-3", name="Disabled", description="", category="quality",
            severity=Severity.ERROR, level=9, enabled=False,
            check=lambda context: [self.violation("FLAKY-3", "should not fire")],
        ))
        self.register_rule(ModuleRule(
            id="FLAKY-4", name="Declarative", description="", category="quality",
            severity=Severity.ERROR, level=9,
        ))

    def load_hooks(self) -> None:
        def broken(context):
            raise RuntimeError("hook bug")

        self.register_hook(HookEvent.POST_MERGE, lambda context: True)
        self.register_hook(HookEvent.POST_COMMIT, broken)


def _engine(tmp_path) -> Engine:
    loader = ModuleLoader(registry={**BUILTIN_MODULES, "flaky": FlakyModule})
    loader.load_modules({"modules": {"flaky": {"enabled": True}}}, tmp_path)
    return Engine(loader)


class TestEvaluate:
    def test_skips_raising_disabled_and_declarative_rules(self, tmp_path):
        result = _engine(tmp_path).evaluate(ValidationContext(project_path=tmp_path), level=9)
        assert result.rules_evaluated == 2
        assert [v.rule_id for v in result.violations] == ["FLAKY-2"]
        assert not result.is_blocking

    def test_all_levels(self, tmp_path):
        context = ValidationContext(
            project_path=tmp_path,
            files=[FileEntry("app.py", 'secret = "hunter2hunter2"')],
            branch="feature/issue-1-x",
            issue="1",
        )
        result = _engine(tmp_path).evaluate(context)
        assert "SEC-1" in {v.rule_id for v in result.violations}
        assert result.is_blocking

    def test_is_blocking(self):
        result = EvaluationResult(violations=[Violation("X", "m", Severity.ERROR)])
        assert result.is_blocking


class TestRunHooks:
    def test_passing_hook(self, tmp_path):
        assert _engine(tmp_path).run_hooks("post-merge", ValidationContext(project_path=tmp_path))

    def test_raising_hook_fails(self, tmp_path):
        assert not _engine(tmp_path).run_hooks(HookEvent.POST_COMMIT, ValidationContext(project_path=tmp_path))

    def test_no_hooks_passes(self, tmp_path):
        assert _engine(tmp_path).run_hooks(HookEvent.PRE_PUSH, ValidationContext(project_path=tmp_path))


class TestApplyFixes:
    def test_runs_fix_for_violated_rule(self, tmp_path):
        loader = ModuleLoader()
        loader.load_modules({"modules": {"github": {"enabled": True}}}, tmp_path)
        engine = Engine(loader)
        context = ValidationContext(project_path=tmp_path)
        result = engine.evaluate(context, level=4)

        fixed = engine.apply_fixes(context, result.violations)

        assert fixed == ["GH-1"]
        assert (tmp_path / ".github" / "pull_request_template.md").exists()


class TestBuildContext:
    def test_outside_git(self, tmp_path):
        context = build_context(tmp_path)
        assert context.project_path == tmp_path
        assert context.files == []
        assert context.branch is None
        assert context.commits == []

    def test_git_repository(self, tmp_path):
        subprocess.run(["git", "init", "-b", "feature/issue-7-login"], cwd=str(tmp_path), capture_output=True)
        subprocess.run(["git", "config", "user.email", "test@test.com"], cwd=str(tmp_path), capture_output=True)
        subprocess.run(["git", "config", "user.name", "Test"], cwd=str(tmp_path), capture_output=True)
        (tmp_path / "app.py").write_text("x = 1\n")
        subprocess.run(["git", "add", "."], cwd=str(tmp_path), capture_output=True)
        subprocess.run(["git", "commit", "-m", "feat: add app"], cwd=str(tmp_path), capture_output=True)
        (tmp_path / "app.py").write_text("x = 2\n")
        (tmp_path / "new.py").write_text("y = 1\n")

        context = build_context(tmp_path, message="fix: tweak")

        assert context.branch == "feature/issue-7-login"
        assert context.issue == "7"
        assert [c.message for c in context.commits] == ["feat: add app"]
        assert sorted(e.path for e in context.modified_files) == ["app.py", "new.py"]
        assert {e.path: e.content for e in context.files} == {"app.py": "x = 2\n", "new.py": "y = 1\n"}
        assert context.message == "fix: tweak"
