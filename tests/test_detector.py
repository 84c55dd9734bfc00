"""Tests for module auto-detection."""
from __future__ import annotations

import json

from vibe_codex.detector import detect_modules


class TestDetectModules:
    def test_empty_project_is_core_only(self, tmp_path):
        assert detect_modules(tmp_path) == ["core"]

    def test_python_tests(self, tmp_path):
        (tmp_path / "tests").mkdir()
        assert detect_modules(tmp_path) == ["core", "testing"]

    def test_js_test_framework(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"devDependencies": {"vitest": "^1.0"}}))
        assert "testing" in detect_modules(tmp_path)

    def test_broken_package_json(self, tmp_path):
        (tmp_path / "package.json").write_text("{")
        assert detect_modules(tmp_path) == ["core"]

    def test_full_project(self, tmp_path):
        (tmp_path / "tests").mkdir()
        (tmp_path / ".github").mkdir()
        (tmp_path / "Dockerfile").write_text("FROM python:3.12\n")
        (tmp_path / "README.md").write_text("# App\n")
        assert detect_modules(tmp_path) == ["core", "testing", "github", "deployment", "documentation"]

    def test_workflows_enable_github_workflow(self, tmp_path):
        (tmp_path / ".github" / "workflows").mkdir(parents=True)
        assert detect_modules(tmp_path) == ["core", "github", "github-workflow"]
