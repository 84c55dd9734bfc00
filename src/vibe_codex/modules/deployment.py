"""Deployment module: environment documentation, platform config and Docker rules."""
from __future__ import annotations

import json
import re

import yaml

from vibe_codex.models import Severity, ValidationContext, ValidatorResult, Violation
from vibe_codex.modules._helpers import read_text
from vibe_codex.modules.base import ModuleRule, RuleModule

_SENSITIVE_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")
_MULTI_STAGE_RE = re.compile(r"^FROM\s+\S+\s+AS\s+\S+", re.IGNORECASE | re.MULTILINE)
_USER_RE = re.compile(r"^USER\s+(\S+)", re.MULTILINE)
_YAML_CONFIGS = ("docker-compose.yml", "docker-compose.yaml", "serverless.yml", "app.yaml")


def parse_env_example(text: str) -> list[tuple[str, str]]:
    """Return ``(name, line)`` for each assignment in a ``.env.example``."""
    entries = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        entries.append((stripped.split("=", 1)[0].strip(), stripped))
    return entries


class DeploymentModule(RuleModule):
    name = "deployment"
    version = "1.0.0"
    description = "Deployment platform, environment and container rules"
    dependencies = ["core"]
    default_options = {"requireDockerfile": False}

    def load_rules(self) -> None:
        self.register_rule(ModuleRule(
            id="DEPLOY-1",
            name="Environment Variables Documentation",
            description="All required environment variables must be documented",
            category="deployment",
            severity=Severity.WARNING,
            level=4,
            check=self._check_env_documented,
        ))
        self.register_rule(ModuleRule(
            id="DEPLOY-2",
            name="Platform Configuration Files",
            description="Deployment platform configuration must be valid",
            category="deployment",
            severity=Severity.ERROR,
            level=4,
            check=self._check_platform_configs,
        ))
        self.register_rule(ModuleRule(
            id="DEPLOY-3",
            name="Docker Configuration",
            description="Docker setup must follow best practices",
            category="deployment",
            severity=Severity.WARNING,
            level=4,
            check=self._check_docker,
        ))

    def load_validators(self) -> None:
        self.register_validator("build-config", self._validate_build_config)

    def _check_env_documented(self, context: ValidationContext) -> list[Violation]:
        example = read_text(context.project_path / ".env.example")
        if example is None:
            # Missing .env.example is reported by SEC-3.
            return []
        entries = parse_env_example(example)
        violations = []

        readme = read_text(context.project_path / "README.md") or ""
        undocumented = [name for name, _ in entries if name not in readme]
        if undocumented:
            violations.append(self.violation(
                "DEPLOY-1",
                f"Environment variables not documented in README: {', '.join(undocumented)}",
            ))

        lacking = [
            name for name, line in entries
            if any(m in name for m in _SENSITIVE_MARKERS) and "#" not in line
        ]
        if lacking:
            violations.append(self.violation(
                "DEPLOY-1",
                f"Sensitive environment variables lack description: {', '.join(lacking)}",
                file_path=".env.example",
            ))
        return violations

    def _check_platform_configs(self, context: ValidationContext) -> list[Violation]:
        root = context.project_path
        violations = []

        vercel = root / "vercel.json"
        if vercel.is_file():
            try:
                data = json.loads(read_text(vercel) or "")
            except json.JSONDecodeError as exc:
                violations.append(self.violation("DEPLOY-2", f"vercel.json is not valid JSON: {exc.msg}", file_path="vercel.json"))
            else:
                if not isinstance(data, dict) or not ({"builds", "functions"} & data.keys()):
                    violations.append(self.violation("DEPLOY-2", "vercel.json should specify builds or functions", file_path="vercel.json"))

        netlify = read_text(root / "netlify.toml")
        if netlify is not None and "[build]" not in netlify:
            violations.append(self.violation("DEPLOY-2", "netlify.toml should include [build] section", file_path="netlify.toml"))

        procfile = read_text(root / "Procfile")
        if procfile is not None and not re.search(r"^web:", procfile, re.MULTILINE):
            violations.append(self.violation("DEPLOY-2", "Procfile should define web process", file_path="Procfile"))

        for name in _YAML_CONFIGS:
            text = read_text(root / name)
            if text is None:
                continue
            try:
                yaml.safe_load(text)
            except yaml.YAMLError as exc:
                violations.append(self.violation("DEPLOY-2", f"{name} is not valid YAML: {exc}", file_path=name))
        return violations

    def _check_docker(self, context: ValidationContext) -> list[Violation]:
        root = context.project_path
        dockerfile = read_text(root / "Dockerfile")
        if dockerfile is None:
            if self.option(context, "requireDockerfile", False):
                return [self.violation("DEPLOY-3", "Dockerfile not found but Docker deployment is required")]
            return []

        violations = []
        if not _MULTI_STAGE_RE.search(dockerfile):
            violations.append(self.violation(
                "DEPLOY-3", "Consider using multi-stage Docker builds for smaller images", file_path="Dockerfile",
            ))
        users = _USER_RE.findall(dockerfile)
        if not users or users[-1] == "root":
            violations.append(self.violation(
                "DEPLOY-3", "Docker container should run as non-root user", file_path="Dockerfile",
            ))
        if "HEALTHCHECK" not in dockerfile:
            violations.append(self.violation(
                "DEPLOY-3", "Docker image should include HEALTHCHECK instruction", file_path="Dockerfile",
            ))
        if not (root / ".dockerignore").exists():
            violations.append(self.violation("DEPLOY-3", ".dockerignore file missing"))
        return violations

    def _validate_build_config(self, context: ValidationContext) -> ValidatorResult:
        root = context.project_path
        errors = []
        package_text = read_text(root / "package.json")
        if package_text is not None:
            try:
                scripts = json.loads(package_text).get("scripts", {})
            except (json.JSONDecodeError, AttributeError):
                return ValidatorResult(valid=False, message="Unable to read package.json")
            if "build" not in scripts:
                errors.append("No build script found in package.json")
            if "start" not in scripts:
                errors.append("No start script found in package.json")
        elif "[build-system]" not in (read_text(root / "pyproject.toml") or ""):
            errors.append("No build configuration found")
        return ValidatorResult(valid=not errors, errors=errors)
