"""Built-in module registry."""
from __future__ import annotations

from vibe_codex.modules.base import ModuleInitError, ModuleRule, RuleModule
from vibe_codex.modules.core import CoreModule
from vibe_codex.modules.deployment import DeploymentModule
from vibe_codex.modules.documentation import DocumentationModule
from vibe_codex.modules.github import GitHubModule
from vibe_codex.modules.github_workflow import GitHubWorkflowModule
from vibe_codex.modules.patterns import PatternsModule
from vibe_codex.modules.testing import TestingModule

BUILTIN_MODULES: dict[str, type[RuleModule]] = {
    "core": CoreModule,
    "testing": TestingModule,
    "github": GitHubModule,
    "github-workflow": GitHubWorkflowModule,
    "deployment": DeploymentModule,
    "documentation": DocumentationModule,
    "patterns": PatternsModule,
}

__all__ = [
    "BUILTIN_MODULES",
    "CoreModule",
    "DeploymentModule",
    "DocumentationModule",
    "GitHubModule",
    "GitHubWorkflowModule",
    "ModuleInitError",
    "ModuleRule",
    "PatternsModule",
    "RuleModule",
    "TestingModule",
]
