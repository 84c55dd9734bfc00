"""vibe-codex - Composable rule modules and declarative rulesets for development workflows."""

__version__ = "0.1.0"

from vibe_codex.errors import VibeCodexError
from vibe_codex.models import (
    HookEvent,
    RuleDefinition,
    Severity,
    ValidationContext,
    Violation,
)
from vibe_codex.modules.base import ModuleRule, RuleModule
from vibe_codex.modules.loader import ModuleLoader
from vibe_codex.rule_loader import RuleLoader
from vibe_codex.schema import SchemaValidator

__all__ = [
    "HookEvent",
    "ModuleLoader",
    "ModuleRule",
    "RuleDefinition",
    "RuleLoader",
    "RuleModule",
    "SchemaValidator",
    "Severity",
    "ValidationContext",
    "VibeCodexError",
    "Violation",
]
