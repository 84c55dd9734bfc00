"""Project auto-detection for ``vibe-codex init``."""
from __future__ import annotations

import json
import logging
from pathlib import Path

from vibe_codex.modules import BUILTIN_MODULES

logger = logging.getLogger("vibe_codex")

_JS_TEST_FRAMEWORKS = {"jest", "mocha", "vitest", "ava", "tape"}
_DEPLOY_MARKERS = (
    "Dockerfile", "docker-compose.yml", "vercel.json", "netlify.toml", "Procfile", "serverless.yml",
)


def detect_modules(project_dir: str | Path) -> list[str]:
    """Detect which modules fit a project by scanning for well-known files.

    Always starts with ``core`` and only returns names registered in
    ``BUILTIN_MODULES``.
    """
    root = Path(project_dir)
    modules = ["core"]

    if _has_tests(root):
        modules.append("testing")
    if (root / ".github").is_dir():
        modules.append("github")
    if (root / ".github" / "workflows").is_dir():
        modules.append("github-workflow")
    if any((root / marker).exists() for marker in _DEPLOY_MARKERS):
        modules.append("deployment")
    if (root / "docs").is_dir() or (root / "README.md").exists():
        modules.append("documentation")

    return [m for m in modules if m in BUILTIN_MODULES]


def _has_tests(root: Path) -> bool:
    if (root / "tests").is_dir() or (root / "test").is_dir():
        return True
    if (root / "pytest.ini").exists() or (root / "conftest.py").exists():
        return True
    return bool(_js_test_frameworks(root))


def _js_test_frameworks(root: Path) -> set[str]:
    package_json = root / "package.json"
    if not package_json.exists():
        return set()
    try:
        data = json.loads(package_json.read_text())
        deps = {**data.get("dependencies", {}), **data.get("devDependencies", {})}
    except (json.JSONDecodeError, OSError, AttributeError):
        logger.debug("Could not read %s", package_json, exc_info=True)
        return set()
    return _JS_TEST_FRAMEWORKS & set(deps)
