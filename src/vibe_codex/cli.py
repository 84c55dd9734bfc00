"""vibe-codex CLI entry point."""
from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click

from vibe_codex.config import CONFIG_FILENAME, CORE_MODULE, ProjectConfiguration, find_config_file, load_config, save_config
from vibe_codex.detector import detect_modules
from vibe_codex.engine import Engine, build_context
from vibe_codex.errors import VibeCodexError
from vibe_codex.models import Category, HookEvent, Platform
from vibe_codex.modules import BUILTIN_MODULES
from vibe_codex.modules.loader import ModuleLoader
from vibe_codex.reporter import Reporter
from vibe_codex.rule_loader import RuleLoader
from vibe_codex.schema import SchemaType, SchemaValidator

logger = logging.getLogger("vibe_codex")

_project_dir_option = click.option("--project-dir", default=None, help="Project directory")
_rules_dir_option = click.option(
    "--rules-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Rules directory (defaults to $VIBE_CODEX_RULES_DIR or the bundled rules)",
)


def _configure_logging() -> None:
    level = os.environ.get("VIBE_CODEX_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load(project_dir: str, rules_dir: str | None = None) -> tuple[ProjectConfiguration, ModuleLoader]:
    """Load the project config and its modules, exiting on config or dependency errors."""
    try:
        config = load_config(project_dir)
    except VibeCodexError as exc:
        _fail(str(exc))
    loader = ModuleLoader(rule_loader=RuleLoader(rules_dir))
    loader.load_modules(config, project_dir)
    for skipped in loader.skipped:
        click.echo(f"Warning: module '{skipped.name}' skipped: {skipped.reason}", err=True)
    if loader.dependency_errors:
        for error in loader.dependency_errors:
            click.echo(f"Error: {error}", err=True)
        sys.exit(1)
    return config, loader


@click.group()
@click.version_option(package_name="vibe-codex")
def main():
    """vibe-codex - Composable rule modules and declarative rulesets."""
    _configure_logging()


@main.command()
@_project_dir_option
@click.option("--level", type=int, default=None, help="Only evaluate rules of this level")
@click.option("--fix", is_flag=True, help="Apply automatic fixes where rules provide one")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON output")
def validate(project_dir: str | None, level: int | None, fix: bool, as_json: bool):
    """Evaluate the project against every enabled module."""
    project_dir = project_dir or os.getcwd()
    config, loader = _load(project_dir)

    context = build_context(project_dir, config)
    engine = Engine(loader)
    result = engine.evaluate(context, level=level)

    if fix and result.violations:
        fixed = engine.apply_fixes(context, result.violations)
        for rule_id in fixed:
            click.echo(f"Fixed {rule_id}", err=True)
        if fixed:
            result = engine.evaluate(context, level=level)

    reporter = Reporter(
        violations=result.violations,
        rules_evaluated=result.rules_evaluated,
        validator_results=loader.run_validators(context),
    )
    click.echo(reporter.format_json() if as_json else reporter.format_text())
    sys.exit(reporter.exit_code())


@main.command()
@click.argument("event", type=click.Choice([e.value for e in HookEvent]))
@click.argument("message_file", required=False, type=click.Path(dir_okay=False))
@_project_dir_option
def hook(event: str, message_file: str | None, project_dir: str | None):
    """Run module hooks for a git hook EVENT."""
    project_dir = project_dir or os.getcwd()
    config, loader = _load(project_dir)

    message = None
    if message_file:
        try:
            message = Path(message_file).read_text(encoding="utf-8").strip()
        except OSError as exc:
            _fail(f"Cannot read commit message file: {exc}")

    context = build_context(project_dir, config, message=message)
    if not Engine(loader).run_hooks(HookEvent.from_string(event), context):
        click.echo(f"vibe-codex: {event} checks failed", err=True)
        sys.exit(1)


@main.command()
@_project_dir_option
@click.option("--force", is_flag=True, help="Overwrite an existing configuration")
def init(project_dir: str | None, force: bool):
    """Create .vibe-codex.json with detected modules."""
    project_dir = project_dir or os.getcwd()
    existing = find_config_file(project_dir)
    if existing is not None and not force:
        _fail(f"{existing.name} already exists (use --force to overwrite)")

    modules = detect_modules(project_dir)
    config = ProjectConfiguration(modules={name: {"enabled": True} for name in modules})
    path = save_config(config, project_dir)

    click.echo(f"Created {path}")
    click.echo(f"Enabled modules: {', '.join(modules)}")


@main.command()
@_project_dir_option
@click.option("--enable", "enable", multiple=True, help="Enable a module")
@click.option("--disable", "disable", multiple=True, help="Disable a module")
def config(project_dir: str | None, enable: tuple[str, ...], disable: tuple[str, ...]):
    """Show or change which modules are enabled."""
    project_dir = project_dir or os.getcwd()
    try:
        project_config = load_config(project_dir)
    except VibeCodexError as exc:
        _fail(str(exc))

    if not enable and not disable:
        click.echo(json.dumps(project_config.to_dict(), indent=2))
        return

    if CORE_MODULE in disable:
        _fail("The core module cannot be disabled")
    for name in enable:
        if name not in BUILTIN_MODULES and name not in project_config.custom_modules:
            _fail(f"Unknown module: {name}")
        project_config.set_module_enabled(name, True)
    for name in disable:
        project_config.set_module_enabled(name, False)

    try:
        path = save_config(project_config, project_dir)
    except VibeCodexError as exc:
        _fail(str(exc))

    loader = ModuleLoader(rule_loader=RuleLoader())
    loader.load_modules(project_config, project_dir)
    click.echo(f"Updated {path}")
    click.echo(f"Active modules: {', '.join(loader.modules)}")
    for error in loader.dependency_errors:
        click.echo(f"Warning: {error}", err=True)


@main.command()
@_project_dir_option
def modules(project_dir: str | None):
    """List the modules loaded for the project."""
    project_dir = project_dir or os.getcwd()
    _config, loader = _load(project_dir)

    click.echo(f"{'Module':<16} {'Version':<10} {'Rules':>5} {'Hooks':>5}  Description")
    click.echo("-" * 80)
    for name in loader.modules:
        info = loader.get_module_info(name)
        click.echo(
            f"{info.name:<16} {info.version:<10} {info.rule_count:>5} {info.hook_count:>5}  {info.description}"
        )
    click.echo(f"\n{len(loader.modules)} modules loaded.")


@main.command("list-rules")
@click.option("--platform", type=click.Choice([p.value for p in Platform]), default=None)
@click.option("--category", type=click.Choice([c.value for c in Category]), default=None)
@_rules_dir_option
def list_rules(platform: str | None, category: str | None, rules_dir: str | None):
    """List rule definitions in the definition store."""
    rule_loader = RuleLoader(rules_dir)
    if platform:
        rules = rule_loader.get_rules_by_platform(platform)
    else:
        rules = rule_loader.list_rules()
    if category:
        rules = [r for r in rules if r.category == category]

    if not rules:
        click.echo("No rules found.")
        return

    click.echo(f"{'Rule ID':<28} {'Type':<6} {'Category':<16} {'Default':<8} Platforms")
    click.echo("-" * 90)
    for rule in rules:
        default = "on" if rule.enabled_by_default else "off"
        click.echo(
            f"{rule.id:<28} {rule.type:<6} {rule.category:<16} {default:<8} {', '.join(rule.platforms)}"
        )
    click.echo(f"\n{len(rules)} rules total.")


@main.command("list-rulesets")
@_rules_dir_option
def list_rulesets(rules_dir: str | None):
    """List rulesets in the definition store."""
    rulesets = RuleLoader(rules_dir).list_rulesets()
    if not rulesets:
        click.echo("No rulesets found.")
        return
    for ruleset in rulesets:
        extends = f" (extends {', '.join(ruleset.extends)})" if ruleset.extends else ""
        click.echo(f"{ruleset.id:<16} {ruleset.rule_count:>3} rules  {ruleset.name}{extends}")


@main.command("show-ruleset")
@click.argument("ruleset_id")
@_rules_dir_option
def show_ruleset(ruleset_id: str, rules_dir: str | None):
    """Show a ruleset with its extends chain resolved."""
    try:
        ruleset = RuleLoader(rules_dir).load_ruleset(ruleset_id)
    except VibeCodexError as exc:
        _fail(str(exc))

    click.echo(f"{ruleset.name} ({ruleset.id})")
    if ruleset.description:
        click.echo(ruleset.description)
    if ruleset.extends:
        click.echo(f"Extends: {', '.join(ruleset.extends)}")
    click.echo(f"Hooks: {', '.join(ruleset.hooks) or '-'}")
    click.echo(
        f"Config: failFast={ruleset.config.fail_fast} parallel={ruleset.config.parallel} "
        f"timeout={ruleset.config.timeout}"
    )
    click.echo("Rules:")
    for rule in ruleset.loaded_rules:
        override = ruleset.override_for(rule.id)
        suffix = f"  overrides: {json.dumps(override, sort_keys=True)}" if override else ""
        click.echo(f"  {rule.id:<28} {rule.metadata.severity.value:<8} {rule.metadata.name}{suffix}")


@main.command("lint-definitions")
@_rules_dir_option
def lint_definitions(rules_dir: str | None):
    """Validate every definition and ruleset file against its schema."""
    rule_loader = RuleLoader(rules_dir)
    validator = SchemaValidator()
    failed = False

    for label, directory, schema_type in (
        ("definitions", rule_loader.definitions_dir, SchemaType.RULE),
        ("rulesets", rule_loader.rulesets_dir, SchemaType.RULESET),
    ):
        try:
            report = validator.validate_directory(directory, schema_type)
        except VibeCodexError as exc:
            _fail(str(exc))
        click.echo(f"{label}: {len(report.valid)}/{report.total} valid")
        for invalid in report.invalid:
            failed = True
            click.echo(f"  !!  {invalid.file}: {invalid.error}")

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
