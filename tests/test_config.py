"""Tests for project configuration loading."""
from __future__ import annotations

import json

import pytest

from vibe_codex.config import ProjectConfiguration, load_config, save_config
from vibe_codex.errors import InvalidConfigError


class TestLoadConfig:
    def test_default_when_missing(self, tmp_path):
        config = load_config(tmp_path)
        assert config.version == "1.0.0"
        assert config.modules == {"core": {"enabled": True}}
        assert config.enabled_module_names() == ["core"]

    def test_reads_vibe_codex_json(self, tmp_path):
        (tmp_path / ".vibe-codex.json").write_text(json.dumps({
            "version": "1.0.0",
            "modules": {
                "core": {"enabled": True},
                "testing": {"enabled": True, "options": {"coverageThreshold": 90}},
                "github": {"enabled": False},
            },
        }))
        config = load_config(tmp_path)
        assert config.enabled_module_names() == ["core", "testing"]
        assert config.module_options("testing") == {"coverageThreshold": 90}
        assert config.module_options("github") == {}
        assert not config.is_module_enabled("github")

    def test_alternate_filename(self, tmp_path):
        (tmp_path / "vibe-codex.config.json").write_text(json.dumps({"modules": {"documentation": {}}}))
        assert load_config(tmp_path).is_module_enabled("documentation")

    def test_dot_file_takes_precedence(self, tmp_path):
        (tmp_path / ".vibe-codex.json").write_text(json.dumps({"modules": {"testing": {}}}))
        (tmp_path / "vibe-codex.config.json").write_text(json.dumps({"modules": {"github": {}}}))
        assert load_config(tmp_path).enabled_module_names() == ["core", "testing"]

    def test_package_json_key(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({
            "name": "app",
            "vibe-codex": {"modules": {"deployment": {"enabled": True}}},
        }))
        assert load_config(tmp_path).enabled_module_names() == ["core", "deployment"]

    def test_package_json_without_key(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "app"}))
        assert load_config(tmp_path).enabled_module_names() == ["core"]

    def test_invalid_json_raises(self, tmp_path):
        (tmp_path / ".vibe-codex.json").write_text("{broken")
        with pytest.raises(InvalidConfigError) as exc_info:
            load_config(tmp_path)
        assert "invalid JSON" in str(exc_info.value)

    def test_schema_violation_raises(self, tmp_path):
        (tmp_path / ".vibe-codex.json").write_text(json.dumps({
            "version": "one",
            "modules": {"core": {"enabled": "yes"}},
        }))
        with pytest.raises(InvalidConfigError) as exc_info:
            load_config(tmp_path)
        message = str(exc_info.value)
        assert "version" in message
        assert "modules.core.enabled" in message

    def test_non_object_raises(self, tmp_path):
        (tmp_path / ".vibe-codex.json").write_text("[]")
        with pytest.raises(InvalidConfigError):
            load_config(tmp_path)

    def test_custom_modules_and_rules(self, tmp_path):
        (tmp_path / ".vibe-codex.json").write_text(json.dumps({
            "customModules": {"team": "tools/team.py"},
            "customRules": [{"name": "no-console", "path": "rules/no_console.py", "level": 2}],
            "issueTracking": {"reminderFrequency": "4h"},
        }))
        config = load_config(tmp_path)
        assert config.custom_modules == {"team": "tools/team.py"}
        assert config.custom_rules[0].name == "no-console"
        assert config.custom_rules[0].enabled is True
        assert config.issue_tracking.reminder_frequency == "4h"
        assert config.issue_tracking.enable_reminders is True


class TestSaveConfig:
    def test_writes_two_space_json(self, tmp_path):
        config = ProjectConfiguration()
        config.set_module_enabled("testing", True)
        path = save_config(config, tmp_path)

        assert path == tmp_path / ".vibe-codex.json"
        text = path.read_text()
        assert text.startswith('{\n  "version"')
        assert json.loads(text)["modules"] == {"core": {"enabled": True}, "testing": {"enabled": True}}

    def test_roundtrip_keeps_options(self, tmp_path):
        config = ProjectConfiguration.from_dict({
            "modules": {"testing": {"enabled": True, "options": {"coverageThreshold": 70}}},
        })
        save_config(config, tmp_path)
        assert load_config(tmp_path).module_options("testing") == {"coverageThreshold": 70}

    def test_core_cannot_be_disabled(self):
        config = ProjectConfiguration()
        config.set_module_enabled("core", False)
        assert config.is_module_enabled("core")
        assert config.enabled_module_names() == ["core"]


class TestFromDict:
    def test_boolean_entries_become_enabled_flags(self):
        config = ProjectConfiguration.from_dict({"modules": {"testing": True, "github": False}})
        assert config.modules == {"testing": {"enabled": True}, "github": {"enabled": False}}
        assert config.enabled_module_names() == ["core", "testing"]

    def test_non_mapping_entries_are_dropped(self):
        config = ProjectConfiguration.from_dict({"modules": {"testing": "yes", "docs": None}})
        assert config.modules == {"docs": {}}

    def test_non_mapping_modules_section(self):
        assert ProjectConfiguration.from_dict({"modules": ["core"]}).modules == {}

    def test_non_mapping_options_ignored(self):
        config = ProjectConfiguration.from_dict({"modules": {"testing": {"options": ["x"]}}})
        assert config.module_options("testing") == {}
