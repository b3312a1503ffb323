from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from vedit.config import (
    DEFAULT_CONFIG_TEMPLATE,
    ConfigError,
    EditorSettings,
    ModelSettings,
    copy_config_template,
    load_config,
    resolve_logs_root,
    resolve_project_root,
    write_config,
)


def test_template_round_trips_through_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    write_config(config_path, copy_config_template())

    loaded = load_config(config_path)

    assert loaded == DEFAULT_CONFIG_TEMPLATE
    assert EditorSettings.from_config(loaded) == EditorSettings()


def test_missing_and_invalid_config_raise(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(broken)


def test_editor_settings_fall_back_on_bad_values() -> None:
    settings = EditorSettings.from_config(
        {
            "editor": {
                "debounce_seconds": "soon",
                "max_turns": 0,
                "read_timeout": 30,
                "reload_delay_seconds": 0,
                "excerpt_chars": True,
                "compact_excerpt_chars": 120,
            }
        }
    )

    assert settings.debounce_seconds == 0.5
    assert settings.max_turns == 5
    assert settings.read_timeout == 30.0
    assert settings.reload_delay_seconds == 0.0
    assert settings.excerpt_limits.element == 500
    assert settings.excerpt_limits.compact == 120


def test_model_settings_resolve_catalog_entries() -> None:
    models = ModelSettings.from_config(
        {
            "models": {
                "default": "local-offline",
                "timeout": -1,
                "catalog": [
                    {"id": "plain", "supports_tool_calls": False},
                    {"name": "missing id"},
                    "not a mapping",
                ],
            }
        }
    )

    assert models.offline
    assert models.timeout == 120.0
    assert models.resolve_model("plain").supports_tool_calls is False
    unknown = models.resolve_model("brand-new")
    assert unknown.id == "brand-new"
    assert unknown.supports_tool_calls
    assert models.resolve_model().id == "local-offline"


def test_paths_resolve_relative_to_config(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "config.yaml"
    config = {"project": {"root": "../site"}, "paths": {"logs": "logs"}}

    assert resolve_project_root(config, config_path) == (tmp_path / "site").resolve()
    assert resolve_logs_root(config, config_path) == (tmp_path / "conf" / "logs").resolve()
    assert resolve_logs_root({}, config_path) == (tmp_path / "conf" / ".vedit" / "logs").resolve()


def test_template_yaml_is_readable(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            editor:
              max_turns: 2
            """
        ),
        encoding="utf-8",
    )

    assert EditorSettings.from_config(load_config(config_path)).max_turns == 2
