"""YAML configuration for the editor, its models and its project paths."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .models.chat import ChatModel
from .prompts import ExcerptLimits

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "ConfigError",
    "EditorSettings",
    "ModelSettings",
    "copy_config_template",
    "load_config",
    "resolve_logs_root",
    "resolve_project_root",
    "write_config",
]

DEFAULT_CONFIG_NAME = "config.yaml"
_DEFAULT_MODEL = "gpt-4o-mini"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "id": "site",
        "root": ".",
    },
    "editor": {
        "debounce_seconds": 0.5,
        "max_turns": 5,
        "read_timeout": None,
        "reload_delay_seconds": 0.1,
        "excerpt_chars": 500,
        "compact_excerpt_chars": 300,
    },
    "models": {
        "default": "gpt-4o-mini",
        "base_url": "https://api.openai.com/v1",
        "timeout": 120,
        "temperature": 0.7,
        "catalog": [
            {
                "id": "gpt-4o-mini",
                "name": "GPT-4o mini",
                "context_length": 128000,
                "supports_tool_calls": True,
            },
        ],
    },
    "paths": {
        "logs": ".vedit/logs",
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file is missing or malformed."""


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return data


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _positive_number(value: Any, default: float, *, allow_zero: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if value > 0 or (allow_zero and value == 0):
        return float(value)
    return default


def resolve_project_root(config: Mapping[str, Any], config_path: Path) -> Path:
    """Resolve the edited project's directory relative to the config file."""
    root_value = _section(config, "project").get("root", ".")
    root = Path(str(root_value or "."))
    if not root.is_absolute():
        root = (config_path.parent / root).resolve()
    return root


def resolve_logs_root(config: Mapping[str, Any], config_path: Path) -> Path:
    """Resolve the transcript directory relative to the config file."""
    logs_value = _section(config, "paths").get("logs")
    if not isinstance(logs_value, str) or not logs_value.strip():
        logs_value = DEFAULT_CONFIG_TEMPLATE["paths"]["logs"]
    logs_root = Path(logs_value.strip())
    if not logs_root.is_absolute():
        logs_root = (config_path.parent / logs_root).resolve()
    return logs_root


@dataclass(frozen=True, slots=True)
class EditorSettings:
    """Timing and budget knobs for the edit dispatcher."""

    debounce_seconds: float = 0.5
    max_turns: int = 5
    read_timeout: float | None = None
    reload_delay_seconds: float = 0.1
    excerpt_chars: int = 500
    compact_excerpt_chars: int = 300

    @property
    def excerpt_limits(self) -> ExcerptLimits:
        return ExcerptLimits(element=self.excerpt_chars, compact=self.compact_excerpt_chars)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> EditorSettings:
        """Build settings from the ``editor`` section; invalid values fall back to defaults."""
        editor = _section(config, "editor")
        defaults = cls()

        max_turns = editor.get("max_turns")
        if isinstance(max_turns, bool) or not isinstance(max_turns, int) or max_turns < 1:
            max_turns = defaults.max_turns

        read_timeout = editor.get("read_timeout")
        if read_timeout is not None:
            read_timeout = _positive_number(read_timeout, 0.0) or None

        def _chars(key: str, default: int) -> int:
            value = editor.get(key)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                return default
            return value

        return cls(
            debounce_seconds=_positive_number(
                editor.get("debounce_seconds"), defaults.debounce_seconds, allow_zero=True
            ),
            max_turns=max_turns,
            read_timeout=read_timeout,
            reload_delay_seconds=_positive_number(
                editor.get("reload_delay_seconds"), defaults.reload_delay_seconds, allow_zero=True
            ),
            excerpt_chars=_chars("excerpt_chars", defaults.excerpt_chars),
            compact_excerpt_chars=_chars("compact_excerpt_chars", defaults.compact_excerpt_chars),
        )


@dataclass(slots=True)
class ModelSettings:
    """Model endpoint settings plus the catalog of known model descriptors."""

    default: str = _DEFAULT_MODEL
    base_url: str | None = None
    api_key: str | None = None
    timeout: float = 120.0
    temperature: float = 0.7
    catalog: Dict[str, ChatModel] = field(default_factory=dict)

    @property
    def offline(self) -> bool:
        key = self.default.lower()
        return key == "offline" or key.endswith("-offline")

    def resolve_model(self, model_id: str | None = None) -> ChatModel:
        """Return the descriptor for ``model_id``; unknown ids assume tool support."""
        key = (model_id or self.default).strip()
        known = self.catalog.get(key)
        if known is not None:
            return known
        return ChatModel(id=key)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ModelSettings:
        models_cfg = _section(config, "models")
        default = models_cfg.get("default")
        if not isinstance(default, str) or not default.strip():
            default = _DEFAULT_MODEL

        base_url = models_cfg.get("base_url")
        if not isinstance(base_url, str) or not base_url.strip():
            base_url = None
        api_key = models_cfg.get("api_key")
        if not isinstance(api_key, str) or not api_key.strip():
            api_key = None

        temperature = models_cfg.get("temperature")
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or temperature < 0:
            temperature = 0.7

        catalog: Dict[str, ChatModel] = {}
        raw_catalog = models_cfg.get("catalog")
        if isinstance(raw_catalog, list):
            for item in raw_catalog:
                if not isinstance(item, Mapping):
                    continue
                try:
                    model = ChatModel.from_mapping(item)
                except ValueError:
                    continue
                catalog[model.id] = model

        return cls(
            default=default.strip(),
            base_url=base_url.strip() if base_url else None,
            api_key=api_key.strip() if api_key else None,
            timeout=_positive_number(models_cfg.get("timeout"), 120.0),
            temperature=float(temperature),
            catalog=catalog,
        )
