"""Configuration loading for bus registries."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "bus": {
        "snapshot_on_emit": True,
        "isolate_listener_errors": False,
    },
    "logging": {"level": "WARNING"},
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Read one bus config file; an absent file contributes no overrides."""
    if not path.is_file():
        return {}
    raw = path.read_text(encoding="utf-8")
    loaded = yaml.safe_load(raw)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Bus config {path} must be a mapping of sections, got {type(loaded).__name__}")
    return loaded


def merge_dicts(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``overrides`` on ``defaults`` section by section.

    Nested sections such as ``bus:`` merge key by key; any other value in
    ``overrides`` replaces the default outright.
    """
    result: dict[str, Any] = dict(defaults)
    for name, override in overrides.items():
        current = result.get(name)
        if isinstance(current, dict) and isinstance(override, dict):
            result[name] = merge_dicts(current, override)
        else:
            result[name] = override
    return result


def load_effective_config(root: Path) -> dict[str, Any]:
    """Merge built-in defaults with ``config/default.yaml`` under ``root``."""
    file_cfg = load_yaml(root / "config" / "default.yaml")
    return merge_dicts(DEFAULT_CONFIG, file_cfg)
