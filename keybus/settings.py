"""Registry behaviour settings."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class BusSettings(BaseModel):
    """Tunable emit behaviour shared by every bus on a registry."""

    snapshot_on_emit: bool = True
    isolate_listener_errors: bool = False
    log_level: str = Field(default="WARNING")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "BusSettings":
        """Build settings from the merged config mapping."""
        values: dict[str, Any] = dict(config.get("bus", {}) or {})
        level = (config.get("logging", {}) or {}).get("level")
        if level is not None:
            values["log_level"] = str(level).upper()
        return cls.model_validate(values)
