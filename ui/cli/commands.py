"""Typer command handlers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer

from keybus.event_bus import create_bus
from keybus.policy_runtime import load_effective_config
from keybus.registry import BusRegistry
from keybus.settings import BusSettings


def _root(root: Path | None = None) -> Path:
    default_root = Path(__file__).resolve().parents[2]
    return (root or default_root).resolve()


def _configure_logging(settings: BusSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def config_show(root: Path | None = None) -> None:
    """Print the effective configuration as JSON."""
    config = load_effective_config(_root(root))
    settings = BusSettings.from_config(config)
    typer.echo(json.dumps({"config": config, "settings": settings.model_dump()}, indent=2))


def demo(root: Path | None = None) -> None:
    """Run the news scenario against a fresh registry and echo each call."""
    registry = BusRegistry.from_config(_root(root))
    _configure_logging(registry.settings)

    def listener(event: Any, payload: Any) -> None:
        typer.echo(f"listener({event!r}, {payload!r})")

    def specific(payload: Any) -> None:
        typer.echo(f"specific({payload!r})")

    bus = create_bus("news", registry=registry)
    bus.on(listener)
    bus.on("specific", specific)
    bus.emit("specific", "hello")
    bus.emit("other", "x")
    bus.reset()

    def first_only(event: Any, payload: Any) -> None:
        typer.echo(f"once({event!r}, {payload!r})")

    bus.once(first_only)
    bus.emit("a")
    bus.emit("b")
    typer.echo(f"Live buses: {len(registry)}")
