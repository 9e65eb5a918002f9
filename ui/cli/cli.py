"""CLI entrypoint for keyed-event-bus."""

from __future__ import annotations

from pathlib import Path

import typer

from ui.cli import commands

app = typer.Typer(help="Keyed in-process event bus")
config_app = typer.Typer(help="Configuration commands")


@config_app.command("show")
def config_show_cmd(
    root: Path = typer.Option(None, "--root", help="Directory containing config/default.yaml"),
) -> None:
    """Show effective configuration."""
    commands.config_show(root=root)


@app.command("demo")
def demo_cmd(
    root: Path = typer.Option(None, "--root", help="Directory containing config/default.yaml"),
) -> None:
    """Emit a few events on a throwaway bus and print each listener call."""
    commands.demo(root=root)


app.add_typer(config_app, name="config")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
