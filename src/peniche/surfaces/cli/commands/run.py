from typing import Callable, List, Optional

import typer

from ....core.config import resolve_config_path
from ....core.exceptions import PenicheError
from ....tasks import CommandRegistry, run_commands
from .utils import cli_state, info


def register_run_commands(app: typer.Typer, *, raise_exit: Callable) -> None:
    def run(
        ctx: typer.Context,
        names: Optional[List[str]] = typer.Argument(
            None, help="One or more configured commands to run"
        ),
        list_commands: bool = typer.Option(
            False, "--list", help="List all available commands"
        ),
        timeout: Optional[float] = typer.Option(
            None,
            "--timeout",
            min=0.0,
            help="Stop each command after this many seconds",
        ),
    ):
        """Run configured commands concurrently with tagged output."""
        state = cli_state(ctx)
        try:
            registry = CommandRegistry.load(resolve_config_path(state.config))
        except PenicheError as exc:
            raise_exit(str(exc), cause=exc)

        if list_commands or not names:
            info("Available commands:")
            for name in registry.names():
                typer.echo(name)
            return

        result = run_commands(registry, names, timeout_seconds=timeout)
        for name in result.unknown:
            typer.secho(
                f"Command '{name}' not found in configuration",
                err=True,
                fg=typer.colors.RED,
            )
        for command_result in result.results:
            if not command_result.ok:
                typer.secho(
                    f"{command_result.name}: {command_result.error}",
                    err=True,
                    fg=typer.colors.RED,
                )
        if not result.ok:
            raise typer.Exit(code=1)

    app.command("run")(run)
    app.command("r", hidden=True)(run)
