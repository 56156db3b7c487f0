import logging
from pathlib import Path
from typing import Optional

import typer

from ...core.config import CONFIG_PATH_ENV
from ...core.logging_utils import (
    LOG_LEVEL_ENV,
    LogConfig,
    resolve_log_level,
    setup_console_logging,
    setup_rotating_logger,
)
from .commands.run import register_run_commands
from .commands.utils import cli_state, get_peniche_version, load_workspace
from .commands.utils import raise_exit as _raise_exit
from .commands.workspace import register_workspace_commands

logger = logging.getLogger("peniche.cli")

app = typer.Typer(add_completion=False, help="Manage a Rust monorepo workspace.")


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"peniche {get_peniche_version()}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar=CONFIG_PATH_ENV,
        help="Command configuration file (default: nearest Peniche.toml).",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        envvar=LOG_LEVEL_ENV,
        help="Log level for stderr diagnostics (default: WARNING).",
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Also write logs to this rotating file."
    ),
) -> None:
    state = cli_state(ctx)
    state.config = config
    try:
        level = resolve_log_level(log_level)
    except ValueError as exc:
        _raise_exit(str(exc), cause=exc)
    setup_console_logging("peniche", level)
    if log_file is not None:
        setup_rotating_logger(
            "peniche", LogConfig(path=log_file, level=min(level, logging.INFO))
        )


def main() -> None:
    """Entrypoint for CLI execution."""
    app()


register_workspace_commands(
    app,
    raise_exit=_raise_exit,
    load_workspace=load_workspace,
)
register_run_commands(app, raise_exit=_raise_exit)
