from __future__ import annotations

import importlib.metadata
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import typer

from ....core.exceptions import PenicheError
from ....workspace import DependencyManagerAdapter, Workspace, get_default_adapter

SUCCESS_MARK = "🚣"
ERROR_MARK = "🦀"
INFO_MARK = "🐸"


@dataclass
class CliState:
    """Options collected by the root callback and shared with subcommands."""

    config: Optional[Path] = None
    adapter: Optional[DependencyManagerAdapter] = None

    def workspace_adapter(self) -> DependencyManagerAdapter:
        if self.adapter is None:
            self.adapter = get_default_adapter()
        return self.adapter


def get_peniche_version() -> str:
    try:
        return importlib.metadata.version("peniche")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.secho(f"{ERROR_MARK} Error: {message}", err=True, fg=typer.colors.RED)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def success(message: str) -> None:
    typer.secho(f"{SUCCESS_MARK} {message}", fg=typer.colors.GREEN)


def info(message: str) -> None:
    typer.secho(f"{INFO_MARK} {message}", fg=typer.colors.BLUE)


def cli_state(ctx: typer.Context) -> CliState:
    return ctx.ensure_object(CliState)


def load_workspace(state: CliState, path: Optional[Path]) -> Workspace:
    start = path if path is not None else Path(".")
    try:
        return Workspace.from_path(start, adapter=state.workspace_adapter())
    except PenicheError as exc:
        raise_exit(f"Failed to load workspace: {exc}", cause=exc)
