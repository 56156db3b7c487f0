import json
from pathlib import Path
from typing import Callable, List, Optional

import typer

from ....core.exceptions import PenicheError
from ....core.path_utils import resolve_path
from ....workspace import Package, PackageKind, Workspace
from ....workspace.package import describe_origin
from .utils import CliState, cli_state, info, success


def _member_payload(package: Package) -> dict:
    return {
        "name": package.name,
        "version": package.version,
        "origin": describe_origin(package.origin),
        "dependencies": sorted(package.dependencies),
    }


def _path_option():
    return typer.Option(
        None, "--path", help="Directory inside the workspace (default: cwd)"
    )


def register_workspace_commands(
    app: typer.Typer,
    *,
    raise_exit: Callable,
    load_workspace: Callable[[CliState, Optional[Path]], Workspace],
) -> None:
    def workspace_info(
        ctx: typer.Context,
        path: Optional[Path] = _path_option(),
        output_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
    ):
        """Show information about the workspace."""
        workspace = load_workspace(cli_state(ctx), path)
        try:
            summary = workspace.summary()
        except PenicheError as exc:
            raise_exit(str(exc), cause=exc)
        if output_json:
            typer.echo(json.dumps(summary, indent=2))
            return
        info("Workspace info:")
        typer.echo(f"Name:       {summary['name']}")
        typer.echo(f"Root:       {summary['root']}")
        typer.echo(f"Descriptor: {summary['descriptor']}")
        typer.echo(f"Resolver:   {summary['resolver'] or '-'}")
        typer.echo(f"Members:    {len(summary['members'])}")
        for name in summary["members"]:
            typer.echo(f"  - {name}")

    def workspace_init(
        ctx: typer.Context,
        name: str = typer.Argument(
            ...,
            help="Name of the workspace (also the directory name if PATH is not set)",
        ),
        path: Optional[Path] = typer.Argument(
            None, help="Directory to create the workspace in"
        ),
    ):
        """Initialize a new cargo workspace."""
        state = cli_state(ctx)
        try:
            target = path if path is not None else resolve_path(name)
            workspace = Workspace.initialize(
                target, name, adapter=state.workspace_adapter()
            )
        except PenicheError as exc:
            raise_exit(f"Failed to initialize workspace: {exc}", cause=exc)
        success(f"Initialized workspace at {workspace.root_path}")

    def workspace_new(
        ctx: typer.Context,
        names: List[str] = typer.Argument(
            ..., help="One or more names for the packages to create"
        ),
        lib: bool = typer.Option(
            False, "--lib/--bin", help="Create library packages instead of binaries"
        ),
        path: Optional[Path] = _path_option(),
    ):
        """Create new member packages in the workspace."""
        workspace = load_workspace(cli_state(ctx), path)
        kind = PackageKind.LIBRARY if lib else PackageKind.BINARY
        for name in names:
            target = workspace.root_path / name
            info(f"Creating {name} ({kind.value}) at {target}")
            try:
                workspace.create_member(name, target, kind=kind)
            except PenicheError as exc:
                raise_exit(f"Failed to create package '{name}': {exc}", cause=exc)
            success(f"Created new package '{name}'")

    def workspace_install(
        ctx: typer.Context,
        names: List[str] = typer.Argument(
            ..., help="One or more packages to install globally"
        ),
        path: Optional[Path] = _path_option(),
    ):
        """Build and install member packages globally."""
        workspace = load_workspace(cli_state(ctx), path)
        for name in names:
            try:
                workspace.get(name).install_globally()
            except PenicheError as exc:
                raise_exit(
                    f"Failed to install package '{name}' globally: {exc}", cause=exc
                )
            success(f"Installed '{name}'")

    def workspace_uninstall(
        ctx: typer.Context,
        names: List[str] = typer.Argument(
            ..., help="One or more packages to uninstall globally"
        ),
        path: Optional[Path] = _path_option(),
    ):
        """Remove globally installed member packages."""
        workspace = load_workspace(cli_state(ctx), path)
        for name in names:
            try:
                workspace.get(name).uninstall_globally()
            except PenicheError as exc:
                raise_exit(
                    f"Failed to uninstall package '{name}' globally: {exc}", cause=exc
                )
            success(f"Uninstalled '{name}'")

    def workspace_remove(
        ctx: typer.Context,
        names: List[str] = typer.Argument(
            ..., help="One or more packages to remove from the workspace"
        ),
        rmdir: bool = typer.Option(
            False, "--rmdir", help="Also DELETE the package directory"
        ),
        path: Optional[Path] = _path_option(),
    ):
        """Remove packages from the workspace, optionally deleting their files."""
        workspace = load_workspace(cli_state(ctx), path)
        for name in names:
            try:
                removed = workspace.remove_member(name, delete_files=rmdir)
            except PenicheError as exc:
                raise_exit(f"Failed to remove package '{name}': {exc}", cause=exc)
            if not removed:
                raise_exit(f"Package '{name}' is not a member of the workspace")
            success(f"Removed package '{name}'")

    def workspace_list(
        ctx: typer.Context,
        path: Optional[Path] = _path_option(),
        output_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
    ):
        """List all packages in the workspace."""
        workspace = load_workspace(cli_state(ctx), path)
        packages = [workspace.members[name] for name in sorted(workspace.members)]
        if output_json:
            payload = [_member_payload(package) for package in packages]
            typer.echo(json.dumps({"members": payload}, indent=2))
            return
        if not packages:
            typer.echo("No packages found.")
            return
        for package in packages:
            info(
                f"{package.name} ({package.version}) - "
                f"{describe_origin(package.origin)}"
            )

    def workspace_link(
        ctx: typer.Context,
        from_name: str = typer.Argument(..., metavar="FROM"),
        to_name: str = typer.Argument(..., metavar="TO"),
        path: Optional[Path] = _path_option(),
    ):
        """Add a workspace package as a dependency of another one."""
        workspace = load_workspace(cli_state(ctx), path)
        try:
            workspace.link(from_name, to_name)
        except PenicheError as exc:
            raise_exit(
                f"Failed to link '{from_name}' to '{to_name}': {exc}", cause=exc
            )
        success(f"Linked '{from_name}' to '{to_name}'")

    app.command("info")(workspace_info)
    app.command("init")(workspace_init)
    app.command("new")(workspace_new)
    app.command("n", hidden=True)(workspace_new)
    app.command("install")(workspace_install)
    app.command("i", hidden=True)(workspace_install)
    app.command("uninstall")(workspace_uninstall)
    app.command("u", hidden=True)(workspace_uninstall)
    app.command("rm")(workspace_remove)
    app.command("delete", hidden=True)(workspace_remove)
    app.command("ls")(workspace_list)
    app.command("list-crates", hidden=True)(workspace_list)
    app.command("link")(workspace_link)
    app.command("ln", hidden=True)(workspace_link)
