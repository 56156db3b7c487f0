"""Boundary to the dependency manager (cargo).

Everything peniche needs from cargo goes through ``DependencyManagerAdapter``:
reading manifests, listing workspace members, scaffolding new packages and
installing/uninstalling binaries. ``CargoAdapter`` reads manifests directly
and shells out to the ``cargo`` binary for the rest.
"""

from __future__ import annotations

import glob
import logging
import os
import subprocess
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)

from ..core.exceptions import DependencyManagerError, ManifestIOError
from ..core.logging_utils import log_event
from ..core.path_utils import (
    ensure_dir,
    find_descriptor,
    relative_to_or_absolute,
    split_manifest,
)
from . import manifest as manifest_doc

if TYPE_CHECKING:
    from .package import Package, PackageKind

CARGO_ENV = "CARGO"
DEFAULT_VERSION = "0.0.0"
ANY_VERSION = "*"
_DEPENDENCY_TABLES = ("dependencies", "dev-dependencies", "build-dependencies")
_GLOB_CHARS = ("*", "?", "[")


@dataclass(frozen=True)
class DeclaredDependency:
    name: str
    version_req: str = ANY_VERSION
    path: Optional[Path] = None
    git: Optional[str] = None
    workspace: bool = False


@dataclass(frozen=True)
class ManifestInfo:
    name: str
    version: str
    manifest_path: Path
    dependencies: tuple[DeclaredDependency, ...] = field(default_factory=tuple)


@runtime_checkable
class DependencyManagerAdapter(Protocol):
    """Operations peniche delegates to the dependency manager."""

    def parse_manifest(self, manifest_path: Path) -> ManifestInfo:
        """Read name, version and direct dependencies from a package manifest."""

    def enumerate_members(self, root: Path) -> list[Path]:
        """Return the package roots declared by the workspace at ``root``."""

    def scaffold_package(self, kind: "PackageKind", name: str, path: Path) -> Path:
        """Create a new package at ``path`` and register it with its workspace."""

    def build_and_install(self, package: "Package") -> None:
        """Build ``package`` and install its binaries for the current user."""

    def remove_installed(self, package: "Package") -> None:
        """Remove binaries previously installed from ``package``."""


Runner = Callable[..., "subprocess.CompletedProcess[str]"]


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestIOError(
            f"Failed to read manifest {path}: {exc}", path=path
        ) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ManifestIOError(
            f"Failed to parse manifest {path}: {exc}", path=path
        ) from exc


def _join(base: Path, value: str) -> Path:
    return Path(os.path.normpath(base / value))


def _inherits(value: Any) -> bool:
    return isinstance(value, Mapping) and value.get("workspace") is True


class CargoAdapter:
    def __init__(
        self,
        cargo: Optional[str] = None,
        *,
        runner: Optional[Runner] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cargo = cargo or os.environ.get(CARGO_ENV) or "cargo"
        self._runner: Runner = runner or subprocess.run
        self._logger = logger or logging.getLogger(__name__)

    # Manifest reading

    def parse_manifest(self, manifest_path: Path) -> ManifestInfo:
        root, manifest_path = split_manifest(manifest_path)
        data = _load_toml(manifest_path)
        package = data.get("package")
        if not isinstance(package, Mapping):
            raise ManifestIOError(
                f"No [package] section in {manifest_path}", path=manifest_path
            )
        name = package.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ManifestIOError(
                f"Missing package name in {manifest_path}", path=manifest_path
            )

        context: Optional[tuple[Mapping[str, Any], Path]] = None
        version = package.get("version", DEFAULT_VERSION)
        if _inherits(version):
            context = self._workspace_context(data, root)
            ws_package = context[0].get("package") or {}
            version = ws_package.get("version", DEFAULT_VERSION)
        if not isinstance(version, str):
            raise ManifestIOError(
                f"Invalid package version in {manifest_path}", path=manifest_path
            )

        dependencies: dict[str, DeclaredDependency] = {}
        for table_name in _DEPENDENCY_TABLES:
            table = data.get(table_name)
            if not isinstance(table, Mapping):
                continue
            for dep_name, spec in table.items():
                if dep_name in dependencies:
                    continue
                if _inherits(spec):
                    context = context or self._workspace_context(data, root)
                    ws_data, ws_root = context
                    inherited = (ws_data.get("dependencies") or {}).get(dep_name)
                    dependencies[dep_name] = self._declared(
                        dep_name, inherited, ws_root, workspace=True
                    )
                else:
                    dependencies[dep_name] = self._declared(dep_name, spec, root)

        return ManifestInfo(
            name=name,
            version=version,
            manifest_path=manifest_path,
            dependencies=tuple(dependencies.values()),
        )

    def _workspace_context(
        self, data: Mapping[str, Any], root: Path
    ) -> tuple[Mapping[str, Any], Path]:
        """Workspace table used to resolve `workspace = true` inheritance."""
        if isinstance(data.get("workspace"), Mapping):
            return data["workspace"], root
        descriptor = find_descriptor(root.parent)
        if descriptor is None:
            return {}, root
        return _load_toml(descriptor).get("workspace") or {}, descriptor.parent

    def _declared(
        self, name: str, spec: Any, base: Path, *, workspace: bool = False
    ) -> DeclaredDependency:
        if isinstance(spec, str):
            return DeclaredDependency(name, spec or ANY_VERSION, workspace=workspace)
        if not isinstance(spec, Mapping):
            return DeclaredDependency(name, workspace=workspace)
        version = spec.get("version")
        path = spec.get("path")
        git = spec.get("git")
        return DeclaredDependency(
            name=name,
            version_req=(
                version if isinstance(version, str) and version else ANY_VERSION
            ),
            path=_join(base, path) if isinstance(path, str) else None,
            git=git if isinstance(git, str) else None,
            workspace=workspace,
        )

    def enumerate_members(self, root: Path) -> list[Path]:
        root, descriptor = split_manifest(root)
        data = _load_toml(descriptor)
        workspace = data.get("workspace")
        if not isinstance(workspace, Mapping):
            raise ManifestIOError(
                f"Workspace section not found in {descriptor}", path=descriptor
            )
        excluded = {
            _join(root, entry)
            for entry in workspace.get("exclude") or []
            if isinstance(entry, str)
        }

        found: list[Path] = []
        if isinstance(data.get("package"), Mapping):
            found.append(root)
        for entry in workspace.get("members") or []:
            if not isinstance(entry, str):
                raise ManifestIOError(
                    f"Workspace members must be strings in {descriptor}",
                    path=descriptor,
                )
            for candidate in self._expand_member(root, entry):
                if candidate in excluded or candidate in found:
                    continue
                if not (candidate / "Cargo.toml").is_file():
                    log_event(
                        self._logger,
                        logging.WARNING,
                        "cargo.member.missing_manifest",
                        member=entry,
                        path=candidate,
                    )
                    continue
                found.append(candidate)
        return found

    def _expand_member(self, root: Path, entry: str) -> list[Path]:
        if not any(ch in entry for ch in _GLOB_CHARS):
            return [_join(root, entry)]
        pattern = str(root / entry)
        return [
            Path(os.path.normpath(match))
            for match in sorted(glob.glob(pattern))
            if Path(match).is_dir()
        ]

    # Cargo subprocesses

    def scaffold_package(self, kind: "PackageKind", name: str, path: Path) -> Path:
        path = Path(path)
        parent = ensure_dir(path.parent)
        path = parent / path.name
        self._run(
            [
                "new",
                "--vcs",
                "none",
                f"--{kind.value}",
                "--name",
                name,
                str(path),
            ],
            cwd=parent,
        )
        self.register_member(path)
        return path

    def register_member(self, path: Path) -> bool:
        """Make sure the enclosing workspace lists ``path`` as a member.

        Recent cargo releases add new packages to ``members`` themselves; this
        covers older ones and is a no-op when the entry already exists.
        """
        descriptor = find_descriptor(path.parent)
        if descriptor is None:
            return False
        entry = relative_to_or_absolute(path, descriptor.parent)
        if entry in manifest_doc.read_members(descriptor):
            return False
        return manifest_doc.add_member(descriptor, entry)

    def build_and_install(self, package: "Package") -> None:
        root = self._package_root(package)
        self._run(["install", "--path", str(root)], cwd=root, capture=False)

    def remove_installed(self, package: "Package") -> None:
        root = self._package_root(package)
        self._run(["uninstall", package.name], cwd=root, capture=False)

    def _package_root(self, package: "Package") -> Path:
        root = package.root
        if root is None:
            raise DependencyManagerError(
                f"Package '{package.name}' has no local directory"
            )
        return root

    def _run(
        self, args: list[str], *, cwd: Path, capture: bool = True
    ) -> "subprocess.CompletedProcess[str]":
        cmd = [self._cargo, *args]
        log_event(self._logger, logging.INFO, "cargo.run", cmd=cmd, cwd=cwd)
        try:
            result = self._runner(
                cmd,
                cwd=str(cwd),
                check=False,
                capture_output=capture,
                text=True,
            )
        except FileNotFoundError as exc:
            raise DependencyManagerError(
                f"cargo executable not found: {self._cargo}", command=cmd
            ) from exc
        except OSError as exc:
            raise DependencyManagerError(
                f"Failed to run {' '.join(cmd)}: {exc}", command=cmd
            ) from exc
        if result.returncode != 0:
            detail = ((result.stderr or "") + (result.stdout or "")).strip()
            message = f"Command failed: {' '.join(cmd)} (exit {result.returncode})"
            if detail:
                message = f"{message}\n{detail}"
            raise DependencyManagerError(
                message, command=cmd, returncode=result.returncode
            )
        return result


_default_adapter: Optional[DependencyManagerAdapter] = None


def get_default_adapter() -> DependencyManagerAdapter:
    global _default_adapter
    if _default_adapter is None:
        _default_adapter = CargoAdapter()
    return _default_adapter
