"""In-memory model of a single package and its declared dependencies."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from ..core.exceptions import UnsupportedOriginError
from ..core.logging_utils import log_event
from ..core.path_utils import relative_to_or_absolute, split_manifest
from . import manifest as manifest_doc

if TYPE_CHECKING:
    from .adapter import DeclaredDependency, DependencyManagerAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registry:
    """Resolved from a package registry."""


@dataclass(frozen=True)
class LocalPath:
    path: Path


@dataclass(frozen=True)
class RemoteGit:
    url: str


@dataclass(frozen=True)
class WorkspaceMember:
    """Inherited from the enclosing workspace's dependency table."""


Origin = Union[Registry, LocalPath, RemoteGit, WorkspaceMember]

DependencyDescriptor = Union[str, dict[str, Any]]


class PackageKind(str, Enum):
    BINARY = "bin"
    LIBRARY = "lib"


def describe_origin(origin: Origin) -> str:
    if isinstance(origin, LocalPath):
        return str(origin.path)
    if isinstance(origin, RemoteGit):
        return origin.url
    if isinstance(origin, WorkspaceMember):
        return "workspace"
    return "registry"


@dataclass
class Package:
    name: str
    version: str
    origin: Origin = field(default_factory=Registry)
    manifest_path: Optional[Path] = None
    dependencies: dict[str, "Package"] = field(default_factory=dict)
    adapter: Optional["DependencyManagerAdapter"] = field(
        default=None, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if isinstance(self.origin, LocalPath):
            root, derived = split_manifest(self.origin.path)
            self.origin = LocalPath(root)
            if self.manifest_path is None:
                self.manifest_path = derived
        elif isinstance(self.origin, WorkspaceMember):
            if self.manifest_path is None:
                raise ValueError(
                    f"workspace member '{self.name}' requires a manifest path"
                )
        elif self.manifest_path is not None:
            raise ValueError(
                f"package '{self.name}' from {describe_origin(self.origin)} "
                "cannot have a manifest path"
            )

    @classmethod
    def new(
        cls,
        name: str,
        version: str,
        origin: Origin,
        *,
        manifest_path: Optional[Path] = None,
        adapter: Optional["DependencyManagerAdapter"] = None,
    ) -> "Package":
        return cls(
            name=name,
            version=version,
            origin=origin,
            manifest_path=manifest_path,
            adapter=adapter,
        )

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        adapter: Optional["DependencyManagerAdapter"] = None,
    ) -> "Package":
        """Materialize the package at ``path`` with one level of dependencies.

        Dependencies are returned as leaf snapshots; call ``from_path`` on a
        dependency's root to walk further.
        """
        from .adapter import get_default_adapter

        adapter = adapter or get_default_adapter()
        root, manifest_path = split_manifest(Path(path))
        info = adapter.parse_manifest(manifest_path)
        package = cls(
            name=info.name,
            version=info.version,
            origin=LocalPath(root),
            adapter=adapter,
        )
        for declared in info.dependencies:
            dep = _from_declared(declared, adapter)
            package.dependencies[dep.name] = dep
        return package

    @property
    def root(self) -> Optional[Path]:
        if isinstance(self.origin, LocalPath):
            return self.origin.path
        if self.manifest_path is not None:
            return self.manifest_path.parent
        return None

    def as_dependency_descriptor(
        self, relative_to: Optional[Path] = None
    ) -> DependencyDescriptor:
        """Return the value a manifest uses to depend on this package."""
        origin = self.origin
        if isinstance(origin, LocalPath):
            if relative_to is not None:
                return {"path": relative_to_or_absolute(origin.path, relative_to)}
            return {"path": origin.path.as_posix()}
        if isinstance(origin, RemoteGit):
            return {"git": origin.url}
        if isinstance(origin, WorkspaceMember):
            return {"workspace": True}
        return self.version or "*"

    def link_to(self, other: "Package") -> None:
        """Declare ``other`` as a dependency in this package's manifest."""
        if self.manifest_path is None:
            raise UnsupportedOriginError(
                f"Cannot link '{other.name}' into '{self.name}': unsupported origin "
                f"{describe_origin(self.origin)} (no local manifest)",
                origin=self.origin,
            )
        descriptor = other.as_dependency_descriptor(relative_to=self.root)
        manifest_doc.upsert_dependency(self.manifest_path, other.name, descriptor)
        self.dependencies[other.name] = other.snapshot()
        log_event(
            logger,
            logging.INFO,
            "package.linked",
            package=self.name,
            dependency=other.name,
            manifest=self.manifest_path,
        )

    def snapshot(self) -> "Package":
        """Copy of this package without its dependency tree."""
        return Package(
            name=self.name,
            version=self.version,
            origin=self.origin,
            manifest_path=self.manifest_path,
            adapter=self.adapter,
        )

    def install_globally(self) -> "Package":
        self._require_local("installed globally")
        self._adapter().build_and_install(self)
        log_event(logger, logging.INFO, "package.installed", package=self.name)
        return self

    def uninstall_globally(self) -> "Package":
        self._require_local("uninstalled globally")
        self._adapter().remove_installed(self)
        log_event(logger, logging.INFO, "package.uninstalled", package=self.name)
        return self

    def _require_local(self, action: str) -> None:
        if not isinstance(self.origin, LocalPath):
            raise UnsupportedOriginError(
                f"Only local packages can be {action}; '{self.name}' comes from "
                f"{describe_origin(self.origin)}",
                origin=self.origin,
            )

    def _adapter(self) -> "DependencyManagerAdapter":
        if self.adapter is None:
            from .adapter import get_default_adapter

            self.adapter = get_default_adapter()
        return self.adapter


def _from_declared(
    declared: "DeclaredDependency", adapter: "DependencyManagerAdapter"
) -> Package:
    origin: Origin = (
        LocalPath(declared.path) if declared.path is not None else Registry()
    )
    return Package(
        name=declared.name,
        version=declared.version_req,
        origin=origin,
        adapter=adapter,
    )
