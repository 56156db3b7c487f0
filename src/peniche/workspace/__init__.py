from .adapter import (
    CargoAdapter,
    DeclaredDependency,
    DependencyManagerAdapter,
    ManifestInfo,
    get_default_adapter,
)
from .model import Workspace
from .package import (
    LocalPath,
    Origin,
    Package,
    PackageKind,
    Registry,
    RemoteGit,
    WorkspaceMember,
)

__all__ = [
    "CargoAdapter",
    "DeclaredDependency",
    "DependencyManagerAdapter",
    "LocalPath",
    "ManifestInfo",
    "Origin",
    "Package",
    "PackageKind",
    "Registry",
    "RemoteGit",
    "Workspace",
    "WorkspaceMember",
    "get_default_adapter",
]
