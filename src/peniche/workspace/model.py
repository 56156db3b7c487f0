from __future__ import annotations

import logging
import os
import shutil
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from ..core.exceptions import FilesystemError, ManifestIOError, NotFoundError
from ..core.logging_utils import log_event
from ..core.path_utils import ensure_dir, find_descriptor, resolve_path, split_manifest
from ..core.utils import atomic_write
from . import manifest as manifest_doc
from .adapter import DependencyManagerAdapter, get_default_adapter
from .package import LocalPath, Package, PackageKind

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """A workspace root, its descriptor and the member packages it declares.

    ``members`` is keyed by package name and only ever holds packages the
    descriptor lists; every mutation updates the descriptor first.
    """

    root_path: Path
    descriptor_path: Path
    members: dict[str, Package] = field(default_factory=dict)
    adapter: DependencyManagerAdapter = field(
        default_factory=get_default_adapter, repr=False, compare=False
    )

    @classmethod
    def initialize(
        cls,
        path: Union[str, Path],
        name: str,
        adapter: Optional[DependencyManagerAdapter] = None,
    ) -> "Workspace":
        """Create ``path`` with an empty descriptor, or load the existing one."""
        root = ensure_dir(path)
        _, descriptor_path = split_manifest(root)
        if not descriptor_path.exists():
            try:
                atomic_write(descriptor_path, manifest_doc.render_descriptor(name))
            except OSError as exc:
                raise ManifestIOError(
                    f"Failed to write workspace descriptor {descriptor_path}: {exc}",
                    path=descriptor_path,
                ) from exc
            log_event(
                logger,
                logging.INFO,
                "workspace.initialized",
                name=name,
                descriptor=descriptor_path,
            )
        return cls.from_path(root, adapter=adapter)

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        adapter: Optional[DependencyManagerAdapter] = None,
    ) -> "Workspace":
        """Load the workspace whose descriptor is nearest at or above ``path``."""
        adapter = adapter or get_default_adapter()
        start = resolve_path(path)
        descriptor_path = find_descriptor(start)
        if descriptor_path is None:
            raise NotFoundError(
                f"No workspace descriptor found in {start} or any parent directory"
            )
        workspace = cls(
            root_path=descriptor_path.parent,
            descriptor_path=descriptor_path,
            adapter=adapter,
        )
        for member_root in adapter.enumerate_members(workspace.root_path):
            package = Package.from_path(member_root, adapter=adapter)
            workspace.members[package.name] = package
        log_event(
            logger,
            logging.DEBUG,
            "workspace.loaded",
            root=workspace.root_path,
            members=len(workspace.members),
        )
        return workspace

    def get(self, name: str) -> Package:
        package = self.members.get(name)
        if package is None:
            raise NotFoundError(f"Package '{name}' not found in workspace")
        return package

    def create_member(
        self,
        name: str,
        path: Optional[Union[str, Path]] = None,
        kind: PackageKind = PackageKind.BINARY,
    ) -> Package:
        target = self.root_path / name if path is None else resolve_path(path)
        target = Path(os.path.normpath(target))
        if not target.is_relative_to(os.path.normpath(self.root_path)):
            raise ManifestIOError(
                f"Cannot create '{name}' at {target}: outside workspace "
                f"{self.root_path}",
                path=self.descriptor_path,
            )
        package_root = self.adapter.scaffold_package(kind, name, target)
        listed = {
            os.path.normpath(member)
            for member in self.adapter.enumerate_members(self.root_path)
        }
        if os.path.normpath(package_root) not in listed:
            raise ManifestIOError(
                f"Created '{name}' at {package_root} but {self.descriptor_path} "
                "does not list it as a member",
                path=self.descriptor_path,
            )
        package = Package.from_path(package_root, adapter=self.adapter)
        self.members[package.name] = package
        log_event(
            logger,
            logging.INFO,
            "workspace.member.created",
            name=package.name,
            kind=kind.value,
            path=package_root,
        )
        return package

    def remove_member(self, name: str, delete_files: bool = False) -> bool:
        """Drop ``name`` from the descriptor and, optionally, delete its files.

        Returns False without touching anything when ``name`` is not a member
        or no descriptor entry refers to it. The descriptor rewrite is kept
        even if deleting the package directory fails afterwards.
        """
        package = self.members.get(name)
        if package is None:
            return False

        # Re-read fresh from disk.
        descriptor_path = self.descriptor_path
        member_root = package.root
        base = descriptor_path.parent

        def _matches(entry: str) -> bool:
            if member_root is None:
                return entry == name
            return os.path.normpath(base / entry) == os.path.normpath(member_root)

        if not manifest_doc.remove_members(descriptor_path, _matches):
            return False

        del self.members[name]
        log_event(
            logger,
            logging.INFO,
            "workspace.member.removed",
            name=name,
            descriptor=descriptor_path,
        )

        if delete_files and isinstance(package.origin, LocalPath):
            target = package.origin.path
            try:
                shutil.rmtree(target)
            except OSError as exc:
                raise FilesystemError(
                    f"Removed '{name}' from {descriptor_path} but failed to delete "
                    f"{target}: {exc}",
                    path=target,
                ) from exc
            log_event(logger, logging.INFO, "workspace.member.deleted", path=target)
        return True

    def link(self, from_name: str, to_name: str) -> None:
        """Declare member ``to_name`` as a dependency of member ``from_name``."""
        self.get(from_name).link_to(self.get(to_name))

    def summary(self) -> dict[str, Any]:
        try:
            data = tomllib.loads(self.descriptor_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
            raise ManifestIOError(
                f"Failed to read workspace descriptor {self.descriptor_path}: {exc}",
                path=self.descriptor_path,
            ) from exc
        section = data.get("workspace") or {}
        return {
            "name": section.get("name") or self.root_path.name,
            "root": str(self.root_path),
            "descriptor": str(self.descriptor_path),
            "resolver": section.get("resolver"),
            "members": sorted(self.members),
        }
