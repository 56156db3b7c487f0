"""Format-preserving edits of ``Cargo.toml`` manifests and workspace descriptors.

Documents are edited in place through tomlkit so comments, ordering and
unrelated sections survive every rewrite. All writes go through
``atomic_write``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Union

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import AbstractTable, Array, Table
from tomlkit.toml_document import TOMLDocument

from ..core.exceptions import ManifestIOError
from ..core.utils import atomic_write

DEFAULT_RESOLVER = "2"


def read_document(path: Path) -> TOMLDocument:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestIOError(
            f"Failed to read manifest {path}: {exc}", path=path
        ) from exc
    try:
        return tomlkit.parse(text)
    except TOMLKitError as exc:
        raise ManifestIOError(
            f"Failed to parse manifest {path}: {exc}", path=path
        ) from exc


def write_document(path: Path, document: TOMLDocument) -> None:
    try:
        atomic_write(path, tomlkit.dumps(document))
    except OSError as exc:
        raise ManifestIOError(
            f"Failed to write manifest {path}: {exc}", path=path
        ) from exc


def render_descriptor(name: str, resolver: str = DEFAULT_RESOLVER) -> str:
    document = tomlkit.document()
    workspace = tomlkit.table()
    workspace.add("resolver", resolver)
    workspace.add("name", name)
    workspace.add("members", tomlkit.array())
    document.add("workspace", workspace)
    return tomlkit.dumps(document)


def _workspace_table(document: TOMLDocument, path: Path) -> Table:
    workspace = document.get("workspace")
    if not isinstance(workspace, Table):
        raise ManifestIOError(f"Workspace section not found in {path}", path=path)
    return workspace


def _members_array(document: TOMLDocument, path: Path, *, create: bool) -> Array:
    workspace = _workspace_table(document, path)
    members = workspace.get("members")
    if members is None and create:
        members = tomlkit.array()
        workspace["members"] = members
        members = workspace["members"]
    if not isinstance(members, Array):
        raise ManifestIOError(
            f"Members array not found in the workspace section of {path}", path=path
        )
    return members


def read_members(path: Path) -> list[str]:
    document = read_document(path)
    members = _members_array(document, path, create=False)
    return [str(entry) for entry in members]


def remove_members(path: Path, matches: Callable[[str], bool]) -> bool:
    """Drop every member entry accepted by ``matches``.

    The descriptor is re-read from disk and only rewritten when the member
    list actually changed. Returns whether it changed.
    """
    document = read_document(path)
    members = _members_array(document, path, create=False)
    initial_len = len(members)
    for index in reversed(range(initial_len)):
        if matches(str(members[index])):
            del members[index]
    if len(members) == initial_len:
        return False
    write_document(path, document)
    return True


def add_member(path: Path, entry: str) -> bool:
    """Append ``entry`` to the member list unless it is already listed."""
    document = read_document(path)
    members = _members_array(document, path, create=True)
    if any(str(existing) == entry for existing in members):
        return False
    members.append(entry)
    write_document(path, document)
    return True


def _dependency_item(descriptor: Union[str, dict[str, Any]]) -> Any:
    if isinstance(descriptor, str):
        return descriptor
    table = tomlkit.inline_table()
    table.update(descriptor)
    return table


def upsert_dependency(
    path: Path, name: str, descriptor: Union[str, dict[str, Any]]
) -> None:
    """Insert or overwrite ``[dependencies].<name>`` in the manifest at ``path``."""
    document = read_document(path)
    dependencies = document.get("dependencies")
    if dependencies is None:
        document["dependencies"] = tomlkit.table()
        dependencies = document["dependencies"]
    if not isinstance(dependencies, AbstractTable):
        raise ManifestIOError(f"[dependencies] in {path} is not a table", path=path)
    if name in dependencies:
        dependencies[name] = _dependency_item(descriptor)
    else:
        dependencies.add(name, _dependency_item(descriptor))
    write_document(path, document)
