"""Test harness configuration.

This repo uses a `src/` layout. In some developer environments an older
installed `peniche` package can shadow the local sources.

Ensure tests always import the in-repo code.
"""

from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 120


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout` when installed; if it isn't installed, the
    marker is inert but still documents the intent.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


def write_package(
    root: Path,
    name: str,
    *,
    version: str = "0.1.0",
    dependencies: str = "",
) -> Path:
    """Write a minimal member package and return its directory."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "src").mkdir(exist_ok=True)
    (root / "Cargo.toml").write_text(
        textwrap.dedent(
            f"""\
            [package]
            name = "{name}"
            version = "{version}"
            edition = "2021"

            [dependencies]
            """
        )
        + dependencies,
        encoding="utf-8",
    )
    return root


class FakeAdapter:
    """Dependency-manager adapter that never shells out to cargo.

    Manifest parsing and member enumeration use the real TOML logic; package
    scaffolding writes a minimal manifest, and installs are only recorded.
    """

    def __init__(self) -> None:
        from peniche.workspace.adapter import CargoAdapter

        self._cargo = CargoAdapter(cargo="cargo-is-not-called")
        self.scaffolded: list[tuple[str, str, Path]] = []
        self.installed: list[str] = []
        self.uninstalled: list[str] = []

    def parse_manifest(self, manifest_path: Path):
        return self._cargo.parse_manifest(manifest_path)

    def enumerate_members(self, root: Path) -> list[Path]:
        return self._cargo.enumerate_members(root)

    def scaffold_package(self, kind, name: str, path: Path) -> Path:
        path = Path(path)
        write_package(path, name)
        self.scaffolded.append((kind.value, name, path))
        self._cargo.register_member(path)
        return path

    def build_and_install(self, package) -> None:
        self.installed.append(package.name)

    def remove_installed(self, package) -> None:
        self.uninstalled.append(package.name)


@pytest.fixture()
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture()
def workspace_root(tmp_path: Path) -> Path:
    """A workspace with members ``app`` (depends on ``core``) and ``core``."""
    root = tmp_path / "ws"
    root.mkdir()
    (root / "Cargo.toml").write_text(
        textwrap.dedent(
            """\
            # Workspace descriptor
            [workspace]
            resolver = "2"
            name = "demo"
            members = [
                "app", # the binary
                "crates/core",
            ]

            [workspace.dependencies]
            serde = "1"
            """
        ),
        encoding="utf-8",
    )
    write_package(
        root / "app",
        "app",
        dependencies='core = { path = "../crates/core" }\nserde = { workspace = true }\n',
    )
    write_package(root / "crates" / "core", "core", version="0.2.0")
    return root


@pytest.fixture()
def anyio_backend() -> str:
    """The code under test is built on asyncio subprocesses."""
    return "asyncio"
