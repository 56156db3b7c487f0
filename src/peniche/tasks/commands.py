"""Command definitions and their resolution for a given host OS.

A command is either a single shell line (``SimpleCommand``) or a set of
per-OS lines with an optional generic fallback (``PlatformCommand``). Each
variant knows how to resolve itself into a ``ResolvedCommand``.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

from ..core.path_utils import resolve_path

HOST_OS_NAMES = ("windows", "linux", "darwin")


def host_os() -> str:
    """Name of the running OS: ``windows``, ``linux``, ``darwin`` or other."""
    return platform.system().strip().lower() or "unknown"


@dataclass(frozen=True)
class ResolvedCommand:
    name: str
    line: str
    working_dir: Path
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.line.strip()

    def argv(self) -> list[str]:
        """Split the line on whitespace; quoting is not interpreted."""
        return self.line.split()


def _working_dir(value: Optional[str], base_dir: Optional[Path]) -> Path:
    if not value:
        return resolve_path(".")
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return candidate
    if base_dir is not None:
        return base_dir / candidate
    return resolve_path(candidate)


@dataclass(frozen=True)
class SimpleCommand:
    name: str
    line: str
    working_dir: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict)

    def resolve(
        self, os_name: Optional[str] = None, *, base_dir: Optional[Path] = None
    ) -> ResolvedCommand:
        return ResolvedCommand(
            name=self.name,
            line=self.line,
            working_dir=_working_dir(self.working_dir, base_dir),
            env=dict(self.env),
        )


@dataclass(frozen=True)
class PlatformCommand:
    name: str
    windows: Optional[str] = None
    linux: Optional[str] = None
    darwin: Optional[str] = None
    command: Optional[str] = None
    working_dir: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict)

    def line_for(self, os_name: str) -> str:
        """Line for ``os_name``, else the generic fallback, else empty."""
        key = (os_name or "").strip().lower()
        specific = getattr(self, key) if key in HOST_OS_NAMES else None
        if specific:
            return specific
        return self.command or ""

    def resolve(
        self, os_name: Optional[str] = None, *, base_dir: Optional[Path] = None
    ) -> ResolvedCommand:
        return ResolvedCommand(
            name=self.name,
            line=self.line_for(os_name if os_name is not None else host_os()),
            working_dir=_working_dir(self.working_dir, base_dir),
            env=dict(self.env),
        )


Command = Union[SimpleCommand, PlatformCommand]


def resolve(
    command: Command,
    os_name: Optional[str] = None,
    *,
    base_dir: Optional[Path] = None,
) -> ResolvedCommand:
    return command.resolve(os_name, base_dir=base_dir)
