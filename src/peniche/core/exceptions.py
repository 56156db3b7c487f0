"""Error taxonomy shared by the workspace engine and the task orchestrator."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class PenicheError(Exception):
    """Base class for every error raised by peniche."""


class ConfigFormatError(PenicheError):
    """Raised when a command configuration file cannot be read or is malformed."""

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class ManifestIOError(PenicheError):
    """Raised when a manifest or descriptor cannot be located, read, parsed or written."""

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class NotFoundError(PenicheError):
    pass


class UnsupportedOriginError(PenicheError):
    """Raised when an operation needs a package with a local manifest."""

    def __init__(self, message: str, *, origin: object = None) -> None:
        super().__init__(message)
        self.origin = origin


class FilesystemError(PenicheError):
    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class PathResolutionError(PenicheError, OSError):
    """Raised when a path cannot be made absolute or created on disk."""


class DependencyManagerError(PenicheError):
    """Raised when the dependency manager (cargo) fails to do what was asked."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[list[str]] = None,
        returncode: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.command = list(command) if command else []
        self.returncode = returncode


class ProcessSpawnError(PenicheError):
    def __init__(self, message: str, *, command: str, program: str) -> None:
        super().__init__(message)
        self.command = command
        self.program = program


class ProcessExitError(PenicheError):
    """A command exited non-zero.

    Never raised across command boundaries; the orchestrator logs it and
    records it on the command result.
    """

    def __init__(self, command: str, returncode: int) -> None:
        super().__init__(f"Command '{command}' exited with code {returncode}")
        self.command = command
        self.returncode = returncode
