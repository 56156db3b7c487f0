from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from ..core.config import load_config_data, load_dotenv_for_root
from ..core.exceptions import ConfigFormatError
from ..core.logging_utils import log_event
from ..core.path_utils import resolve_path
from .commands import Command, PlatformCommand, ResolvedCommand, SimpleCommand

logger = logging.getLogger(__name__)

COMMAND_TABLE = "cmd"
_LINE_KEYS = ("windows", "linux", "darwin", "command")
_OBJECT_KEYS = frozenset((*_LINE_KEYS, "working_dir", "env"))


def _parse_env(name: str, value: Any, path: Optional[Path]) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigFormatError(
            f"Command '{name}': env must be a table of strings", path=path
        )
    env: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str) or not isinstance(item, str):
            raise ConfigFormatError(
                f"Command '{name}': env value for '{key}' must be a string",
                path=path,
            )
        env[key] = item
    return env


def parse_command(name: str, value: Any, path: Optional[Path] = None) -> Command:
    """Build a command from one ``cmd`` table entry."""
    if isinstance(value, str):
        return SimpleCommand(name=name, line=value)
    if not isinstance(value, Mapping):
        raise ConfigFormatError(
            f"Unexpected format in command definition '{name}': expected a string "
            f"or a table, got {type(value).__name__}",
            path=path,
        )
    unknown = sorted(str(key) for key in value if key not in _OBJECT_KEYS)
    if unknown:
        raise ConfigFormatError(
            f"Command '{name}' has unknown keys: {', '.join(unknown)}", path=path
        )
    fields: dict[str, Optional[str]] = {}
    for key in (*_LINE_KEYS, "working_dir"):
        item = value.get(key)
        if item is not None and not isinstance(item, str):
            raise ConfigFormatError(
                f"Command '{name}': '{key}' must be a string", path=path
            )
        fields[key] = item
    return PlatformCommand(
        name=name,
        env=_parse_env(name, value.get("env"), path),
        **fields,
    )


class CommandRegistry(Mapping[str, Command]):
    """Named commands loaded once from a configuration file; read-only."""

    def __init__(
        self,
        commands: Mapping[str, Command],
        *,
        base_dir: Optional[Path] = None,
        base_env: Optional[Mapping[str, str]] = None,
        source: Optional[Path] = None,
    ) -> None:
        self._commands = MappingProxyType(dict(commands))
        self._base_env = MappingProxyType(dict(base_env or {}))
        self.base_dir = base_dir
        self.source = source

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        *,
        base_dir: Optional[Path] = None,
        base_env: Optional[Mapping[str, str]] = None,
        source: Optional[Path] = None,
    ) -> "CommandRegistry":
        table = data.get(COMMAND_TABLE)
        if table is None:
            raise ConfigFormatError(
                f"Missing [{COMMAND_TABLE}] table in command config", path=source
            )
        if not isinstance(table, Mapping):
            raise ConfigFormatError(
                f"[{COMMAND_TABLE}] must be a table of commands", path=source
            )
        commands = {
            str(name): parse_command(str(name), value, source)
            for name, value in table.items()
        }
        return cls(commands, base_dir=base_dir, base_env=base_env, source=source)

    @classmethod
    def load(cls, path: Path) -> "CommandRegistry":
        """Load every command from ``path`` or fail without a partial registry."""
        path = resolve_path(path)
        data = load_config_data(path)
        base_dir = path.parent
        registry = cls.from_mapping(
            data,
            base_dir=base_dir,
            base_env=load_dotenv_for_root(base_dir),
            source=path,
        )
        log_event(
            logger,
            logging.DEBUG,
            "registry.loaded",
            path=path,
            commands=len(registry),
        )
        return registry

    def __getitem__(self, name: str) -> Command:
        return self._commands[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def base_env(self) -> Mapping[str, str]:
        return self._base_env

    def names(self) -> list[str]:
        return sorted(self._commands)

    def resolve(self, name: str, os_name: Optional[str] = None) -> ResolvedCommand:
        """Resolve ``name`` for ``os_name``; KeyError when it is not defined."""
        return self._commands[name].resolve(os_name, base_dir=self.base_dir)
