import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values

from .exceptions import ConfigFormatError
from .path_utils import resolve_path

logger = logging.getLogger("peniche.core.config")

CONFIG_FILENAME = "Peniche.toml"
YAML_CONFIG_FILENAMES = ("peniche.yml", "peniche.yaml")
CONFIG_FILENAMES = (CONFIG_FILENAME, *YAML_CONFIG_FILENAMES)
CONFIG_PATH_ENV = "PENICHE_CONFIG"
DOTENV_FILENAME = ".env"


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigFormatError(f"Invalid YAML in {path}: {exc}", path=path) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigFormatError(
            f"Failed to read config file {path}: {exc}", path=path
        ) from exc
    if not isinstance(data, dict):
        raise ConfigFormatError(f"Config file must be a mapping: {path}", path=path)
    return data


def _load_toml_dict(path: Path) -> Dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFormatError(f"Invalid TOML in {path}: {exc}", path=path) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigFormatError(
            f"Failed to read config file {path}: {exc}", path=path
        ) from exc


def load_config_data(path: Path) -> Dict[str, Any]:
    """Load a command configuration file as a plain mapping.

    ``.yml``/``.yaml`` files are read as YAML, everything else as TOML.
    """
    if not path.is_file():
        raise ConfigFormatError(f"Config file not found: {path}", path=path)
    if path.suffix.lower() in (".yml", ".yaml"):
        return _load_yaml_dict(path)
    return _load_toml_dict(path)


def find_nearest_config_path(start: Path) -> Optional[Path]:
    search_dir = start if start.is_dir() else start.parent
    for current in [search_dir, *search_dir.parents]:
        for filename in CONFIG_FILENAMES:
            candidate = current / filename
            if candidate.is_file():
                return candidate
    return None


def resolve_config_path(
    explicit: Optional[Path] = None,
    *,
    start: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
) -> Path:
    """Pick the command configuration file for this invocation.

    Order: explicit path, ``$PENICHE_CONFIG``, then the nearest
    ``Peniche.toml``/``peniche.yml`` walking upward from ``start``.
    """
    if explicit is not None:
        return resolve_path(explicit)
    source = env if env is not None else os.environ
    env_value = (source.get(CONFIG_PATH_ENV) or "").strip()
    if env_value:
        return resolve_path(Path(env_value).expanduser())
    base = resolve_path(start) if start is not None else resolve_path(".")
    found = find_nearest_config_path(base)
    if found is None:
        raise ConfigFormatError(
            f"Missing command config; expected one of {', '.join(CONFIG_FILENAMES)} "
            f"in {base} or parents (use --config to specify)"
        )
    return found


def load_dotenv_for_root(root: Path) -> Dict[str, str]:
    """Read ``<root>/.env`` without touching ``os.environ``."""
    dotenv_path = root / DOTENV_FILENAME
    if not dotenv_path.is_file():
        return {}
    values = dotenv_values(dotenv_path)
    loaded = {key: value for key, value in values.items() if value is not None}
    if loaded:
        logger.debug("Loaded %d values from %s", len(loaded), dotenv_path)
    return loaded
