"""
Configuration file loading.

The file maps persistent roots to the files and directories kept on them,
optionally followed by the filesystems backing those roots:

    persistence:
      /persist:
        files:
          - /etc/machine-id
        directories:
          - /var/lib/iwd
    filesystems:
      /persist:
        needed_for_boot: true

JSON is accepted as well, being a subset of YAML.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .exceptions import ConfigurationError
from .mounts import StorageMapping
from .paths import normalize_path

DEFAULT_CONFIG_PATH = "/etc/impermanence.yaml"
CONFIG_ENV_VAR = "IMPERMANENCE_CONFIG"

_TOP_LEVEL_KEYS = {"persistence", "filesystems"}
_MAPPING_KEYS = {"files", "directories"}
_FILESYSTEM_KEYS = {"needed_for_boot"}


@dataclass
class ImpermanenceConfig:
    """Parsed configuration.

    Attributes:
        mappings: Storage mappings in file order
        filesystems: Mount point -> needed_for_boot, or None when the file
                     has no ``filesystems`` section
    """

    mappings: List[StorageMapping] = field(default_factory=list)
    filesystems: Optional[Dict[str, bool]] = None


def resolve_config_path(path: Optional[str] = None) -> str:
    return path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def load_config(path: Optional[str] = None) -> ImpermanenceConfig:
    """Read and validate a configuration file.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML, or
            does not have the expected structure
    """
    path = resolve_config_path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config {path!r}: {exc.strerror}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path!r}: {exc}") from exc

    return parse_config(data, source=path)


def parse_config(data: Any, source: str = "<config>") -> ImpermanenceConfig:
    if data is None:
        data = {}
    _expect_dict(data, source)
    _reject_unknown(data, _TOP_LEVEL_KEYS, source)

    persistence = data.get("persistence") or {}
    _expect_dict(persistence, f"{source}: persistence")

    mappings = []
    for root, body in persistence.items():
        where = f"{source}: persistence.{root}"
        body = body or {}
        _expect_dict(body, where)
        _reject_unknown(body, _MAPPING_KEYS, where)
        mappings.append(
            StorageMapping(
                persistent_root=_expect_str(root, where),
                files=tuple(_expect_path_list(body.get("files"), f"{where}.files")),
                directories=tuple(
                    _expect_path_list(body.get("directories"), f"{where}.directories")
                ),
            )
        )

    filesystems = None
    if "filesystems" in data:
        filesystems = {}
        section = data.get("filesystems") or {}
        _expect_dict(section, f"{source}: filesystems")
        for mount_point, body in section.items():
            where = f"{source}: filesystems.{mount_point}"
            body = body or {}
            _expect_dict(body, where)
            _reject_unknown(body, _FILESYSTEM_KEYS, where)
            needed = body.get("needed_for_boot", False)
            if not isinstance(needed, bool):
                raise ConfigurationError(f"{where}.needed_for_boot must be true or false")
            mount_point = normalize_path(_expect_str(mount_point, where), allow_root=True)
            filesystems[mount_point] = needed

    return ImpermanenceConfig(mappings=mappings, filesystems=filesystems)


def _expect_dict(value: Any, where: str) -> None:
    if not isinstance(value, dict):
        raise ConfigurationError(f"{where} must be a mapping, got {type(value).__name__}")


def _expect_str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{where}: expected a path string, got {value!r}")
    return value


def _expect_path_list(value: Any, where: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"{where} must be a list of paths")
    return [_expect_str(item, where) for item in value]


def _reject_unknown(data: Dict[str, Any], allowed: set, where: str) -> None:
    unknown = sorted(str(key) for key in data if key not in allowed)
    if unknown:
        raise ConfigurationError(f"{where}: unknown keys {', '.join(unknown)}")
