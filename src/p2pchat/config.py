"""
P2P Chat - Configuration Management

Settings come from three layers, later ones winning:

1. ``DEFAULT_CONFIG`` below
2. ``<data-dir>/config.toml``
3. ``P2PCHAT_<SECTION>_<KEY>`` environment variables

Every known key is typed after its default. Unknown sections and keys in the
file are kept but never validated.

Author: orpheus497
Version: 1.0.0
"""

import copy
import logging
import os
import sys
from pathlib import Path
from typing import IO, Any, Dict, Optional

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .constants import CONFIG_FILENAME, DEFAULT_DATA_DIR, DEFAULT_LISTEN_PORT
from .errors import ConfigError, ErrorCode

logger = logging.getLogger(__name__)

ENV_PREFIX = "P2PCHAT"

_TRUE_WORDS = ("true", "1", "yes", "on")

_TOML_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "network": {
        "port": DEFAULT_LISTEN_PORT,  # 0 = OS-assigned
    },
    "ui": {
        "show_qr": True,
    },
    "logging": {
        "level": "INFO",
        "file_logging": True,
        "console_logging": False,
    },
}


def _from_env(raw: str, default: Any) -> Any:
    """Convert an environment string to the type of ``default``."""
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE_WORDS
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    text = "".join(_escape_char(c) for c in str(value))
    return f'"{text}"'


def _escape_char(char: str) -> str:
    if char in _TOML_ESCAPES:
        return _TOML_ESCAPES[char]
    # Basic strings may not hold raw control characters.
    if char < " " or char == "\x7f":
        return f"\\u{ord(char):04X}"
    return char


def dump_toml(data: Dict[str, Any], stream: IO[str]) -> None:
    """Write one level of ``[section]`` tables; nested tables are not supported."""
    for section, table in data.items():
        if not isinstance(table, dict):
            continue
        stream.write(f"[{section}]\n")
        for key, value in table.items():
            if isinstance(value, (bool, int, float, str)):
                stream.write(f"{key} = {_toml_value(value)}\n")
        stream.write("\n")


class Config:
    """Layered configuration for P2P Chat.

    Attributes:
        config_path: Path to the TOML file (may not exist)
        data: Effective settings, section -> key -> value
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Load the configuration.

        Args:
            config_path: TOML file to read; defaults to the file in the
                default data directory

        Raises:
            ConfigError: If the file cannot be read, parsed or validated
        """
        if config_path is None:
            config_path = Path(DEFAULT_DATA_DIR).expanduser() / CONFIG_FILENAME

        self.config_path = Path(config_path)
        self.data = self._load()

    def _load(self) -> Dict[str, Any]:
        data = copy.deepcopy(DEFAULT_CONFIG)

        for section, table in self._read_file().items():
            if isinstance(table, dict) and isinstance(data.get(section), dict):
                data[section].update(table)
            else:
                data[section] = table

        self._apply_environment(data)
        self._check_types(data)
        self._check_port(data["network"]["port"])
        return data

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            logger.debug(f"No config file at {self.config_path}, using defaults")
            return {}

        try:
            with open(self.config_path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(
                ErrorCode.E704_CONFIG_PARSE_ERROR,
                f"Failed to parse configuration file: {e}",
                {"path": str(self.config_path), "error": str(e)},
            )
        except OSError as e:
            raise ConfigError(
                ErrorCode.E701_CONFIG_LOAD_FAILED,
                f"Failed to read configuration file: {e}",
                {"path": str(self.config_path), "error": str(e)},
            )

    @staticmethod
    def _apply_environment(data: Dict[str, Any]) -> None:
        """Override known keys from P2PCHAT_SECTION_KEY variables.

        A value that does not convert to the key's type is ignored.
        """
        for section, defaults in DEFAULT_CONFIG.items():
            for key, default in defaults.items():
                name = f"{ENV_PREFIX}_{section.upper()}_{key.upper()}"
                raw = os.environ.get(name)
                if raw is None:
                    continue
                try:
                    data[section][key] = _from_env(raw, default)
                except ValueError:
                    logger.warning(f"Ignoring {name}={raw!r}: expected {type(default).__name__}")

    def _check_types(self, data: Dict[str, Any]) -> None:
        for section, defaults in DEFAULT_CONFIG.items():
            table = data.get(section)
            if not isinstance(table, dict):
                raise self._invalid(section, table)
            for key, default in defaults.items():
                value = table.get(key)
                # bool is an int subclass; neither may stand in for the other
                if type(value) is not type(default):
                    raise self._invalid(f"{section}.{key}", value)

    def _check_port(self, port: int) -> None:
        if not 0 <= port <= 65535:
            raise self._invalid("network.port", port)

    def _invalid(self, key: str, value: Any) -> ConfigError:
        return ConfigError(
            ErrorCode.E703_INVALID_CONFIG,
            f"Invalid {key}: {value!r}",
            {"path": str(self.config_path), "key": key},
        )

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a value, or ``default`` when the section or key is missing."""
        return self.data.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any) -> None:
        """Set a value for this run; call save() to persist it."""
        self.data.setdefault(section, {})[key] = value

    def save(self) -> None:
        """Write the effective settings back to ``config_path``.

        Raises:
            ConfigError: If the file cannot be written
        """
        self._write(self.config_path, self.data)
        logger.info(f"Configuration saved to {self.config_path}")

    def to_dict(self) -> Dict[str, Any]:
        """Deep copy of the effective settings."""
        return copy.deepcopy(self.data)

    @classmethod
    def create_example(cls, path: Path) -> None:
        """Write a commented file holding the defaults.

        Raises:
            ConfigError: If the file cannot be written
        """
        cls._write(
            path,
            DEFAULT_CONFIG,
            header="# P2P Chat Configuration File\n# Generated example configuration\n\n",
        )

    @staticmethod
    def _write(path: Path, data: Dict[str, Any], header: str = "") -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(header)
                dump_toml(data, f)
        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to save configuration: {e}",
                {"path": str(path), "error": str(e)},
            )
