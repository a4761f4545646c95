"""
Global configuration and environment handling.

This module is responsible for:
- Defining global constants and defaults (file names, crypto parameters)
- Resolving the per-user state directory from the environment
- Loading the optional YAML settings file

Nothing in this file should depend on:
- the mapping record structure
- substitution rules
- CLI arguments

If something here changes, the *entire tool* behavior changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Final, List, Optional

import yaml

from .errors import SettingsError

# ---------------------------------------------------------------------------
# Tool / format versioning
# ---------------------------------------------------------------------------

TOOL_NAME: Final[str] = "repo-cloak"
TOOL_VERSION: Final[str] = "0.1.0"
MAPPING_VERSION: Final[str] = "1.1.0"

# ---------------------------------------------------------------------------
# File names
# ---------------------------------------------------------------------------

MAPPING_FILENAME: Final[str] = ".repo-cloak-map.json"
SECRET_FILENAME: Final[str] = "secret.key"
SETTINGS_FILENAME: Final[str] = "config.yml"
DEFAULT_HOME_DIRNAME: Final[str] = ".repo-cloak"

# ---------------------------------------------------------------------------
# Crypto parameters
#
# These must stay stable: changing any of them makes existing mapping
# files undecryptable.
# ---------------------------------------------------------------------------

KDF_SALT: Final[bytes] = b"repo-cloak-salt"
KDF_N: Final[int] = 2 ** 14
KDF_R: Final[int] = 8
KDF_P: Final[int] = 1
KEY_SIZE: Final[int] = 32
SECRET_SIZE: Final[int] = 32

# AES-GCM defaults
AES_NONCE_SIZE: Final[int] = 16
AES_TAG_SIZE: Final[int] = 16

# ---------------------------------------------------------------------------
# Environment variable names
# ---------------------------------------------------------------------------

ENV_HOME: Final[str] = "REPOCLOAK_HOME"
ENV_ENCRYPT: Final[str] = "REPOCLOAK_ENCRYPT"
ENV_LOG_LEVEL: Final[str] = "LOG_LEVEL"

_FALSE_VALUES = ("0", "false", "no", "off")

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_home_dir() -> Path:
    """
    Return the per-user state directory.

    ``$REPOCLOAK_HOME`` wins over ``~/.repo-cloak``. The directory is not
    created here.
    """

    raw = os.getenv(ENV_HOME)
    if raw:
        return Path(raw).expanduser()
    return Path.home() / DEFAULT_HOME_DIRNAME


def get_secret_path() -> Path:
    return get_home_dir() / SECRET_FILENAME


def get_settings_path() -> Path:
    return get_home_dir() / SETTINGS_FILENAME


@dataclass
class Settings:
    encrypt: bool = True
    simultaneous: bool = False
    case_sensitive: bool = False
    ignore: List[str] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Loading API
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "Settings":
        """
        Load settings from the YAML file and apply environment overrides.

        A missing file is not an error: every setting has a default.

        Raises:
            SettingsError: if the file is not valid YAML or has bad values
        """

        path = Path(path) if path is not None else get_settings_path()
        raw: Dict[str, Any] = {}

        if path.exists():
            try:
                with path.open("r", encoding="utf-8") as fh:
                    raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as e:
                raise SettingsError(f"Invalid settings file {path}: {e}") from e

        settings = cls._from_dict(raw)

        env_encrypt = os.getenv(ENV_ENCRYPT)
        if env_encrypt is not None:
            settings.encrypt = env_encrypt.strip().lower() not in _FALSE_VALUES

        return settings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @classmethod
    def _from_dict(cls, data: Any) -> "Settings":
        if not isinstance(data, dict):
            raise SettingsError("Settings file must contain a mapping")

        ignore = data.get("ignore", [])
        if not isinstance(ignore, list) or not all(isinstance(i, str) for i in ignore):
            raise SettingsError("'ignore' must be a list of names")

        flags = {}
        for name, default in (("encrypt", True), ("simultaneous", False), ("case_sensitive", False)):
            value = data.get(name, default)
            if not isinstance(value, bool):
                raise SettingsError(f"'{name}' must be true or false, got {value!r}")
            flags[name] = value

        return cls(ignore=list(ignore), **flags)
