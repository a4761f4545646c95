"""
Error types raised by repo-cloak.

Every error a user can hit derives from RepoCloakError so the CLI can
render it as a message instead of a traceback. Per-file copy failures are
not exceptions here: the copier records them in its result instead.
"""

from __future__ import annotations


class RepoCloakError(RuntimeError):
    """Base class for all user-facing repo-cloak errors."""


class SettingsError(RepoCloakError):
    """The settings file exists but cannot be used."""


class MappingNotFoundError(RepoCloakError):
    """No mapping file at the expected location."""


class MappingCorruptError(RepoCloakError):
    """The mapping file is present but unreadable or malformed."""


class DecryptionError(RepoCloakError):
    """Authenticated decryption failed (wrong secret or tampered data)."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
