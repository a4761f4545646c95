"""
Secret handling and field-level encryption.

This module owns the per-user secret (through KeyStore) and the
string-level AES-GCM encryption used for sensitive mapping fields.
It is intentionally dumb about what is being encrypted: the mapping
store decides which fields are sensitive.

Ciphertext format: ``hex(nonce):hex(tag):hex(ciphertext)``.
"""

from __future__ import annotations

import dataclasses
import logging
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import scrypt
from Crypto.Random import get_random_bytes

from .anonymizer import Replacement
from .config import (
    AES_NONCE_SIZE,
    KDF_N,
    KDF_P,
    KDF_R,
    KDF_SALT,
    KEY_SIZE,
    SECRET_SIZE,
    get_secret_path,
)
from .errors import DecryptionError
from .utils import write_private_file

logger = logging.getLogger(__name__)


class KeyStore:
    """
    Source of the per-user secret.

    A file-backed store creates the secret on first use and returns the
    same value until the file is removed. An in-memory store never touches
    the filesystem.
    """

    def __init__(self, path: Optional[str | Path] = None, *, secret: Optional[str] = None):
        self._secret = secret
        if secret is not None:
            self.path: Optional[Path] = None
        else:
            self.path = Path(path) if path is not None else get_secret_path()

    @classmethod
    def in_memory(cls, secret: str) -> "KeyStore":
        return cls(secret=secret)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def has_secret(self) -> bool:
        if self.path is None:
            return self._secret is not None
        return self.path.exists()

    def get_secret(self) -> str:
        """
        Return the persisted secret without ever creating one.

        Raises:
            DecryptionError: no secret exists for this store
        """

        if self._secret is not None:
            return self._secret
        if self.path is None or not self.path.exists():
            raise DecryptionError("No secret available on this machine")

        self._secret = self.path.read_text(encoding="utf-8").strip()
        return self._secret

    def get_or_create_secret(self) -> str:
        """
        Return the secret, generating and persisting it if none exists.

        Two processes creating the secret at the same time race; the last
        writer wins.
        """

        if self._secret is not None:
            return self._secret

        if self.path.exists():
            return self.get_secret()

        secret = get_random_bytes(SECRET_SIZE).hex()
        write_private_file(self.path, secret)
        logger.info("Created new secret at %s", self.path)

        self._secret = secret
        return secret


# ---------------------------------------------------------------------------
# String encryption
# ---------------------------------------------------------------------------


@lru_cache(maxsize=8)
def derive_key(secret: str) -> bytes:
    """Derive the AES key from a secret (scrypt, fixed application salt)."""
    return scrypt(secret, KDF_SALT, KEY_SIZE, N=KDF_N, r=KDF_R, p=KDF_P)


def encrypt(plaintext: str, secret: str) -> str:
    """Encrypt a string. Every call uses a fresh nonce."""

    cipher = AES.new(derive_key(secret), AES.MODE_GCM, nonce=get_random_bytes(AES_NONCE_SIZE))
    ciphertext, tag = cipher.encrypt_and_digest(plaintext.encode("utf-8"))
    return f"{cipher.nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(data: str, secret: str) -> Optional[str]:
    """
    Decrypt a string produced by :func:`encrypt`.

    Returns:
        The plaintext, or None if the data is malformed, the tag does not
        verify, or the secret is wrong. Never raises for bad input.
    """

    if not isinstance(data, str):
        return None

    parts = data.split(":")
    if len(parts) != 3 or not parts[0] or not parts[1]:
        return None

    try:
        nonce, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        cipher = AES.new(derive_key(secret), AES.MODE_GCM, nonce=nonce)
        payload = cipher.decrypt_and_verify(ciphertext, tag)
        return payload.decode("utf-8")
    except ValueError:
        # bad hex, bad tag length, failed MAC check or non-UTF-8 payload
        return None


# ---------------------------------------------------------------------------
# Replacement helpers
# ---------------------------------------------------------------------------


def encrypt_replacements(replacements: Iterable[Replacement], secret: str) -> List[Replacement]:
    """Encrypt the ``original`` of every rule; ``replacement`` stays visible."""
    return [
        Replacement(
            original=encrypt(r.original or "", secret),
            replacement=r.replacement,
            encrypted=True,
        )
        for r in replacements
    ]


def decrypt_replacements(replacements: Iterable[Replacement], secret: str) -> List[Replacement]:
    """
    Decrypt rule originals one by one.

    A rule that fails to decrypt comes back with ``original=None`` and
    ``decrypt_failed=True``; the rest of the batch is unaffected.
    """

    result: List[Replacement] = []

    for r in replacements:
        if not r.encrypted:
            result.append(r)
            continue

        original = decrypt(r.original, secret)
        if original is None:
            logger.debug("Could not decrypt replacement for %r", r.replacement)
            result.append(dataclasses.replace(r, original=None, decrypt_failed=True))
        else:
            result.append(Replacement(original=original, replacement=r.replacement))

    return result
