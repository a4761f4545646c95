"""
Mapping record loading, saving, merging, and encryption.

This module answers one question:
    "What did a pull put into this destination, and how do we undo it?"

Responsibilities:
- Build a fresh record for a pull
- Persist it as JSON at the root of the destination
- Load and validate it again, optionally decrypting sensitive fields
- Merge files from later pulls into an existing record

This module does NOT:
- Copy or transform files
- Walk the filesystem
- Prompt the user

Sensitive fields (encrypted when the record is encrypted): the source and
destination paths, each replacement's ``original`` and each file's
``original``. Cloaked values are the shareable form and stay readable.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .anonymizer import Replacement
from .config import MAPPING_FILENAME, MAPPING_VERSION, TOOL_NAME
from .crypto import KeyStore, decrypt, encrypt, encrypt_replacements
from .errors import DecryptionError, MappingCorruptError, MappingNotFoundError
from .utils import utc_timestamp

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileEntry:
    original: Optional[str]
    cloaked: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileEntry":
        return cls(original=data.get("original"), cloaked=data.get("cloaked", ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"original": self.original, "cloaked": self.cloaked}


@dataclass
class Stats:
    total_files: int = 0
    replacements_count: int = 0


@dataclass(frozen=True)
class PullHistoryEntry:
    timestamp: str
    files_added: int
    total_files: int


@dataclass
class Location:
    path: Optional[str] = None
    platform: Optional[str] = None
    decrypted: bool = False


@dataclass
class MappingRecord:
    version: str = MAPPING_VERSION
    tool: str = TOOL_NAME
    timestamp: str = ""
    encrypted: bool = False
    source: Location = field(default_factory=Location)
    destination: Location = field(default_factory=Location)
    replacements: List[Replacement] = field(default_factory=list)
    files: List[FileEntry] = field(default_factory=list)
    stats: Stats = field(default_factory=Stats)
    pull_history: Optional[List[PullHistoryEntry]] = None
    updated_at: Optional[str] = None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MappingRecord":
        """
        Build a record from its JSON form, tolerating missing optional
        fields.

        Raises:
            MappingCorruptError: if the document is not an object or a
                field has the wrong shape
        """

        if not isinstance(data, dict):
            raise MappingCorruptError("Mapping document must be a JSON object")

        try:
            source = data.get("source") or {}
            destination = data.get("destination") or {}
            stats = data.get("stats") or {}
            files = [FileEntry.from_dict(f) for f in data.get("files") or []]
            replacements = [Replacement.from_dict(r) for r in data.get("replacements") or []]

            history = data.get("pullHistory")
            if history is not None:
                history = [
                    PullHistoryEntry(
                        timestamp=h.get("timestamp", ""),
                        files_added=int(h.get("filesAdded", 0)),
                        total_files=int(h.get("totalFiles", 0)),
                    )
                    for h in history
                ]

            return cls(
                version=str(data.get("version", MAPPING_VERSION)),
                tool=data.get("tool", TOOL_NAME),
                timestamp=data.get("timestamp", ""),
                encrypted=bool(data.get("encrypted", False)),
                source=Location(
                    path=source.get("path"),
                    platform=source.get("platform"),
                    decrypted=bool(source.get("decrypted", False)),
                ),
                destination=Location(
                    path=destination.get("path"),
                    platform=destination.get("platform"),
                    decrypted=bool(destination.get("decrypted", False)),
                ),
                replacements=replacements,
                files=files,
                stats=Stats(
                    total_files=int(stats.get("totalFiles", len(files))),
                    replacements_count=int(stats.get("replacementsCount", len(replacements))),
                ),
                pull_history=history,
                updated_at=data.get("updatedAt"),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise MappingCorruptError(f"Malformed mapping document: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "version": self.version,
            "tool": self.tool,
            "timestamp": self.timestamp,
            "encrypted": self.encrypted,
            "source": _location_to_dict(self.source),
            "destination": _location_to_dict(self.destination),
            "replacements": [r.to_dict() for r in self.replacements],
            "files": [f.to_dict() for f in self.files],
            "stats": {
                "totalFiles": self.stats.total_files,
                "replacementsCount": self.stats.replacements_count,
            },
        }

        if self.pull_history is not None:
            data["pullHistory"] = [
                {"timestamp": h.timestamp, "filesAdded": h.files_added, "totalFiles": h.total_files}
                for h in self.pull_history
            ]
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at

        return data

    def refresh_stats(self) -> None:
        self.stats = Stats(total_files=len(self.files), replacements_count=len(self.replacements))


def _location_to_dict(location: Location) -> Dict[str, Any]:
    data: Dict[str, Any] = {"path": location.path}
    if location.platform is not None:
        data["platform"] = location.platform
    if location.decrypted:
        data["decrypted"] = True
    return data


def _mapping_path(directory: str | Path) -> Path:
    return Path(directory) / MAPPING_FILENAME


# ---------------------------------------------------------------------------
# Create / save / load
# ---------------------------------------------------------------------------


def create_mapping(
    source_dir: str | Path,
    dest_dir: str | Path,
    replacements: Iterable[Replacement],
    files: Iterable[FileEntry],
    timestamp: Optional[str] = None,
    key_store: Optional[KeyStore] = None,
) -> MappingRecord:
    """
    Build a fresh record for a pull.

    With a key store the sensitive fields are encrypted under its secret;
    without one the record is stored in plaintext.
    """

    replacements = list(replacements)
    files = list(files)

    record = MappingRecord(
        timestamp=timestamp or utc_timestamp(),
        source=Location(path=str(source_dir), platform=sys.platform),
        destination=Location(path=str(dest_dir)),
        replacements=replacements,
        files=files,
    )
    record.refresh_stats()

    if key_store is not None:
        record = encrypt_mapping(record, key_store.get_or_create_secret())

    return record


def save_mapping(dest_dir: str | Path, record: MappingRecord) -> Path:
    """
    Write the record to the destination, replacing any existing file.

    The stats are recomputed from the files and replacements first.
    """

    if record.encrypted and record.source.decrypted:
        raise ValueError("Refusing to save a decrypted view of an encrypted mapping")

    record.refresh_stats()
    path = _mapping_path(dest_dir)
    path.write_text(json.dumps(record.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    logger.debug("Saved mapping (%d files) to %s", record.stats.total_files, path)
    return path


def load_raw_mapping(directory: str | Path) -> Optional[MappingRecord]:
    """Load the record as stored, or None when the directory has none."""

    if not has_mapping(directory):
        return None
    return load_mapping(directory)


def load_mapping(directory: str | Path, key_store: Optional[KeyStore] = None) -> MappingRecord:
    """
    Load a record, decrypting it when a key store is given.

    Raises:
        MappingNotFoundError: no mapping file in ``directory``
        MappingCorruptError: the file is not a valid mapping document
        DecryptionError: a key store was given and decryption failed
    """

    path = _mapping_path(directory)
    if not path.exists():
        raise MappingNotFoundError(
            f"No mapping file found in {directory}. Is this a {TOOL_NAME} backup?"
        )

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MappingCorruptError(f"Failed to read mapping file {path}: {e}") from e

    record = MappingRecord.from_dict(raw)

    if record.encrypted and key_store is not None:
        return decrypt_mapping(record, key_store.get_secret())

    return record


def has_mapping(directory: str | Path) -> bool:
    return _mapping_path(directory).is_file()


def update_mapping(dest_dir: str | Path, **updates: Any) -> MappingRecord:
    """
    Overwrite top-level fields of the stored record and stamp ``updatedAt``.

    Raises:
        MappingNotFoundError: no mapping file in ``dest_dir``
    """

    record = load_mapping(dest_dir)
    record = dataclasses.replace(record, **updates, updated_at=utc_timestamp())
    save_mapping(dest_dir, record)
    return record


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------


def encrypt_mapping(record: MappingRecord, secret: str) -> MappingRecord:
    """Return a copy of a plaintext record with its sensitive fields encrypted."""

    if record.encrypted and not record.source.decrypted:
        return record

    return dataclasses.replace(
        record,
        encrypted=True,
        source=dataclasses.replace(record.source, path=encrypt(record.source.path or "", secret), decrypted=False),
        destination=dataclasses.replace(
            record.destination, path=encrypt(record.destination.path or "", secret), decrypted=False
        ),
        replacements=encrypt_replacements(record.replacements, secret),
        files=[FileEntry(original=encrypt(f.original or "", secret), cloaked=f.cloaked) for f in record.files],
    )


def _decrypt_field(value: Any, secret: str, name: str) -> str:
    if not isinstance(value, str):
        raise MappingCorruptError(f"Encrypted field '{name}' is missing or not a string")

    plaintext = decrypt(value, secret)
    if plaintext is None:
        raise DecryptionError(f"Failed to decrypt mapping field '{name}'", field=name)
    return plaintext


def decrypt_mapping(record: MappingRecord, secret: str) -> MappingRecord:
    """
    Decrypt every sensitive field of an encrypted record.

    Unlike :func:`decrypt_replacements` this is all-or-nothing: one field
    that does not decrypt fails the whole record.

    Raises:
        DecryptionError: wrong secret or tampered ciphertext
        MappingCorruptError: an encrypted field is missing
    """

    if is_decrypted(record):
        return record

    replacements = []
    for idx, r in enumerate(record.replacements):
        if r.encrypted:
            original = _decrypt_field(r.original, secret, f"replacements[{idx}].original")
            replacements.append(Replacement(original=original, replacement=r.replacement))
        else:
            replacements.append(r)

    files = [
        FileEntry(original=_decrypt_field(f.original, secret, f"files[{idx}].original"), cloaked=f.cloaked)
        for idx, f in enumerate(record.files)
    ]

    return dataclasses.replace(
        record,
        source=dataclasses.replace(
            record.source, path=_decrypt_field(record.source.path, secret, "source.path"), decrypted=True
        ),
        destination=dataclasses.replace(
            record.destination,
            path=_decrypt_field(record.destination.path, secret, "destination.path"),
            decrypted=True,
        ),
        replacements=replacements,
        files=files,
    )


def is_decrypted(record: MappingRecord) -> bool:
    """True when the record holds plaintext, whatever its ``encrypted`` flag."""
    return not record.encrypted or record.source.decrypted


# ---------------------------------------------------------------------------
# Incremental pulls
# ---------------------------------------------------------------------------


def _require_secret(record: MappingRecord, key_store: Optional[KeyStore]) -> Optional[str]:
    if is_decrypted(record):
        return None
    if key_store is None:
        raise DecryptionError("A key store is required to modify an encrypted mapping")
    return key_store.get_secret()


def merge_mapping(
    existing: MappingRecord,
    new_files: Iterable[FileEntry],
    key_store: Optional[KeyStore] = None,
) -> MappingRecord:
    """
    Add files from a later pull to an existing record.

    Files whose original relative path is already recorded are skipped.
    Stats are recomputed and one pull-history entry is appended.
    Replacements are left alone; see :func:`add_replacements`.

    An encrypted record stays encrypted: its file paths are decrypted for
    comparison and the new entries are encrypted before being appended.

    Raises:
        DecryptionError: the record is encrypted and no usable key store
            was given
    """

    secret = _require_secret(existing, key_store)

    if secret is None:
        known = {f.original for f in existing.files}
    else:
        known = {_decrypt_field(f.original, secret, f"files[{idx}].original") for idx, f in enumerate(existing.files)}

    added: List[FileEntry] = []
    for entry in new_files:
        if entry.original in known:
            continue
        known.add(entry.original)
        added.append(entry)

    if secret is not None:
        added = [FileEntry(original=encrypt(f.original or "", secret), cloaked=f.cloaked) for f in added]

    files = list(existing.files) + added
    history = list(existing.pull_history or [])
    history.append(PullHistoryEntry(timestamp=utc_timestamp(), files_added=len(added), total_files=len(files)))

    merged = dataclasses.replace(existing, files=files, pull_history=history)
    merged.refresh_stats()

    logger.debug("Merged %d new file(s) into mapping (total %d)", len(added), len(files))
    return merged


def add_replacements(
    record: MappingRecord,
    new_replacements: Iterable[Replacement],
    key_store: Optional[KeyStore] = None,
) -> MappingRecord:
    """Append replacement rules, encrypting them if the record is encrypted."""

    secret = _require_secret(record, key_store)
    new_replacements = list(new_replacements)

    if secret is not None:
        new_replacements = encrypt_replacements(new_replacements, secret)

    updated = dataclasses.replace(record, replacements=list(record.replacements) + new_replacements)
    updated.refresh_stats()
    return updated


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


def get_original_source(record: MappingRecord) -> Optional[str]:
    return record.source.path if record.source else None


def get_replacements(record: MappingRecord) -> List[Replacement]:
    return list(record.replacements or [])


def get_files(record: MappingRecord) -> List[FileEntry]:
    return list(record.files or [])
