"""
repo-cloak

Extracts a selected subset of a repository into a separate directory,
replacing sensitive keywords in file contents and in file and folder
names, and records how to reverse the process.
"""

__version__ = "0.1.0"

from .anonymizer import (
    Replacement,
    anonymize_path,
    count_replacements,
    create_anonymizer,
    create_deanonymizer,
    deanonymize_path,
)
from .copier import CopyResult, SourceFile, copy_files, iter_copy_files
from .crypto import KeyStore, decrypt, decrypt_replacements, encrypt, encrypt_replacements
from .errors import DecryptionError, MappingCorruptError, MappingNotFoundError, RepoCloakError
from .mapping import (
    FileEntry,
    MappingRecord,
    create_mapping,
    decrypt_mapping,
    has_mapping,
    load_mapping,
    merge_mapping,
    save_mapping,
)

__all__ = [
    "Replacement",
    "anonymize_path",
    "count_replacements",
    "create_anonymizer",
    "create_deanonymizer",
    "deanonymize_path",
    "CopyResult",
    "SourceFile",
    "copy_files",
    "iter_copy_files",
    "KeyStore",
    "decrypt",
    "decrypt_replacements",
    "encrypt",
    "encrypt_replacements",
    "DecryptionError",
    "MappingCorruptError",
    "MappingNotFoundError",
    "RepoCloakError",
    "FileEntry",
    "MappingRecord",
    "create_mapping",
    "decrypt_mapping",
    "has_mapping",
    "load_mapping",
    "merge_mapping",
    "save_mapping",
]
