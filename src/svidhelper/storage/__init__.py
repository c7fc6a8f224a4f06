"""
Credential storage.

Pre-flight checks and atomic writes for the SVID files in the target directory.
"""

from .preflight import (
    DEFAULT_SVID_FILE_PATTERN,
    GlobPreflightChecker,
    PreflightChecker,
    check_no_existing_credential,
)
from .writer import (
    BUNDLE_FILENAME,
    KEY_FILENAME,
    SVID_FILENAME,
    CredentialWriter,
    atomic_write_bytes,
)

__all__ = [
    "DEFAULT_SVID_FILE_PATTERN",
    "GlobPreflightChecker",
    "PreflightChecker",
    "check_no_existing_credential",
    "BUNDLE_FILENAME",
    "KEY_FILENAME",
    "SVID_FILENAME",
    "CredentialWriter",
    "atomic_write_bytes",
]
