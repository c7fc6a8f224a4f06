# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for the SVID helper.

All helper exceptions inherit from SVIDHelperError. Errors raised while the
helper runs in init mode carry the ``phase`` in which they occurred, so the
single diagnostic line printed at exit says what was being attempted.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class SVIDHelperError(Exception):
    """Base exception for all SVID helper errors."""

    def __init__(self, message: str = "", *, phase: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase

    def __str__(self) -> str:
        if self.phase:
            return f"{self.phase}: {self.message}"
        return self.message


class ConfigurationError(SVIDHelperError):
    """Invalid startup configuration."""


class InvalidIdentityFormatError(ConfigurationError):
    """A SPIFFE ID string does not follow the spiffe://<trust-domain>/<path> grammar."""


class UnknownModeError(ConfigurationError):
    """The requested helper mode is neither 'init' nor 'refresh'."""


class CredentialAlreadyExistsError(SVIDHelperError):
    """The target directory already holds SVID files."""

    def __init__(self, paths: Sequence[Path], **kwargs) -> None:
        self.paths = list(paths)
        names = ", ".join(sorted(p.name for p in self.paths))
        super().__init__(f"SVIDs already exist in the given svid-path ({names})", **kwargs)


class IdentityNotIssuedError(SVIDHelperError):
    """The Workload API response does not contain the configured SPIFFE ID."""

    def __init__(self, spiffe_id: str, **kwargs) -> None:
        self.spiffe_id = spiffe_id
        super().__init__(f"no SVID issued for SPIFFE ID {spiffe_id!r}", **kwargs)


class CodecError(SVIDHelperError):
    """Certificate or key material could not be converted to PEM."""


class CertificateParseError(CodecError):
    """DER certificate data is empty or malformed."""


class PrivateKeyParseError(CodecError):
    """DER private key data is not a valid PKCS#8 key."""


class UnsupportedKeyFormatError(CodecError):
    """The private key type cannot be serialized as PKCS#8."""


class IncompleteArtifactError(CodecError):
    """A credential artifact is missing its certificate, key, or bundle."""


class PersistenceError(SVIDHelperError):
    """Writing one of the credential files failed."""

    def __init__(self, file: Path, cause: BaseException, **kwargs) -> None:
        self.file = Path(file)
        self.cause = cause
        super().__init__(f"failed to write {self.file}: {cause}", **kwargs)


class TransportError(SVIDHelperError):
    """Errors talking to the Workload API."""


class FetchError(TransportError):
    """A one-shot X.509 context fetch failed or timed out."""


class SubscriptionFailedError(TransportError):
    """The X.509 context stream could not be established."""


class FeedError(TransportError):
    """An error delivered by an established X.509 context stream."""


class FeedCancelledError(FeedError):
    """The stream was torn down on purpose."""


__all__ = [
    "SVIDHelperError",
    "ConfigurationError",
    "InvalidIdentityFormatError",
    "UnknownModeError",
    "CredentialAlreadyExistsError",
    "IdentityNotIssuedError",
    "CodecError",
    "CertificateParseError",
    "PrivateKeyParseError",
    "UnsupportedKeyFormatError",
    "IncompleteArtifactError",
    "PersistenceError",
    "TransportError",
    "FetchError",
    "SubscriptionFailedError",
    "FeedError",
    "FeedCancelledError",
]
