"""
SVID Helper - SPIFFE X.509-SVIDs on the filesystem

Fetches the X.509-SVID, private key and trust bundle issued to a workload by
the SPIRE agent and writes them to a directory, once (init) or on every
rotation (refresh).

Version: 0.3.0
"""

__version__ = "0.3.0"

from .exceptions import (
    SVIDHelperError,
    ConfigurationError,
    InvalidIdentityFormatError,
    UnknownModeError,
    CredentialAlreadyExistsError,
    IdentityNotIssuedError,
    CodecError,
    CertificateParseError,
    PrivateKeyParseError,
    UnsupportedKeyFormatError,
    IncompleteArtifactError,
    PersistenceError,
    TransportError,
    FetchError,
    SubscriptionFailedError,
    FeedError,
    FeedCancelledError,
)
from .identity import (
    CredentialArtifact,
    IdentitySelector,
    SpiffeId,
    X509Context,
    X509SVID,
    select_svid,
)
from .storage import CredentialWriter, GlobPreflightChecker, PreflightChecker
from .transport import (
    IdentityFetcher,
    WorkloadAPIClient,
    WorkloadAPIConfig,
    X509ContextSource,
    X509ContextSubscription,
)
from .config import HelperConfig, Mode
from .watcher import RotationWatcher, WatcherState
from .helper import SVIDHelper

__all__ = [
    "__version__",
    # Exceptions
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
    # Identity
    "CredentialArtifact",
    "IdentitySelector",
    "SpiffeId",
    "X509Context",
    "X509SVID",
    "select_svid",
    # Storage
    "CredentialWriter",
    "GlobPreflightChecker",
    "PreflightChecker",
    # Transport
    "IdentityFetcher",
    "WorkloadAPIClient",
    "WorkloadAPIConfig",
    "X509ContextSource",
    "X509ContextSubscription",
    # Helper
    "HelperConfig",
    "Mode",
    "RotationWatcher",
    "WatcherState",
    "SVIDHelper",
]
