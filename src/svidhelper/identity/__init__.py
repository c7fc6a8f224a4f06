"""
Workload identity

- SPIFFE IDs with structural equality
- X.509-SVID wire records and PEM credential artifacts
- DER to PEM credential codec
- Selection of this workload's SVID out of a Workload API update
"""

from .spiffe import SpiffeId, parse_trust_domain
from .svid import CredentialArtifact, X509Context, X509SVID
from .selector import IdentitySelector, select_svid

__all__ = [
    "SpiffeId",
    "parse_trust_domain",
    "CredentialArtifact",
    "X509Context",
    "X509SVID",
    "IdentitySelector",
    "select_svid",
]
