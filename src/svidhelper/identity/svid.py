# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""
X.509-SVID data model

Wire records as delivered by the Workload API (DER bytes) and the PEM
credential artifact that is written to disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from svidhelper.exceptions import IncompleteArtifactError
from svidhelper.identity.spiffe import parse_trust_domain


@dataclass(frozen=True)
class X509SVID:
    """One X.509-SVID as returned by the Workload API.

    Args:
        spiffe_id: SPIFFE ID string exactly as sent by the agent.
        x509_svid: Concatenated DER certificates, leaf first.
        x509_svid_key: PKCS#8 DER private key for the leaf.
        bundle: Concatenated DER trust anchors of the SVID's trust domain.
        hint: Optional operator hint used to tell SVIDs apart.
    """

    spiffe_id: str
    x509_svid: bytes
    x509_svid_key: bytes = field(repr=False)
    bundle: bytes = b""
    hint: str = ""


@dataclass(frozen=True)
class X509Context:
    """A single update from the Workload API.

    Args:
        svids: All SVIDs currently issued to this workload, in delivery order.
        bundles: Concatenated DER trust bundles keyed by trust domain name.
    """

    svids: list[X509SVID] = field(default_factory=list)
    bundles: dict[str, bytes] = field(default_factory=dict)

    def bundle_for(self, trust_domain: str) -> Optional[bytes]:
        """Return the DER bundle for *trust_domain*, or None if absent."""
        return self.bundles.get(parse_trust_domain(trust_domain))

    @property
    def spiffe_ids(self) -> list[str]:
        return [svid.spiffe_id for svid in self.svids]


@dataclass(frozen=True)
class CredentialArtifact:
    """PEM-encoded credential set for one SPIFFE ID.

    All three PEM fields must be non-empty.

    Raises:
        IncompleteArtifactError: If any field is empty.
    """

    spiffe_id: str
    svid: bytes
    private_key: bytes = field(repr=False)
    bundle: bytes

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("svid", "private_key", "bundle")
            if not getattr(self, name)
        ]
        if missing:
            raise IncompleteArtifactError(
                f"credential artifact for {self.spiffe_id} is missing: {', '.join(missing)}"
            )
