# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Identity selection

Picks the one SVID that belongs to this workload out of a Workload API
update, and turns it into a PEM credential artifact.
"""

from __future__ import annotations

import logging
from typing import Optional

from svidhelper.exceptions import CodecError, InvalidIdentityFormatError
from svidhelper.identity.codec import certificates_der_to_pem, private_key_der_to_pem
from svidhelper.identity.spiffe import SpiffeId
from svidhelper.identity.svid import CredentialArtifact, X509Context, X509SVID

logger = logging.getLogger(__name__)


def select_svid(context: X509Context, target: SpiffeId) -> Optional[X509SVID]:
    """Return the first SVID whose SPIFFE ID equals *target*, or None.

    Candidates whose ID does not parse never match.
    """
    for svid in context.svids:
        try:
            candidate = SpiffeId.parse(svid.spiffe_id)
        except InvalidIdentityFormatError:
            logger.debug("Ignoring SVID with malformed SPIFFE ID %r", svid.spiffe_id)
            continue
        if candidate == target:
            return svid
    return None


class IdentitySelector:
    """Selects and encodes the credential set for a single SPIFFE ID.

    Args:
        target: The SPIFFE ID allocated to this workload.
    """

    def __init__(self, target: SpiffeId) -> None:
        self.target = target

    def select(self, context: X509Context) -> Optional[X509SVID]:
        svid = select_svid(context, self.target)
        logger.debug(
            "Selecting %s among %s: %s",
            self.target,
            context.spiffe_ids,
            "found" if svid else "not found",
        )
        return svid

    def build_artifact(self, context: X509Context) -> Optional[CredentialArtifact]:
        """Select the target SVID and convert it to PEM.

        The trust bundle comes from the update's bundle set for the target's
        trust domain, falling back to the bundle attached to the SVID itself.

        Returns:
            The credential artifact, or None if the target was not issued.

        Raises:
            CodecError: If the certificate, key, or bundle cannot be encoded.
        """
        svid = self.select(context)
        if svid is None:
            return None
        return self.encode(svid, context)

    def encode(self, svid: X509SVID, context: X509Context) -> CredentialArtifact:
        """Convert *svid* and the matching trust bundle from *context* to PEM."""
        bundle_der = context.bundle_for(self.target.trust_domain) or svid.bundle
        spiffe_id = str(self.target)
        try:
            pem_svid = certificates_der_to_pem(svid.x509_svid)
        except CodecError as exc:
            raise type(exc)(f"failed to parse SVID for ({spiffe_id}): {exc.message}") from exc
        try:
            pem_key = private_key_der_to_pem(svid.x509_svid_key)
        except CodecError as exc:
            raise type(exc)(
                f"failed to parse Private Key for ({spiffe_id}): {exc.message}"
            ) from exc
        try:
            pem_bundle = certificates_der_to_pem(bundle_der)
        except CodecError as exc:
            raise type(exc)(f"failed to parse Bundle for ({spiffe_id}): {exc.message}") from exc

        return CredentialArtifact(
            spiffe_id=spiffe_id,
            svid=pem_svid,
            private_key=pem_key,
            bundle=pem_bundle,
        )
