# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""
SPIFFE ID

Workload identity names of the form ``spiffe://trust-domain/path``.
A SpiffeId is immutable and compares structurally on its trust domain and
path, so two IDs are equal only if both parts match exactly. No case folding
or separator trimming is applied.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

from svidhelper.exceptions import InvalidIdentityFormatError

SCHEME_PREFIX = "spiffe://"

_TRUST_DOMAIN_RE = re.compile(r"^[a-z0-9._-]+$")
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def parse_trust_domain(text: str) -> str:
    """Return the bare trust domain name from ``example.org`` or ``spiffe://example.org``.

    Raises:
        InvalidIdentityFormatError: If the name contains illegal characters
            or a path.
    """
    name = text[len(SCHEME_PREFIX):] if text.startswith(SCHEME_PREFIX) else text
    if not name:
        raise InvalidIdentityFormatError(f"Invalid trust domain: {text!r} (empty)")
    if not _TRUST_DOMAIN_RE.match(name):
        raise InvalidIdentityFormatError(
            f"Invalid trust domain: {text!r} (only lowercase letters, digits, "
            "'.', '-' and '_' are allowed)"
        )
    return name


class SpiffeId(BaseModel):
    """
    A parsed SPIFFE ID.

    Construct with :meth:`parse`; the model is frozen and hashable, so it can
    be used as a dict key and compared with ``==``.
    """

    model_config = ConfigDict(frozen=True)

    trust_domain: str = Field(..., description="Trust domain name, e.g. example.org")
    path: str = Field(default="", description="Workload path, '' or '/seg/seg'")

    @classmethod
    def parse(cls, text: str) -> "SpiffeId":
        """Parse a SPIFFE ID string.

        Format: ``spiffe://trust-domain/path``

        Args:
            text: The full SPIFFE ID string.

        Returns:
            The parsed SpiffeId.

        Raises:
            InvalidIdentityFormatError: If the string does not conform.
        """
        if not isinstance(text, str) or not text:
            raise InvalidIdentityFormatError("Invalid SPIFFE ID: empty")
        if not text.startswith(SCHEME_PREFIX):
            raise InvalidIdentityFormatError(
                f"Invalid SPIFFE ID: {text!r} (scheme must be 'spiffe')"
            )
        if "?" in text or "#" in text:
            raise InvalidIdentityFormatError(
                f"Invalid SPIFFE ID: {text!r} (query and fragment are not allowed)"
            )

        rest = text[len(SCHEME_PREFIX):]
        authority, sep, path = rest.partition("/")
        if "@" in authority or ":" in authority:
            raise InvalidIdentityFormatError(
                f"Invalid SPIFFE ID: {text!r} (userinfo and port are not allowed)"
            )
        trust_domain = parse_trust_domain(authority)

        path = sep + path
        if path:
            cls._validate_path(text, path)

        return cls(trust_domain=trust_domain, path=path)

    @staticmethod
    def _validate_path(text: str, path: str) -> None:
        if path.endswith("/"):
            raise InvalidIdentityFormatError(
                f"Invalid SPIFFE ID: {text!r} (trailing '/' is not allowed)"
            )
        for segment in path[1:].split("/"):
            if not segment:
                raise InvalidIdentityFormatError(
                    f"Invalid SPIFFE ID: {text!r} (empty path segment)"
                )
            if segment in (".", ".."):
                raise InvalidIdentityFormatError(
                    f"Invalid SPIFFE ID: {text!r} (dot segments are not allowed)"
                )
            if not _SEGMENT_RE.match(segment):
                raise InvalidIdentityFormatError(
                    f"Invalid SPIFFE ID: {text!r} (illegal character in path)"
                )

    @property
    def trust_domain_id(self) -> str:
        """The trust domain rendered as ``spiffe://trust-domain``."""
        return f"{SCHEME_PREFIX}{self.trust_domain}"

    def member_of(self, trust_domain: str) -> bool:
        """Return True if this ID belongs to *trust_domain*."""
        return self.trust_domain == parse_trust_domain(trust_domain)

    def __str__(self) -> str:
        return f"{SCHEME_PREFIX}{self.trust_domain}{self.path}"
