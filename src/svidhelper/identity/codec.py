# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Credential codec

Converts Workload API key and certificate material (DER) to the PEM files
written next to the workload. Output is deterministic: the same input always
yields byte-identical PEM.
"""

from __future__ import annotations

from typing import Any, Sequence

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from svidhelper.exceptions import (
    CertificateParseError,
    PrivateKeyParseError,
    UnsupportedKeyFormatError,
)

_SEQUENCE_TAG = 0x30


def _der_element_length(der: bytes, offset: int) -> int:
    """Return the total length (header + body) of the DER element at *offset*."""
    if der[offset] != _SEQUENCE_TAG:
        raise CertificateParseError(
            f"unable to parse DER: expected SEQUENCE at offset {offset}"
        )
    if offset + 1 >= len(der):
        raise CertificateParseError("unable to parse DER: truncated length")

    first = der[offset + 1]
    if first < 0x80:
        return 2 + first

    # Long form: low bits give the number of length octets
    num_octets = first & 0x7F
    if num_octets == 0 or num_octets > 4:
        raise CertificateParseError("unable to parse DER: unsupported length encoding")
    start = offset + 2
    end = start + num_octets
    if end > len(der):
        raise CertificateParseError("unable to parse DER: truncated length")
    return 2 + num_octets + int.from_bytes(der[start:end], "big")


def split_der_certificates(der: bytes) -> list[x509.Certificate]:
    """Parse concatenated DER certificates, preserving order.

    Args:
        der: One or more DER certificates back to back.

    Returns:
        The parsed certificates, leaf first if the input was leaf first.

    Raises:
        CertificateParseError: If the input is empty or any element is malformed.
    """
    if not der:
        raise CertificateParseError("unable to parse DER: no certificate data")

    certificates: list[x509.Certificate] = []
    offset = 0
    while offset < len(der):
        length = _der_element_length(der, offset)
        chunk = der[offset:offset + length]
        if len(chunk) != length:
            raise CertificateParseError("unable to parse DER: truncated certificate")
        try:
            certificates.append(x509.load_der_x509_certificate(chunk))
        except ValueError as exc:
            raise CertificateParseError(f"unable to parse DER: {exc}") from exc
        offset += length
    return certificates


def encode_certificates(certificates: Sequence[x509.Certificate]) -> bytes:
    """Concatenate one PEM CERTIFICATE block per certificate, in input order."""
    return b"".join(
        cert.public_bytes(serialization.Encoding.PEM) for cert in certificates
    )


def load_der_private_key(der: bytes) -> Any:
    """Load a PKCS#8 DER private key.

    Raises:
        PrivateKeyParseError: If the data is not a parseable private key.
    """
    if not der:
        raise PrivateKeyParseError("failed to parse Private Key: no key data")
    try:
        return serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise PrivateKeyParseError(f"failed to parse Private Key: {exc}") from exc


def encode_private_key(key: Any) -> bytes:
    """Serialize *key* as an unencrypted PKCS#8 PEM block.

    Raises:
        UnsupportedKeyFormatError: If the key cannot be serialized as PKCS#8.
    """
    try:
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    except (AttributeError, TypeError, ValueError, UnsupportedAlgorithm) as exc:
        raise UnsupportedKeyFormatError(
            f"failed to encode Private Key ({type(key).__name__}): {exc}"
        ) from exc


def certificates_der_to_pem(der: bytes) -> bytes:
    """Convert concatenated DER certificates to concatenated PEM blocks."""
    return encode_certificates(split_der_certificates(der))


def private_key_der_to_pem(der: bytes) -> bytes:
    """Convert a PKCS#8 DER private key to PKCS#8 PEM."""
    return encode_private_key(load_der_private_key(der))


__all__ = [
    "split_der_certificates",
    "encode_certificates",
    "load_der_private_key",
    "encode_private_key",
    "certificates_der_to_pem",
    "private_key_der_to_pem",
]
