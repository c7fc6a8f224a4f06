"""Shared fixtures: a throwaway CA, SVID factories and scripted Workload API fakes."""

import asyncio
import datetime
from dataclasses import dataclass
from typing import Any, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from svidhelper.identity.svid import X509Context, X509SVID
from svidhelper.transport.base import (
    IdentityFetcher,
    X509ContextSource,
    X509ContextSubscription,
)

TARGET_ID = "spiffe://example.org/ns/default/sa/web"


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def cert_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def key_der(key: Any) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@dataclass
class Authority:
    """A self-signed CA for one trust domain."""

    trust_domain: str
    key: ec.EllipticCurvePrivateKey
    cert: x509.Certificate

    @classmethod
    def create(cls, trust_domain: str) -> "Authority":
        key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.datetime.now(datetime.timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(_name(trust_domain))
            .issuer_name(_name(trust_domain))
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=1))
            .not_valid_after(now + datetime.timedelta(days=1))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(key, hashes.SHA256())
        )
        return cls(trust_domain=trust_domain, key=key, cert=cert)

    @property
    def der(self) -> bytes:
        return cert_der(self.cert)

    def issue(self, spiffe_id: str, key: Optional[Any] = None) -> tuple[x509.Certificate, Any]:
        """Issue a leaf certificate with *spiffe_id* as its URI SAN."""
        key = key or ec.generate_private_key(ec.SECP256R1())
        now = datetime.datetime.now(datetime.timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(_name("workload"))
            .issuer_name(self.cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=1))
            .not_valid_after(now + datetime.timedelta(hours=1))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.SubjectAlternativeName([x509.UniformResourceIdentifier(spiffe_id)]),
                critical=False,
            )
            .sign(self.key, hashes.SHA256())
        )
        return cert, key


@pytest.fixture(scope="session")
def authority() -> Authority:
    """CA for example.org."""
    return Authority.create("example.org")


@pytest.fixture(scope="session")
def federated_authority() -> Authority:
    """CA for a federated trust domain, other.org."""
    return Authority.create("other.org")


@pytest.fixture
def target_id() -> str:
    return TARGET_ID


@pytest.fixture
def issue_svid(authority):
    """Factory for X509SVID wire records signed by the example.org CA."""

    def _issue(
        spiffe_id: str = TARGET_ID,
        *,
        bundle: Optional[bytes] = None,
        hint: str = "",
        key: Optional[Any] = None,
    ) -> X509SVID:
        leaf, leaf_key = authority.issue(spiffe_id, key=key)
        return X509SVID(
            spiffe_id=spiffe_id,
            x509_svid=cert_der(leaf),
            x509_svid_key=key_der(leaf_key),
            bundle=authority.der if bundle is None else bundle,
            hint=hint,
        )

    return _issue


@pytest.fixture
def make_context(authority):
    """Factory for X509Context updates carrying the example.org bundle."""

    def _make(*svids: X509SVID, bundles: Optional[dict[str, bytes]] = None) -> X509Context:
        if bundles is None:
            bundles = {"example.org": authority.der}
        return X509Context(svids=list(svids), bundles=bundles)

    return _make


# ---------------------------------------------------------------------------
# Workload API fakes
# ---------------------------------------------------------------------------

_END = object()


class ScriptedSubscription(X509ContextSubscription):
    """Subscription that yields queued items until closed or ended."""

    def __init__(self, items=(), ended: bool = False) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        for item in items:
            self._queue.put_nowait(item)
        if ended:
            self._queue.put_nowait(_END)
        self.close_calls = 0
        # Set whenever the consumer has taken every queued item
        self.drained = asyncio.Event()
        self.finished = asyncio.Event()

    def push(self, item) -> None:
        self.drained.clear()
        self._queue.put_nowait(item)

    async def __anext__(self):
        if self._queue.empty():
            self.drained.set()
        item = await self._queue.get()
        if item is _END:
            self.finished.set()
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self._queue.put_nowait(_END)


class ScriptedSource(X509ContextSource):
    def __init__(self, subscription=None, error: Optional[BaseException] = None) -> None:
        self.subscription = subscription
        self.error = error
        self.subscribe_calls = 0

    async def subscribe(self):
        self.subscribe_calls += 1
        if self.error is not None:
            raise self.error
        return self.subscription


class StaticFetcher(IdentityFetcher):
    def __init__(self, context=None, error: Optional[BaseException] = None, hang: bool = False):
        self.context = context
        self.error = error
        self.hang = hang
        self.calls: list[Optional[float]] = []

    async def fetch_x509_context(self, timeout=None):
        self.calls.append(timeout)
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return self.context


@pytest.fixture
def make_source():
    """Factory for a ScriptedSource wrapping a ScriptedSubscription."""

    def _make(items=(), *, ended: bool = False, error: Optional[BaseException] = None):
        return ScriptedSource(ScriptedSubscription(items, ended=ended), error=error)

    return _make


@pytest.fixture
def make_fetcher():
    """Factory for a StaticFetcher."""

    def _make(context=None, *, error: Optional[BaseException] = None, hang: bool = False):
        return StaticFetcher(context, error=error, hang=hang)

    return _make
