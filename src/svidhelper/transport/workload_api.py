# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""gRPC client for the SPIFFE Workload API.

Talks to the SPIRE agent over its Unix domain socket and calls the
server-streaming ``FetchX509SVID`` RPC. The protobuf message types are built
from a descriptor at import time, so no generated code is required.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import grpc
from grpc import aio as grpc_aio
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from svidhelper.exceptions import (
    FeedCancelledError,
    FeedError,
    FetchError,
    InvalidIdentityFormatError,
    SubscriptionFailedError,
)
from svidhelper.identity.spiffe import SpiffeId, parse_trust_domain
from svidhelper.identity.svid import X509Context, X509SVID

from .base import (
    FeedItem,
    IdentityFetcher,
    TransportState,
    WorkloadAPIConfig,
    X509ContextSource,
    X509ContextSubscription,
)

logger = logging.getLogger(__name__)

FETCH_X509_SVID_METHOD = "/SpiffeWorkloadAPI/FetchX509SVID"


# ---------------------------------------------------------------------------
# Message schemas (workload.proto, X.509 subset)
# ---------------------------------------------------------------------------


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    field = descriptor_pb2.FieldDescriptorProto
    proto = descriptor_pb2.FileDescriptorProto(
        name="svidhelper/workload.proto",
        syntax="proto3",
    )

    proto.message_type.add(name="X509SVIDRequest")

    svid = proto.message_type.add(name="X509SVID")
    for number, name, kind in (
        (1, "spiffe_id", field.TYPE_STRING),
        (2, "x509_svid", field.TYPE_BYTES),
        (3, "x509_svid_key", field.TYPE_BYTES),
        (4, "bundle", field.TYPE_BYTES),
        (5, "hint", field.TYPE_STRING),
    ):
        svid.field.add(name=name, number=number, type=kind, label=field.LABEL_OPTIONAL)

    response = proto.message_type.add(name="X509SVIDResponse")
    entry = response.nested_type.add(name="FederatedBundlesEntry")
    entry.options.map_entry = True
    entry.field.add(name="key", number=1, type=field.TYPE_STRING, label=field.LABEL_OPTIONAL)
    entry.field.add(name="value", number=2, type=field.TYPE_BYTES, label=field.LABEL_OPTIONAL)
    response.field.add(
        name="svids",
        number=1,
        type=field.TYPE_MESSAGE,
        label=field.LABEL_REPEATED,
        type_name=".X509SVID",
    )
    response.field.add(name="crl", number=2, type=field.TYPE_BYTES, label=field.LABEL_REPEATED)
    response.field.add(
        name="federated_bundles",
        number=3,
        type=field.TYPE_MESSAGE,
        label=field.LABEL_REPEATED,
        type_name=".X509SVIDResponse.FederatedBundlesEntry",
    )
    return proto


_pool = descriptor_pool.DescriptorPool()
_pool.Add(_build_file_descriptor())

X509SVIDRequest = message_factory.GetMessageClass(_pool.FindMessageTypeByName("X509SVIDRequest"))
X509SVIDMessage = message_factory.GetMessageClass(_pool.FindMessageTypeByName("X509SVID"))
X509SVIDResponse = message_factory.GetMessageClass(_pool.FindMessageTypeByName("X509SVIDResponse"))


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------


def response_to_context(response: Any) -> X509Context:
    """Convert an ``X509SVIDResponse`` message into an :class:`X509Context`.

    Bundles are keyed by trust domain name: each SVID contributes its own
    bundle (the first SVID of a trust domain wins) and federated bundles are
    added for the remaining trust domains.
    """
    svids: list[X509SVID] = []
    bundles: dict[str, bytes] = {}

    for msg in response.svids:
        svids.append(
            X509SVID(
                spiffe_id=msg.spiffe_id,
                x509_svid=bytes(msg.x509_svid),
                x509_svid_key=bytes(msg.x509_svid_key),
                bundle=bytes(msg.bundle),
                hint=msg.hint,
            )
        )
        try:
            trust_domain = SpiffeId.parse(msg.spiffe_id).trust_domain
        except InvalidIdentityFormatError:
            logger.debug("SVID with malformed SPIFFE ID %r contributes no bundle", msg.spiffe_id)
            continue
        if msg.bundle and trust_domain not in bundles:
            bundles[trust_domain] = bytes(msg.bundle)

    for key, value in response.federated_bundles.items():
        try:
            trust_domain = parse_trust_domain(key)
        except InvalidIdentityFormatError:
            logger.warning("Ignoring federated bundle with malformed trust domain %r", key)
            continue
        bundles.setdefault(trust_domain, bytes(value))

    return X509Context(svids=svids, bundles=bundles)


def _describe(exc: grpc.RpcError) -> str:
    code = exc.code() if hasattr(exc, "code") else None
    details = exc.details() if hasattr(exc, "details") else None
    if code is None:
        return str(exc)
    if details:
        return f"{code.name}: {details}"
    return code.name


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class WorkloadAPISubscription(X509ContextSubscription):
    """An open ``FetchX509SVID`` stream.

    Args:
        channel: The gRPC channel owning the stream.
        call: The server-streaming call object.
    """

    def __init__(self, channel: Any, call: Any) -> None:
        self._channel = channel
        self._call = call
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __anext__(self) -> FeedItem:
        if self._closed or self._finished:
            raise StopAsyncIteration
        try:
            response = await self._call.read()
        except asyncio.CancelledError:
            if self._closed:
                raise StopAsyncIteration
            raise
        except grpc.RpcError as exc:
            self._finished = True
            if hasattr(exc, "code") and exc.code() == grpc.StatusCode.CANCELLED:
                return FeedCancelledError(f"X509SVID stream cancelled: {_describe(exc)}")
            return FeedError(f"X509SVID stream failed: {_describe(exc)}")

        if response is grpc_aio.EOF:
            self._finished = True
            raise StopAsyncIteration
        return response_to_context(response)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._call.cancel()
        await self._channel.close()
        logger.debug("X509SVID stream closed")


# ---------------------------------------------------------------------------
# WorkloadAPIClient
# ---------------------------------------------------------------------------


class WorkloadAPIClient(IdentityFetcher, X509ContextSource):
    """Workload API client over a Unix domain socket.

    Args:
        config: Socket path, timeout and call metadata.
    """

    def __init__(self, config: Optional[WorkloadAPIConfig] = None) -> None:
        self.config = config or WorkloadAPIConfig()
        self._state = TransportState.DISCONNECTED

    @property
    def state(self) -> TransportState:
        """Current transport state."""
        return self._state

    @property
    def _metadata(self) -> tuple[tuple[str, str], ...]:
        return tuple(self.config.metadata.items())

    def _open_channel(self) -> Any:
        return grpc_aio.insecure_channel(self.config.target)

    @staticmethod
    def _fetch_method(channel: Any) -> Any:
        return channel.unary_stream(
            FETCH_X509_SVID_METHOD,
            request_serializer=X509SVIDRequest.SerializeToString,
            response_deserializer=X509SVIDResponse.FromString,
        )

    async def fetch_x509_context(self, timeout: Optional[float] = None) -> X509Context:
        """Read the first response of a ``FetchX509SVID`` stream."""
        timeout = self.config.timeout_seconds if timeout is None else timeout
        target = self.config.target
        self._state = TransportState.CONNECTING
        channel = self._open_channel()
        try:
            call = self._fetch_method(channel)(
                X509SVIDRequest(), metadata=self._metadata, timeout=timeout
            )
            response = await call.read()
        except grpc.RpcError as exc:
            raise FetchError(
                f"unable to fetch SVID via {target}: {_describe(exc)}"
            ) from exc
        finally:
            await channel.close()
            self._state = TransportState.DISCONNECTED

        if response is grpc_aio.EOF:
            raise FetchError(f"unable to fetch SVID via {target}: stream closed without a response")
        logger.debug("Fetched X509SVID response with %d SVIDs", len(response.svids))
        return response_to_context(response)

    async def subscribe(self) -> WorkloadAPISubscription:
        """Open a ``FetchX509SVID`` stream once the channel is ready."""
        target = self.config.target
        self._state = TransportState.CONNECTING
        channel = self._open_channel()
        try:
            await asyncio.wait_for(channel.channel_ready(), timeout=self.config.timeout_seconds)
        except (asyncio.TimeoutError, grpc.RpcError) as exc:
            await channel.close()
            self._state = TransportState.DISCONNECTED
            raise SubscriptionFailedError(
                f"unable to connect to the Workload API via {target}"
            ) from exc

        call = self._fetch_method(channel)(X509SVIDRequest(), metadata=self._metadata)
        self._state = TransportState.CONNECTED
        logger.info("Subscribed to X509SVID updates via %s", target)
        return WorkloadAPISubscription(channel, call)


__all__ = [
    "FETCH_X509_SVID_METHOD",
    "WorkloadAPIClient",
    "WorkloadAPISubscription",
    "X509SVIDMessage",
    "X509SVIDRequest",
    "X509SVIDResponse",
    "response_to_context",
]
