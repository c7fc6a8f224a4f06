# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""Abstract transport interface for the Workload API.

Defines the two capabilities the helper consumes: a one-shot fetch of the
current X.509 context (init mode) and a cancellable subscription that yields
every subsequent update (refresh mode).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from svidhelper.exceptions import FeedError
from svidhelper.identity.svid import X509Context

DEFAULT_SOCKET_PATH = "/var/run/spire/agent.sock"
DEFAULT_TIMEOUT_SECONDS = 5.0
SECURITY_HEADER = ("workload.spiffe.io", "true")

# A subscription yields either an update or the error the stream reported.
FeedItem = Union[X509Context, FeedError]


class TransportState(str, Enum):
    """Transport connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass
class WorkloadAPIConfig:
    """Configuration for reaching the Workload API.

    Args:
        socket_path: Unix domain socket served by the SPIRE agent, or a
            ``unix:`` address.
        timeout_seconds: Timeout for a one-shot fetch and for establishing
            a subscription.
        metadata: Call metadata sent with every request.
    """

    socket_path: str = DEFAULT_SOCKET_PATH
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    metadata: dict[str, str] = field(default_factory=lambda: dict([SECURITY_HEADER]))

    @property
    def target(self) -> str:
        """gRPC target for the socket."""
        if self.socket_path.startswith("unix:"):
            return self.socket_path
        if self.socket_path.startswith("/"):
            return f"unix://{self.socket_path}"
        # unix://name would make "name" the authority
        return f"unix:{self.socket_path}"


class X509ContextSubscription(ABC):
    """A live stream of X.509 context updates.

    Iterate with ``async for``; each item is an :class:`X509Context` or a
    :class:`FeedError` describing a stream-level failure. Iteration ends once
    the stream is exhausted or :meth:`close` has been called.
    """

    def __aiter__(self) -> "X509ContextSubscription":
        return self

    @abstractmethod
    async def __anext__(self) -> FeedItem:
        """Wait for the next update or error."""

    @abstractmethod
    async def close(self) -> None:
        """Unsubscribe. Safe to call more than once."""


class IdentityFetcher(ABC):
    """Fetches the current X.509 context once."""

    @abstractmethod
    async def fetch_x509_context(self, timeout: Optional[float] = None) -> X509Context:
        """Return the current SVIDs and bundles.

        Args:
            timeout: Maximum seconds to wait. None uses the transport default.

        Raises:
            FetchError: If the call fails or times out.
        """


class X509ContextSource(ABC):
    """Opens subscriptions to X.509 context updates."""

    @abstractmethod
    async def subscribe(self) -> X509ContextSubscription:
        """Open a new subscription.

        Raises:
            SubscriptionFailedError: If the stream cannot be established.
        """


__all__ = [
    "DEFAULT_SOCKET_PATH",
    "DEFAULT_TIMEOUT_SECONDS",
    "FeedItem",
    "IdentityFetcher",
    "SECURITY_HEADER",
    "TransportState",
    "WorkloadAPIConfig",
    "X509ContextSource",
    "X509ContextSubscription",
]
