"""Workload API transport.

- **base**: fetch / subscribe capabilities consumed by the helper.
- **workload_api**: gRPC client for the SPIRE agent's Unix domain socket.
"""

from .base import (
    DEFAULT_SOCKET_PATH,
    DEFAULT_TIMEOUT_SECONDS,
    FeedItem,
    IdentityFetcher,
    TransportState,
    WorkloadAPIConfig,
    X509ContextSource,
    X509ContextSubscription,
)
from .workload_api import WorkloadAPIClient, WorkloadAPISubscription, response_to_context

__all__ = [
    # Base
    "DEFAULT_SOCKET_PATH",
    "DEFAULT_TIMEOUT_SECONDS",
    "FeedItem",
    "IdentityFetcher",
    "TransportState",
    "WorkloadAPIConfig",
    "X509ContextSource",
    "X509ContextSubscription",
    # gRPC
    "WorkloadAPIClient",
    "WorkloadAPISubscription",
    "response_to_context",
]
