# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""
SVID helper

Top-level mode dispatcher. In init mode the helper fetches the SVIDs once and
writes them to the target directory; in refresh mode it hands over to the
rotation watcher and runs until SIGINT or SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import contextmanager
from typing import Iterator, Optional

from svidhelper.config import HelperConfig, Mode
from svidhelper.exceptions import FetchError, IdentityNotIssuedError, SVIDHelperError
from svidhelper.identity.selector import IdentitySelector
from svidhelper.identity.svid import CredentialArtifact
from svidhelper.observability.metrics import HelperMetrics
from svidhelper.storage.preflight import GlobPreflightChecker, PreflightChecker
from svidhelper.storage.writer import CredentialWriter
from svidhelper.transport.base import IdentityFetcher, X509ContextSource
from svidhelper.transport.workload_api import WorkloadAPIClient
from svidhelper.watcher import RotationWatcher

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def _phase(name: str) -> Iterator[None]:
    """Tag helper errors raised inside the block with the phase *name*."""
    try:
        yield
    except SVIDHelperError as exc:
        if exc.phase is None:
            exc.phase = name
        raise


def install_shutdown_handlers(stop: asyncio.Event) -> None:
    """Set *stop* when SIGINT or SIGTERM is received by the running loop."""
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, stop.set)


class SVIDHelper:
    """Fetches and writes the SVIDs for a single SPIFFE ID.

    Capabilities default to the Workload API client, the glob pre-flight
    check and the atomic writer; tests and embedders may inject their own.

    Args:
        config: Helper configuration.
        fetcher: One-shot fetch used in init mode.
        source: Subscription source used in refresh mode.
        preflight: Pre-flight check used in init mode.
        writer: Credential file writer.
        metrics: Optional Prometheus metrics for refresh mode.
    """

    def __init__(
        self,
        config: HelperConfig,
        fetcher: Optional[IdentityFetcher] = None,
        source: Optional[X509ContextSource] = None,
        preflight: Optional[PreflightChecker] = None,
        writer: Optional[CredentialWriter] = None,
        metrics: Optional[HelperMetrics] = None,
    ) -> None:
        self.config = config
        client: Optional[WorkloadAPIClient] = None
        if fetcher is None or source is None:
            client = WorkloadAPIClient(config.workload_api())
        self.fetcher = fetcher or client
        self.source = source or client
        self.preflight = preflight or GlobPreflightChecker(config.svid_file_pattern)
        self.writer = writer or CredentialWriter()
        self.metrics = metrics
        self.selector = IdentitySelector(config.pod_spiffe_id)

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def run_init(self) -> CredentialArtifact:
        """Fetch the SVIDs once and write them out.

        Returns:
            The artifact that was written.

        Raises:
            SVIDHelperError: The first failure, with ``phase`` set to one of
                preflight, fetch, select, encode or write.
        """
        target = self.config.pod_spiffe_id
        directory = self.config.svid_path

        with _phase("preflight"):
            self.preflight.check(directory)

        with _phase("fetch"):
            try:
                context = await asyncio.wait_for(
                    self.fetcher.fetch_x509_context(self.config.fetch_timeout),
                    timeout=self.config.fetch_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise FetchError(
                    f"unable to fetch SVID: timed out after {self.config.fetch_timeout}s"
                ) from exc
        logger.debug("spiffeIDs=%s, pod-spiffe-id=%s", context.spiffe_ids, target)

        with _phase("select"):
            svid = self.selector.select(context)
            if svid is None:
                raise IdentityNotIssuedError(str(target))
        logger.info("SVID fetched for SPIFFE ID: %r", str(target))

        with _phase("encode"):
            artifact = self.selector.encode(svid, context)

        with _phase("write"):
            self.writer.write(artifact, directory)

        logger.info("Init SVID completed successfully")
        return artifact

    async def run_refresh(self, stop: Optional[asyncio.Event] = None) -> None:
        """Keep the SVID files current until *stop* is set.

        Without an explicit event, SIGINT and SIGTERM stop the watcher.

        Raises:
            SubscriptionFailedError: If the Workload API stream cannot be opened.
        """
        if stop is None:
            stop = asyncio.Event()
            install_shutdown_handlers(stop)

        watcher = RotationWatcher(
            source=self.source,
            selector=self.selector,
            writer=self.writer,
            directory=self.config.svid_path,
            metrics=self.metrics,
        )
        await watcher.run(stop)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Run in the configured mode."""
        if self.config.mode is Mode.INIT:
            logger.debug("Run init mode")
            await self.run_init()
        else:
            logger.debug("Run refresh mode")
            await self.run_refresh(stop)


__all__ = ["Mode", "SVIDHelper", "install_shutdown_handlers"]
