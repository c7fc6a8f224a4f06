# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Rotation watcher

Refresh-mode state machine. Subscribes to Workload API updates and rewrites
the credential files every time this workload's SVID is rotated, until it is
told to stop. A bad update never stops the watcher; only a failed
subscription does.

States::

    STARTING -> WATCHING -> (UPDATING -> WATCHING)* -> STOPPING -> STOPPED
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from svidhelper.exceptions import (
    CodecError,
    FeedCancelledError,
    FeedError,
    PersistenceError,
    SubscriptionFailedError,
)
from svidhelper.identity.selector import IdentitySelector
from svidhelper.identity.svid import X509Context
from svidhelper.observability.metrics import HelperMetrics
from svidhelper.storage.writer import CredentialWriter
from svidhelper.transport.base import X509ContextSource, X509ContextSubscription

logger = logging.getLogger(__name__)


class WatcherState(str, Enum):
    """Lifecycle state of the rotation watcher."""

    STARTING = "starting"
    WATCHING = "watching"
    UPDATING = "updating"
    STOPPING = "stopping"
    STOPPED = "stopped"


class RotationWatcher:
    """Keeps the SVID files in *directory* in step with the Workload API.

    Args:
        source: Opens the update subscription.
        selector: Picks and encodes this workload's SVID.
        writer: Writes the credential files.
        directory: Target directory for the files.
        metrics: Optional Prometheus metrics.
    """

    def __init__(
        self,
        source: X509ContextSource,
        selector: IdentitySelector,
        writer: CredentialWriter,
        directory: Union[str, Path],
        metrics: Optional[HelperMetrics] = None,
    ) -> None:
        self.source = source
        self.selector = selector
        self.writer = writer
        self.directory = Path(directory)
        self.metrics = metrics
        self._state = WatcherState.STOPPED
        self._updates_written = 0

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def updates_written(self) -> int:
        """Number of successful writes since the watcher started."""
        return self._updates_written

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, stop: asyncio.Event) -> None:
        """Watch for updates until *stop* is set.

        Raises:
            SubscriptionFailedError: If the subscription cannot be opened.
        """
        self._state = WatcherState.STARTING
        try:
            subscription = await self.source.subscribe()
        except Exception as exc:
            self._state = WatcherState.STOPPED
            if isinstance(exc, SubscriptionFailedError):
                raise
            raise SubscriptionFailedError(f"unable to start X509SVID watcher: {exc}") from exc

        self._state = WatcherState.WATCHING
        logger.info("Watching for SVID updates for %s", self.selector.target)
        consumer = asyncio.create_task(self._consume(subscription))
        try:
            await stop.wait()
        finally:
            self._state = WatcherState.STOPPING
            await subscription.close()
            # Let an in-flight update finish before returning
            await consumer
            self._state = WatcherState.STOPPED
            logger.info("SVID watcher stopped")

    async def _consume(self, subscription: X509ContextSubscription) -> None:
        try:
            async for item in subscription:
                if isinstance(item, FeedError):
                    self._on_feed_error(item)
                    continue
                try:
                    self.handle_update(item)
                except Exception:
                    logger.exception(
                        "Unexpected error while rotating the SVID for %s",
                        self.selector.target,
                    )
                    self._record("failed")
        except Exception:
            logger.exception("X509SVID stream failed unexpectedly")
            return
        logger.debug("X509SVID stream ended")

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle_update(self, context: X509Context) -> bool:
        """Select, encode and write this workload's SVID from *context*.

        Returns:
            True if the files were written.
        """
        self._state = WatcherState.UPDATING
        target = str(self.selector.target)
        try:
            artifact = self.selector.build_artifact(context)
            if artifact is None:
                logger.info(
                    "SVID for %s not present in update (received %s)",
                    target,
                    ", ".join(context.spiffe_ids) or "none",
                )
                self._record("not_found")
                return False
            self.writer.write(artifact, self.directory)
        except CodecError as exc:
            logger.error("Failed to prepare the new SVID for %s: %s", target, exc)
            self._record("failed")
            return False
        except PersistenceError as exc:
            logger.error("Failed to rotate the SVID for %s: %s", target, exc)
            self._record("failed")
            return False
        finally:
            self._state = WatcherState.WATCHING

        self._updates_written += 1
        self._record("written")
        logger.info("SVID updated for spiffeID: %r", target)
        return True

    def _on_feed_error(self, error: FeedError) -> None:
        cancelled = isinstance(error, FeedCancelledError)
        if cancelled:
            logger.debug("X509SVID stream cancelled: %s", error)
        else:
            logger.error("X509SVID client error: %s", error)
        if self.metrics is not None:
            self.metrics.record_feed_error(cancelled)

    def _record(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_rotation(result)
