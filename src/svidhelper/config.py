# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""Helper configuration."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from svidhelper.exceptions import UnknownModeError
from svidhelper.identity.spiffe import SpiffeId
from svidhelper.storage.preflight import DEFAULT_SVID_FILE_PATTERN
from svidhelper.transport.base import (
    DEFAULT_SOCKET_PATH,
    DEFAULT_TIMEOUT_SECONDS,
    WorkloadAPIConfig,
)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class Mode(str, Enum):
    """Behavior of the helper.

    ``init`` fetches the SVIDs once and writes them out. ``refresh`` writes
    new SVIDs every time they are rotated.
    """

    INIT = "init"
    REFRESH = "refresh"

    @classmethod
    def parse(cls, text: str) -> "Mode":
        """Case-insensitive lookup.

        Raises:
            UnknownModeError: For anything other than init or refresh.
        """
        try:
            return cls(str(text).lower())
        except ValueError:
            raise UnknownModeError(f"unknown mode: {text}") from None


class HelperConfig(BaseModel):
    """Configuration for the SVID helper.

    Attributes:
        log_level: Minimum level for logging.
        mode: ``init`` or ``refresh``.
        svid_path: Directory the SVID files are written to.
        workload_api_socket: Path to the Workload API socket served by the SPIRE agent.
        pod_spiffe_id: SPIFFE ID allocated to the workload; only its SVID is written.
        fetch_timeout: Seconds to wait for the init-mode fetch.
        svid_file_pattern: Glob used by the init-mode pre-flight check.
        metrics_port: Port for the Prometheus endpoint in refresh mode, or None.
    """

    model_config = ConfigDict(frozen=True)

    log_level: str = Field(default="debug", description="Minimum level for logging")
    mode: Mode = Field(default=Mode.INIT, description="Behavior of the helper")
    svid_path: Path = Field(default=Path("/tmp"), description="Directory for the SVID files")
    workload_api_socket: str = Field(default=DEFAULT_SOCKET_PATH)
    pod_spiffe_id: SpiffeId = Field(..., description="SPIFFE ID allocated to the Pod")
    fetch_timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    svid_file_pattern: str = Field(default=DEFAULT_SVID_FILE_PATTERN)
    metrics_port: Optional[int] = Field(default=None, ge=1, le=65535)

    @field_validator("log_level", mode="before")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = str(value).lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: object) -> Mode:
        if isinstance(value, Mode):
            return value
        return Mode.parse(str(value))

    @field_validator("pod_spiffe_id", mode="before")
    @classmethod
    def _parse_spiffe_id(cls, value: object) -> SpiffeId:
        if isinstance(value, SpiffeId):
            return value
        return SpiffeId.parse(str(value))

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper())

    def workload_api(self) -> WorkloadAPIConfig:
        """Transport configuration derived from this config."""
        return WorkloadAPIConfig(
            socket_path=self.workload_api_socket,
            timeout_seconds=self.fetch_timeout,
        )
