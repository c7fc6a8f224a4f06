# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""Pre-flight check that refuses to overwrite operator-provisioned SVIDs."""

from __future__ import annotations

import abc
import logging
from pathlib import Path
from typing import Union

from svidhelper.exceptions import CredentialAlreadyExistsError

logger = logging.getLogger(__name__)

DEFAULT_SVID_FILE_PATTERN = "svid*.pem"


def check_no_existing_credential(
    directory: Union[str, Path],
    pattern: str = DEFAULT_SVID_FILE_PATTERN,
) -> None:
    """Raise if *directory* already contains files matching *pattern*.

    A directory that does not exist holds no credentials and passes.

    Raises:
        CredentialAlreadyExistsError: If one or more files match.
    """
    matches = sorted(Path(directory).glob(pattern))
    if matches:
        raise CredentialAlreadyExistsError(matches)
    logger.debug("No existing SVIDs matching %s in %s", pattern, directory)


class PreflightChecker(abc.ABC):
    """Checks a target directory before the first init-mode write."""

    @abc.abstractmethod
    def check(self, directory: Path) -> None:
        """Raise CredentialAlreadyExistsError if *directory* is already provisioned."""


class GlobPreflightChecker(PreflightChecker):
    """Pre-flight checker that looks for files matching a glob pattern.

    Args:
        pattern: Glob of credential file names. Defaults to ``svid*.pem``.
    """

    def __init__(self, pattern: str = DEFAULT_SVID_FILE_PATTERN) -> None:
        self.pattern = pattern

    def check(self, directory: Path) -> None:
        check_no_existing_credential(directory, self.pattern)
