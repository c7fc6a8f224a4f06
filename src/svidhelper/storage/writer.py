# Copyright (c) SVID Helper Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Atomic credential writer

Writes the three credential files (SVID chain, private key, trust bundle)
into the target directory. Every file is staged in a temporary file in the
same directory, fsynced, and renamed onto its final name, so a reader polling
the directory never sees a truncated PEM file. All three files are staged
before the first rename.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from svidhelper.exceptions import PersistenceError
from svidhelper.identity.svid import CredentialArtifact

logger = logging.getLogger(__name__)

SVID_FILENAME = "svid.pem"
KEY_FILENAME = "svid-key.pem"
BUNDLE_FILENAME = "bundle.pem"


def _stage_bytes(path: Path, data: bytes, mode: int) -> Path:
    """Write *data* to a fsynced temporary file next to *path* and return its name."""
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, mode)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path


def _fsync_directory(directory: Path) -> None:
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_bytes(path: Union[str, Path], data: bytes, mode: int = 0o644) -> None:
    """Atomically replace *path* with *data*, leaving it with permission *mode*.

    Raises:
        OSError: If staging or renaming fails. The temporary file is removed.
    """
    path = Path(path)
    temp_path = _stage_bytes(path, data, mode)
    try:
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


@dataclass
class CredentialWriter:
    """Writes credential artifacts into a target directory.

    Args:
        cert_mode: Permission bits for ``svid.pem``.
        key_mode: Permission bits for ``svid-key.pem`` (owner read only).
        bundle_mode: Permission bits for ``bundle.pem``.
    """

    cert_mode: int = 0o644
    key_mode: int = 0o400
    bundle_mode: int = 0o644

    def paths(self, directory: Union[str, Path]) -> tuple[Path, Path, Path]:
        directory = Path(directory)
        return (
            directory / SVID_FILENAME,
            directory / KEY_FILENAME,
            directory / BUNDLE_FILENAME,
        )

    def write(self, artifact: CredentialArtifact, directory: Union[str, Path]) -> None:
        """Write *artifact* into *directory*.

        Files already renamed into place stay there if a later file fails;
        the next successful write replaces all three.

        Raises:
            PersistenceError: Naming the file that failed and the cause.
        """
        directory = Path(directory)
        svid_path, key_path, bundle_path = self.paths(directory)
        plan = [
            (svid_path, artifact.svid, self.cert_mode),
            (key_path, artifact.private_key, self.key_mode),
            (bundle_path, artifact.bundle, self.bundle_mode),
        ]

        staged: list[tuple[Path, Path]] = []
        try:
            for final_path, data, mode in plan:
                try:
                    staged.append((final_path, _stage_bytes(final_path, data, mode)))
                except OSError as exc:
                    raise PersistenceError(final_path, exc) from exc

            # svid.pem goes into place last, after the files it depends on
            while staged:
                final_path, temp_path = staged[-1]
                try:
                    os.replace(temp_path, final_path)
                except OSError as exc:
                    raise PersistenceError(final_path, exc) from exc
                staged.pop()
        finally:
            for _, temp_path in staged:
                temp_path.unlink(missing_ok=True)

        try:
            _fsync_directory(directory)
        except OSError as exc:
            logger.warning("Unable to fsync %s after writing SVIDs: %s", directory, exc)

        logger.debug(
            "Wrote %s, %s and %s for %s",
            svid_path,
            key_path,
            bundle_path,
            artifact.spiffe_id,
        )
