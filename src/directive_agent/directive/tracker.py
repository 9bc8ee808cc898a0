"""Content-addressed execution markers.

A directive version counts as applied when a marker file named after the
fingerprint of (manifest bytes, deployment identity) exists and is
non-empty. Markers are written only after every side effect succeeded and
are never modified afterwards; editing a manifest, even a comment line,
produces a new fingerprint and therefore a fresh execution.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Union

from ..errors import IntegrityError

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 8


class IdempotencyTracker:
    """Checks and records execution markers under `root`."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    @staticmethod
    def fingerprint(raw: bytes, identity: str) -> str:
        digest = hashlib.sha256(raw + b"_" + identity.strip().encode("utf-8")).hexdigest()
        return digest[:TOKEN_LENGTH]

    def marker_path(self, token: str) -> Path:
        return self.root / token

    def has_executed(self, token: str) -> bool:
        marker = self.marker_path(token)
        try:
            # An empty marker means the copy never completed
            return marker.is_file() and marker.stat().st_size > 0
        except OSError:
            return False

    def record_executed(self, token: str, raw: bytes) -> Path:
        """Write the marker for `token` holding the manifest bytes.

        The marker is created first and filled second. If the write fails
        or copies nothing, the file is removed and IntegrityError is raised,
        so a half-written marker can never gate later runs.
        """
        marker = self.marker_path(token)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            marker.touch(exist_ok=True)
            with marker.open("wb") as handle:
                copied = handle.write(raw)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            self._discard(marker)
            raise IntegrityError(f"cannot write execution marker: {exc}", path=marker) from exc

        if not copied:
            self._discard(marker)
            raise IntegrityError(
                "copying the directive into its marker reported 0 bytes", path=marker
            )

        logger.debug("Recorded marker %s (%d bytes)", marker, copied)
        return marker

    def _discard(self, marker: Path) -> None:
        try:
            marker.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove incomplete marker %s: %s", marker, exc)
