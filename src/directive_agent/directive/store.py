"""Discovery and parsing of directive manifests under the webroot."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from ..errors import ParseError, ScanError
from ..paths import MANIFEST_NAME
from .models import Directive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectiveFile:
    """A manifest as found on disk during one poll cycle."""

    path: Path
    raw: bytes
    identity: str

    @property
    def deploy_dir(self) -> Path:
        """The project directory the manifest lives in."""
        return self.path.parent


def deployment_identity(deploy_dir: Union[str, Path], webroot: Union[str, Path]) -> str:
    """Identity of a deployment: its path below the webroot with '/' removed.

    `/var/www/ais/shop` -> `shop`, `/var/www/ais/acme/blog` -> `acmeblog`.
    Directories outside the webroot fall back to their absolute path.
    """
    deploy_dir = Path(deploy_dir)
    try:
        relative = deploy_dir.relative_to(Path(webroot))
    except ValueError:
        relative = deploy_dir
    identity = relative.as_posix().replace("/", "")
    return identity or "root"


def strip_comments(text: str) -> str:
    """Drop every line whose first non-whitespace character is '#'."""
    kept = [line for line in text.splitlines() if not line.lstrip().startswith("#")]
    return "\n".join(kept) + "\n"


class DirectiveStore:
    """Finds `directive.ais` files below a root and decodes them."""

    def __init__(self, root: Union[str, Path], manifest_name: str = MANIFEST_NAME) -> None:
        self.root = Path(root)
        self.manifest_name = manifest_name

    def scan(self) -> List[Path]:
        """Return every manifest path below the root, sorted.

        Raises ScanError when the root itself cannot be listed. Unreadable
        subdirectories are logged and skipped.
        """
        if not self.root.is_dir():
            raise ScanError("webroot is not a readable directory", path=self.root)

        root_failure: List[OSError] = []

        def on_error(exc: OSError) -> None:
            if Path(exc.filename or "") == self.root:
                root_failure.append(exc)
            else:
                logger.warning("Skipping unreadable directory %s: %s", exc.filename, exc.strerror)

        found: List[Path] = []
        for dirpath, dirnames, filenames in os.walk(self.root, onerror=on_error):
            dirnames.sort()
            if self.manifest_name in filenames:
                found.append(Path(dirpath) / self.manifest_name)

        if root_failure:
            raise ScanError(f"cannot list webroot: {root_failure[0].strerror}", path=self.root)
        return sorted(found)

    def load(self, path: Path) -> DirectiveFile:
        """Read the raw bytes of a manifest."""
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise ParseError(f"cannot read manifest: {exc.strerror}", path=path) from exc
        return DirectiveFile(
            path=path,
            raw=raw,
            identity=deployment_identity(path.parent, self.root),
        )

    def parse(self, manifest: DirectiveFile) -> Directive:
        """Decode a manifest into a Directive, ignoring '#' comment lines."""
        try:
            text = manifest.raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError("manifest is not valid UTF-8", path=manifest.path) from exc

        try:
            payload = json.loads(strip_comments(text))
        except json.JSONDecodeError as exc:
            raise ParseError(
                f"invalid JSON at line {exc.lineno} column {exc.colno}: {exc.msg}",
                path=manifest.path,
            ) from exc

        return Directive.from_dict(payload, path=manifest.path)
