"""Data models for directive manifests."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ParseError

# Short keys accepted in hand-written manifests
_ALIASES = {
    "php": "php_fpm_version",
    "nodejs": "nodejs_bool",
}

_VERSION_FIELDS = {"php_fpm_version", "nodejs_version"}

_COMMAND_FIELDS = ("nodejs_exec_command", "nodejs_pre_exec_command")

# DNS labels separated by dots; the host lands in nginx directives and file names
_HOST_RE = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*")


@dataclass(frozen=True)
class Directive:
    """A deployment manifest as read from one `directive.ais` file.

    `directive_executed` is kept for compatibility with existing manifests
    and is never consulted: whether a directive ran is decided by the
    execution markers alone.
    """

    url: str
    port: int
    webserver: bool = False
    track_directory: bool = False
    php_fpm_version: Optional[str] = None
    nodejs_bool: bool = False
    nodejs_version: Optional[str] = None
    nodejs_exec_command: Optional[str] = None
    nodejs_pre_exec_command: Optional[str] = None
    directive_executed: bool = False

    @classmethod
    def from_dict(cls, payload: Any, *, path: Optional[Path] = None) -> "Directive":
        if not isinstance(payload, dict):
            raise ParseError("directive must be a JSON object", path=path)

        data: Dict[str, Any] = {}
        for key, value in payload.items():
            data[_ALIASES.get(key, key)] = value

        for required in ("url", "port"):
            if data.get(required) is None:
                raise ParseError(f"directive is missing '{required}'", path=path)

        kwargs: Dict[str, Any] = {}
        for item in fields(cls):
            if item.name not in data:
                continue
            kwargs[item.name] = _coerce(item.name, data[item.name], path)
        return cls(**kwargs)

    @classmethod
    def default_prefilled(cls) -> "Directive":
        """Template written by `directive-agent init`."""
        return cls(
            url="http://example.com",
            track_directory=True,
            webserver=False,
            port=8080,
            php_fpm_version="8.2",
            nodejs_bool=True,
            nodejs_version="22.6.0",
            nodejs_exec_command="npm start",
            nodejs_pre_exec_command="npm run build",
            directive_executed=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def host(self) -> str:
        """Host name used for server_name and config file names."""
        return host_of(self.url)


def host_of(url: str) -> str:
    """`https://shop.test:8443/app` -> `shop.test`."""
    host = url.split("://", 1)[-1]
    host = host.split("/", 1)[0]
    return host.split(":", 1)[0]


def _coerce(name: str, value: Any, path: Optional[Path]) -> Any:
    if name == "url":
        if not isinstance(value, str) or not value.strip():
            raise ParseError("'url' must be a non-empty string", path=path)
        if not _HOST_RE.fullmatch(host_of(value.strip())):
            raise ParseError(f"'url' does not name a valid host: {value!r}", path=path)
        return value.strip()

    if name == "port":
        if isinstance(value, bool) or not isinstance(value, int) or not 0 < value < 65536:
            raise ParseError(f"'port' must be an integer between 1 and 65535, got {value!r}", path=path)
        return value

    if name in _VERSION_FIELDS:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ParseError(f"'{name}' must be a version string", path=path)
        return str(value).strip() or None

    if name in _COMMAND_FIELDS:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ParseError(f"'{name}' must be a string", path=path)
        value = value.strip()
        if "\n" in value or "\r" in value:
            raise ParseError(f"'{name}' must be a single line", path=path)
        return value or None

    if not isinstance(value, bool):
        raise ParseError(f"'{name}' must be true or false, got {value!r}", path=path)
    return value
