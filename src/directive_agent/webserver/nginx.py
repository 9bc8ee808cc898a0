"""nginx server block rendering."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..directive.models import Directive
from ..errors import IntegrityError

_UNSAFE_PATH_CHARS = set(";{}\"' \t\r\n")


class PhpBackend(Enum):
    """PHP-FPM pools available on managed hosts."""

    PHP74 = "7.4"
    PHP81 = "8.1"
    PHP82 = "8.2"

    @classmethod
    def default(cls) -> "PhpBackend":
        return cls.PHP81

    @classmethod
    def lookup(cls, version: Optional[str]) -> "PhpBackend":
        """Backend for `version`; unknown or missing versions get the default pool."""
        if version:
            for backend in cls:
                if backend.value == version.strip():
                    return backend
        return cls.default()

    def fastcgi_pass(self, socket_template: str = "/var/run/php/php{version}-fpm.sock") -> str:
        return f"fastcgi_pass unix:{socket_template.format(version=self.value)};"


_SERVER_TEMPLATE = """server {{
    listen {port};
    server_name {server_name};
    root {root};

    location / {{
        try_files $uri $uri/ /index.php$is_args$args;
    }}

    location ~ \\.php$ {{
        include snippets/fastcgi-php.conf;
        {fastcgi_pass}
    }}

    error_log {log_dir}/{server_name}.error.log;
    access_log {log_dir}/{server_name}.access.log;
}}
"""


def render_server_block(
    directive: Directive,
    root: Union[str, Path],
    *,
    log_dir: Union[str, Path] = "/var/log/nginx",
    socket_template: str = "/var/run/php/php{version}-fpm.sock",
) -> str:
    if _UNSAFE_PATH_CHARS.intersection(str(root)):
        raise IntegrityError("project path cannot be used as an nginx root", path=root)
    backend = PhpBackend.lookup(directive.php_fpm_version)
    return _SERVER_TEMPLATE.format(
        port=directive.port,
        server_name=directive.host,
        root=root,
        fastcgi_pass=backend.fastcgi_pass(socket_template),
        log_dir=str(log_dir).rstrip("/"),
    )
