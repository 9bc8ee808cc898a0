"""systemd unit rendering and service manager control."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .. import PLATFORM_NAME, __version__
from ..errors import ServiceError
from ..local.session import LocalSession

logger = logging.getLogger(__name__)

MANAGED_HEADER = "# THIS SERVICE FILE IS MANAGED BY: {platform} Version: {version} DO NOT CHANGE"


@dataclass(frozen=True)
class ServiceUnit:
    """A service unit the agent owns."""

    name: str
    description: str
    exec_start: str
    working_directory: str
    exec_start_pre: Optional[str] = None
    user: str = "www-data"
    group: str = "www-data"
    restart: str = "always"
    environment_path: str = "/usr/bin:/usr/local/bin"

    @property
    def filename(self) -> str:
        return f"{self.name}.service"

    def render(self, version: str = __version__) -> str:
        for name, value in vars(self).items():
            if isinstance(value, str) and ("\n" in value or "\r" in value):
                raise ServiceError(f"unit {self.name}: '{name}' spans several lines")
        lines = [
            MANAGED_HEADER.format(platform=PLATFORM_NAME, version=version),
            "[Unit]",
            f"Description={self.description}",
            "After=network.target",
            "",
            "[Service]",
            "PermissionsStartOnly=false",
            f"ExecStart={self.exec_start}",
        ]
        if self.exec_start_pre:
            lines.append(f"ExecStartPre={self.exec_start_pre}")
        lines.extend(
            [
                f"Restart={self.restart}",
                f"User={self.user}",
                f"Group={self.group}",
                f"Environment=PATH={self.environment_path}",
                f"WorkingDirectory={self.working_directory}",
                "",
                "[Install]",
                "WantedBy=multi-user.target",
            ]
        )
        return "\n".join(lines) + "\n"


def install_unit(unit_dir: Union[str, Path], unit: ServiceUnit) -> Path:
    """Replace any existing unit file of the same name with `unit`."""
    path = Path(unit_dir) / unit.filename
    try:
        if path.exists():
            path.unlink()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(unit.render(), encoding="utf-8")
    except OSError as exc:
        raise ServiceError(f"cannot write unit file: {exc}", path=path) from exc
    logger.info("Wrote unit %s", path)
    return path


class ServiceControl:
    """The service manager operations the agent needs."""

    def daemon_reload(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def enable_now(self, unit: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def reload(self, service: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class SystemctlControl(ServiceControl):
    """ServiceControl backed by `systemctl`."""

    def __init__(self, session: Optional[LocalSession] = None, systemctl_bin: str = "systemctl") -> None:
        self.session = session or LocalSession()
        self.systemctl_bin = systemctl_bin

    def daemon_reload(self) -> None:
        self._run("daemon-reload")

    def enable_now(self, unit: str) -> None:
        self._run("enable", "--now", unit)

    def reload(self, service: str) -> None:
        self._run("reload", service)

    def _run(self, *args: str) -> None:
        result = self.session.run([self.systemctl_bin, *args])
        if not result.ok:
            raise ServiceError(result.describe())
