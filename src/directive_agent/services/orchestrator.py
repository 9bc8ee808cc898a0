"""Provisioning of the supervised application process and its monitor."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from .. import PLATFORM_NAME, __version__
from ..directive.models import Directive
from .monitor import monitor_unit, render_monitor_script, write_monitor_script
from .node import DependencyInstaller, NodeRuntime, needs_install
from .systemd import ServiceControl, ServiceUnit, install_unit

logger = logging.getLogger(__name__)

DEFAULT_EXEC_COMMAND = "/usr/bin/npm run dev"


class ServiceOrchestrator:
    """
    Turns a Node-enabled directive into two running systemd services.

    Steps run strictly in order and the first failure aborts the rest:
    runtime check, dependency install, application unit, monitor script
    and unit, daemon-reload, enable --now for both units. Nothing is
    enabled unless the daemon-reload before it succeeded.
    """

    def __init__(
        self,
        unit_dir: Union[str, Path],
        monitor_dir: Union[str, Path],
        control: ServiceControl,
        installer: DependencyInstaller,
        runtime: Optional[NodeRuntime] = None,
        *,
        default_exec_command: str = DEFAULT_EXEC_COMMAND,
        user: str = "www-data",
        group: str = "www-data",
        environment_path: str = "/usr/bin:/usr/local/bin",
        systemctl_bin: str = "systemctl",
    ) -> None:
        self.unit_dir = Path(unit_dir)
        self.monitor_dir = Path(monitor_dir)
        self.control = control
        self.installer = installer
        self.runtime = runtime
        self.default_exec_command = default_exec_command
        self.user = user
        self.group = group
        self.environment_path = environment_path
        self.systemctl_bin = systemctl_bin

    def application_unit(self, directive: Directive, working_dir: Path, service_id: str) -> ServiceUnit:
        return ServiceUnit(
            name=service_id,
            description=f"Ais project id {service_id} ({PLATFORM_NAME} {__version__})",
            exec_start=directive.nodejs_exec_command or self.default_exec_command,
            exec_start_pre=directive.nodejs_pre_exec_command,
            working_directory=str(working_dir),
            user=self.user,
            group=self.group,
            environment_path=self.environment_path,
        )

    def provision(self, directive: Directive, working_dir: Union[str, Path], service_id: str) -> List[str]:
        """Install and start the units for `directive`; returns the unit names started."""
        working_dir = Path(working_dir)

        if directive.nodejs_version and self.runtime is not None:
            self.runtime.ensure(directive.nodejs_version)

        if needs_install(working_dir):
            self.installer.install(working_dir)

        app_unit = self.application_unit(directive, working_dir, service_id)
        install_unit(self.unit_dir, app_unit)

        script = render_monitor_script(
            service_id,
            working_dir,
            track_directory=directive.track_directory,
            systemctl_bin=self.systemctl_bin,
        )
        script_path = write_monitor_script(self.monitor_dir, service_id, script)
        companion = monitor_unit(service_id, script_path, working_dir)
        install_unit(self.unit_dir, companion)

        self.control.daemon_reload()
        started = []
        for unit in (app_unit, companion):
            self.control.enable_now(unit.name)
            started.append(unit.name)
            logger.info("Enabled and started %s", unit.filename)
        return started
