"""Process supervision: systemd units, dependencies and the monitor companion."""

from .monitor import monitor_name, render_monitor_script
from .node import DependencyInstaller, NodeRuntime, NpmInstaller, NvmRuntime, needs_install
from .orchestrator import DEFAULT_EXEC_COMMAND, ServiceOrchestrator
from .systemd import ServiceControl, ServiceUnit, SystemctlControl, install_unit

__all__ = [
    "DEFAULT_EXEC_COMMAND",
    "DependencyInstaller",
    "NodeRuntime",
    "NpmInstaller",
    "NvmRuntime",
    "ServiceControl",
    "ServiceOrchestrator",
    "ServiceUnit",
    "SystemctlControl",
    "install_unit",
    "monitor_name",
    "needs_install",
    "render_monitor_script",
]
