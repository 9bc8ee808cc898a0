"""Host telemetry for status reporting."""

from __future__ import annotations

import logging
import platform
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import psutil

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


@dataclass
class SystemStats:
    """Point-in-time resource usage of the local host."""

    hostname: str
    cpu_usage: float
    total_ram_mb: int
    used_ram_mb: int
    total_swap_mb: int
    used_swap_mb: int

    def to_payload(self) -> Dict[str, str]:
        """Convert to the flat string map the aggregator expects."""
        return {
            "CPU Usage": f"{self.cpu_usage:.2f}%",
            "Total RAM": f"{self.total_ram_mb} MB",
            "Used RAM": f"{self.used_ram_mb} MB",
            "Total Swap": f"{self.total_swap_mb} MB",
            "Used Swap": f"{self.used_swap_mb} MB",
            "Hostname": self.hostname,
        }


class LocalProbe:
    """Collects information about the local system."""

    def __init__(self, cpu_interval: float = 0.5) -> None:
        self.cpu_interval = cpu_interval

    def collect(self) -> SystemStats:
        memory = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return SystemStats(
            hostname=platform.node(),
            cpu_usage=psutil.cpu_percent(interval=self.cpu_interval),
            total_ram_mb=memory.total // _MB,
            used_ram_mb=memory.used // _MB,
            total_swap_mb=swap.total // _MB,
            used_swap_mb=swap.used // _MB,
        )


def machine_id(path: Path) -> str:
    """Return the host's persistent id, generating one on first use."""
    try:
        existing = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        existing = ""
    if existing:
        return existing

    generated = str(uuid.uuid4())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generated, encoding="utf-8")
    logger.info("Generated machine id %s at %s", generated, path)
    return generated
