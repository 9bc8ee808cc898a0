"""Monitor companion: a watchdog script plus the unit that runs it."""

from __future__ import annotations

import logging
import shlex
import stat
from pathlib import Path
from typing import Union

from .. import PLATFORM_NAME, __version__
from ..errors import ServiceError
from .systemd import ServiceUnit

logger = logging.getLogger(__name__)

MONITOR_SUFFIX = "_monitor"
CHECK_INTERVAL = 30

_SCRIPT_HEAD = """#!/bin/bash
# THIS FILE IS MANAGED BY: {platform} Version: {version} DO NOT CHANGE
SERVICE={service}
WATCH_DIR={watch_dir}
SYSTEMCTL={systemctl}

while true; do
    if ! "$SYSTEMCTL" is-active --quiet "$SERVICE"; then
        echo "$SERVICE is not active, restarting"
        "$SYSTEMCTL" restart "$SERVICE"
    fi
"""

_WATCH_BODY = """    if command -v inotifywait >/dev/null 2>&1; then
        if inotifywait -r -qq -t {interval} -e modify,create,delete,move \\
            --exclude '/(node_modules|\\.git)/' "$WATCH_DIR"; then
            echo "Change detected in $WATCH_DIR, restarting $SERVICE"
            "$SYSTEMCTL" restart "$SERVICE"
        fi
    else
        sleep {interval}
    fi
done
"""

_IDLE_BODY = """    sleep {interval}
done
"""


def monitor_name(service_id: str) -> str:
    return f"{service_id}{MONITOR_SUFFIX}"


def render_monitor_script(
    service_id: str,
    watch_dir: Union[str, Path],
    *,
    track_directory: bool,
    systemctl_bin: str = "systemctl",
    interval: int = CHECK_INTERVAL,
) -> str:
    """Script that keeps `<service_id>.service` up, restarting it on file changes when tracking."""
    head = _SCRIPT_HEAD.format(
        platform=PLATFORM_NAME,
        version=__version__,
        service=shlex.quote(f"{service_id}.service"),
        watch_dir=shlex.quote(str(watch_dir)),
        systemctl=shlex.quote(systemctl_bin),
    )
    body = _WATCH_BODY if track_directory else _IDLE_BODY
    return head + body.format(interval=interval)


def write_monitor_script(monitor_dir: Union[str, Path], service_id: str, text: str) -> Path:
    path = Path(monitor_dir) / f"{service_id}.monitor"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as exc:
        raise ServiceError(f"cannot write monitor script: {exc}", path=path) from exc
    logger.info("Wrote monitor script %s", path)
    return path


def monitor_unit(service_id: str, script_path: Path, working_directory: Union[str, Path]) -> ServiceUnit:
    # Runs as root: it has to restart the application unit
    return ServiceUnit(
        name=monitor_name(service_id),
        description=f"Ais monitor for project id {service_id} ({PLATFORM_NAME} {__version__})",
        exec_start=f"/bin/bash {script_path}",
        working_directory=str(working_directory),
        user="root",
        group="root",
    )
