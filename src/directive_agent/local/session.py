"""Local command execution session."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_STATUS = -2
SPAWN_EXIT_STATUS = -1


@dataclass
class LocalCommandResult:
    """Result of executing a local command."""
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    @property
    def timed_out(self) -> bool:
        return self.exit_status == TIMEOUT_EXIT_STATUS

    def describe(self) -> str:
        """One-line summary used in error messages."""
        detail = self.stderr or self.stdout or "no output"
        return f"`{self.command}` exited with {self.exit_status}: {detail}"


class LocalSession:
    """
    Runs external programs on the current host.

    Every external tool the agent drives (nginx, systemctl, npm, nvm) goes
    through one session so that each invocation has a bounded timeout and a
    uniform result type. A timeout or a spawn failure never raises; it is
    reported through the exit status like any other failing command.
    """

    def __init__(
        self,
        working_dir: Optional[Union[str, Path]] = None,
        *,
        timeout: int = 300,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize local session.

        Args:
            working_dir: Default working directory for commands.
            timeout: Default total timeout in seconds for each command.
            env: Extra environment variables merged over os.environ.
        """
        self.working_dir = str(working_dir) if working_dir else None
        self.timeout = timeout
        self._extra_env = dict(env or {})

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[int] = None,
    ) -> LocalCommandResult:
        """
        Execute a command without a shell.

        Args:
            args: Program and arguments
            cwd: Working directory, defaults to the session's
            timeout: Total timeout in seconds, defaults to the session's

        Returns:
            LocalCommandResult with stdout, stderr, and exit status
        """
        command = " ".join(args)
        timeout = timeout if timeout is not None else self.timeout
        workdir = str(cwd) if cwd else self.working_dir
        logger.debug("Running %s (cwd=%s, timeout=%ss)", command, workdir, timeout)
        try:
            result = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=workdir,
                env=self._get_env(),
                check=False,
            )
        except subprocess.TimeoutExpired:
            return LocalCommandResult(
                command=command,
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                exit_status=TIMEOUT_EXIT_STATUS,
            )
        except OSError as exc:
            return LocalCommandResult(
                command=command,
                stdout="",
                stderr=str(exc),
                exit_status=SPAWN_EXIT_STATUS,
            )

        return LocalCommandResult(
            command=command,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
            exit_status=result.returncode,
        )

    def run_shell(
        self,
        script: str,
        *,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[int] = None,
    ) -> LocalCommandResult:
        """Run `script` through bash, for tools that only exist as shell functions (nvm)."""
        return self.run(["/bin/bash", "-c", script], cwd=cwd, timeout=timeout)

    def _get_env(self) -> dict:
        """Get environment variables for subprocess."""
        env = os.environ.copy()
        env.update(self._extra_env)

        # Make sure common tool locations are on PATH
        current_path = env.get("PATH", "")
        for p in ("/usr/local/bin", os.path.expanduser("~/.local/bin")):
            if os.path.exists(p) and p not in current_path.split(os.pathsep):
                current_path = p + os.pathsep + current_path
        env["PATH"] = current_path

        return env
