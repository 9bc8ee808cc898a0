"""Node.js runtime and dependency installation."""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import Optional, Union

from ..errors import DependencyError
from ..local.session import LocalSession

logger = logging.getLogger(__name__)


def needs_install(project_path: Union[str, Path]) -> bool:
    """Check whether `npm install` is needed for `project_path`.

    It is when node_modules/ is missing, older than package-lock.json (or
    package.json when there is no lock file), or empty.
    """
    project_path = Path(project_path)
    node_modules = project_path / "node_modules"
    package_lock = project_path / "package-lock.json"
    package_json = project_path / "package.json"

    if not node_modules.is_dir():
        logger.info("node_modules/ does not exist in %s, npm install is needed", project_path)
        return True

    manifest = package_lock if package_lock.exists() else package_json
    try:
        manifest_mtime = manifest.stat().st_mtime
        modules_mtime = node_modules.stat().st_mtime
        modules_empty = not any(node_modules.iterdir())
    except OSError as exc:
        raise DependencyError(f"cannot inspect dependencies: {exc}", path=project_path) from exc

    if manifest_mtime > modules_mtime:
        logger.info("%s is newer than node_modules/, npm install is needed", manifest.name)
        return True

    if modules_empty:
        logger.info("node_modules/ is empty, npm install is needed")
        return True

    return False


class DependencyInstaller:
    """Installs an application's dependencies in place."""

    def install(self, path: Path) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class NpmInstaller(DependencyInstaller):
    def __init__(self, session: Optional[LocalSession] = None, npm_bin: str = "npm") -> None:
        self.session = session or LocalSession()
        self.npm_bin = npm_bin

    def install(self, path: Path) -> None:
        result = self.session.run([self.npm_bin, "install"], cwd=path)
        if not result.ok:
            raise DependencyError(
                f"an error occurred while installing npm dependencies: {result.describe()}",
                path=path,
            )
        logger.info("npm dependencies installed for %s", path)


class NodeRuntime:
    """Makes a given Node.js version available on the host."""

    def ensure(self, version: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class NvmRuntime(NodeRuntime):
    """NodeRuntime backed by nvm, which only exists as a shell function."""

    def __init__(self, session: Optional[LocalSession] = None, nvm_script: str = "~/.nvm/nvm.sh") -> None:
        self.session = session or LocalSession()
        self.nvm_script = nvm_script

    def ensure(self, version: str) -> None:
        quoted = shlex.quote(version)
        script = shlex.quote(os.path.expanduser(self.nvm_script))
        check = self.session.run_shell(f"source {script} && nvm ls {quoted}")
        if check.ok and version in check.stdout:
            logger.info("Node.js version %s is already installed", version)
            return

        logger.info("Node.js version %s is not installed. Installing...", version)
        install = self.session.run_shell(f"source {script} && nvm install {quoted}")
        if not install.ok:
            raise DependencyError(
                f"failed to install Node.js version {version}: {install.describe()}"
            )
        logger.info("Node.js version %s installed successfully", version)
