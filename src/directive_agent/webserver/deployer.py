"""Atomic deployment of generated webserver configs.

The live file is only ever replaced by `os.replace` after the webserver has
accepted the complete configuration set, so at any point it holds either the
previous valid config or the new valid config.

    1. copy live -> <name>.bak        (when a live file exists)
    2. write rendered -> <name>.new
    3. run the webserver's config test
    4a. failure: drop .new, move .bak back over live, raise IntegrityError
    4b. success: replace live with .new, drop .bak
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from ..directive.models import Directive
from ..errors import IntegrityError
from ..local.session import LocalSession
from .nginx import render_server_block

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    stderr: str = ""


class ConfigValidator:
    """Runs the webserver's own configuration test."""

    def test(self) -> ValidationResult:  # pragma: no cover - interface
        raise NotImplementedError


class CommandValidator(ConfigValidator):
    """Validator backed by an external command such as `nginx -t`."""

    def __init__(self, command: Sequence[str], session: Optional[LocalSession] = None) -> None:
        self.command = list(command)
        self.session = session or LocalSession()

    def test(self) -> ValidationResult:
        result = self.session.run(self.command)
        # nginx -t reports success on stderr too, keep it for the log
        return ValidationResult(ok=result.ok, stderr=result.stderr or result.stdout)


@dataclass(frozen=True)
class RenderedConfig:
    """A config file waiting to be swapped in."""

    path: Path
    text: str

    @property
    def new_path(self) -> Path:
        return self.path.with_suffix(".new")

    @property
    def backup_path(self) -> Path:
        return self.path.with_suffix(".bak")


class ConfigDeployer:
    """Renders a directive's server block and swaps it in atomically."""

    def __init__(
        self,
        config_dir: Union[str, Path],
        validator: ConfigValidator,
        *,
        log_dir: Union[str, Path] = "/var/log/nginx",
        socket_template: str = "/var/run/php/php{version}-fpm.sock",
    ) -> None:
        self.config_dir = Path(config_dir)
        self.validator = validator
        self.log_dir = log_dir
        self.socket_template = socket_template

    def config_path(self, directive: Directive) -> Path:
        return self.config_dir / f"{directive.host}.conf"

    def render(self, directive: Directive, base_path: Union[str, Path]) -> RenderedConfig:
        text = render_server_block(
            directive,
            base_path,
            log_dir=self.log_dir,
            socket_template=self.socket_template,
        )
        return RenderedConfig(path=self.config_path(directive), text=text)

    def deploy(self, directive: Directive, base_path: Union[str, Path]) -> bool:
        """Deploy the config for `directive`; returns True when the live file changed."""
        rendered = self.render(directive, base_path)
        live = rendered.path

        try:
            unchanged = live.is_file() and live.read_bytes() == rendered.text.encode("utf-8")
        except OSError as exc:
            raise IntegrityError(f"cannot read live config: {exc}", path=live) from exc
        if unchanged:
            logger.info("Config %s already up to date", live)
            return False

        has_backup = False
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            if live.exists():
                shutil.copy2(live, rendered.backup_path)
                has_backup = True
            rendered.new_path.write_text(rendered.text, encoding="utf-8")
        except OSError as exc:
            self._rollback(rendered, has_backup)
            raise IntegrityError(f"cannot stage config: {exc}", path=live) from exc

        result = self.validator.test()
        if not result.ok:
            logger.error("Webserver configuration test failed:\n%s", result.stderr)
            self._rollback(rendered, has_backup)
            raise IntegrityError(
                f"webserver configuration test failed: {result.stderr or 'no output'}",
                path=live,
            )

        try:
            os.replace(rendered.new_path, live)
        except OSError as exc:
            self._rollback(rendered, has_backup)
            raise IntegrityError(f"cannot swap in new config: {exc}", path=live) from exc

        try:
            rendered.backup_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove backup %s: %s", rendered.backup_path, exc)

        logger.info("Config %s updated", live)
        return True

    def _rollback(self, rendered: RenderedConfig, has_backup: bool) -> None:
        try:
            rendered.new_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Could not remove staged config %s: %s", rendered.new_path, exc)

        if has_backup and rendered.backup_path.exists():
            try:
                os.replace(rendered.backup_path, rendered.path)
            except OSError as exc:
                logger.critical(
                    "Rollback of %s failed, backup left at %s: %s",
                    rendered.path,
                    rendered.backup_path,
                    exc,
                )
                return
            logger.info("Rolled back to the previous configuration at %s", rendered.path)
