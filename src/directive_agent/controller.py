"""The polling loop that applies directives exactly once per content version."""

from __future__ import annotations

import fcntl
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .config import AppConfig
from .directive import DirectiveFile, DirectiveStore, IdempotencyTracker
from .directive.models import Directive
from .errors import AgentLockedError, DirectiveError, ScanError
from .local.session import LocalSession
from .paths import LOCK_NAME
from .reporting import AppStatus, Status, StatusReporter
from .services import NpmInstaller, NvmRuntime, ServiceControl, ServiceOrchestrator, SystemctlControl
from .webserver import CommandValidator, ConfigDeployer

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """How one directive ended in one cycle."""
    SKIPPED = "skipped"          # marker present, nothing done
    APPLIED = "applied"          # side effects done and marker written
    FAILED = "failed"            # a step failed, retried next cycle
    UNRECORDED = "unrecorded"    # side effects done, marker write failed


@dataclass
class DirectiveOutcome:
    path: Path
    outcome: Outcome
    token: Optional[str] = None
    error: Optional[DirectiveError] = None
    config_changed: bool = False
    units: List[str] = field(default_factory=list)

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None


@dataclass
class CycleReport:
    """Everything that happened in one poll cycle."""
    outcomes: List[DirectiveOutcome] = field(default_factory=list)
    scan_error: Optional[ScanError] = None
    reload_error: Optional[DirectiveError] = None

    def by_outcome(self, outcome: Outcome) -> List[DirectiveOutcome]:
        return [item for item in self.outcomes if item.outcome == outcome]

    @property
    def config_changed(self) -> bool:
        return any(item.config_changed for item in self.outcomes)

    @property
    def ok(self) -> bool:
        if self.scan_error or self.reload_error:
            return False
        return not any(item.outcome in (Outcome.FAILED, Outcome.UNRECORDED) for item in self.outcomes)


@contextmanager
def agent_lock(path: Path) -> Iterator[None]:
    """Hold an advisory exclusive lock on `path` for the duration of the block."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(path, "a+")
    try:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            raise AgentLockedError(f"another directive agent holds {path}") from exc
        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        handle.close()


class ExecutionController:
    """
    Polls the webroot and applies each new directive version once.

    Per directive and cycle: fingerprint the raw manifest, skip it when its
    marker exists, otherwise parse it, deploy the webserver config and/or
    provision services, then write the marker. Failures are contained to
    the directive that caused them and surface as a Warning status.

    Precondition: this controller is the only writer of the marker
    directory and the webserver config directory. Two agents running
    against the same tree race on the backup/rename steps; `run_forever`
    takes an advisory lock to refuse a second instance.
    """

    def __init__(
        self,
        store: DirectiveStore,
        tracker: IdempotencyTracker,
        deployer: ConfigDeployer,
        orchestrator: ServiceOrchestrator,
        reporter: StatusReporter,
        control: ServiceControl,
        *,
        webserver_service: str = "nginx",
        poll_interval: float = 10.0,
        app_name: str = "directive",
        lock_path: Optional[Path] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.deployer = deployer
        self.orchestrator = orchestrator
        self.reporter = reporter
        self.control = control
        self.webserver_service = webserver_service
        self.poll_interval = poll_interval
        self.app_name = app_name
        self.lock_path = lock_path
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: AppConfig) -> "ExecutionController":
        """Wire the controller to the real host tools described by `config`."""
        session = LocalSession(timeout=config.agent.command_timeout)
        control = SystemctlControl(session, systemctl_bin=config.services.systemctl_bin)
        lock_path = Path(config.paths.marker_dir) / LOCK_NAME if config.agent.use_lock else None
        return cls(
            store=DirectiveStore(config.paths.webroot, config.agent.manifest_name),
            tracker=IdempotencyTracker(config.paths.marker_dir),
            deployer=ConfigDeployer(
                config.paths.webserver_config_dir,
                CommandValidator(config.webserver.validate_command, session),
                log_dir=config.paths.webserver_log_dir,
                socket_template=config.webserver.php_socket_template,
            ),
            orchestrator=ServiceOrchestrator(
                config.paths.unit_dir,
                config.paths.monitor_dir,
                control,
                NpmInstaller(session, npm_bin=config.services.npm_bin),
                NvmRuntime(session, nvm_script=config.services.nvm_script),
                default_exec_command=config.services.default_exec_command,
                user=config.services.user,
                group=config.services.group,
                environment_path=config.services.environment_path,
                systemctl_bin=config.services.systemctl_bin,
            ),
            reporter=StatusReporter(
                config.reporter.endpoint,
                token=config.reporter.token,
                timeout=config.reporter.timeout,
            ),
            control=control,
            webserver_service=config.webserver.service,
            poll_interval=config.agent.poll_interval,
            app_name=config.reporter.app_name,
            lock_path=lock_path,
        )

    def _report(self, app_status: AppStatus, detail: Optional[str] = None) -> None:
        self.reporter.safe_report(Status.now(app_status, detail, app_name=self.app_name))

    def run_cycle(self) -> CycleReport:
        report = CycleReport()

        try:
            paths = self.store.scan()
        except ScanError as exc:
            logger.error("Error scanning %s: %s", self.store.root, exc)
            report.scan_error = exc
            self._report(AppStatus.WARNING, f"ScanError: {exc}")
            return report

        for path in paths:
            report.outcomes.append(self.process(path))

        if report.config_changed:
            try:
                self.control.reload(self.webserver_service)
                logger.info("Reloaded %s", self.webserver_service)
            except DirectiveError as exc:
                # Configs passed validation; the reload is not retried by redeploying them
                logger.error("Reloading %s failed: %s", self.webserver_service, exc)
                report.reload_error = exc
                self._report(AppStatus.WARNING, f"{exc.kind}: reload of {self.webserver_service} failed: {exc}")

        self._report(AppStatus.RUNNING)
        return report

    def process(self, path: Path) -> DirectiveOutcome:
        """Run one manifest through check, deploy and record."""
        try:
            manifest = self.store.load(path)
        except DirectiveError as exc:
            return self._failed(path, None, exc)

        token = self.tracker.fingerprint(manifest.raw, manifest.identity)
        if self.tracker.has_executed(token):
            logger.debug("Directive %s already executed (%s)", path, token)
            return DirectiveOutcome(path=path, outcome=Outcome.SKIPPED, token=token)

        outcome = DirectiveOutcome(path=path, outcome=Outcome.APPLIED, token=token)
        try:
            directive = self.store.parse(manifest)
            self.apply(manifest, directive, outcome)
        except DirectiveError as exc:
            # A config swapped in before the failure still needs the reload
            return self._failed(path, token, exc, config_changed=outcome.config_changed)

        try:
            self.tracker.record_executed(token, manifest.raw)
        except DirectiveError as exc:
            logger.critical(
                "Directive %s was executed but its marker %s could not be stored; "
                "it will run again every cycle until an operator intervenes: %s",
                path,
                token,
                exc,
            )
            self._report(AppStatus.WARNING, f"marker-commit-failed: {path} ({token}): {exc}")
            outcome.outcome = Outcome.UNRECORDED
            outcome.error = exc
        return outcome

    def apply(self, manifest: DirectiveFile, directive: Directive, outcome: DirectiveOutcome) -> None:
        """Run the side effects of `directive`, recording each on `outcome` as it completes."""
        logger.info("Executing directive: %s", manifest.deploy_dir)

        if directive.webserver:
            outcome.config_changed = self.deployer.deploy(directive, manifest.deploy_dir)
            if not outcome.config_changed:
                logger.info("The project %s needs no webserver changes", manifest.deploy_dir)

        if directive.nodejs_bool:
            outcome.units = self.orchestrator.provision(directive, manifest.deploy_dir, manifest.identity)

    def _failed(
        self,
        path: Path,
        token: Optional[str],
        exc: DirectiveError,
        *,
        config_changed: bool = False,
    ) -> DirectiveOutcome:
        logger.warning("Error executing directive %s: %s: %s", path, exc.kind, exc)
        self._report(AppStatus.WARNING, f"{exc.kind}: {exc}")
        return DirectiveOutcome(
            path=path,
            outcome=Outcome.FAILED,
            token=token,
            error=exc,
            config_changed=config_changed,
        )

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Poll until terminated (or for `max_cycles` cycles)."""
        if self.lock_path is None:
            self._loop(max_cycles)
            return
        with agent_lock(self.lock_path):
            self._loop(max_cycles)

    def _loop(self, max_cycles: Optional[int]) -> None:
        logger.info(
            "Watching %s for directives every %ss", self.store.root, self.poll_interval
        )
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            report = self.run_cycle()
            applied = len(report.by_outcome(Outcome.APPLIED))
            if applied:
                logger.info("Applied %d directive(s) this cycle", applied)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            self._sleep(self.poll_interval)
