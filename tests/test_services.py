import os
import shlex
import stat
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

from directive_agent.directive import Directive
from directive_agent.errors import DependencyError, ServiceError
from directive_agent.local.session import LocalCommandResult
from directive_agent.services import (
    NpmInstaller,
    NvmRuntime,
    ServiceOrchestrator,
    ServiceUnit,
    SystemctlControl,
    install_unit,
    needs_install,
    render_monitor_script,
)

from stubs import RecordingControl, StubInstaller, StubRuntime


def _result(exit_status: int = 0, stdout: str = "", stderr: str = "") -> LocalCommandResult:
    return LocalCommandResult(command="cmd", stdout=stdout, stderr=stderr, exit_status=exit_status)


class ServiceUnitTests(unittest.TestCase):
    def test_render_contains_managed_header_and_directives(self) -> None:
        unit = ServiceUnit(
            name="shop",
            description="Ais project id shop",
            exec_start="/usr/bin/npm run dev",
            working_directory="/var/www/ais/shop",
        )
        text = unit.render("1.2.0")

        self.assertTrue(text.startswith("# THIS SERVICE FILE IS MANAGED BY: Artisan Platform Version: 1.2.0"))
        self.assertIn("ExecStart=/usr/bin/npm run dev\n", text)
        self.assertIn("WorkingDirectory=/var/www/ais/shop\n", text)
        self.assertIn("User=www-data\n", text)
        self.assertIn("Restart=always\n", text)
        self.assertNotIn("ExecStartPre", text)

    def test_render_refuses_multiline_values(self) -> None:
        unit = ServiceUnit(
            name="shop",
            description="d",
            exec_start="npm start\nUser=root",
            working_directory="/var/www/ais/shop",
        )
        with self.assertRaises(ServiceError):
            unit.render()

    def test_install_unit_replaces_existing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "shop.service").write_text("stale", encoding="utf-8")
            unit = ServiceUnit(name="shop", description="d", exec_start="node app.js", working_directory=tmp)

            path = install_unit(tmp, unit)

            self.assertEqual(path.read_text(encoding="utf-8"), unit.render())

    def test_install_unit_failure_is_service_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "not-a-dir"
            blocker.write_text("", encoding="utf-8")
            unit = ServiceUnit(name="shop", description="d", exec_start="x", working_directory=tmp)
            with self.assertRaises(ServiceError):
                install_unit(blocker, unit)


class SystemctlControlTests(unittest.TestCase):
    def test_commands(self) -> None:
        session = mock.Mock()
        session.run.return_value = _result()
        control = SystemctlControl(session, systemctl_bin="/bin/systemctl")

        control.daemon_reload()
        control.enable_now("shop")
        control.reload("nginx")

        self.assertEqual(
            [call.args[0] for call in session.run.call_args_list],
            [
                ["/bin/systemctl", "daemon-reload"],
                ["/bin/systemctl", "enable", "--now", "shop"],
                ["/bin/systemctl", "reload", "nginx"],
            ],
        )

    def test_failure_raises_service_error(self) -> None:
        session = mock.Mock()
        session.run.return_value = _result(1, stderr="Unit not found")
        with self.assertRaises(ServiceError) as ctx:
            SystemctlControl(session).enable_now("shop")
        self.assertIn("Unit not found", str(ctx.exception))


class NodeDependencyTests(unittest.TestCase):
    def test_needs_install_without_node_modules(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "package.json").write_text("{}", encoding="utf-8")
            self.assertTrue(needs_install(tmp))

    def test_needs_install_when_lock_is_newer(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            project = Path(tmp)
            (project / "node_modules" / "left-pad").mkdir(parents=True)
            lock = project / "package-lock.json"
            lock.write_text("{}", encoding="utf-8")
            past = time.time() - 3600
            os.utime(project / "node_modules", (past, past))
            self.assertTrue(needs_install(project))

    def test_needs_install_when_node_modules_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            project = Path(tmp)
            (project / "package.json").write_text("{}", encoding="utf-8")
            past = time.time() - 3600
            os.utime(project / "package.json", (past, past))
            (project / "node_modules").mkdir()
            self.assertTrue(needs_install(project))

    def test_up_to_date_project_needs_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            project = Path(tmp)
            (project / "package.json").write_text("{}", encoding="utf-8")
            past = time.time() - 3600
            os.utime(project / "package.json", (past, past))
            (project / "node_modules" / "left-pad").mkdir(parents=True)
            self.assertFalse(needs_install(project))

    def test_unreadable_node_modules_is_dependency_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            project = Path(tmp)
            (project / "package.json").write_text("{}", encoding="utf-8")
            past = time.time() - 3600
            os.utime(project / "package.json", (past, past))
            (project / "node_modules" / "left-pad").mkdir(parents=True)
            with mock.patch.object(Path, "iterdir", side_effect=PermissionError("denied")):
                with self.assertRaises(DependencyError):
                    needs_install(project)

    def test_npm_installer_failure(self) -> None:
        session = mock.Mock()
        session.run.return_value = _result(1, stderr="ERESOLVE")
        with self.assertRaises(DependencyError):
            NpmInstaller(session).install(Path("/srv/app"))
        session.run.assert_called_once_with(["npm", "install"], cwd=Path("/srv/app"))

    def test_nvm_skips_installed_version(self) -> None:
        session = mock.Mock()
        session.run_shell.return_value = _result(stdout="->     v22.6.0")
        NvmRuntime(session).ensure("22.6.0")
        self.assertEqual(session.run_shell.call_count, 1)

    def test_nvm_installs_missing_version(self) -> None:
        session = mock.Mock()
        session.run_shell.side_effect = [_result(3, stdout="N/A"), _result()]
        NvmRuntime(session, nvm_script="/opt/nvm/nvm.sh").ensure("20")
        self.assertIn("nvm install 20", session.run_shell.call_args_list[1].args[0])

    def test_nvm_script_path_is_expanded_and_quoted(self) -> None:
        session = mock.Mock()
        session.run_shell.return_value = _result(stdout="v20")
        NvmRuntime(session, nvm_script="/opt/my nvm/nvm.sh; rm -rf /").ensure("20")
        self.assertTrue(
            session.run_shell.call_args.args[0].startswith("source '/opt/my nvm/nvm.sh; rm -rf /' && ")
        )

        NvmRuntime(session).ensure("20")
        expected = shlex.quote(os.path.expanduser("~/.nvm/nvm.sh"))
        self.assertIn(f"source {expected} && ", session.run_shell.call_args.args[0])

    def test_nvm_install_failure(self) -> None:
        session = mock.Mock()
        session.run_shell.side_effect = [_result(3), _result(1, stderr="not found")]
        with self.assertRaises(DependencyError):
            NvmRuntime(session).ensure("99")


class MonitorScriptTests(unittest.TestCase):
    def test_tracking_script_watches_directory(self) -> None:
        text = render_monitor_script("shop", "/var/www/ais/shop", track_directory=True)
        self.assertTrue(text.startswith("#!/bin/bash"))
        self.assertIn("SERVICE=shop.service", text)
        self.assertIn("inotifywait", text)
        self.assertIn("node_modules", text)

    def test_idle_script_only_supervises(self) -> None:
        text = render_monitor_script("shop", "/var/www/ais/shop", track_directory=False, interval=5)
        self.assertNotIn("inotifywait", text)
        self.assertIn("is-active", text)
        self.assertIn("sleep 5", text)

    def test_paths_are_shell_quoted(self) -> None:
        text = render_monitor_script("shop", "/var/www/my shop", track_directory=True)
        self.assertIn("WATCH_DIR='/var/www/my shop'", text)


class ServiceOrchestratorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.project = base / "www" / "shop"
        self.project.mkdir(parents=True)
        (self.project / "package.json").write_text("{}", encoding="utf-8")
        self.unit_dir = base / "units"
        self.monitor_dir = base / "monitor"
        self.control = RecordingControl()
        self.installer = StubInstaller()
        self.runtime = StubRuntime()
        self.orchestrator = ServiceOrchestrator(
            self.unit_dir, self.monitor_dir, self.control, self.installer, self.runtime
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _directive(self, **overrides) -> Directive:
        payload = {"url": "shop.test", "port": 3000, "nodejs_bool": True}
        payload.update(overrides)
        return Directive.from_dict(payload)

    def test_provision_writes_units_and_starts_them_in_order(self) -> None:
        started = self.orchestrator.provision(
            self._directive(nodejs_version="22.6.0", track_directory=True), self.project, "shop"
        )

        self.assertEqual(started, ["shop", "shop_monitor"])
        self.assertEqual(self.runtime.ensured, ["22.6.0"])
        self.assertEqual(self.installer.installed, [self.project])
        self.assertEqual(
            self.control.calls,
            [("daemon-reload",), ("enable-now", "shop"), ("enable-now", "shop_monitor")],
        )

        app_unit = (self.unit_dir / "shop.service").read_text(encoding="utf-8")
        self.assertIn("ExecStart=/usr/bin/npm run dev\n", app_unit)
        self.assertIn(f"WorkingDirectory={self.project}\n", app_unit)

        script = self.monitor_dir / "shop.monitor"
        self.assertTrue(script.stat().st_mode & stat.S_IXUSR)
        monitor_unit = (self.unit_dir / "shop_monitor.service").read_text(encoding="utf-8")
        self.assertIn(f"ExecStart=/bin/bash {script}\n", monitor_unit)
        self.assertIn("User=root\n", monitor_unit)

    def test_custom_commands_are_used(self) -> None:
        self.orchestrator.provision(
            self._directive(nodejs_exec_command="node server.js", nodejs_pre_exec_command="npm run build"),
            self.project,
            "shop",
        )
        app_unit = (self.unit_dir / "shop.service").read_text(encoding="utf-8")
        self.assertIn("ExecStart=node server.js\n", app_unit)
        self.assertIn("ExecStartPre=npm run build\n", app_unit)
        self.assertEqual(self.runtime.ensured, [])

    def test_install_failure_stops_before_units(self) -> None:
        self.orchestrator.installer = StubInstaller(fail=True)
        with self.assertRaises(DependencyError):
            self.orchestrator.provision(self._directive(), self.project, "shop")
        self.assertFalse((self.unit_dir / "shop.service").exists())
        self.assertEqual(self.control.calls, [])

    def test_daemon_reload_failure_enables_nothing(self) -> None:
        self.orchestrator.control = RecordingControl(fail_on={"daemon-reload"})
        with self.assertRaises(ServiceError):
            self.orchestrator.provision(self._directive(), self.project, "shop")
        self.assertEqual(self.orchestrator.control.calls, [("daemon-reload",)])

    def test_up_to_date_dependencies_are_not_reinstalled(self) -> None:
        self.orchestrator.provision(self._directive(), self.project, "shop")
        past = time.time() - 3600
        os.utime(self.project / "package.json", (past, past))
        self.orchestrator.provision(self._directive(), self.project, "shop")
        self.assertEqual(len(self.installer.installed), 1)


if __name__ == "__main__":
    unittest.main()
