import json
import os
import tempfile
import unittest
from pathlib import Path

from directive_agent.config import AppConfig, load_config


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = AppConfig()
        self.assertEqual(config.paths.webroot, "/var/www/ais")
        self.assertEqual(config.paths.marker_dir, "/tmp")
        self.assertEqual(config.agent.poll_interval, 10.0)
        self.assertEqual(config.webserver.validate_command, ["nginx", "-t"])
        self.assertEqual(config.services.default_exec_command, "/usr/bin/npm run dev")
        self.assertIsNone(config.reporter.endpoint)

    def test_loads_custom_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            temp_file = Path(tmp) / "agent.json"
            temp_file.write_text(
                json.dumps(
                    {
                        "paths": {"_comment": "ignored", "webroot": "/srv/sites"},
                        "agent": {"poll_interval": 30},
                        "reporter": {"endpoint": "http://agg.local/api"},
                    }
                ),
                encoding="utf-8",
            )
            config = load_config(str(temp_file))

        self.assertEqual(config.paths.webroot, "/srv/sites")
        self.assertEqual(config.paths.marker_dir, "/tmp")
        self.assertEqual(config.agent.poll_interval, 30)
        self.assertEqual(config.reporter.endpoint, "http://agg.local/api")

    def test_bad_socket_template_is_rejected_on_load(self) -> None:
        for template in ("/run/php/php{ver}-fpm.sock", "/run/php/php{0}.sock", "/run/php/php{version.sock"):
            with self.subTest(template=template):
                with self.assertRaises(ValueError):
                    AppConfig.from_dict({"webserver": {"php_socket_template": template}})

    def test_missing_explicit_file_is_an_error(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_config("/nonexistent/agent.json")

    def test_env_vars_override_file(self) -> None:
        names = {
            "DIRECTIVE_AGENT_WEBROOT": "/srv/from-env",
            "DIRECTIVE_AGENT_POLL_INTERVAL": "2.5",
            "DIRECTIVE_AGENT_AGGREGATOR_URL": "http://env.local/api",
            "DIRECTIVE_AGENT_AGGREGATOR_TOKEN": "env-token",
        }
        originals = {name: os.environ.get(name) for name in names}
        os.environ.update(names)
        try:
            with tempfile.TemporaryDirectory() as tmp:
                temp_file = Path(tmp) / "agent.json"
                temp_file.write_text('{"paths": {"webroot": "/srv/from-file"}}', encoding="utf-8")
                config = load_config(str(temp_file))
        finally:
            for name, value in originals.items():
                if value is None:
                    os.environ.pop(name, None)
                else:
                    os.environ[name] = value

        self.assertEqual(config.paths.webroot, "/srv/from-env")
        self.assertEqual(config.agent.poll_interval, 2.5)
        self.assertEqual(config.reporter.endpoint, "http://env.local/api")
        self.assertEqual(config.reporter.token, "env-token")

    def test_shipped_default_config_matches_builtin_defaults(self) -> None:
        shipped = Path(__file__).resolve().parents[1] / "config" / "default_config.json"
        with shipped.open("r", encoding="utf-8") as handle:
            from_file = AppConfig.from_dict(json.load(handle))
        self.assertEqual(from_file, AppConfig())


if __name__ == "__main__":
    unittest.main()
