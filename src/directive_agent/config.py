"""Configuration loading utilities for the directive agent."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from . import paths

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")

_ENV_PREFIX = "DIRECTIVE_AGENT_"


@dataclass
class PathsConfig:
    """Filesystem roots the agent reads from and writes to."""

    webroot: str = str(paths.WEBROOT)
    marker_dir: str = str(paths.MARKER_DIR)
    webserver_config_dir: str = str(paths.WEBSERVER_CONFIG_DIR)
    webserver_log_dir: str = str(paths.WEBSERVER_LOG_DIR)
    unit_dir: str = str(paths.SYSTEMD_UNIT_DIR)
    monitor_dir: str = str(paths.MONITOR_DIR)
    machine_id_file: str = str(paths.MACHINE_ID_FILE)


@dataclass
class AgentConfig:
    """Settings for the polling loop."""

    poll_interval: float = 10.0           # seconds between cycles
    command_timeout: int = 300            # upper bound for every external command
    manifest_name: str = paths.MANIFEST_NAME
    use_lock: bool = True


@dataclass
class WebServerConfig:
    """How generated configs are validated and applied."""

    service: str = "nginx"
    validate_command: List[str] = field(default_factory=lambda: ["nginx", "-t"])
    php_socket_template: str = "/var/run/php/php{version}-fpm.sock"

    def __post_init__(self) -> None:
        try:
            self.php_socket_template.format(version="8.1")
        except (AttributeError, KeyError, IndexError, ValueError) as exc:
            raise ValueError(
                f"Invalid php_socket_template {self.php_socket_template!r}: "
                "only the {version} placeholder is supported"
            ) from exc


@dataclass
class ServiceConfig:
    """Settings for generated systemd units."""

    systemctl_bin: str = "systemctl"
    npm_bin: str = "npm"
    user: str = "www-data"
    group: str = "www-data"
    default_exec_command: str = "/usr/bin/npm run dev"
    environment_path: str = "/usr/bin:/usr/local/bin"
    nvm_script: str = "~/.nvm/nvm.sh"


@dataclass
class ReporterConfig:
    """Where status reports are delivered."""

    endpoint: Optional[str] = None  # e.g. "http://aggregator.local:9800/api/status"
    token: Optional[str] = None
    timeout: float = 10.0
    app_name: str = "directive"


@dataclass
class CodecConfig:
    """External binary used for text encryption."""

    binary: str = "dusa"


@dataclass
class AppConfig:
    """Top-level configuration."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    webserver: WebServerConfig = field(default_factory=WebServerConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    reporter: ReporterConfig = field(default_factory=ReporterConfig)
    codec: CodecConfig = field(default_factory=CodecConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(name: str) -> Dict[str, Any]:
            data = payload.get(name, {}) or {}
            # Keys starting with an underscore are comments
            return {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(
            paths=PathsConfig(**{**PathsConfig().__dict__, **section("paths")}),
            agent=AgentConfig(**{**AgentConfig().__dict__, **section("agent")}),
            webserver=WebServerConfig(
                **{**WebServerConfig().__dict__, **section("webserver")}
            ),
            services=ServiceConfig(
                **{**ServiceConfig().__dict__, **section("services")}
            ),
            reporter=ReporterConfig(
                **{**ReporterConfig().__dict__, **section("reporter")}
            ),
            codec=CodecConfig(**{**CodecConfig().__dict__, **section("codec")}),
        )


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    env_webroot = os.getenv(_ENV_PREFIX + "WEBROOT")
    if env_webroot:
        config.paths.webroot = env_webroot

    env_marker_dir = os.getenv(_ENV_PREFIX + "MARKER_DIR")
    if env_marker_dir:
        config.paths.marker_dir = env_marker_dir

    env_nginx_dir = os.getenv(_ENV_PREFIX + "NGINX_CONFIG_DIR")
    if env_nginx_dir:
        config.paths.webserver_config_dir = env_nginx_dir

    env_interval = os.getenv(_ENV_PREFIX + "POLL_INTERVAL")
    if env_interval:
        config.agent.poll_interval = float(env_interval)

    env_endpoint = os.getenv(_ENV_PREFIX + "AGGREGATOR_URL")
    if env_endpoint:
        config.reporter.endpoint = env_endpoint

    env_token = os.getenv(_ENV_PREFIX + "AGGREGATOR_TOKEN")
    if env_token:
        config.reporter.token = env_token

    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - DIRECTIVE_AGENT_WEBROOT: directory scanned for manifests
    - DIRECTIVE_AGENT_MARKER_DIR: directory holding execution markers
    - DIRECTIVE_AGENT_NGINX_CONFIG_DIR: directory for generated nginx configs
    - DIRECTIVE_AGENT_POLL_INTERVAL: seconds between cycles
    - DIRECTIVE_AGENT_AGGREGATOR_URL: status aggregator endpoint
    - DIRECTIVE_AGENT_AGGREGATOR_TOKEN: bearer token for the aggregator

    An explicitly requested file that does not exist is an error. When no
    file is given and the default one is absent, built-in defaults are used.
    """

    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(f"Could not find configuration file: {candidate}")
    else:
        candidate = _DEFAULT_CONFIG_PATH

    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        config = AppConfig.from_dict(data)
    else:
        config = AppConfig()

    return _apply_env_overrides(config)
