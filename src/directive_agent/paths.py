"""Default filesystem locations used by the directive agent.

Everything the agent touches on a host lives under a handful of fixed roots:
- /var/www/ais/                 # webroot scanned for directive.ais manifests
- /tmp/                         # execution markers (one file per applied directive)
- /etc/nginx/sites-enabled/     # generated webserver configs
- /etc/systemd/system/          # generated service units
- /etc/artisan/monitor/         # generated monitor scripts
"""

from pathlib import Path

WEBROOT = Path("/var/www/ais")
MARKER_DIR = Path("/tmp")
WEBSERVER_CONFIG_DIR = Path("/etc/nginx/sites-enabled")
WEBSERVER_LOG_DIR = Path("/var/log/nginx")
SYSTEMD_UNIT_DIR = Path("/etc/systemd/system")
MONITOR_DIR = Path("/etc/artisan/monitor")
MACHINE_ID_FILE = Path("/etc/artisan_id")

MANIFEST_NAME = "directive.ais"
LOCK_NAME = "directive-agent.lock"
