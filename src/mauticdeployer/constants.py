"""Shared constants for mautic-deployer."""

DIR_MODE = 0o755
SECRET_FILE_MODE = 0o600

DEFAULT_WORKDIR = "/var/www"
DEFAULT_LOG_FILE = "/var/log/setup-dc.log"
DEFAULT_PORT = "8001"
DEFAULT_MAUTIC_VERSION = "5.2.1"

COMPOSE_FILE = "docker-compose.yml"
ENV_FILE = ".mautic_env"
MANIFEST_FILE = "run-manifest.json"
MAUTIC_DATA_DIR = "mautic_data"
MYSQL_DATA_DIR = "mysql_data"
LOGS_DIR = "logs"
DATA_DIRS = (MAUTIC_DATA_DIR, MYSQL_DATA_DIR)
HOST_DIRS = (MAUTIC_DATA_DIR, MYSQL_DATA_DIR, LOGS_DIR)

MAUTIC_IMAGE = "mautic/mautic"
MYSQL_IMAGE = "mysql:8.0"
IMAGE_VARIANT_SUFFIX = "-apache"

WEB_CONTAINER = "mautic_web"
DB_CONTAINER = "mautic_db"
CRON_CONTAINER = "mautic_cron"
MANAGED_CONTAINERS = (WEB_CONTAINER, DB_CONTAINER, CRON_CONTAINER)

CONTAINER_USER = "www-data"
CONSOLE_PATH = "/var/www/html/bin/console"
CONTAINER_DOCROOT = "/var/www/html/docroot"

COMPOSE_UP_TIMEOUT = 300
DB_HEALTH_TIMEOUT = 180
WEB_HEALTH_TIMEOUT = 300
HEALTH_POLL_INTERVAL = 15
INSTALLER_TIMEOUT = 300
CACHE_CLEAR_TIMEOUT = 180

INSTALLED_QUORUM = 3
