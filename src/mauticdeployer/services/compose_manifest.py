"""Structured editing of the docker compose manifest."""

import copy
from pathlib import Path
from typing import Any, Dict, List

import yaml

from mauticdeployer.constants import (
    CRON_CONTAINER,
    DB_CONTAINER,
    LOGS_DIR,
    MAUTIC_DATA_DIR,
    MAUTIC_IMAGE,
    MYSQL_DATA_DIR,
    MYSQL_IMAGE,
    WEB_CONTAINER,
)
from mauticdeployer.errors import DeploymentError

REQUIRED_SERVICES = (WEB_CONTAINER, DB_CONTAINER)

CRON_LOOP = (
    "while true; do "
    "php /var/www/html/bin/console mautic:segments:update && "
    "php /var/www/html/bin/console mautic:campaigns:update && "
    "php /var/www/html/bin/console mautic:campaigns:trigger && "
    "sleep 300; done"
)


def split_image(image: str):
    """Splits ``repository:tag`` on the last colon; the tag may be empty."""
    if ":" not in image or "/" in image.rsplit(":", 1)[1]:
        return image, ""
    repository, tag = image.rsplit(":", 1)
    return repository, tag


class ComposeManifest:
    """In-memory compose document; only image tags are ever rewritten."""

    def __init__(self, document: Dict[str, Any]):
        if not isinstance(document, dict) or not isinstance(document.get("services"), dict):
            raise DeploymentError("Compose manifest must contain a `services` mapping.")
        self.document = document

    @classmethod
    def load(cls, path) -> "ComposeManifest":
        try:
            parsed = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise DeploymentError(f"Invalid compose manifest '{path}': {exc}") from exc
        return cls(parsed)

    @classmethod
    def render_default(cls, config) -> "ComposeManifest":
        image = f"{MAUTIC_IMAGE}:{config.image_tag}"
        database_env = [
            f"MAUTIC_DB_HOST={DB_CONTAINER}",
            f"MAUTIC_DB_USER={config.mysql_user}",
            f"MAUTIC_DB_PASSWORD={config.mysql_password}",
            f"MAUTIC_DB_NAME={config.mysql_database}",
            "MAUTIC_DB_PORT=3306",
        ]
        shared_volumes = [
            f"./{MAUTIC_DATA_DIR}:/var/www/html",
            f"./{LOGS_DIR}:/var/www/html/var/logs",
        ]
        document = {
            "services": {
                WEB_CONTAINER: {
                    "image": image,
                    "container_name": WEB_CONTAINER,
                    "restart": "unless-stopped",
                    "ports": [f"{config.port}:80"],
                    "volumes": list(shared_volumes),
                    "environment": database_env
                    + [
                        "MAUTIC_TRUSTED_PROXIES=0.0.0.0/0",
                        "MAUTIC_RUN_CRON_JOBS=true",
                        f"DOCKER_MAUTIC_ROLE={WEB_CONTAINER}",
                    ],
                    "depends_on": [DB_CONTAINER],
                    "healthcheck": {
                        "test": ["CMD", "curl", "-f", "http://localhost/s/login"],
                        "interval": "30s",
                        "timeout": "10s",
                        "retries": 5,
                        "start_period": "60s",
                    },
                },
                CRON_CONTAINER: {
                    "image": image,
                    "container_name": CRON_CONTAINER,
                    "restart": "unless-stopped",
                    "volumes": list(shared_volumes),
                    "environment": database_env
                    + [
                        "MAUTIC_RUN_CRON_JOBS=true",
                        f"DOCKER_MAUTIC_ROLE={CRON_CONTAINER}",
                    ],
                    "depends_on": [DB_CONTAINER],
                    "command": ["sh", "-c", CRON_LOOP],
                },
                DB_CONTAINER: {
                    "image": MYSQL_IMAGE,
                    "container_name": DB_CONTAINER,
                    "restart": "unless-stopped",
                    "environment": [
                        f"MYSQL_ROOT_PASSWORD={config.mysql_root_password}",
                        f"MYSQL_DATABASE={config.mysql_database}",
                        f"MYSQL_USER={config.mysql_user}",
                        f"MYSQL_PASSWORD={config.mysql_password}",
                    ],
                    "volumes": [f"./{MYSQL_DATA_DIR}:/var/lib/mysql"],
                    "command": (
                        "mysqld --character-set-server=utf8mb4 "
                        "--collation-server=utf8mb4_unicode_ci --innodb-file-per-table=1 "
                        "--innodb-buffer-pool-size=1G --max_allowed_packet=512M"
                    ),
                    "healthcheck": {
                        "test": [
                            "CMD",
                            "mysqladmin",
                            "ping",
                            "-h",
                            "localhost",
                            "-u",
                            "root",
                            f"-p{config.mysql_root_password}",
                        ],
                        "interval": "30s",
                        "timeout": "10s",
                        "retries": 5,
                        "start_period": "60s",
                    },
                },
            },
        }
        return cls(document)

    @property
    def services(self) -> Dict[str, Any]:
        return self.document["services"]

    def missing_services(self) -> List[str]:
        return [name for name in REQUIRED_SERVICES if name not in self.services]

    def image_tags(self, repository: str) -> Dict[str, str]:
        tags = {}
        for name, service in self.services.items():
            image = (service or {}).get("image")
            if not isinstance(image, str):
                continue
            image_repository, tag = split_image(image)
            if image_repository == repository:
                tags[name] = tag
        return tags

    def set_image_tag(self, repository: str, tag: str) -> int:
        """Points every service built from ``repository`` at ``tag``."""
        changed = 0
        for service in self.services.values():
            image = (service or {}).get("image")
            if not isinstance(image, str):
                continue
            image_repository, current_tag = split_image(image)
            if image_repository != repository:
                continue
            if current_tag != tag:
                service["image"] = f"{repository}:{tag}"
                changed += 1
        return changed

    def to_yaml(self) -> str:
        return yaml.safe_dump(copy.deepcopy(self.document), sort_keys=False, default_flow_style=False)
