"""Configuration and URL validation helpers for mautic-deployer."""

import re
from urllib.parse import urlparse

from mauticdeployer.errors import DeploymentError
from mauticdeployer.errors_catalog import actionable_error

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))+$"
)


class ValidationService:
    """Validates deployment configuration and protocol policy."""

    REQUIRED_FIELDS = (
        ("email_address", "EMAIL_ADDRESS"),
        ("mautic_password", "MAUTIC_PASSWORD"),
        ("ip_address", "IP_ADDRESS"),
        ("port", "PORT"),
        ("mautic_version", "MAUTIC_VERSION"),
        ("mysql_database", "MYSQL_DATABASE"),
        ("mysql_user", "MYSQL_USER"),
        ("mysql_password", "MYSQL_PASSWORD"),
        ("mysql_root_password", "MYSQL_ROOT_PASSWORD"),
    )

    def __init__(self, allow_insecure_http: bool = False):
        self.allow_insecure_http = allow_insecure_http

    def is_url(self, location: str) -> bool:
        scheme = urlparse(location).scheme.lower()
        return scheme in {"http", "https"}

    def enforce_https_policy(self, location: str, label: str, logger, console):
        if not self.is_url(location):
            raise DeploymentError(actionable_error("invalid_extension_source", source=location))

        scheme = urlparse(location).scheme.lower()
        if scheme == "http" and not self.allow_insecure_http:
            raise DeploymentError(actionable_error("insecure_http", label=label))

        if scheme == "http" and self.allow_insecure_http:
            logger.warning("Insecure HTTP enabled for %s: %s", label, location)
            console.print(
                f"[yellow]Warning:[/yellow] Using insecure HTTP for {label}. "
                "Prefer HTTPS whenever possible."
            )

    def validate_config(self, config):
        missing = [
            env_name
            for field_name, env_name in self.REQUIRED_FIELDS
            if not str(getattr(config, field_name) or "").strip()
        ]
        if missing:
            raise DeploymentError(actionable_error("missing_config", fields=", ".join(missing)))

        if not EMAIL_PATTERN.match(config.email_address.strip()):
            raise DeploymentError(f"EMAIL_ADDRESS is not a valid e-mail address: {config.email_address}")

        try:
            port = int(str(config.port).strip())
        except ValueError:
            port = 0
        if not 1 <= port <= 65535:
            raise DeploymentError(f"PORT must be a number between 1 and 65535, got: {config.port}")

        if config.domain_name and not DOMAIN_PATTERN.match(config.domain_name):
            raise DeploymentError(f"DOMAIN_NAME is not a valid domain name: {config.domain_name}")

        for label, sources in (("theme", config.themes), ("plugin", config.plugins)):
            for source in sources:
                if not self.is_url(source):
                    raise DeploymentError(actionable_error("invalid_extension_source", source=source))
                if urlparse(source).scheme.lower() == "http" and not self.allow_insecure_http:
                    raise DeploymentError(actionable_error("insecure_http", label=f"{label} source"))
