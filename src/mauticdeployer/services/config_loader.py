"""Configuration loaders for mautic-deployer."""

import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from mauticdeployer.errors import DeploymentError

ENV_LINE_PATTERN = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


class ConfigLoader:
    """Loads YAML configuration files and deploy.env files for CLI defaults."""

    SUPPORTED_KEYS = {
        "email_address",
        "mautic_password",
        "ip_address",
        "port",
        "mautic_version",
        "themes",
        "plugins",
        "mysql_database",
        "mysql_user",
        "mysql_password",
        "mysql_root_password",
        "domain_name",
        "github_token",
        "workdir",
        "log_file",
        "verbose",
        "allow_insecure_http",
        "skip_packages",
    }

    ENV_KEYS = {
        "EMAIL_ADDRESS": "email_address",
        "MAUTIC_PASSWORD": "mautic_password",
        "IP_ADDRESS": "ip_address",
        "PORT": "port",
        "MAUTIC_VERSION": "mautic_version",
        "MAUTIC_THEMES": "themes",
        "MAUTIC_PLUGINS": "plugins",
        "MYSQL_DATABASE": "mysql_database",
        "MYSQL_USER": "mysql_user",
        "MYSQL_PASSWORD": "mysql_password",
        "MYSQL_ROOT_PASSWORD": "mysql_root_password",
        "DOMAIN_NAME": "domain_name",
        "GITHUB_TOKEN": "github_token",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise DeploymentError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise DeploymentError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise DeploymentError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise DeploymentError(f"Unknown configuration keys: {unknown_list}")

        return parsed

    def load_env_file(self, env_path: Optional[str]) -> Dict[str, Any]:
        """Parses ``KEY=value`` lines; unknown keys are ignored, malformed lines rejected."""
        if not env_path:
            return {}

        path = Path(env_path)
        if not path.exists():
            raise DeploymentError(f"Env file not found: {env_path}")

        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise DeploymentError(f"Could not read env file '{env_path}': {exc}") from exc

        values: Dict[str, Any] = {}
        invalid = []
        for number, line in enumerate(lines, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            match = ENV_LINE_PATTERN.match(line)
            if not match:
                invalid.append(str(number))
                continue
            key, raw_value = match.group(1), match.group(2).strip()
            if key in self.ENV_KEYS:
                values[self.ENV_KEYS[key]] = self._unquote(raw_value)

        if invalid:
            raise DeploymentError(
                f"Env file '{env_path}' contains invalid lines: {', '.join(invalid)}"
            )

        return values

    @staticmethod
    def _unquote(value: str) -> str:
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            return value[1:-1]
        return value
