"""Shared domain models for mautic-deployer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .constants import DEFAULT_PORT, DEFAULT_WORKDIR, IMAGE_VARIANT_SUFFIX

NOT_FOUND = "not found"


class ErrorMode(Enum):
    """What the command runner does with a non-zero exit code."""

    PROPAGATE = "propagate"
    SUPPRESS = "suppress"


class InstallationStatus(Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"


class ReconcileAction(Enum):
    INSTALLED = "installed"
    UPGRADED = "upgraded"
    UNCHANGED = "unchanged"


class ExtensionKind(Enum):
    THEME = "theme"
    PLUGIN = "plugin"


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one command execution."""

    success: bool
    output: str
    exit_code: int


@dataclass(frozen=True)
class ContainerInfo:
    """Point-in-time snapshot of a managed container."""

    name: str
    image: str = ""
    status: str = NOT_FOUND
    health: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.status != NOT_FOUND

    @property
    def repository(self) -> str:
        if ":" not in self.image:
            return self.image
        return self.image.rsplit(":", 1)[0]

    @property
    def tag(self) -> Optional[str]:
        if ":" not in self.image:
            return None
        return self.image.rsplit(":", 1)[1] or None

    @property
    def is_healthy(self) -> bool:
        # Services without a healthcheck (the cron worker) count as ready once running.
        return self.status == "running" and (self.health is None or self.health == "healthy")


@dataclass(frozen=True)
class InstallationState:
    """Classification of the target produced by the installation detector."""

    status: InstallationStatus
    checks: Dict[str, bool] = field(default_factory=dict)
    version: Optional[str] = None

    @property
    def installed(self) -> bool:
        return self.status is InstallationStatus.INSTALLED

    @property
    def passed_checks(self) -> int:
        return sum(1 for passed in self.checks.values() if passed)

    @property
    def partial(self) -> bool:
        return not self.installed and self.passed_checks > 0


@dataclass(frozen=True)
class DeploymentConfig:
    """Immutable deployment input, built once at startup."""

    email_address: str
    mautic_password: str
    ip_address: str
    mautic_version: str
    mysql_database: str
    mysql_user: str
    mysql_password: str
    mysql_root_password: str
    port: str = DEFAULT_PORT
    themes: Tuple[str, ...] = ()
    plugins: Tuple[str, ...] = ()
    domain_name: Optional[str] = None
    github_token: Optional[str] = None
    workdir: str = DEFAULT_WORKDIR
    allow_insecure_http: bool = False
    skip_packages: bool = False

    @property
    def image_tag(self) -> str:
        version = self.mautic_version.strip()
        if version.endswith(IMAGE_VARIANT_SUFFIX):
            return version
        return f"{version}{IMAGE_VARIANT_SUFFIX}"

    @property
    def site_url(self) -> str:
        if self.domain_name:
            return f"https://{self.domain_name}"
        return f"http://{self.ip_address}:{self.port}"

    @property
    def has_extensions(self) -> bool:
        return bool(self.themes or self.plugins)
