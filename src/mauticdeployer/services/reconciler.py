"""Drives a Mautic host from its detected state to the configured version."""

import os
from typing import List, Optional

from packaging import version

from mauticdeployer.constants import (
    COMPOSE_FILE,
    DB_CONTAINER,
    DB_HEALTH_TIMEOUT,
    DIR_MODE,
    ENV_FILE,
    HOST_DIRS,
    INSTALLER_TIMEOUT,
    MAUTIC_IMAGE,
    SECRET_FILE_MODE,
    WEB_CONTAINER,
    WEB_HEALTH_TIMEOUT,
)
from mauticdeployer.errors import DeploymentError
from mauticdeployer.errors_catalog import actionable_error
from mauticdeployer.models import (
    DeploymentConfig,
    ErrorMode,
    ExtensionKind,
    InstallationState,
    ReconcileAction,
)
from mauticdeployer.services.compose_manifest import ComposeManifest


def needs_update(current: Optional[str], desired: str) -> bool:
    return current is None or current != desired


def site_url(config: DeploymentConfig) -> str:
    return config.site_url


def parse_version(tag: str) -> version.Version:
    try:
        return version.parse(tag.split("-", 1)[0].strip())
    except version.InvalidVersion:
        return version.parse("0.0")


class Reconciler:
    """Chooses and runs one of fresh install, upgrade or no-op.

    Every fatal step raises ``DeploymentError``; best-effort steps (cache
    clears, extension installs) only log. The detected ``InstallationState``
    gates the procedures: a fresh install never runs against an installed
    target and an upgrade never runs against an uninstalled one.
    """

    def __init__(
        self,
        logger,
        console,
        config: DeploymentConfig,
        containers,
        filesystem_service,
        extension_installer,
    ):
        self.logger = logger
        self.console = console
        self.config = config
        self.containers = containers
        self.filesystem_service = filesystem_service
        self.extension_installer = extension_installer
        self.workdir = config.workdir
        self.extension_reports = []

    @property
    def compose_path(self) -> str:
        return os.path.join(self.workdir, COMPOSE_FILE)

    @property
    def env_path(self) -> str:
        return os.path.join(self.workdir, ENV_FILE)

    @property
    def desired_image(self) -> str:
        return f"{MAUTIC_IMAGE}:{self.config.image_tag}"

    def reconcile(self, state: InstallationState) -> ReconcileAction:
        if not state.installed:
            if state.partial:
                self.logger.warning(
                    "Found leftovers of a previous installation (%s/%s checks passed). "
                    "Running a fresh installation over them.",
                    state.passed_checks,
                    len(state.checks),
                )
            self.console.print("[bold blue]No existing installation found. Installing Mautic...[/bold blue]")
            self.fresh_install(state)
            return ReconcileAction.INSTALLED

        desired = self.config.image_tag
        if not needs_update(state.version, desired):
            self.console.print(f"[green]Mautic is already at {desired}. No changes needed.[/green]")
            self.logger.info("Version up to date: %s", desired)
            return ReconcileAction.UNCHANGED

        self.console.print(
            f"[bold blue]Updating Mautic from {state.version or 'unknown'} to {desired}...[/bold blue]"
        )
        self.upgrade(state)
        return ReconcileAction.UPGRADED

    def fresh_install(self, state: InstallationState):
        if state.installed:
            raise DeploymentError("Refusing to run a fresh installation on an installed target.")

        self.logger.info("Performing fresh Mautic installation...")
        self.create_directories()
        self.write_environment_file()
        self.ensure_compose_manifest()

        if not self.containers.recreate_containers():
            raise DeploymentError(actionable_error("containers_failed", action="start"))

        if not self.containers.wait_for_healthy(DB_CONTAINER, DB_HEALTH_TIMEOUT):
            raise DeploymentError(actionable_error("health_timeout", containers=DB_CONTAINER))
        if not self.containers.wait_for_healthy(WEB_CONTAINER, WEB_HEALTH_TIMEOUT):
            raise DeploymentError(actionable_error("health_timeout", containers=WEB_CONTAINER))

        self.run_installer()
        self.containers.clear_cache()

        if self.config.has_extensions:
            self.install_extensions()
            self.containers.clear_cache()

        self.console.print("[green]Mautic installation completed.[/green]")

    def upgrade(self, state: InstallationState):
        if not state.installed:
            raise DeploymentError("Refusing to upgrade a target without an existing installation.")

        desired = self.config.image_tag
        if state.version and parse_version(desired) < parse_version(state.version):
            self.logger.warning("Target %s is older than running %s. Downgrading.", desired, state.version)

        if not self.containers.pull_image(self.desired_image):
            raise DeploymentError(actionable_error("image_pull_failed", image=self.desired_image))

        self.update_compose_version()

        if not self.containers.recreate_containers():
            raise DeploymentError(actionable_error("containers_failed", action="recreate"))

        web_healthy = self.containers.wait_for_healthy(WEB_CONTAINER, WEB_HEALTH_TIMEOUT)
        db_healthy = self.containers.wait_for_healthy(DB_CONTAINER, DB_HEALTH_TIMEOUT)
        unhealthy = [
            name
            for name, healthy in ((WEB_CONTAINER, web_healthy), (DB_CONTAINER, db_healthy))
            if not healthy
        ]
        if unhealthy:
            raise DeploymentError(
                actionable_error("health_timeout", containers=" and ".join(unhealthy))
            )

        self.containers.clear_cache()
        self.console.print(f"[green]Mautic updated to {desired}.[/green]")

    def create_directories(self):
        self.logger.info("Creating data directories in %s", self.workdir)
        self.filesystem_service.ensure_dirs(self.workdir, HOST_DIRS, DIR_MODE)

    def render_environment(self) -> str:
        config = self.config
        lines = [
            "# Mautic Configuration",
            f"MAUTIC_DB_HOST={DB_CONTAINER}",
            f"MAUTIC_DB_USER={config.mysql_user}",
            f"MAUTIC_DB_PASSWORD={config.mysql_password}",
            f"MAUTIC_DB_NAME={config.mysql_database}",
            "MAUTIC_DB_PORT=3306",
            "MAUTIC_TRUSTED_PROXIES=0.0.0.0/0",
            "MAUTIC_RUN_CRON_JOBS=true",
            f"DOCKER_MAUTIC_ROLE={WEB_CONTAINER}",
            "",
            "# MySQL Configuration",
            f"MYSQL_ROOT_PASSWORD={config.mysql_root_password}",
            f"MYSQL_DATABASE={config.mysql_database}",
            f"MYSQL_USER={config.mysql_user}",
            f"MYSQL_PASSWORD={config.mysql_password}",
            "",
            "# Deployment Configuration",
            f"IP_ADDRESS={config.ip_address}",
            f"PORT={config.port}",
            f"DOMAIN_NAME={config.domain_name or ''}",
            f"EMAIL_ADDRESS={config.email_address}",
            f"MAUTIC_VERSION={config.mautic_version}",
            f"MAUTIC_PASSWORD={config.mautic_password}",
            f"MAUTIC_THEMES={','.join(config.themes)}",
            f"MAUTIC_PLUGINS={','.join(config.plugins)}",
        ]
        return "\n".join(lines) + "\n"

    def write_environment_file(self):
        self.logger.info("Writing environment file %s", self.env_path)
        self.filesystem_service.write_secret_file(
            self.env_path,
            self.render_environment(),
            SECRET_FILE_MODE,
        )

    def ensure_compose_manifest(self):
        if os.path.isfile(self.compose_path):
            manifest = ComposeManifest.load(self.compose_path)
            missing = manifest.missing_services()
            if missing:
                raise DeploymentError(
                    f"Existing {COMPOSE_FILE} is missing services: {', '.join(missing)}"
                )
            if manifest.set_image_tag(MAUTIC_IMAGE, self.config.image_tag):
                self.logger.info("Pointed existing %s at %s", COMPOSE_FILE, self.desired_image)
            else:
                self.logger.info("Using existing %s", COMPOSE_FILE)
        else:
            self.logger.info("Creating %s", COMPOSE_FILE)
            manifest = ComposeManifest.render_default(self.config)

        self.save_compose_manifest(manifest)

    def update_compose_version(self):
        self.logger.info("Updating %s to %s", COMPOSE_FILE, self.desired_image)
        manifest = ComposeManifest.load(self.compose_path)
        changed = manifest.set_image_tag(MAUTIC_IMAGE, self.config.image_tag)
        if not manifest.image_tags(MAUTIC_IMAGE):
            raise DeploymentError(f"{COMPOSE_FILE} does not reference {MAUTIC_IMAGE}.")
        self.save_compose_manifest(manifest)
        self.logger.info("Updated %s image reference(s)", changed)

    def save_compose_manifest(self, manifest: ComposeManifest):
        # The manifest carries database credentials.
        self.filesystem_service.write_secret_file(self.compose_path, manifest.to_yaml(), SECRET_FILE_MODE)

    def run_installer(self):
        self.console.print("[blue]Running the Mautic installer...[/blue]")
        config = self.config
        try:
            self.containers.exec_console(
                [
                    "mautic:install",
                    config.site_url,
                    f"--admin_email={config.email_address}",
                    f"--admin_password={config.mautic_password}",
                    "--force",
                    "--no-interaction",
                ],
                on_error=ErrorMode.PROPAGATE,
                timeout=INSTALLER_TIMEOUT,
                redact=[config.mautic_password],
            )
        except DeploymentError as exc:
            raise DeploymentError(f"{actionable_error('installer_failed')}\n{exc}") from exc
        self.console.print("[green]Mautic installer finished.[/green]")

    def install_extensions(self) -> List:
        reports = []
        for kind, sources in (
            (ExtensionKind.THEME, self.config.themes),
            (ExtensionKind.PLUGIN, self.config.plugins),
        ):
            if not sources:
                continue
            report = self.extension_installer.install(sources, kind)
            if report.failure_count:
                self.logger.warning(
                    "%s of %s %s(s) failed to install.",
                    report.failure_count,
                    report.failure_count + report.success_count,
                    kind.value,
                )
            reports.append(report)
        self.extension_reports.extend(reports)
        return reports
