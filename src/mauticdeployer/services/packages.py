"""Host package preparation through apt."""

import os
import time
from typing import Callable, Iterable, List

from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import ErrorMode
from mauticdeployer.services.polling import wait_until

BASE_PACKAGES = ("curl", "wget", "unzip", "git", "cron", "netcat-openbsd")
TLS_PACKAGES = ("nginx", "certbot", "python3-certbot-nginx")
LOCK_FILES = (
    "/var/lib/dpkg/lock-frontend",
    "/var/lib/dpkg/lock",
    "/var/lib/apt/lists/lock",
    "/var/cache/apt/archives/lock",
)
# apt-get exits with 100 when it cannot take the dpkg lock.
APT_LOCK_EXIT_CODE = 100
LOCK_WAIT_TIMEOUT = 600
LOCK_POLL_INTERVAL = 10


def required_packages(domain_name=None) -> List[str]:
    packages = list(BASE_PACKAGES)
    if domain_name:
        packages.extend(TLS_PACKAGES)
    return packages


class PackageService:
    def __init__(
        self,
        logger,
        console,
        runner,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logger
        self.console = console
        self.runner = runner
        self.sleep = sleep
        self.clock = clock

    @property
    def apt_env(self):
        env = dict(os.environ)
        env["DEBIAN_FRONTEND"] = "noninteractive"
        return env

    def stop_unattended_upgrades(self):
        self.console.print("[blue]Stopping unattended-upgrades to prevent lock conflicts...[/blue]")
        for cmd in (
            ["systemctl", "stop", "unattended-upgrades"],
            ["systemctl", "disable", "unattended-upgrades"],
            ["pkill", "-f", "unattended-upgrade"],
        ):
            try:
                self.runner.run(cmd, on_error=ErrorMode.SUPPRESS)
            except DeploymentError as exc:
                self.logger.debug("Ignoring failure of %s: %s", " ".join(cmd), exc)

    def locks_held(self) -> bool:
        result = self.runner.run(["fuser", *LOCK_FILES], on_error=ErrorMode.SUPPRESS)
        # fuser exits 0 when at least one process holds one of the files.
        return result.success

    def wait_for_locks(self, timeout: float = LOCK_WAIT_TIMEOUT, interval: float = LOCK_POLL_INTERVAL) -> bool:
        def _free() -> bool:
            try:
                held = self.locks_held()
            except DeploymentError as exc:
                self.logger.debug("Could not check package locks: %s", exc)
                return True
            if held:
                self.logger.info("Waiting for package manager locks to be released...")
            return not held

        released = wait_until(_free, interval=interval, timeout=timeout, sleep=self.sleep, clock=self.clock)
        if not released:
            self.logger.warning("Package manager locks still held after %ss. Continuing anyway.", timeout)
        return released

    def is_installed(self, package: str) -> bool:
        result = self.runner.run(["dpkg", "-s", package], on_error=ErrorMode.SUPPRESS)
        return result.success and "Status: install ok installed" in result.output

    def update_index(self):
        self.console.print("[blue]Updating package index...[/blue]")
        self.runner.run(
            ["apt-get", "update"],
            env=self.apt_env,
            retry_count=3,
            retry_backoff_seconds=LOCK_POLL_INTERVAL,
            retry_on_returncodes=[APT_LOCK_EXIT_CODE],
        )

    def install_packages(self, packages: Iterable[str]) -> List[str]:
        """Installs the missing packages one by one and returns the ones installed."""
        installed = []
        for package in packages:
            if self.is_installed(package):
                self.logger.debug("Package already installed: %s", package)
                continue

            self.console.print(f"[blue]Installing {package}...[/blue]")
            try:
                self.runner.run(
                    ["apt-get", "install", "-y", package],
                    env=self.apt_env,
                    retry_count=3,
                    retry_backoff_seconds=LOCK_POLL_INTERVAL,
                    retry_on_returncodes=[APT_LOCK_EXIT_CODE],
                )
            except DeploymentError as exc:
                raise DeploymentError(f"Failed to install package {package}: {exc}") from exc
            installed.append(package)
        return installed

    def prepare(self, domain_name=None) -> List[str]:
        self.stop_unattended_upgrades()
        self.wait_for_locks()
        self.update_index()
        return self.install_packages(required_packages(domain_name))
