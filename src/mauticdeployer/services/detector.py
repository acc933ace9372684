"""Installation state detection for an existing Mautic host."""

import os
from typing import Callable, Dict, List, Tuple

from mauticdeployer.constants import (
    COMPOSE_FILE,
    DATA_DIRS,
    DB_CONTAINER,
    ENV_FILE,
    INSTALLED_QUORUM,
)
from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import InstallationState, InstallationStatus


class InstallationDetector:
    """Classifies the target by running four independent read-only probes.

    The target counts as installed when at least ``INSTALLED_QUORUM`` probes
    pass, which tolerates one missing signal (for example a database container
    that is restarting).
    """

    def __init__(self, logger, console, containers, workdir: str):
        self.logger = logger
        self.console = console
        self.containers = containers
        self.workdir = workdir

    def probes(self) -> List[Tuple[str, Callable[[], bool]]]:
        return [
            ("compose_manifest", self.has_compose_manifest),
            ("data_directories", self.has_data_directories),
            ("database_running", self.is_database_running),
            ("environment_file", self.has_environment_file),
        ]

    def has_compose_manifest(self) -> bool:
        return os.path.isfile(os.path.join(self.workdir, COMPOSE_FILE))

    def has_data_directories(self) -> bool:
        return all(os.path.isdir(os.path.join(self.workdir, name)) for name in DATA_DIRS)

    def is_database_running(self) -> bool:
        return self.containers.inspect(DB_CONTAINER).status == "running"

    def has_environment_file(self) -> bool:
        return os.path.isfile(os.path.join(self.workdir, ENV_FILE))

    def run_probes(self) -> Dict[str, bool]:
        results = {}
        for name, probe in self.probes():
            try:
                passed = bool(probe())
            except (DeploymentError, OSError) as exc:
                self.logger.warning("Installation probe '%s' failed: %s", name, exc)
                passed = False
            self.logger.info("%s %s", "[pass]" if passed else "[miss]", name)
            results[name] = passed
        return results

    def detect(self) -> InstallationState:
        self.console.print("[blue]Detecting existing installation...[/blue]")
        checks = self.run_probes()
        passed = sum(1 for value in checks.values() if value)
        self.logger.info("Installation checks: %s/%s passed", passed, len(checks))

        if passed < INSTALLED_QUORUM:
            return InstallationState(status=InstallationStatus.NOT_INSTALLED, checks=checks)

        return InstallationState(
            status=InstallationStatus.INSTALLED,
            checks=checks,
            version=self.current_version(),
        )

    def current_version(self):
        try:
            return self.containers.current_version()
        except DeploymentError as exc:
            self.logger.warning("Could not read the running Mautic version: %s", exc)
            return None
