"""Docker container and compose lifecycle services for mautic-deployer."""

import subprocess
import time
from typing import Callable, Iterable, List, Optional

from mauticdeployer.constants import (
    CACHE_CLEAR_TIMEOUT,
    COMPOSE_FILE,
    COMPOSE_UP_TIMEOUT,
    CONSOLE_PATH,
    CONTAINER_USER,
    HEALTH_POLL_INTERVAL,
    MANAGED_CONTAINERS,
    WEB_CONTAINER,
)
from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import NOT_FOUND, ContainerInfo, ErrorMode
from mauticdeployer.services.polling import wait_until

INSPECT_FORMAT = (
    "{{.Name}},{{.Config.Image}},{{.State.Status}},"
    "{{if .State.Health}}{{.State.Health.Status}}{{end}}"
)


class ContainerService:
    """Wraps docker compose for the managed Mautic stack."""

    def __init__(
        self,
        logger,
        console,
        runner,
        workdir: str,
        compose_cmd: Optional[List[str]] = None,
        subprocess_module=subprocess,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logger
        self.console = console
        self.runner = runner
        self.workdir = workdir
        self.subprocess = subprocess_module
        self.sleep = sleep
        self.clock = clock
        self._compose_cmd = compose_cmd

    @property
    def compose_cmd(self) -> List[str]:
        if self._compose_cmd is None:
            self._compose_cmd = self.get_docker_compose_cmd()
        return self._compose_cmd

    def get_docker_compose_cmd(self) -> List[str]:
        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            return ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                return ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise DeploymentError(
                    "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
                    "or v1 (`docker-compose`) and try again."
                )

    def validate_environment(self):
        self.console.print("[blue]Validating Docker environment...[/blue]")
        docker = self.runner.run(["docker", "--version"])
        self.runner.run(self.compose_cmd + ["version"])
        self.runner.run(["docker", "info"])
        self.logger.info("Docker version: %s", docker.output or "unknown")
        self.console.print("[green]Docker is available.[/green]")

    def _compose(self, *args: str) -> List[str]:
        return self.compose_cmd + ["-f", COMPOSE_FILE, *args]

    def up_command(self) -> List[str]:
        # docker-compose v1 has no --wait; wait_for_healthy gates readiness instead.
        if self.compose_cmd == ["docker-compose"]:
            return self._compose("up", "-d")
        return self._compose("up", "-d", "--wait", "--wait-timeout", str(COMPOSE_UP_TIMEOUT))

    def inspect(self, container_name: str) -> ContainerInfo:
        result = self.runner.run(
            ["docker", "inspect", container_name, "--format", INSPECT_FORMAT],
            on_error=ErrorMode.SUPPRESS,
        )
        if not result.success or not result.output:
            return ContainerInfo(name=container_name, status=NOT_FOUND)

        line = result.output.splitlines()[-1]
        name, image, status, health = (line.split(",", 3) + ["", "", "", ""])[:4]
        health = health.strip()
        return ContainerInfo(
            name=name.strip().lstrip("/") or container_name,
            image=image.strip(),
            status=status.strip() or NOT_FOUND,
            health=health if health and health != "<no value>" else None,
        )

    def list_containers(self) -> List[ContainerInfo]:
        containers = []
        for name in MANAGED_CONTAINERS:
            info = self.inspect(name)
            if info.exists:
                containers.append(info)
        return containers

    def current_version(self) -> Optional[str]:
        web = self.inspect(WEB_CONTAINER)
        if not web.exists:
            return None
        return web.tag

    def pull_image(self, image: str) -> bool:
        self.console.print(f"[blue]Pulling Docker image {image}...[/blue]")
        self.logger.info("Pulling Docker image: %s", image)
        try:
            result = self.runner.run(["docker", "pull", image], on_error=ErrorMode.SUPPRESS)
        except DeploymentError as exc:
            self.logger.error("Failed to pull %s: %s", image, exc)
            return False

        if result.success:
            self.console.print(f"[green]Pulled {image}.[/green]")
            return True

        self.logger.error("Failed to pull %s: %s", image, result.output)
        return False

    def recreate_containers(self) -> bool:
        self.console.print("[blue]Recreating Docker containers...[/blue]")
        self.logger.info("Recreating Docker containers...")

        try:
            # "Nothing running" is not an error for the teardown.
            self.runner.run(self._compose("down"), on_error=ErrorMode.SUPPRESS, cwd=self.workdir)
            self.runner.run(self._compose("rm", "-f"), on_error=ErrorMode.SUPPRESS, cwd=self.workdir)

            validation = self.runner.run(
                self._compose("config", "-q"),
                on_error=ErrorMode.SUPPRESS,
                cwd=self.workdir,
            )
            if not validation.success:
                self.logger.error("Compose manifest is invalid:\n%s", validation.output)
                return False

            result = self.runner.run(
                self.up_command(),
                on_error=ErrorMode.SUPPRESS,
                timeout=COMPOSE_UP_TIMEOUT + 60,
                cwd=self.workdir,
            )
        except DeploymentError as exc:
            self.logger.error("Error recreating containers: %s", exc)
            self.log_recent_output()
            return False

        if result.success:
            self.console.print("[green]Containers recreated.[/green]")
            return True

        self.logger.error("Failed to recreate containers:\n%s", result.output)
        self.log_recent_output()
        return False

    def log_recent_output(self, tail: int = 50):
        try:
            logs = self.runner.run(
                self._compose("logs", "--tail", str(tail)),
                on_error=ErrorMode.SUPPRESS,
                cwd=self.workdir,
            )
        except DeploymentError as exc:
            self.logger.warning("Could not collect container logs: %s", exc)
            return
        if logs.output:
            self.logger.error("Recent container logs:\n%s", logs.output)

    def container_logs(self, container_name: str, tail: int = 10) -> str:
        try:
            result = self.runner.run(
                ["docker", "logs", container_name, "--tail", str(tail)],
                on_error=ErrorMode.SUPPRESS,
            )
        except DeploymentError:
            return ""
        return result.output if result.success else ""

    def wait_for_healthy(
        self,
        container_name: str,
        timeout_seconds: float,
        interval: float = HEALTH_POLL_INTERVAL,
    ) -> bool:
        self.console.print(f"[yellow]Waiting for {container_name} to be healthy...[/yellow]")
        self.logger.info("Waiting up to %ss for %s to be healthy", timeout_seconds, container_name)
        last_seen = {"info": ContainerInfo(name=container_name)}

        def _probe() -> bool:
            try:
                info = self.inspect(container_name)
            except DeploymentError as exc:
                self.logger.debug("Inspect of %s failed: %s", container_name, exc)
                return False
            last_seen["info"] = info
            if info.is_healthy:
                return True
            self.logger.info(
                "%s status: %s, health: %s",
                container_name,
                info.status,
                info.health or "none",
            )
            return False

        if wait_until(_probe, interval, timeout_seconds, sleep=self.sleep, clock=self.clock):
            self.console.print(f"[green]{container_name} is healthy.[/green]")
            return True

        info = last_seen["info"]
        self.logger.error(
            "Timeout waiting for %s to be healthy (status: %s, health: %s)",
            container_name,
            info.status,
            info.health or "none",
        )
        logs = self.container_logs(container_name)
        if logs:
            self.logger.error("%s logs:\n%s", container_name, logs)
        return False

    def exec_console(
        self,
        args: List[str],
        on_error: ErrorMode = ErrorMode.PROPAGATE,
        timeout: Optional[float] = None,
        user: Optional[str] = None,
        redact: Iterable[str] = (),
    ):
        """Runs ``bin/console`` inside the web container."""
        return self.runner.run(
            ["docker", "exec", "-u", user or CONTAINER_USER, WEB_CONTAINER, "php", CONSOLE_PATH]
            + args,
            on_error=on_error,
            timeout=timeout,
            redact=redact,
        )

    def exec_web(self, args: List[str], on_error: ErrorMode = ErrorMode.SUPPRESS, user: str = "root"):
        return self.runner.run(
            ["docker", "exec", "-u", user, WEB_CONTAINER] + args,
            on_error=on_error,
        )

    def clear_cache(self) -> bool:
        """Best-effort ``cache:clear``; failures are logged and reported as False."""
        self.logger.info("Clearing Mautic cache...")
        try:
            result = self.exec_console(
                ["cache:clear", "--no-interaction"],
                on_error=ErrorMode.SUPPRESS,
                timeout=CACHE_CLEAR_TIMEOUT,
            )
        except DeploymentError as exc:
            self.logger.warning("Cache clear failed: %s", exc)
            return False
        if not result.success:
            self.logger.warning("Cache clear failed: %s", result.output)
            return False
        self.console.print("[green]Mautic cache cleared.[/green]")
        return True
