"""Post-deployment reachability check."""

import time
from typing import Callable, List

LOGIN_PATH = "/s/login"


class VerificationService:
    """Reports container status and probes the login page over HTTP."""

    def __init__(
        self,
        logger,
        console,
        containers,
        requests_module,
        attempts: int = 3,
        interval: float = 15.0,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.console = console
        self.containers = containers
        self.requests = requests_module
        self.attempts = attempts
        self.interval = interval
        self.timeout = timeout
        self.sleep = sleep

    def report_containers(self) -> List:
        containers = self.containers.list_containers()
        self.logger.info("Active containers: %s", len(containers))
        for info in containers:
            self.logger.info("  - %s: %s (%s)", info.name, info.status, info.image)
        return containers

    def check_login_page(self, base_url: str) -> bool:
        """Requests the login page up to ``attempts`` times, ``interval`` seconds apart."""
        url = f"{base_url.rstrip('/')}{LOGIN_PATH}"
        self.console.print(f"[blue]Testing connectivity to {url}...[/blue]")

        status = None
        for attempt in range(1, self.attempts + 1):
            try:
                response = self.requests.get(url, timeout=self.timeout, allow_redirects=True)
                status = response.status_code
            except self.requests.RequestException as exc:
                status = None
                self.logger.debug("Connectivity attempt %s failed: %s", attempt, exc)

            if status == 200:
                self.console.print("[green]HTTP connectivity test passed.[/green]")
                return True

            if attempt < self.attempts:
                self.logger.info(
                    "HTTP test attempt %s/%s failed (status: %s). Retrying...",
                    attempt,
                    self.attempts,
                    status or "no response",
                )
                self.sleep(self.interval)

        self.logger.warning(
            "HTTP test failed after %s attempts (status: %s)",
            self.attempts,
            status or "no response",
        )
        self.console.print("[yellow]Warning: Mautic did not answer on the login page yet.[/yellow]")
        return False

    def verify(self, base_url: str) -> bool:
        self.report_containers()
        return self.check_login_page(base_url)
