"""Let's Encrypt certificate provisioning behind nginx."""

import os
import shutil

from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import ErrorMode

NGINX_DIR = "/etc/nginx"
VHOST_TEMPLATE = "nginx-virtual-host-{domain}"


class TlsProvisioner:
    """Enables the site's nginx virtual host and requests a certificate."""

    def __init__(self, logger, console, runner, workdir: str, nginx_dir: str = NGINX_DIR):
        self.logger = logger
        self.console = console
        self.runner = runner
        self.workdir = workdir
        self.nginx_dir = nginx_dir

    def vhost_source(self, domain: str) -> str:
        return os.path.join(self.workdir, VHOST_TEMPLATE.format(domain=domain))

    def has_vhost(self, domain: str) -> bool:
        return os.path.isfile(self.vhost_source(domain))

    def enable_vhost(self, domain: str) -> bool:
        source = self.vhost_source(domain)
        if not self.has_vhost(domain):
            self.logger.warning("nginx virtual host %s not found. Using the existing nginx setup.", source)
            return False

        available = os.path.join(self.nginx_dir, "sites-available", domain)
        enabled_dir = os.path.join(self.nginx_dir, "sites-enabled")
        enabled = os.path.join(enabled_dir, domain)
        try:
            os.makedirs(os.path.dirname(available), exist_ok=True)
            os.makedirs(enabled_dir, exist_ok=True)
            shutil.copyfile(source, available)
            if os.path.lexists(enabled):
                os.remove(enabled)
            os.symlink(available, enabled)
            default_site = os.path.join(enabled_dir, "default")
            if os.path.lexists(default_site):
                os.remove(default_site)
        except OSError as exc:
            raise DeploymentError(f"Could not enable nginx virtual host for {domain}: {exc}") from exc

        self.runner.run(["nginx", "-t"])
        self.runner.run(["systemctl", "reload", "nginx"])
        self.logger.info("Enabled nginx virtual host for %s", domain)
        return True

    def provision(self, domain: str, admin_email: str) -> bool:
        self.console.print(f"[blue]Setting up SSL for {domain}...[/blue]")
        try:
            self.enable_vhost(domain)
            result = self.runner.run(
                [
                    "certbot",
                    "--nginx",
                    "-d",
                    domain,
                    "--non-interactive",
                    "--agree-tos",
                    "--email",
                    admin_email,
                ],
                on_error=ErrorMode.SUPPRESS,
            )
        except DeploymentError as exc:
            self.logger.error("SSL setup failed for %s: %s", domain, exc)
            return False

        if not result.success:
            self.logger.error("certbot failed for %s: %s", domain, result.output)
            if not self.has_vhost(domain):
                self.logger.error(
                    "nginx virtual host %s was not found; certbot had no site to configure.",
                    self.vhost_source(domain),
                )
            return False

        self.console.print(f"[green]SSL certificate installed for {domain}.[/green]")
        return True
