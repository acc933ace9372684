import getpass
import logging
import os
import uuid
from typing import Any, Dict, Optional

import requests
from rich.console import Console

from .constants import MANIFEST_FILE
from .errors import DeploymentError
from .errors_catalog import actionable_error
from .models import DeploymentConfig, InstallationState, ReconcileAction
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.containers import ContainerService
from .services.detector import InstallationDetector
from .services.download import DownloadService
from .services.extensions import ExtensionInstaller
from .services.filesystem import FileSystemService
from .services.manifest import ManifestService
from .services.outputs import OutputWriter
from .services.packages import PackageService
from .services.reconciler import Reconciler
from .services.tls import TlsProvisioner
from .services.validation import ValidationService
from .services.verification import VerificationService

console = Console()
logger = logging.getLogger("mauticdeployer")

MASKED = "[configured]"


class MauticDeployer:
    def __init__(self, config: DeploymentConfig):
        self.config = config
        self.workdir = config.workdir
        self.run_id = uuid.uuid4().hex[:10]
        self.manifest_file = os.path.join(self.workdir, MANIFEST_FILE)
        self.current_step_name: Optional[str] = None

        self.manifest_service = ManifestService(manifest_file=self.manifest_file, logger=logger)
        self.validation_service = ValidationService(allow_insecure_http=config.allow_insecure_http)
        self.command_runner = CommandRunner(logger=logger)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.archive_service = ArchiveService()
        self.download_service = DownloadService(
            validation_service=self.validation_service,
            logger=logger,
            console=console,
            requests_module=requests,
        )
        self.container_service = ContainerService(
            logger=logger,
            console=console,
            runner=self.command_runner,
            workdir=self.workdir,
        )
        self.package_service = PackageService(logger=logger, console=console, runner=self.command_runner)
        self.detector = InstallationDetector(
            logger=logger,
            console=console,
            containers=self.container_service,
            workdir=self.workdir,
        )
        self.extension_installer = ExtensionInstaller(
            logger=logger,
            console=console,
            download_service=self.download_service,
            archive_service=self.archive_service,
            filesystem_service=self.filesystem_service,
            containers=self.container_service,
            workdir=self.workdir,
            github_token=config.github_token,
        )
        self.reconciler = Reconciler(
            logger=logger,
            console=console,
            config=config,
            containers=self.container_service,
            filesystem_service=self.filesystem_service,
            extension_installer=self.extension_installer,
        )
        self.tls_provisioner = TlsProvisioner(
            logger=logger,
            console=console,
            runner=self.command_runner,
            workdir=self.workdir,
        )
        self.verification_service = VerificationService(
            logger=logger,
            console=console,
            containers=self.container_service,
            requests_module=requests,
        )
        self.output_writer = OutputWriter(logger=logger, console=console)

    def _build_manifest_settings(self) -> Dict[str, Any]:
        config = self.config
        return {
            "ip_address": config.ip_address,
            "port": config.port,
            "domain_name": config.domain_name,
            "mautic_version": config.mautic_version,
            "image_tag": config.image_tag,
            "email_address": config.email_address,
            "workdir": config.workdir,
            "themes": len(config.themes),
            "plugins": len(config.plugins),
            "skip_packages": config.skip_packages,
            "allow_insecure_http": config.allow_insecure_http,
        }

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.manifest_service.step_started(name)
        self.current_step_name = name

        try:
            result = callback(*args, **kwargs)
        except Exception as exc:
            self.manifest_service.step_finished(name, "failed", error=str(exc))
            raise

        self.manifest_service.step_finished(name, "success")
        self.current_step_name = None
        return result

    def check_environment(self):
        console.print("[blue]Checking environment...[/blue]")
        logger.info("Current user: %s", getpass.getuser())
        logger.info("Working directory: %s", self.workdir)
        self.validation_service.validate_config(self.config)
        os.makedirs(self.workdir, exist_ok=True)
        self.container_service.validate_environment()

    def prepare_packages(self):
        installed = self.package_service.prepare(self.config.domain_name)
        if installed:
            logger.info("Installed packages: %s", ", ".join(installed))

    def detect_installation(self) -> InstallationState:
        state = self.detector.detect()
        self.manifest_service.record_installation(
            status=state.status.value,
            checks=state.checks,
            detected_version=state.version,
            target_version=self.config.image_tag,
        )
        if state.installed:
            console.print(
                f"[green]Existing Mautic installation detected (version {state.version or 'unknown'}).[/green]"
            )
        return state

    def reconcile(self, state: InstallationState) -> ReconcileAction:
        try:
            action = self.reconciler.reconcile(state)
        finally:
            for report in self.reconciler.extension_reports:
                self.manifest_service.record_extensions(report.kind.value, report.succeeded, report.failed)
        self.manifest_service.record_action(action.value)
        return action

    def provision_tls(self):
        domain = self.config.domain_name
        if self.tls_provisioner.provision(domain, self.config.email_address):
            return
        if not self.tls_provisioner.has_vhost(domain):
            raise DeploymentError(
                actionable_error(
                    "tls_vhost_missing",
                    domain=domain,
                    vhost=self.tls_provisioner.vhost_source(domain),
                )
            )
        raise DeploymentError(actionable_error("tls_failed", domain=domain))

    def verify(self) -> bool:
        return self.verification_service.verify(self.config.site_url)

    def print_summary(self, action: ReconcileAction):
        console.print("")
        console.print("[bold green]Mautic deployment completed successfully![/bold green]")
        console.print(f"Action: {action.value}")
        console.print(f"Access URL: {self.config.site_url}")
        console.print(f"Admin email: {self.config.email_address}")
        console.print(f"Admin password: {MASKED}")

    def publish_outputs(self, status: str):
        outputs = {
            "mautic_url": self.config.site_url,
            "admin_email": self.config.email_address,
            "deployment_status": status,
        }
        self.output_writer.write(outputs)
        for name, value in outputs.items():
            self.manifest_service.add_output(name, value)

    def run(self) -> int:
        exit_code = 1
        manifest_status = "failed"
        manifest_error: Optional[str] = None

        try:
            logger.info("Starting Mautic deployment...")
            self.manifest_service.start_run(
                run_id=self.run_id,
                settings=self._build_manifest_settings(),
            )

            self._run_step("check_environment", self.check_environment)
            if self.config.skip_packages:
                logger.info("Skipping host package preparation.")
            else:
                self._run_step("prepare_packages", self.prepare_packages)

            state = self._run_step("detect_installation", self.detect_installation)
            action = self._run_step("reconcile", self.reconcile, state)

            if self.config.domain_name:
                self._run_step("provision_tls", self.provision_tls)

            self._run_step("verify", self.verify)
            self.print_summary(action)

            manifest_status = "success"
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            manifest_status = "aborted"
            manifest_error = "Operation cancelled by user."
            exit_code = 1
            return exit_code
        except DeploymentError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            failed_step = self.current_step_name or "run"
            logger.error("Step %s failed: %s", failed_step, exc)
            manifest_error = str(exc)
            exit_code = 1
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            failed_step = self.current_step_name or "run"
            logger.exception("Unexpected error in step %s", failed_step)
            manifest_error = str(exc)
            exit_code = 1
            return exit_code
        finally:
            self.publish_outputs("success" if manifest_status == "success" else "failure")
            self.manifest_service.finalize(manifest_status, error=manifest_error)
