"""Theme and plugin installation for a running Mautic instance."""

import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from mauticdeployer.constants import (
    CONTAINER_DOCROOT,
    CONTAINER_USER,
    DIR_MODE,
    MAUTIC_DATA_DIR,
)
from mauticdeployer.errors import DeploymentError, ExtensionError
from mauticdeployer.models import ErrorMode, ExtensionKind

SOURCE_FORGE_HOSTS = {
    "github.com",
    "www.github.com",
    "api.github.com",
    "codeload.github.com",
    "raw.githubusercontent.com",
}
DIRECTORY_PARAM = "directory"
TOKEN_PARAM = "token"

EXTENSION_DIRS = {
    ExtensionKind.THEME: "themes",
    ExtensionKind.PLUGIN: "plugins",
}


@dataclass(frozen=True)
class ExtensionSource:
    """A theme or plugin archive location with optional install hints."""

    url: str
    kind: ExtensionKind
    directory: Optional[str] = None
    token: Optional[str] = None

    @classmethod
    def parse(
        cls,
        raw: str,
        kind: ExtensionKind,
        default_token: Optional[str] = None,
    ) -> "ExtensionSource":
        parsed = urlparse(raw.strip())
        if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
            raise ExtensionError(f"Invalid {kind.value} source: {raw}")

        directory = None
        token = None
        kept: List[Tuple[str, str]] = []
        for key, value in parse_qsl(parsed.query, keep_blank_values=True):
            if key == DIRECTORY_PARAM:
                directory = value.strip() or None
            elif key == TOKEN_PARAM:
                token = value.strip() or None
            else:
                kept.append((key, value))

        if directory and (
            directory in {".", ".."} or "/" in directory or "\\" in directory
        ):
            raise ExtensionError(f"Invalid target directory '{directory}' for {kind.value} source.")

        url = urlunparse(parsed._replace(query=urlencode(kept)))
        return cls(url=url, kind=kind, directory=directory, token=token or default_token)

    @property
    def host(self) -> str:
        return (urlparse(self.url).hostname or "").lower()

    @property
    def is_source_forge(self) -> bool:
        return self.host in SOURCE_FORGE_HOSTS

    @property
    def requires_auth(self) -> bool:
        return bool(self.token) and self.is_source_forge

    def request_headers(self) -> Dict[str, str]:
        if not self.requires_auth:
            return {}
        return {"Authorization": f"token {self.token}"}


@dataclass
class ExtensionReport:
    """Aggregate outcome of one batch of theme or plugin installs."""

    kind: ExtensionKind
    succeeded: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


class ExtensionInstaller:
    """Downloads and installs theme/plugin archives, isolating each item."""

    def __init__(
        self,
        logger,
        console,
        download_service,
        archive_service,
        filesystem_service,
        containers,
        workdir: str,
        github_token: Optional[str] = None,
    ):
        self.logger = logger
        self.console = console
        self.download_service = download_service
        self.archive_service = archive_service
        self.filesystem_service = filesystem_service
        self.containers = containers
        self.workdir = workdir
        self.github_token = github_token

    def host_dir(self, kind: ExtensionKind) -> str:
        return os.path.join(self.workdir, MAUTIC_DATA_DIR, "docroot", EXTENSION_DIRS[kind])

    def container_dir(self, kind: ExtensionKind) -> str:
        return f"{CONTAINER_DOCROOT}/{EXTENSION_DIRS[kind]}"

    def install(self, sources: Iterable[str], kind: ExtensionKind) -> ExtensionReport:
        report = ExtensionReport(kind=kind)
        items = [item for item in sources if item and item.strip()]
        if not items:
            return report

        self.console.print(f"[blue]Installing {len(items)} {kind.value}(s)...[/blue]")
        for raw in items:
            label = raw
            try:
                source = ExtensionSource.parse(raw, kind, default_token=self.github_token)
                label = source.url
                self.install_one(source)
            except DeploymentError as exc:
                self.logger.error("Failed to install %s %s: %s", kind.value, label, exc)
                self.console.print(f"[red]Failed to install {kind.value}: {label}[/red]")
                report.failed.append((label, str(exc)))
                continue
            report.succeeded.append(label)

        self.logger.info(
            "%s installation finished: %s succeeded, %s failed",
            kind.value.capitalize(),
            report.success_count,
            report.failure_count,
        )
        return report

    def install_one(self, source: ExtensionSource):
        self.logger.info(
            "Installing %s from %s%s",
            source.kind.value,
            source.url,
            " (authenticated)" if source.requires_auth else "",
        )
        target_dir = self.host_dir(source.kind)
        container_target = self.container_dir(source.kind)
        if source.directory:
            target_dir = os.path.join(target_dir, source.directory)
            container_target = f"{container_target}/{source.directory}"

        with tempfile.TemporaryDirectory(prefix="mautic-extension-") as work_dir:
            archive_path = os.path.join(work_dir, "extension.zip")
            self.download_service.download_file(
                source.url,
                archive_path,
                description=f"Downloading {source.kind.value}...",
                headers=source.request_headers(),
            )

            if not self.archive_service.is_zip_archive(archive_path):
                raise ExtensionError(
                    f"Downloaded {source.kind.value} from {source.url} is not a ZIP archive."
                )

            extract_dir = os.path.join(work_dir, "extracted")
            os.makedirs(extract_dir)
            self.archive_service.safe_extract_zip(archive_path, extract_dir)

            content_root = extract_dir
            if source.directory:
                content_root = self.archive_service.unwrap_single_directory(extract_dir)
                if content_root != extract_dir:
                    self.logger.info(
                        "Detected wrapper directory '%s'. Flattening structure...",
                        os.path.basename(content_root),
                    )

            try:
                self.archive_service.merge_tree(content_root, target_dir)
            except OSError as exc:
                raise ExtensionError(f"Could not copy {source.kind.value} into {target_dir}: {exc}") from exc

        self.filesystem_service.set_permissions(target_dir, DIR_MODE)
        self.fix_ownership(container_target)
        if source.kind is ExtensionKind.PLUGIN:
            self.register_plugins()
        self.containers.clear_cache()
        self.console.print(f"[green]Installed {source.kind.value}: {source.url}[/green]")

    def fix_ownership(self, container_path: str):
        try:
            result = self.containers.exec_web(
                ["chown", "-R", f"{CONTAINER_USER}:{CONTAINER_USER}", container_path],
                on_error=ErrorMode.SUPPRESS,
            )
        except DeploymentError as exc:
            self.logger.warning("Could not fix ownership of %s: %s", container_path, exc)
            return
        if not result.success:
            self.logger.warning("Could not fix ownership of %s: %s", container_path, result.output)

    def register_plugins(self):
        try:
            result = self.containers.exec_console(
                ["mautic:plugins:reload", "--no-interaction"],
                on_error=ErrorMode.SUPPRESS,
            )
        except DeploymentError as exc:
            self.logger.warning("Plugin registration failed: %s", exc)
            return
        if not result.success:
            self.logger.warning("Plugin registration failed: %s", result.output)
