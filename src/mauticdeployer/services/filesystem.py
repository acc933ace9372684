"""Filesystem helpers for mautic-deployer."""

import logging
import os
import sys
from typing import Iterable

from rich.console import Console

from mauticdeployer.errors import DeploymentError


class FileSystemService:
    """Encapsulates file and directory side effects on the host."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dirs(self, root: str, names: Iterable[str], mode: int):
        for name in names:
            path = os.path.join(root, name)
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as exc:
                raise DeploymentError(f"Could not create directory {path}: {exc}") from exc
            self.set_permissions(path, mode)

    def write_secret_file(self, path: str, content: str, mode: int):
        """Writes ``content`` so that the file never exists with wider permissions."""
        flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
        try:
            fd = os.open(path, flags, mode)
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
        except OSError as exc:
            raise DeploymentError(f"Could not write {path}: {exc}") from exc
        # os.open only applies the mode on creation and through the umask.
        if sys.platform != "win32":
            try:
                os.chmod(path, mode)
            except OSError as exc:
                raise DeploymentError(f"Could not restrict permissions on {path}: {exc}") from exc
