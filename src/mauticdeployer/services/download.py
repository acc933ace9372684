"""Download service with progress reporting and retries."""

import os
import time
from typing import Dict, Optional

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from mauticdeployer.errors import ExtensionError


class DownloadService:
    """Handles remote downloads of extension archives."""

    def __init__(
        self,
        validation_service,
        logger,
        console,
        requests_module,
        timeout: float = 60.0,
        retry_count: int = 1,
        retry_backoff_seconds: float = 2.0,
    ):
        self.validation_service = validation_service
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout
        self.retry_count = retry_count
        self.retry_backoff_seconds = retry_backoff_seconds

    def download_file(
        self,
        url: str,
        dest_path: str,
        description: str = "Downloading...",
        headers: Optional[Dict[str, str]] = None,
    ):
        # Never log request headers: they may carry an access token.
        self.logger.info("Downloading %s to %s", url, dest_path)
        self.validation_service.enforce_https_policy(url, description, self.logger, self.console)

        max_attempts = max(1, self.retry_count + 1)
        for attempt in range(1, max_attempts + 1):
            try:
                self._stream_to_file(url, dest_path, description, headers or {})
                return
            except self.requests.RequestException as exc:
                if attempt < max_attempts:
                    self.logger.warning(
                        "Download attempt %s/%s for %s failed: %s. Retrying in %.1fs",
                        attempt,
                        max_attempts,
                        description,
                        exc,
                        self.retry_backoff_seconds,
                    )
                    time.sleep(self.retry_backoff_seconds)
                    continue
                raise ExtensionError(f"Download failed for {description}: {exc}") from exc

    def _stream_to_file(self, url: str, dest_path: str, description: str, headers: Dict[str, str]):
        with self.requests.get(url, stream=True, timeout=self.timeout, headers=headers) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("Content-Length", 0))

            os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                "-",
                TimeElapsedColumn(),
                console=self.console,
            ) as progress:
                task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                with open(dest_path, "wb") as file_obj:
                    for chunk in response.iter_content(chunk_size=8192):
                        if not chunk:
                            continue
                        file_obj.write(chunk)
                        progress.update(task, advance=len(chunk))
