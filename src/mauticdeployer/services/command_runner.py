"""Subprocess execution service for mautic-deployer."""

import subprocess
import time
from typing import Dict, Iterable, List, Optional

from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import ErrorMode, ProcessResult


class CommandRunner:
    """Runs external commands with consistent error handling."""

    def __init__(self, logger, default_timeout: Optional[float] = None, cwd: Optional[str] = None):
        self.logger = logger
        self.default_timeout = default_timeout
        self.cwd = cwd

    def run(
        self,
        cmd: List[str],
        on_error: ErrorMode = ErrorMode.PROPAGATE,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        retry_on_returncodes: Optional[Iterable[int]] = None,
        redact: Iterable[str] = (),
    ) -> ProcessResult:
        secrets = [value for value in redact if value]
        cmd_str = self._redact(" ".join(cmd), secrets)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        effective_cwd = cwd if cwd is not None else self.cwd
        max_attempts = max(1, retry_count + 1)
        retry_codes = set(retry_on_returncodes or [])

        for attempt in range(1, max_attempts + 1):
            try:
                completed = subprocess.run(
                    cmd,
                    text=True,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    timeout=effective_timeout,
                    cwd=effective_cwd,
                    env=env,
                )
            except FileNotFoundError as exc:
                raise DeploymentError(
                    f"Required command not found: {cmd[0]}. Please install it and try again."
                ) from exc
            except subprocess.TimeoutExpired as exc:
                if attempt < max_attempts:
                    self.logger.warning(
                        "Command timed out on attempt %s/%s. Retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        retry_backoff_seconds,
                        cmd_str,
                    )
                    time.sleep(retry_backoff_seconds)
                    continue
                raise DeploymentError(
                    f"Command timed out after {effective_timeout}s: {cmd_str}"
                ) from exc
            except OSError as exc:
                raise DeploymentError(f"Failed to execute command: {cmd_str}. {exc}") from exc

            output = (completed.stdout or "").strip()
            if output:
                self.logger.debug("Command output: %s", self._redact(output, secrets))

            result = ProcessResult(
                success=completed.returncode == 0,
                output=output,
                exit_code=completed.returncode,
            )
            if result.success:
                return result

            message = f"Command failed ({result.exit_code}): {cmd_str}"
            if output:
                message = f"{message}\n{self._redact(output, secrets)}"

            can_retry = attempt < max_attempts and (
                not retry_codes or result.exit_code in retry_codes
            )
            if can_retry:
                self.logger.warning(
                    "Command failed on attempt %s/%s and will be retried in %.1fs.\n%s",
                    attempt,
                    max_attempts,
                    retry_backoff_seconds,
                    message,
                )
                time.sleep(retry_backoff_seconds)
                continue

            if on_error is ErrorMode.PROPAGATE:
                raise DeploymentError(message)

            self.logger.debug(message)
            return result

        raise DeploymentError(f"Command failed after retries: {cmd_str}")

    @staticmethod
    def _redact(text: str, secrets: List[str]) -> str:
        for secret in secrets:
            text = text.replace(secret, "******")
        return text
