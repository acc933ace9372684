import sys

import pytest

from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import ErrorMode
from mauticdeployer.services.command_runner import CommandRunner


class DummyLogger:
    def __init__(self):
        self.messages = []

    def debug(self, message, *args, **_kwargs):
        self.messages.append(message % args if args else message)

    def warning(self, message, *args, **_kwargs):
        self.messages.append(message % args if args else message)


def test_command_runner_raises_with_output():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(DeploymentError, match="boom"):
        runner.run([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"])


def test_command_runner_suppress_returns_failed_result():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; print('partial'); sys.exit(3)"],
        on_error=ErrorMode.SUPPRESS,
    )

    assert result.success is False
    assert result.exit_code == 3
    assert result.output == "partial"


def test_command_runner_captures_trimmed_output():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run([sys.executable, "-c", "print('  hello  ')"])

    assert result.success is True
    assert result.exit_code == 0
    assert result.output == "hello"


def test_command_runner_retries_before_success(tmp_path):
    runner = CommandRunner(logger=DummyLogger())

    command = [
        sys.executable,
        "-c",
        (
            "from pathlib import Path;"
            "p=Path('retry-counter.txt');"
            "n=int(p.read_text()) if p.exists() else 0;"
            "p.write_text(str(n+1));"
            "import sys; sys.exit(100 if n == 0 else 0)"
        ),
    ]

    result = runner.run(
        command,
        cwd=str(tmp_path),
        retry_count=1,
        retry_backoff_seconds=0.0,
        retry_on_returncodes=[100],
    )

    assert result.success is True
    assert (tmp_path / "retry-counter.txt").read_text() == "2"


def test_command_runner_does_not_retry_other_exit_codes(tmp_path):
    runner = CommandRunner(logger=DummyLogger())

    command = [
        sys.executable,
        "-c",
        (
            "from pathlib import Path;"
            "p=Path('retry-counter.txt');"
            "n=int(p.read_text()) if p.exists() else 0;"
            "p.write_text(str(n+1));"
            "import sys; sys.exit(2)"
        ),
    ]

    result = runner.run(
        command,
        on_error=ErrorMode.SUPPRESS,
        cwd=str(tmp_path),
        retry_count=3,
        retry_on_returncodes=[100],
    )

    assert result.exit_code == 2
    assert (tmp_path / "retry-counter.txt").read_text() == "1"


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(DeploymentError, match="timed out"):
        runner.run([sys.executable, "-c", "import time; time.sleep(2)"], timeout=0.1)


def test_command_runner_missing_binary_raises_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(DeploymentError, match="Required command not found"):
        runner.run(["definitely-not-a-real-binary-for-tests"])


def test_command_runner_redacts_secrets_from_errors_and_logs():
    logger = DummyLogger()
    runner = CommandRunner(logger=logger)

    with pytest.raises(DeploymentError) as excinfo:
        runner.run(
            [sys.executable, "-c", "import sys; print(sys.argv[1]); sys.exit(1)", "s3cret"],
            redact=["s3cret"],
        )

    assert "s3cret" not in str(excinfo.value)
    assert "******" in str(excinfo.value)
    assert all("s3cret" not in message for message in logger.messages)
