import itertools

import pytest

from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import ContainerInfo, InstallationStatus
from mauticdeployer.services.detector import InstallationDetector


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeContainers:
    def __init__(self, db_status="running", version="5.1.0-apache", inspect_error=None):
        self.db_status = db_status
        self.version = version
        self.inspect_error = inspect_error

    def inspect(self, name):
        if self.inspect_error:
            raise self.inspect_error
        return ContainerInfo(name=name, image="mysql:8.0", status=self.db_status)

    def current_version(self):
        return self.version


def _prepare(workdir, compose, data_dirs, env_file):
    if compose:
        (workdir / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")
    if data_dirs:
        (workdir / "mautic_data").mkdir()
        (workdir / "mysql_data").mkdir()
    if env_file:
        (workdir / ".mautic_env").write_text("MAUTIC_DB_HOST=mautic_db\n", encoding="utf-8")


@pytest.mark.parametrize("signals", list(itertools.product([True, False], repeat=4)))
def test_detect_requires_three_of_four_signals(tmp_path, signals):
    compose, data_dirs, db_running, env_file = signals
    _prepare(tmp_path, compose, data_dirs, env_file)
    containers = FakeContainers(db_status="running" if db_running else "not found")
    detector = InstallationDetector(DummyLogger(), DummyConsole(), containers, str(tmp_path))

    state = detector.detect()

    expected_installed = sum(signals) >= 3
    assert state.installed is expected_installed
    assert state.passed_checks == sum(signals)
    if expected_installed:
        assert state.version == "5.1.0-apache"
    else:
        assert state.version is None


def test_detect_reports_partial_installation(tmp_path):
    _prepare(tmp_path, compose=True, data_dirs=False, env_file=True)
    detector = InstallationDetector(
        DummyLogger(), DummyConsole(), FakeContainers(db_status="exited"), str(tmp_path)
    )

    state = detector.detect()

    assert state.status is InstallationStatus.NOT_INSTALLED
    assert state.partial is True
    assert state.checks == {
        "compose_manifest": True,
        "data_directories": False,
        "database_running": False,
        "environment_file": True,
    }


def test_data_directories_require_both_directories(tmp_path):
    (tmp_path / "mautic_data").mkdir()
    detector = InstallationDetector(DummyLogger(), DummyConsole(), FakeContainers(), str(tmp_path))

    assert detector.has_data_directories() is False


def test_probe_errors_count_as_failed(tmp_path):
    _prepare(tmp_path, compose=True, data_dirs=True, env_file=True)
    containers = FakeContainers(inspect_error=DeploymentError("docker not reachable"))
    detector = InstallationDetector(DummyLogger(), DummyConsole(), containers, str(tmp_path))

    state = detector.detect()

    assert state.checks["database_running"] is False
    assert state.installed is True


def test_installed_with_unreadable_version(tmp_path):
    _prepare(tmp_path, compose=True, data_dirs=True, env_file=True)

    class BrokenVersionContainers(FakeContainers):
        def current_version(self):
            raise DeploymentError("inspect failed")

    detector = InstallationDetector(
        DummyLogger(), DummyConsole(), BrokenVersionContainers(), str(tmp_path)
    )

    state = detector.detect()

    assert state.installed is True
    assert state.version is None
