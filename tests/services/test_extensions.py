import io
import zipfile

import pytest

from mauticdeployer.errors import DeploymentError, ExtensionError
from mauticdeployer.models import ExtensionKind, ProcessResult
from mauticdeployer.services.archive import ArchiveService
from mauticdeployer.services.extensions import ExtensionInstaller, ExtensionSource
from mauticdeployer.services.filesystem import FileSystemService


class DummyLogger:
    def __init__(self):
        self.errors = []

    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def error(self, message, *args, **_kwargs):
        self.errors.append(message % args if args else message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def _zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_file:
        for name, content in files.items():
            zip_file.writestr(name, content)
    return buffer.getvalue()


class FakeDownloadService:
    def __init__(self, payloads):
        self.payloads = payloads
        self.calls = []

    def download_file(self, url, dest_path, description="Downloading...", headers=None):
        self.calls.append((url, headers))
        payload = self.payloads[url]
        if isinstance(payload, Exception):
            raise payload
        with open(dest_path, "wb") as file_obj:
            file_obj.write(payload)


class FakeContainers:
    def __init__(self):
        self.web_calls = []
        self.console_calls = []
        self.cache_clears = 0

    def exec_web(self, args, **_kwargs):
        self.web_calls.append(args)
        return ProcessResult(success=True, output="", exit_code=0)

    def exec_console(self, args, **_kwargs):
        self.console_calls.append(args)
        return ProcessResult(success=True, output="", exit_code=0)

    def clear_cache(self):
        self.cache_clears += 1
        return True


def build_installer(tmp_path, payloads, github_token=None):
    logger = DummyLogger()
    download_service = FakeDownloadService(payloads)
    containers = FakeContainers()
    installer = ExtensionInstaller(
        logger=logger,
        console=DummyConsole(),
        download_service=download_service,
        archive_service=ArchiveService(),
        filesystem_service=FileSystemService(logger=logger, console=DummyConsole()),
        containers=containers,
        workdir=str(tmp_path),
        github_token=github_token,
    )
    return installer, download_service, containers


def test_parse_extracts_directory_and_token():
    source = ExtensionSource.parse(
        "https://github.com/acme/theme/archive/main.zip?directory=acme&token=abc&ref=1",
        ExtensionKind.THEME,
    )

    assert source.url == "https://github.com/acme/theme/archive/main.zip?ref=1"
    assert source.directory == "acme"
    assert source.token == "abc"
    assert source.request_headers() == {"Authorization": "token abc"}


def test_parse_uses_default_token_only_for_github_hosts():
    github = ExtensionSource.parse("https://codeload.github.com/a/b/zip/main", ExtensionKind.PLUGIN, "tok")
    other = ExtensionSource.parse("https://downloads.example.com/b.zip", ExtensionKind.PLUGIN, "tok")

    assert github.request_headers() == {"Authorization": "token tok"}
    assert other.request_headers() == {}


@pytest.mark.parametrize(
    "raw",
    [
        "ftp://example.com/theme.zip",
        "not a url",
        "https://example.com/theme.zip?directory=../etc",
        "https://example.com/theme.zip?directory=a/b",
        "https://example.com/theme.zip?directory=..",
    ],
)
def test_parse_rejects_invalid_sources(raw):
    with pytest.raises(ExtensionError):
        ExtensionSource.parse(raw, ExtensionKind.THEME)


def test_install_theme_into_named_directory(tmp_path):
    url = "https://example.com/theme.zip"
    payload = _zip_bytes({"theme-main/config.json": "{}", "theme-main/html/base.html.twig": "x"})
    installer, _, containers = build_installer(tmp_path, {url: payload})

    report = installer.install([f"{url}?directory=mytheme"], ExtensionKind.THEME)

    target = tmp_path / "mautic_data" / "docroot" / "themes" / "mytheme"
    assert report.success_count == 1
    assert report.failure_count == 0
    assert (target / "config.json").exists()
    assert (target / "html" / "base.html.twig").exists()
    assert containers.web_calls == [
        ["chown", "-R", "www-data:www-data", "/var/www/html/docroot/themes/mytheme"]
    ]
    assert containers.console_calls == []
    assert containers.cache_clears == 1


def test_install_plugin_registers_plugins(tmp_path):
    url = "https://example.com/plugin.zip"
    payload = _zip_bytes({"AcmeBundle/Config/config.php": "<?php return [];"})
    installer, _, containers = build_installer(tmp_path, {url: payload})

    report = installer.install([url], ExtensionKind.PLUGIN)

    assert report.success_count == 1
    assert (tmp_path / "mautic_data" / "docroot" / "plugins" / "AcmeBundle" / "Config" / "config.php").exists()
    assert containers.console_calls == [["mautic:plugins:reload", "--no-interaction"]]


def test_invalid_payload_is_rejected_and_batch_continues(tmp_path):
    bad_url = "https://example.com/broken.zip"
    good_url = "https://example.com/good.zip"
    installer, _, containers = build_installer(
        tmp_path,
        {
            bad_url: b"<html>Not Found</html>",
            good_url: _zip_bytes({"GoodBundle/README.md": "ok"}),
        },
    )

    report = installer.install([bad_url, good_url], ExtensionKind.PLUGIN)

    assert report.succeeded == [good_url]
    assert report.failed[0][0] == bad_url
    assert "not a ZIP archive" in report.failed[0][1]
    plugins_dir = tmp_path / "mautic_data" / "docroot" / "plugins"
    assert sorted(item.name for item in plugins_dir.iterdir()) == ["GoodBundle"]
    assert containers.cache_clears == 1


def test_download_failure_is_isolated(tmp_path):
    failing_url = "https://example.com/missing.zip"
    installer, _, _ = build_installer(tmp_path, {failing_url: ExtensionError("Download failed")})

    report = installer.install([failing_url, "ftp://bad"], ExtensionKind.THEME)

    assert report.succeeded == []
    assert report.failure_count == 2


def test_install_sends_token_only_to_github(tmp_path):
    github_url = "https://github.com/acme/plugin/archive/main.zip"
    other_url = "https://example.com/plugin.zip"
    payload = _zip_bytes({"Bundle/file.txt": "x"})
    installer, download_service, _ = build_installer(
        tmp_path,
        {github_url: payload, other_url: payload},
        github_token="secret-token",
    )

    installer.install([github_url, other_url], ExtensionKind.PLUGIN)

    assert download_service.calls == [
        (github_url, {"Authorization": "token secret-token"}),
        (other_url, {}),
    ]


def test_ownership_failure_does_not_fail_install(tmp_path):
    url = "https://example.com/theme.zip"
    installer, _, containers = build_installer(tmp_path, {url: _zip_bytes({"t/a.txt": "x"})})

    def failing_exec_web(*_args, **_kwargs):
        raise DeploymentError("container not running")

    containers.exec_web = failing_exec_web

    report = installer.install([url], ExtensionKind.THEME)

    assert report.success_count == 1
