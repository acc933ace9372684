import pytest

from mauticdeployer.errors import DeploymentError
from mauticdeployer.models import DeploymentConfig
from mauticdeployer.services.validation import ValidationService


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def _config(**overrides):
    values = dict(
        email_address="admin@example.com",
        mautic_password="admin-pass",
        ip_address="203.0.113.10",
        mautic_version="5.2.1",
        mysql_database="mautic",
        mysql_user="mautic",
        mysql_password="db-pass",
        mysql_root_password="root-pass",
    )
    values.update(overrides)
    return DeploymentConfig(**values)


def test_validate_config_accepts_complete_config():
    ValidationService().validate_config(
        _config(domain_name="m.example.com", themes=("https://example.com/t.zip",))
    )


def test_validate_config_lists_missing_fields():
    with pytest.raises(DeploymentError, match="MAUTIC_PASSWORD, MYSQL_ROOT_PASSWORD"):
        ValidationService().validate_config(_config(mautic_password="", mysql_root_password=" "))


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"email_address": "not-an-email"}, "EMAIL_ADDRESS"),
        ({"port": "0"}, "PORT"),
        ({"port": "70000"}, "PORT"),
        ({"port": "http"}, "PORT"),
        ({"domain_name": "bad_domain"}, "DOMAIN_NAME"),
        ({"plugins": ("file:///tmp/p.zip",)}, "Invalid theme/plugin source"),
    ],
)
def test_validate_config_rejects_invalid_values(overrides, message):
    with pytest.raises(DeploymentError, match=message):
        ValidationService().validate_config(_config(**overrides))


def test_validate_config_blocks_http_extensions_by_default():
    with pytest.raises(DeploymentError, match="insecure HTTP"):
        ValidationService().validate_config(_config(themes=("http://example.com/t.zip",)))


def test_validate_config_allows_http_extensions_when_enabled():
    ValidationService(allow_insecure_http=True).validate_config(
        _config(themes=("http://example.com/t.zip",))
    )


def test_enforce_https_policy_warns_when_insecure_allowed():
    logger = DummyLogger()
    service = ValidationService(allow_insecure_http=True)

    service.enforce_https_policy("http://example.com/t.zip", "theme", logger, DummyConsole())

    assert logger.warnings == ["Insecure HTTP enabled for theme: http://example.com/t.zip"]


def test_enforce_https_policy_blocks_http():
    with pytest.raises(DeploymentError, match="insecure HTTP"):
        ValidationService().enforce_https_policy(
            "http://example.com/t.zip", "theme", DummyLogger(), DummyConsole()
        )
