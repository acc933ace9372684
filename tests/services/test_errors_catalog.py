import pytest

from mauticdeployer.errors_catalog import actionable_error


def test_actionable_error_formats_message_with_suggested_action():
    message = actionable_error("image_pull_failed", image="mautic/mautic:5.2.1-apache")

    assert "Could not pull image mautic/mautic:5.2.1-apache." in message
    assert "Suggested action:" in message


def test_actionable_error_rejects_unknown_code():
    with pytest.raises(KeyError):
        actionable_error("does_not_exist")
