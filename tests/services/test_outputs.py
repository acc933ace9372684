from rich.console import Console

from mauticdeployer.services.outputs import OutputWriter


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_outputs_append_to_github_output_file(tmp_path):
    output_file = tmp_path / "github_output"
    output_file.write_text("existing=1\n", encoding="utf-8")
    writer = OutputWriter(DummyLogger(), Console(record=True), environ={"GITHUB_OUTPUT": str(output_file)})

    writer.write({"mautic_url": "https://m.example.com", "deployment_status": "success"})

    assert output_file.read_text(encoding="utf-8") == (
        "existing=1\nmautic_url=https://m.example.com\ndeployment_status=success\n"
    )


def test_outputs_print_without_github_output():
    console = Console(record=True, width=200)
    writer = OutputWriter(DummyLogger(), console, environ={})

    writer.write({"admin_email": "admin@example.com", "deployment_status": "failure"})

    text = console.export_text()
    assert "admin_email=admin@example.com" in text
    assert "deployment_status=failure" in text


def test_outputs_flatten_multiline_values(tmp_path):
    output_file = tmp_path / "github_output"
    writer = OutputWriter(DummyLogger(), Console(record=True), environ={"GITHUB_OUTPUT": str(output_file)})

    writer.write({"deployment_status": "fail\nure"})

    assert output_file.read_text(encoding="utf-8") == "deployment_status=fail ure\n"
