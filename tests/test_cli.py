import json

import pytest
from typer.testing import CliRunner

from dataform_cli.cli import cli_app
from dataform_cli.runner import process  # noqa: F401  runner logger must bind to the real stdout, not CliRunner's

runner = CliRunner()


@pytest.fixture
def task_file(tmp_path, monkeypatch):
    monkeypatch.setenv("DATAFORM_WORKING_DIR_ROOT", str(tmp_path / "work"))
    monkeypatch.delenv("DATAFORM_ENV_FILE", raising=False)

    def _write(body: str):
        path = tmp_path / "task.yml"
        path.write_text(body, encoding="utf-8")
        return str(path)

    return _write


def test_run_json(task_file):
    path = task_file(
        "taskRunner:\n"
        "  type: process\n"
        "env:\n"
        "  MY_KEY: \"{{ inputs.value }}\"\n"
        "commands:\n"
        "  - 'echo \"::{\\\"outputs\\\":{\\\"customEnv\\\":\\\"$MY_KEY\\\"}}::\"'\n"
    )
    result = runner.invoke(cli_app, ["run", path, "--input", "value=MY_VALUE", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["exitCode"] == 0
    assert payload["vars"] == {"customEnv": "MY_VALUE"}


def test_run_plain_output(task_file):
    path = task_file("taskRunner:\n  type: process\ncommands:\n  - 'true'\n")
    result = runner.invoke(cli_app, ["run", path])
    assert result.exit_code == 0
    assert "exitCode: 0" in result.stdout


def test_run_propagates_exit_code(task_file):
    path = task_file("taskRunner:\n  type: process\ncommands:\n  - exit 3\n")
    result = runner.invoke(cli_app, ["run", path])
    assert result.exit_code == 3


def test_run_render_error(task_file):
    path = task_file("taskRunner:\n  type: process\ncommands:\n  - echo {{ inputs.missing }}\n")
    result = runner.invoke(cli_app, ["run", path])
    assert result.exit_code == 2


def test_run_bad_input_option(task_file):
    path = task_file("commands:\n  - 'true'\n")
    result = runner.invoke(cli_app, ["run", path, "--input", "novalue"])
    assert result.exit_code != 0


def test_validate(task_file):
    path = task_file("commands:\n  - dataform compile\n  - dataform run\n")
    result = runner.invoke(cli_app, ["validate", path])
    assert result.exit_code == 0
    assert "OK: 2 commands, runner=docker" in result.stdout


def test_validate_invalid(task_file):
    path = task_file("commands: []\n")
    result = runner.invoke(cli_app, ["validate", path])
    assert result.exit_code == 2
