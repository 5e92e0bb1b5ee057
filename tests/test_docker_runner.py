"""
Docker runner tests.

Argument construction and the run loop are tested with stream_process
patched out. The container scenarios at the bottom need a docker daemon and
network access; enable them with DATAFORM_CONTAINER_TESTS=true.
"""

import os
import shutil
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from dataform_cli.core.errors import ErrorKind, ExecutionError
from dataform_cli.runner.base import RunnerRequest
from dataform_cli.runner.config import DockerRunnerConfig
from dataform_cli.runner.docker import CONTAINER_WORKING_DIR, DockerTaskRunner
from dataform_cli.task.dataform import DataformCLI


def make_request(config, **kwargs):
    kwargs.setdefault("commands", ["/bin/sh", "-c", "set -e\ndataform --version"])
    return RunnerRequest(config=config, **kwargs)


class TestBuildRunArgs:

    def test_default_invocation(self, settings):
        config = DockerRunnerConfig(image="dataformco/dataform:latest", entrypoint=[])
        runner = DockerTaskRunner(config, settings=settings)

        argv = runner.build_run_args(make_request(config), "/tmp/wd", "dataform-abc")

        assert argv[:2] == ["docker", "run"]
        assert ["--name", "dataform-abc"] == argv[argv.index("--name"):argv.index("--name") + 2]
        assert "/tmp/wd:/app" in argv
        assert argv[argv.index("-w") + 1] == CONTAINER_WORKING_DIR
        assert argv[argv.index("--pull") + 1] == "missing"
        assert argv[argv.index("--entrypoint") + 1] == ""
        assert argv[-4:] == ["dataformco/dataform:latest", "/bin/sh", "-c", "set -e\ndataform --version"]

    def test_env_names_only(self, settings):
        config = DockerRunnerConfig(image="img", entrypoint=[])
        runner = DockerTaskRunner(config, settings=settings)

        argv = runner.build_run_args(make_request(config, env={"MY_KEY": "s3cr3t"}), "/tmp/wd", "c")

        assert "MY_KEY" in argv
        assert argv[argv.index("MY_KEY") - 1] == "-e"
        assert not any("s3cr3t" in arg for arg in argv)

    def test_custom_entrypoint(self, settings):
        config = DockerRunnerConfig(image="img", entrypoint=["/usr/bin/env", "-i"])
        runner = DockerTaskRunner(config, settings=settings)

        argv = runner.build_run_args(make_request(config, commands=["sh", "-c", "ls"]), "/tmp/wd", "c")

        assert argv[argv.index("--entrypoint") + 1] == "/usr/bin/env"
        assert argv[-5:] == ["img", "-i", "sh", "-c", "ls"]

    def test_unset_entrypoint_keeps_image_default(self, settings):
        config = DockerRunnerConfig(image="img")
        runner = DockerTaskRunner(config, settings=settings)
        assert "--entrypoint" not in runner.build_run_args(make_request(config), "/tmp/wd", "c")

    def test_options(self, settings):
        config = DockerRunnerConfig(
            image="img",
            entrypoint=[],
            pull_policy="ALWAYS",
            network_mode="host",
            user="1000:1000",
            volumes=["/data:/data:ro"],
            cpus=1.5,
            memory="512m",
            host="tcp://docker:2375",
        )
        settings = settings.model_copy(update={"docker_bin": "/usr/local/bin/docker"})
        runner = DockerTaskRunner(config, settings=settings)

        argv = runner.build_run_args(make_request(config), "/tmp/wd", "c")

        assert argv[:4] == ["/usr/local/bin/docker", "--host", "tcp://docker:2375", "run"]
        assert argv[argv.index("--pull") + 1] == "always"
        assert argv[argv.index("--network") + 1] == "host"
        assert argv[argv.index("--user") + 1] == "1000:1000"
        assert argv[argv.index("--cpus") + 1] == "1.5"
        assert argv[argv.index("--memory") + 1] == "512m"
        assert "/data:/data:ro" in argv

    def test_image_required(self, settings):
        config = DockerRunnerConfig(entrypoint=[])
        runner = DockerTaskRunner(config, settings=settings)
        with pytest.raises(ValueError):
            runner.build_run_args(make_request(config), "/tmp/wd", "c")


class TestRun:

    def test_streams_and_stages(self, settings):
        config = DockerRunnerConfig(image="img", entrypoint=[])
        runner = DockerTaskRunner(config, settings=settings)
        seen = {}

        def fake_stream(argv, consumer, env=None, timeout=None, on_abort=None, cwd=None):
            mount = argv[argv.index("-v") + 1]
            working_dir = Path(mount.split(":")[0])
            seen["input"] = (working_dir / "sa.json").read_text()
            seen["env"] = env
            (working_dir / "report.json").write_text("{}")
            consumer.accept('::{"outputs":{"customEnv":"MY_VALUE"}}::')
            return 0

        request = make_request(
            config,
            env={"MY_KEY": "MY_VALUE"},
            input_files={"sa.json": "{}"},
            output_files=["report.json"],
        )
        with patch("dataform_cli.runner.docker.stream_process", side_effect=fake_stream):
            result = runner.run(request)

        assert result.exit_code == 0
        assert result.vars == {"customEnv": "MY_VALUE"}
        assert list(result.output_files) == ["report.json"]
        assert seen["input"] == "{}"
        assert seen["env"]["MY_KEY"] == "MY_VALUE"
        assert seen["env"]["WORKING_DIR"] == CONTAINER_WORKING_DIR

    def test_non_zero_exit_returned(self, settings):
        config = DockerRunnerConfig(image="img", entrypoint=[])
        runner = DockerTaskRunner(config, settings=settings)
        with patch("dataform_cli.runner.docker.stream_process", return_value=125):
            result = runner.run(make_request(config, output_files=["*.json"]))
        assert result.exit_code == 125
        assert result.output_files == {}

    def test_timeout_removes_container(self, settings):
        config = DockerRunnerConfig(image="img", entrypoint=[], timeout=1)
        runner = DockerTaskRunner(config, settings=settings)

        def fake_stream(argv, consumer, env=None, timeout=None, on_abort=None, cwd=None):
            on_abort(None)
            raise subprocess.TimeoutExpired(argv, timeout)

        with patch("dataform_cli.runner.docker.stream_process", side_effect=fake_stream), \
                patch("dataform_cli.runner.docker.subprocess.run") as mock_run:
            with pytest.raises(ExecutionError) as exc_info:
                runner.run(make_request(config))

        assert exc_info.value.kind == ErrorKind.TIMEOUT
        rm_argv = mock_run.call_args[0][0]
        assert rm_argv[:3] == ["docker", "rm", "-f"]
        assert rm_argv[3].startswith("dataform-")

    def test_docker_binary_missing(self, settings):
        config = DockerRunnerConfig(image="img", entrypoint=[])
        runner = DockerTaskRunner(config, settings=settings.model_copy(update={"docker_bin": "/no/such/docker"}))
        with pytest.raises(ExecutionError):
            runner.run(make_request(config))

    def test_working_dir_removed(self, settings):
        config = DockerRunnerConfig(image="img", entrypoint=[])
        runner = DockerTaskRunner(config, settings=settings)
        with patch("dataform_cli.runner.docker.stream_process", return_value=0):
            runner.run(make_request(config))
        assert list(Path(settings.working_dir_root).iterdir()) == []


def _docker_available():
    if os.environ.get("DATAFORM_CONTAINER_TESTS", "").lower() != "true":
        return False
    if shutil.which("docker") is None:
        return False
    return subprocess.run(["docker", "info"], capture_output=True).returncode == 0


container = pytest.mark.skipif(
    not _docker_available(),
    reason="set DATAFORM_CONTAINER_TESTS=true with a reachable docker daemon",
)


@container
def test_dataform_version(settings):
    result = DataformCLI.from_config({"commands": ["dataform --version"]}).run(settings=settings)
    assert result.exit_code == 0


@container
def test_dataform_init_project(settings, marker):
    task = DataformCLI.from_config({
        "env": {"{{ inputs.environmentKey }}": "{{ inputs.environmentValue }}"},
        "beforeCommands": ["dataform init postgres new_project", "cd new_project"],
        "commands": [marker("customEnv", "$MY_KEY")],
    })
    result = task.run({"inputs": {"environmentKey": "MY_KEY", "environmentValue": "MY_VALUE"}}, settings=settings)
    assert result.exit_code == 0
    assert result.vars["customEnv"] == "MY_VALUE"
