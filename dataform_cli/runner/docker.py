"""
Docker runner.

Drives the docker CLI: the working directory is bind-mounted at /app, task
env values are passed through the CLI's own environment (only the names
appear on the command line), and the container is force-removed when the
invocation times out or is interrupted.
"""

import os
import shutil
import subprocess
import uuid
from typing import Dict, List, Optional

from dataform_cli.core.config import Settings, get_settings
from dataform_cli.core.errors import ErrorKind, ExecutionError
from dataform_cli.core.logger import setup_logger
from dataform_cli.runner.base import RunnerRequest, RunnerResult, stream_process
from dataform_cli.runner.config import DockerRunnerConfig
from dataform_cli.runner.files import (
    collect_output_files,
    create_working_dir,
    stage_input_files,
    stage_namespace_files,
)
from dataform_cli.runner.outputs import LogConsumer

logger = setup_logger(__name__, include_location=True)

CONTAINER_WORKING_DIR = "/app"

_PULL_POLICY = {
    "IF_NOT_PRESENT": "missing",
    "ALWAYS": "always",
    "NEVER": "never",
}


class DockerTaskRunner:
    def __init__(self, config: Optional[DockerRunnerConfig] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.config = config or DockerRunnerConfig(image=self.settings.default_image, entrypoint=[])

    def _docker(self) -> List[str]:
        argv = [self.settings.docker_bin]
        if self.config.host:
            argv += ["--host", self.config.host]
        return argv

    def build_run_args(self, request: RunnerRequest, working_dir: str, container_name: str) -> List[str]:
        config = self.config
        if not config.image:
            raise ValueError("Docker runner requires an image")

        argv = self._docker() + [
            "run", "--rm",
            "--name", container_name,
            "--pull", _PULL_POLICY[config.pull_policy],
            "-v", f"{working_dir}:{CONTAINER_WORKING_DIR}",
            "-w", CONTAINER_WORKING_DIR,
            "-e", "WORKING_DIR",
        ]
        for key in request.env:
            argv += ["-e", key]
        for volume in config.volumes:
            argv += ["-v", volume]
        if config.network_mode:
            argv += ["--network", config.network_mode]
        if config.user:
            argv += ["--user", config.user]
        if config.cpus is not None:
            argv += ["--cpus", str(config.cpus)]
        if config.memory:
            argv += ["--memory", config.memory]

        entrypoint = config.entrypoint
        command = list(request.commands)
        if entrypoint is not None:
            if entrypoint:
                argv += ["--entrypoint", entrypoint[0]]
                command = entrypoint[1:] + command
            else:
                argv += ["--entrypoint", ""]

        return argv + [config.image] + command

    def _remove_container(self, container_name: str) -> None:
        logger.warning(f"Removing container {container_name}")
        subprocess.run(
            self._docker() + ["rm", "-f", container_name],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )

    def run(self, request: RunnerRequest) -> RunnerResult:
        working_dir = create_working_dir(self.settings)
        container_name = f"dataform-{uuid.uuid4().hex[:12]}"
        consumer = LogConsumer(logger, warning_on_std_err=request.warning_on_std_err)

        try:
            stage_input_files(working_dir, request.input_files)
            stage_namespace_files(working_dir, request.namespace_files, self.settings)

            argv = self.build_run_args(request, str(working_dir), container_name)
            env: Dict[str, str] = {**os.environ, **request.env, "WORKING_DIR": CONTAINER_WORKING_DIR}
            logger.info(f"Starting container {container_name} from image {self.config.image}")

            try:
                exit_code = stream_process(
                    argv,
                    consumer,
                    env=env,
                    timeout=self.config.timeout,
                    on_abort=lambda _proc: self._remove_container(container_name),
                )
            except subprocess.TimeoutExpired as e:
                raise ExecutionError(
                    f"Container {container_name} timed out after {self.config.timeout} seconds",
                    vars=consumer.vars,
                    kind=ErrorKind.TIMEOUT,
                    std_out_line_count=consumer.std_out_count,
                    std_err_line_count=consumer.std_err_count,
                ) from e
            except KeyboardInterrupt as e:
                raise ExecutionError(
                    f"Container {container_name} was cancelled",
                    vars=consumer.vars,
                    kind=ErrorKind.CANCELLED,
                    std_out_line_count=consumer.std_out_count,
                    std_err_line_count=consumer.std_err_count,
                ) from e

            # 125 is reported by the docker CLI itself
            if exit_code == 125:
                logger.error(f"docker run failed before container {container_name} started")
            logger.info(f"Container {container_name} finished: exit_code={exit_code}")

            output_files = {}
            if exit_code == 0:
                output_files = collect_output_files(working_dir, request.output_files, self.settings)

            return RunnerResult(
                exit_code=exit_code,
                vars=dict(consumer.vars),
                output_files=output_files,
                std_out_line_count=consumer.std_out_count,
                std_err_line_count=consumer.std_err_count,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Docker runner failed: {e}")
            raise ExecutionError(f"Docker runner failed: {e}", vars=consumer.vars) from e
        finally:
            shutil.rmtree(working_dir, ignore_errors=True)
