"""
Host process runner.

Runs the shell invocation directly on the worker host, inside a fresh
temporary working directory. The process environment is the host
environment overlaid with the task env and WORKING_DIR.
"""

import os
import shutil
import subprocess
import time
from typing import Optional

from dataform_cli.core.config import Settings, get_settings
from dataform_cli.core.errors import ErrorKind, ExecutionError
from dataform_cli.core.logger import setup_logger
from dataform_cli.runner.base import RunnerRequest, RunnerResult, stream_process
from dataform_cli.runner.config import ProcessRunnerConfig
from dataform_cli.runner.files import (
    collect_output_files,
    create_working_dir,
    stage_input_files,
    stage_namespace_files,
)
from dataform_cli.runner.outputs import LogConsumer

logger = setup_logger(__name__, include_location=True)


class ProcessTaskRunner:
    def __init__(self, config: Optional[ProcessRunnerConfig] = None, settings: Optional[Settings] = None):
        self.config = config or ProcessRunnerConfig()
        self.settings = settings or get_settings()

    def run(self, request: RunnerRequest) -> RunnerResult:
        working_dir = create_working_dir(self.settings)
        consumer = LogConsumer(logger, warning_on_std_err=request.warning_on_std_err)
        logger.info(f"Starting process task: task_id={request.task_id}, working_dir={working_dir}")

        try:
            stage_input_files(working_dir, request.input_files)
            stage_namespace_files(working_dir, request.namespace_files, self.settings)

            env = {**os.environ, **request.env, "WORKING_DIR": str(working_dir)}
            start = time.monotonic()
            try:
                exit_code = stream_process(
                    request.commands,
                    consumer,
                    cwd=str(working_dir),
                    env=env,
                    timeout=self.config.timeout,
                )
            except subprocess.TimeoutExpired as e:
                raise ExecutionError(
                    f"Process timed out after {self.config.timeout} seconds",
                    vars=consumer.vars,
                    kind=ErrorKind.TIMEOUT,
                    std_out_line_count=consumer.std_out_count,
                    std_err_line_count=consumer.std_err_count,
                ) from e
            except KeyboardInterrupt as e:
                raise ExecutionError(
                    "Process was cancelled",
                    vars=consumer.vars,
                    kind=ErrorKind.CANCELLED,
                    std_out_line_count=consumer.std_out_count,
                    std_err_line_count=consumer.std_err_count,
                ) from e
            duration = time.monotonic() - start
            logger.info(f"Process finished: exit_code={exit_code}, duration={duration:.2f}s")

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
            logger.error(f"Process runner failed: {e}")
            raise ExecutionError(f"Process runner failed: {e}", vars=consumer.vars) from e
        finally:
            shutil.rmtree(working_dir, ignore_errors=True)
