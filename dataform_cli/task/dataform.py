"""
Host-facing Dataform CLI task.

Usage:
    from dataform_cli import DataformCLI

    task = DataformCLI.from_config({
        'commands': ['dataform --version'],
    })
    result = task.run({'inputs': {...}})
    result.to_dict()   # {'exitCode': 0, 'vars': {...}, ...}
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from jinja2 import Environment

from dataform_cli.core.config import Settings
from dataform_cli.core.logger import setup_logger
from dataform_cli.core.render import RenderFunc, make_renderer
from dataform_cli.execution import ExecutionResult, RunnerFactory, execute
from dataform_cli.runner import get_task_runner
from dataform_cli.task.definition import TaskDefinition

logger = setup_logger(__name__, include_location=True)


class DataformCLI:
    """Orchestrate a Dataform project through its CLI."""

    def __init__(self, definition: TaskDefinition, runner_factory: RunnerFactory = get_task_runner):
        self.definition = definition
        self.runner_factory = runner_factory

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **kwargs) -> "DataformCLI":
        return cls(TaskDefinition.load(config), **kwargs)

    @classmethod
    def from_yaml(cls, source: Union[str, Path], **kwargs) -> "DataformCLI":
        return cls(TaskDefinition.from_yaml(source), **kwargs)

    def run(
        self,
        context: Optional[Mapping[str, Any]] = None,
        render: Optional[RenderFunc] = None,
        jinja_env: Optional[Environment] = None,
        settings: Optional[Settings] = None,
    ) -> ExecutionResult:
        """
        Execute the task once.

        The host may pass its own render callable; otherwise one is built from
        `context` (and `jinja_env` when given).
        """
        if render is None:
            render = make_renderer(context, env=jinja_env)
        return execute(self.definition, render, runner_factory=self.runner_factory, settings=settings)


def execute_dataform_task(
    task_config: Mapping[str, Any],
    context: Optional[Dict[str, Any]] = None,
    jinja_env: Optional[Environment] = None,
    runner_factory: RunnerFactory = get_task_runner,
) -> Dict[str, Any]:
    """
    Tool entry point: build the task from a config mapping, run it, and return
    the result surface `{exitCode, vars, outputFiles, ...}`.

    Raises ValidationError, RenderError or ExecutionError unchanged.
    """
    task = DataformCLI.from_config(task_config, runner_factory=runner_factory)
    logger.info(f"Starting Dataform task: id={task.definition.id}")
    return task.run(context or {}, jinja_env=jinja_env).to_dict()
