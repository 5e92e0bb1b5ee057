"""
Execution adapter for the Dataform CLI task.

Turns a TaskDefinition into one runner invocation:

1. render every dynamic field through the injected render callable
2. resolve the runner configuration and inject its defaults
3. build the `<interpreter> "<before-commands + commands>"` shell vector
4. delegate to the task runner and normalize its result

Render and validation failures are raised before any runner is built.
A non-zero exit code is raised as ExecutionError; nothing is retried.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from dataform_cli.core.config import Settings, get_settings
from dataform_cli.core.errors import DataformTaskError, ExecutionError, ValidationError
from dataform_cli.core.logger import setup_logger
from dataform_cli.core.render import RenderFunc, render_list, render_map
from dataform_cli.runner import DEFAULT_RUNNER, get_task_runner
from dataform_cli.runner.base import RunnerRequest, TaskRunner
from dataform_cli.runner.config import DockerOptions, DockerRunnerConfig
from dataform_cli.runner.files import FILE_REFERENCE_PREFIX, FileReference, InputFile, check_relative_path
from dataform_cli.task.definition import TaskDefinition

logger = setup_logger(__name__, include_location=True)

RunnerFactory = Callable[..., TaskRunner]


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    vars: Dict[str, Any] = field(default_factory=dict)
    output_files: Dict[str, str] = field(default_factory=dict)
    std_out_line_count: int = 0
    std_err_line_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exitCode": self.exit_code,
            "vars": dict(self.vars),
            "outputFiles": dict(self.output_files),
            "stdOutLineCount": self.std_out_line_count,
            "stdErrLineCount": self.std_err_line_count,
        }


def resolve_runner(task_runner, docker: Optional[DockerOptions], image: Optional[str], settings: Optional[Settings] = None):
    """
    Pick the effective runner configuration.

    Preference: task_runner, then the deprecated docker options, then the
    shared default docker runner. Container-based configs get the image
    (when unset) and an empty entrypoint (when unset or empty). The input
    configs are never mutated.
    """
    if task_runner is not None:
        base = task_runner
    elif docker is not None:
        base = DockerRunnerConfig(**docker.model_dump())
    else:
        base = DEFAULT_RUNNER

    if not base.container_based:
        return base

    update: Dict[str, Any] = {}
    if not base.image:
        update["image"] = image or (settings or get_settings()).default_image
    if not base.entrypoint:
        update["entrypoint"] = []
    return base.model_copy(update=update) if update else base


def script_commands(
    interpreter: List[str],
    before_commands: Optional[List[str]],
    commands: List[str],
    fail_fast: bool = True,
) -> List[str]:
    """Join before-commands and commands into one script for a single shell session."""
    lines = ["set -e"] if fail_fast else []
    lines.extend(before_commands or [])
    lines.extend(commands)
    return list(interpreter) + ["\n".join(lines)]


def render_input_files(render: RenderFunc, input_files: Optional[Union[Dict[str, str], str]]) -> Dict[str, InputFile]:
    """
    Render input file names and contents.

    A value is a host file reference only when the definition itself writes
    `file://...`; rendered values are always inline content. A string
    definition renders to a mapping of inline contents.
    """
    if not input_files:
        return {}
    if isinstance(input_files, str):
        text = render(input_files)
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValidationError("inputFiles must render to a JSON or YAML mapping") from e
        if not isinstance(parsed, dict):
            raise ValidationError(f"inputFiles must render to a mapping, got {type(parsed).__name__}")
        return {str(k): "" if v is None else str(v) for k, v in parsed.items()}
    rendered: Dict[str, InputFile] = {}
    for name, value in input_files.items():
        value = str(value)
        if value.startswith(FILE_REFERENCE_PREFIX):
            rendered[render(name)] = FileReference(render(value[len(FILE_REFERENCE_PREFIX):]))
        else:
            rendered[render(name)] = render(value)
    return rendered


def _checked_paths(paths: List[str], what: str) -> None:
    for path in paths:
        try:
            check_relative_path(path)
        except ValueError as e:
            raise ValidationError(f"Invalid {what}: {e}") from e


def execute(
    definition: TaskDefinition,
    render: RenderFunc,
    runner_factory: RunnerFactory = get_task_runner,
    settings: Optional[Settings] = None,
) -> ExecutionResult:
    settings = settings or get_settings()

    before_commands = render_list(render, definition.before_commands)
    commands = render_list(render, definition.commands)
    image = render(definition.container_image) if definition.container_image else None
    output_files = [path for path in render_list(render, definition.output_files) if path.strip()]
    env = render_map(render, definition.env)
    input_files = render_input_files(render, definition.input_files)
    _checked_paths(list(input_files), "input file name")
    _checked_paths(output_files, "output file pattern")

    runner_config = resolve_runner(definition.task_runner, definition.docker, image, settings)
    interpreter = definition.interpreter or [settings.shell, "-c"]
    argv = script_commands(interpreter, before_commands, commands, definition.fail_fast)

    logger.info(
        f"Executing task {definition.id or '<anonymous>'}: runner={runner_config.type}, "
        f"before_commands={len(before_commands)}, commands={len(commands)}"
    )
    logger.debug(f"Shell script:\n{argv[-1]}")

    request = RunnerRequest(
        commands=argv,
        config=runner_config,
        env=env,
        input_files=input_files,
        output_files=output_files or None,
        namespace_files=definition.namespace_files,
        warning_on_std_err=definition.warning_on_std_err,
        task_id=definition.id,
    )

    try:
        runner = runner_factory(runner_config, settings=settings)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    try:
        result = runner.run(request)
    except DataformTaskError:
        raise
    except Exception as e:
        logger.exception(f"Task runner raised: {e}")
        raise ExecutionError(f"Task runner failed: {e}") from e

    if result.exit_code != 0:
        logger.error(f"Command failed with exit code {result.exit_code}")
        raise ExecutionError(
            f"Command failed with exit code {result.exit_code}",
            exit_code=result.exit_code,
            vars=result.vars,
            std_out_line_count=result.std_out_line_count,
            std_err_line_count=result.std_err_line_count,
        )

    logger.success(f"Task {definition.id or '<anonymous>'} completed: {len(result.vars)} output vars")
    return ExecutionResult(
        exit_code=result.exit_code,
        vars=dict(result.vars),
        output_files=dict(result.output_files),
        std_out_line_count=result.std_out_line_count,
        std_err_line_count=result.std_err_line_count,
    )
