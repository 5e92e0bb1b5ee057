"""
Dataform CLI task for workflow orchestration hosts.

Renders a list of shell commands, runs them with a pluggable task runner
(docker by default) and returns the exit code with captured output variables.
"""

from dataform_cli.core.errors import DataformTaskError, ExecutionError, RenderError, ValidationError
from dataform_cli.execution import ExecutionResult, execute, resolve_runner, script_commands
from dataform_cli.task.dataform import DataformCLI, execute_dataform_task
from dataform_cli.task.definition import TaskDefinition

__version__ = "0.1.0"

__all__ = [
    "DataformCLI",
    "execute_dataform_task",
    "TaskDefinition",
    "ExecutionResult",
    "execute",
    "resolve_runner",
    "script_commands",
    "DataformTaskError",
    "ExecutionError",
    "RenderError",
    "ValidationError",
]
