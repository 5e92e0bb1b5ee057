import json
from pathlib import Path
from typing import List, Optional

import typer

from dataform_cli.core.config import get_settings
from dataform_cli.core.errors import DataformTaskError, ExecutionError
from dataform_cli.core.logger import setup_logger
from dataform_cli.task.dataform import DataformCLI
from dataform_cli.task.definition import TaskDefinition

logger = setup_logger(__name__, include_location=True)

cli_app = typer.Typer(help="Run Dataform CLI tasks outside of a workflow host.")


def _parse_inputs(values: Optional[List[str]]) -> dict:
    inputs = {}
    for item in values or []:
        if "=" not in item:
            raise typer.BadParameter(f"Expected KEY=VALUE, got: {item}")
        key, value = item.split("=", 1)
        inputs[key.strip()] = value
    return inputs


@cli_app.command("run")
def run_task(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML task definition"),
    inputs: Optional[List[str]] = typer.Option(None, "--input", "-i", help="Render input as KEY=VALUE, exposed as inputs.KEY"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Execute a task definition and print its outputs."""
    context = {"inputs": _parse_inputs(inputs)}
    get_settings(reload=True)

    try:
        task = DataformCLI.from_yaml(file)
        result = task.run(context)
    except ExecutionError as e:
        payload = e.to_error_info().to_dict()
        typer.echo(json.dumps(payload, indent=2, default=str), err=True)
        raise typer.Exit(code=e.exit_code if e.exit_code else 1)
    except DataformTaskError as e:
        typer.echo(json.dumps(e.to_error_info().to_dict(), indent=2, default=str), err=True)
        raise typer.Exit(code=2)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        typer.echo(f"exitCode: {result.exit_code}")
        for key, value in result.vars.items():
            typer.echo(f"{key}: {value}")
        for rel, path in result.output_files.items():
            typer.echo(f"output file {rel}: {path}")


@cli_app.command("validate")
def validate_task(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML task definition"),
):
    """Check a task definition without running it."""
    try:
        definition = TaskDefinition.from_yaml(file)
    except DataformTaskError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2)
    runner = definition.task_runner.type if definition.task_runner else "docker"
    typer.echo(f"OK: {len(definition.commands)} commands, runner={runner}")


def main():
    cli_app()


if __name__ == "__main__":
    main()
