"""
Dataform CLI task definition.

Declarative descriptor the host builds from user configuration. Keys are
accepted in camelCase (as written in flow YAML) or snake_case:

    id: transform
    type: dataform_cli.DataformCLI
    beforeCommands:
      - npm install @dataform/core
      - dataform compile
    env:
      GOOGLE_APPLICATION_CREDENTIALS: "sa.json"
    inputFiles:
      sa.json: "{{ secrets.GCP_SERVICE_ACCOUNT_JSON }}"
    commands:
      - dataform run --dry-run

Construction validates only; every string may still hold Jinja2
placeholders, resolved by the execution adapter.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from dataform_cli.core.config import DEFAULT_IMAGE
from dataform_cli.core.errors import ValidationError
from dataform_cli.runner.config import DockerOptions, RunnerConfig
from dataform_cli.runner.files import NamespaceFiles


class TaskDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    before_commands: Optional[List[str]] = Field(None, alias="beforeCommands")
    commands: List[str]
    env: Optional[Dict[str, str]] = None
    container_image: str = Field(DEFAULT_IMAGE, alias="containerImage")
    task_runner: Optional[RunnerConfig] = Field(None, alias="taskRunner")
    # deprecated, superseded by task_runner
    docker: Optional[DockerOptions] = None
    namespace_files: Optional[NamespaceFiles] = Field(None, alias="namespaceFiles")
    input_files: Optional[Union[Dict[str, str], str]] = Field(None, alias="inputFiles")
    output_files: Optional[List[str]] = Field(None, alias="outputFiles")
    interpreter: Optional[List[str]] = None
    warning_on_std_err: bool = Field(True, alias="warningOnStdErr")
    fail_fast: bool = Field(True, alias="failFast")

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            errors = [
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['loc']}: {err['msg']}" for err in errors)
            raise ValidationError(f"Invalid Dataform task definition: {summary}", errors=errors) from e

    @field_validator('commands')
    def commands_not_empty(cls, v):
        if not v:
            raise ValueError("at least one command is required")
        return v

    @field_validator('env', mode='before')
    def stringify_env(cls, v):
        if v is None:
            return v
        if not isinstance(v, Mapping):
            raise ValueError("env must be a mapping")
        return {str(k): "" if val is None else str(val) for k, val in v.items()}

    @field_validator('interpreter')
    def interpreter_not_empty(cls, v):
        if v is not None and not v:
            raise ValueError("interpreter must not be empty")
        return v

    @classmethod
    def load(cls, raw: Mapping[str, Any]) -> "TaskDefinition":
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Task definition must be a mapping, got {type(raw).__name__}")
        return cls(**dict(raw))

    @classmethod
    def from_yaml(cls, source: Union[str, Path]) -> "TaskDefinition":
        """Load a definition from a YAML file path or a YAML document string."""
        if isinstance(source, Path) or (isinstance(source, str) and "\n" not in source and Path(source).is_file()):
            path = Path(source)
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ValidationError(f"{path}: cannot read task definition: {e}") from e
        else:
            text = source
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValidationError("Task definition is not valid YAML") from e
        return cls.load(raw or {})
