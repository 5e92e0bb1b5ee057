"""
Error taxonomy for the Dataform CLI task.

Every failure raised by the task derives from DataformTaskError and can be
turned into a standardized ErrorInfo payload for the host:

    try:
        task.run(context)
    except DataformTaskError as exc:
        payload = exc.to_error_info().to_dict()

Validation and render errors are raised before anything runs. Execution
errors are raised after the runner returned (or failed) and carry the exit
code and whatever output variables were captured.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Error categories exposed to the host."""

    SCHEMA = "schema"           # Invalid task definition
    RENDER = "render"           # Unresolved or broken template
    EXECUTION = "execution"     # Non-zero exit or runner failure
    TIMEOUT = "timeout"         # Runner-level timeout
    CANCELLED = "cancelled"     # Interrupted while running
    UNKNOWN = "unknown"


class ErrorInfo(BaseModel):
    """Standardized error object for host event payloads."""

    kind: ErrorKind = Field(
        default=ErrorKind.UNKNOWN,
        description="Error category"
    )
    retryable: bool = Field(
        default=False,
        description="Whether the host may retry the task"
    )
    code: str = Field(
        default="UNKNOWN",
        description="Task error code (EXIT_1, RENDER_UNDEFINED, ...)"
    )
    message: str = Field(
        default="Unknown error",
        description="Human-readable error message"
    )
    source: str = Field(
        default="dataform",
        description="Component that produced the error"
    )
    exit_code: Optional[int] = Field(
        None, description="Process exit code (execution errors only)"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional extra context"
    )

    def to_dict(self) -> dict[str, Any]:
        d = {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "code": self.code,
            "message": self.message,
            "source": self.source,
        }
        if self.exit_code is not None:
            d["exit_code"] = self.exit_code
        if self.details:
            d["details"] = self.details
        return d


class DataformTaskError(Exception):
    kind = ErrorKind.UNKNOWN
    code = "UNKNOWN"
    source = "dataform"

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(
            kind=self.kind,
            code=self.code,
            message=str(self),
            source=self.source,
            details=self.details(),
        )

    def details(self) -> dict[str, Any]:
        return {}


class ValidationError(DataformTaskError):
    kind = ErrorKind.SCHEMA
    code = "INVALID_DEFINITION"
    source = "definition"

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []

    def details(self) -> dict[str, Any]:
        return {"errors": self.errors} if self.errors else {}


class RenderError(DataformTaskError):
    kind = ErrorKind.RENDER
    code = "RENDER_FAILED"
    source = "render"

    def __init__(self, message: str, template: Optional[str] = None):
        super().__init__(message)
        self.template = template

    def details(self) -> dict[str, Any]:
        # templates may embed secrets; keep only a prefix
        return {"template": self.template[:100]} if self.template else {}


class ExecutionError(DataformTaskError):
    kind = ErrorKind.EXECUTION
    source = "runner"

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        vars: Optional[dict[str, Any]] = None,
        kind: ErrorKind = ErrorKind.EXECUTION,
        std_out_line_count: int = 0,
        std_err_line_count: int = 0,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.vars = vars or {}
        self.kind = kind
        self.std_out_line_count = std_out_line_count
        self.std_err_line_count = std_err_line_count

    @property
    def code(self) -> str:
        if self.exit_code is not None:
            return f"EXIT_{self.exit_code}"
        return self.kind.value.upper()

    def to_error_info(self) -> ErrorInfo:
        info = super().to_error_info()
        info.exit_code = self.exit_code
        # retryable only for timeouts
        info.retryable = self.kind == ErrorKind.TIMEOUT
        return info

    def details(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "std_out_line_count": self.std_out_line_count,
            "std_err_line_count": self.std_err_line_count,
        }
        if self.vars:
            d["vars"] = self.vars
        return d
