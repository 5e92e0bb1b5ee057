from dataform_cli.core.config import DEFAULT_IMAGE, Settings, get_settings
from dataform_cli.core.errors import (
    DataformTaskError,
    ErrorInfo,
    ErrorKind,
    ExecutionError,
    RenderError,
    ValidationError,
)
from dataform_cli.core.logger import setup_logger
from dataform_cli.core.render import RenderFunc, create_environment, make_renderer

__all__ = [
    "DEFAULT_IMAGE",
    "Settings",
    "get_settings",
    "DataformTaskError",
    "ErrorInfo",
    "ErrorKind",
    "ExecutionError",
    "RenderError",
    "ValidationError",
    "setup_logger",
    "RenderFunc",
    "create_environment",
    "make_renderer",
]
