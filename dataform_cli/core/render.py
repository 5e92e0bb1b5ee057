"""
Jinja2 rendering for task fields.

The task never renders against a global environment: the host hands the
adapter a `render(template) -> str` callable, and make_renderer() builds one
from a plain context dict. Unresolved placeholders raise RenderError.
"""

import base64
import json
from typing import Any, Callable, Dict, List, Mapping, Optional

from jinja2 import Environment, StrictUndefined, TemplateError, UndefinedError

from dataform_cli.core.errors import RenderError
from dataform_cli.core.logger import setup_logger

logger = setup_logger(__name__, include_location=True)

RenderFunc = Callable[[str], str]


def _b64encode(value: Any) -> str:
    if not isinstance(value, str):
        value = str(value)
    return base64.b64encode(value.encode('utf-8')).decode('utf-8')


def create_environment() -> Environment:
    env = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)
    env.filters['b64encode'] = _b64encode
    env.filters['tojson'] = lambda v: json.dumps(v, default=str)
    return env


def render_template(env: Environment, template: str, context: Mapping[str, Any]) -> str:
    """
    Render a single string template.

    Plain strings without template markers are returned as-is so that shell
    syntax such as ${VAR} or awk braces is never touched.
    """
    if not isinstance(template, str):
        return template
    if '{{' not in template and '{%' not in template:
        return template
    try:
        return env.from_string(template).render(**context)
    except UndefinedError as e:
        logger.error(f"Unresolved placeholder in template: {e}")
        raise RenderError(f"Unresolved placeholder: {e}", template=template) from e
    except TemplateError as e:
        logger.error(f"Template rendering error: {e}")
        raise RenderError(f"Template rendering error: {e}", template=template) from e


def make_renderer(context: Optional[Mapping[str, Any]] = None, env: Optional[Environment] = None) -> RenderFunc:
    """Bind a Jinja2 environment and a host context into a render callable."""
    jinja_env = env or create_environment()
    ctx = dict(context or {})

    def render(template: str) -> str:
        return render_template(jinja_env, template, ctx)

    return render


def render_list(render: RenderFunc, values: Optional[List[str]]) -> List[str]:
    if not values:
        return []
    return [render(v) for v in values]


def render_map(render: RenderFunc, values: Optional[Dict[str, str]]) -> Dict[str, str]:
    if not values:
        return {}
    return {render(k): render(str(v)) for k, v in values.items()}
