"""
Output marker parsing.

Commands publish structured outputs by printing a line of the form

    ::{"outputs": {"key": "value"}}::

Every process line goes through a LogConsumer: marker lines are merged into
the captured variables, all lines are forwarded to the task logger.
"""

import json
import re
import threading
from typing import Any, Dict, Optional

OUTPUT_MARKER = re.compile(r'^::(\{.*\})::$')


def parse_output_marker(line: str) -> Optional[Dict[str, Any]]:
    """Return the decoded marker object, or None when the line is not a marker."""
    match = OUTPUT_MARKER.match(line.strip())
    if not match:
        return None
    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload


class LogConsumer:
    """Thread-safe sink for stdout/stderr lines of one invocation."""

    def __init__(self, logger, warning_on_std_err: bool = True):
        self.logger = logger
        self.warning_on_std_err = warning_on_std_err
        self.vars: Dict[str, Any] = {}
        self.std_out_count = 0
        self.std_err_count = 0
        self._lock = threading.Lock()

    def accept(self, line: str, is_std_err: bool = False) -> None:
        line = line.rstrip("\r\n")
        payload = parse_output_marker(line)
        with self._lock:
            if is_std_err:
                self.std_err_count += 1
            else:
                self.std_out_count += 1
            if payload is None:
                if OUTPUT_MARKER.match(line.strip()):
                    self.logger.warning(f"Ignoring malformed output marker: {line[:200]}")
            else:
                outputs = payload.get("outputs")
                if isinstance(outputs, dict):
                    self.vars.update(outputs)
                else:
                    self.logger.warning(f"Ignoring output marker without an 'outputs' object: {line[:200]}")

        if is_std_err and self.warning_on_std_err:
            self.logger.warning(line)
        else:
            self.logger.info(line)

    def accept_text(self, text: str, is_std_err: bool = False) -> None:
        for line in (text or "").splitlines():
            self.accept(line, is_std_err=is_std_err)
