import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from dataform_cli.core.logger import setup_logger
from dataform_cli.runner.files import InputFile, NamespaceFiles
from dataform_cli.runner.outputs import LogConsumer

logger = setup_logger(__name__, include_location=True)


@dataclass(frozen=True)
class RunnerRequest:
    """Everything a runner needs for one invocation, already rendered."""
    commands: List[str]
    config: Any
    env: Dict[str, str] = field(default_factory=dict)
    input_files: Dict[str, InputFile] = field(default_factory=dict)
    output_files: Optional[List[str]] = None
    namespace_files: Optional[NamespaceFiles] = None
    warning_on_std_err: bool = True
    task_id: Optional[str] = None


@dataclass(frozen=True)
class RunnerResult:
    exit_code: int
    vars: Dict[str, Any] = field(default_factory=dict)
    output_files: Dict[str, str] = field(default_factory=dict)
    std_out_line_count: int = 0
    std_err_line_count: int = 0


class TaskRunner(Protocol):
    def run(self, request: RunnerRequest) -> RunnerResult:
        ...


def _pump(stream, consumer: LogConsumer, is_std_err: bool) -> None:
    # keep draining even when a line cannot be consumed, or the child blocks on a full pipe
    for line in iter(stream.readline, ''):
        try:
            consumer.accept(line, is_std_err=is_std_err)
        except Exception:
            logger.exception("Failed to consume process output line")
    stream.close()


def stream_process(
    argv: List[str],
    consumer: LogConsumer,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    on_abort: Optional[Callable[[subprocess.Popen], None]] = None,
) -> int:
    """
    Run argv, feeding stdout and stderr lines to consumer as they arrive.

    On timeout or KeyboardInterrupt the process is killed, on_abort runs,
    and the original exception is re-raised once the readers are drained.
    """
    proc = subprocess.Popen(
        argv,
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
    )
    readers = [
        threading.Thread(target=_pump, args=(proc.stdout, consumer, False), daemon=True),
        threading.Thread(target=_pump, args=(proc.stderr, consumer, True), daemon=True),
    ]
    for reader in readers:
        reader.start()

    try:
        exit_code = proc.wait(timeout=timeout)
    except (subprocess.TimeoutExpired, KeyboardInterrupt):
        proc.kill()
        if on_abort is not None:
            on_abort(proc)
        proc.wait()
        for reader in readers:
            reader.join(timeout=5)
        raise

    for reader in readers:
        reader.join()
    return exit_code
