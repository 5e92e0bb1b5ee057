"""
Task runners for the Dataform CLI task.

- process: host subprocess
- docker: docker CLI container
- kubernetes: Kubernetes Job (requires the 'kubernetes' client, imported lazily)

All runners implement the TaskRunner protocol from dataform_cli.runner.base.
"""

from typing import Optional

from dataform_cli.core.config import Settings
from dataform_cli.runner.base import RunnerRequest, RunnerResult, TaskRunner
from dataform_cli.runner.config import (
    DEFAULT_RUNNER,
    DockerOptions,
    DockerRunnerConfig,
    KubernetesRunnerConfig,
    ProcessRunnerConfig,
    RunnerConfig,
)
from dataform_cli.runner.files import NamespaceFiles


def _process_runner():
    from dataform_cli.runner.process import ProcessTaskRunner
    return ProcessTaskRunner


def _docker_runner():
    from dataform_cli.runner.docker import DockerTaskRunner
    return DockerTaskRunner


def _kubernetes_runner():
    from dataform_cli.runner.kubernetes import KubernetesTaskRunner
    return KubernetesTaskRunner


# Runner registry for dynamic lookup by config type
REGISTRY = {
    "process": _process_runner,
    "docker": _docker_runner,
    "kubernetes": _kubernetes_runner,
}


def get_task_runner(config, settings: Optional[Settings] = None) -> TaskRunner:
    try:
        runner_cls = REGISTRY[config.type]()
    except KeyError:
        raise ValueError(f"Unsupported task runner type: {config.type}") from None
    return runner_cls(config, settings=settings)


__all__ = [
    "REGISTRY",
    "get_task_runner",
    "RunnerRequest",
    "RunnerResult",
    "TaskRunner",
    "DEFAULT_RUNNER",
    "DockerOptions",
    "DockerRunnerConfig",
    "KubernetesRunnerConfig",
    "ProcessRunnerConfig",
    "RunnerConfig",
    "NamespaceFiles",
]
