"""
Runner configuration models.

Runner kinds are a tagged union on `type`; there is no shared base class, each
config only declares the options its runner understands. All configs are
frozen: the module-level defaults are templates, derived configs are built
with model_copy(update=...).
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _normalize_entrypoint(v: Any) -> Optional[List[str]]:
    # [""] and [] both mean "no entrypoint"; keep a single representation
    if v is None:
        return None
    if isinstance(v, str):
        v = [v]
    return [str(item) for item in v if str(item) != ""]


class DockerOptions(BaseModel):
    """Deprecated container options, superseded by `taskRunner`."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    image: Optional[str] = None
    entrypoint: Optional[List[str]] = Field(None, alias="entryPoint")
    pull_policy: Literal["IF_NOT_PRESENT", "ALWAYS", "NEVER"] = Field("IF_NOT_PRESENT", alias="pullPolicy")
    network_mode: Optional[str] = Field(None, alias="networkMode")
    user: Optional[str] = None
    volumes: List[str] = Field(default_factory=list)

    @field_validator('entrypoint', mode='before')
    def normalize_entrypoint(cls, v):
        return _normalize_entrypoint(v)


class DockerRunnerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    type: Literal["docker"] = "docker"
    image: Optional[str] = None
    entrypoint: Optional[List[str]] = Field(None, alias="entryPoint")
    pull_policy: Literal["IF_NOT_PRESENT", "ALWAYS", "NEVER"] = Field("IF_NOT_PRESENT", alias="pullPolicy")
    network_mode: Optional[str] = Field(None, alias="networkMode")
    user: Optional[str] = None
    volumes: List[str] = Field(default_factory=list)
    cpus: Optional[float] = None
    memory: Optional[str] = None
    host: Optional[str] = None
    timeout: Optional[float] = None

    @field_validator('entrypoint', mode='before')
    def normalize_entrypoint(cls, v):
        return _normalize_entrypoint(v)

    @property
    def container_based(self) -> bool:
        return True


class ProcessRunnerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    type: Literal["process"] = "process"
    timeout: Optional[float] = None

    @property
    def container_based(self) -> bool:
        return False


class KubernetesRunnerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    type: Literal["kubernetes"] = "kubernetes"
    image: Optional[str] = None
    entrypoint: Optional[List[str]] = Field(None, alias="entryPoint")
    namespace: Optional[str] = None
    service_account: str = Field("default", alias="serviceAccountName")
    resources: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    active_deadline_seconds: int = Field(600, alias="activeDeadlineSeconds")
    poll_interval: float = Field(2.0, alias="pollInterval")
    cleanup: bool = True

    @field_validator('entrypoint', mode='before')
    def normalize_entrypoint(cls, v):
        return _normalize_entrypoint(v)

    @property
    def container_based(self) -> bool:
        return True


RunnerConfig = Annotated[
    Union[DockerRunnerConfig, ProcessRunnerConfig, KubernetesRunnerConfig],
    Field(discriminator="type"),
]

DEFAULT_RUNNER = DockerRunnerConfig()
