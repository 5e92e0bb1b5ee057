"""
Kubernetes Job runner.

Executes the shell invocation as a Kubernetes Job:
- input and namespace files are packed into a ConfigMap, copied into an
  emptyDir working directory by an init container
- the main container runs the command vector with the task env
- the Job is polled until it succeeds, fails or exceeds its deadline
- pod logs are replayed through the output marker parser
- Job and ConfigMap are deleted afterwards when cleanup is on

Declared output files cannot be retrieved from the pod and are reported as
missing.
"""

import base64
import hashlib
import shutil
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from kubernetes import client, config as kube_config
from kubernetes.client.rest import ApiException

from dataform_cli.core.config import Settings, get_settings
from dataform_cli.core.errors import ErrorKind, ExecutionError
from dataform_cli.core.logger import setup_logger
from dataform_cli.runner.base import RunnerRequest, RunnerResult
from dataform_cli.runner.config import KubernetesRunnerConfig
from dataform_cli.runner.files import create_working_dir, stage_input_files, stage_namespace_files
from dataform_cli.runner.outputs import LogConsumer

logger = setup_logger(__name__, include_location=True)

CONTAINER_WORKING_DIR = "/app"
STAGING_DIR = "/staging"
LABELS = {'app': 'dataform-cli', 'component': 'task-runner'}


def load_cluster_config() -> None:
    try:
        kube_config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except kube_config.ConfigException:
        kube_config.load_kube_config()
        logger.debug("Loaded kubeconfig configuration")


def _configmap_key(rel: str) -> str:
    # ConfigMap keys may not contain '/'
    digest = hashlib.sha1(rel.encode('utf-8')).hexdigest()[:8]
    base = "".join(ch if ch.isalnum() or ch in "-_." else "-" for ch in rel)
    return f"{base[-200:]}-{digest}"


def pack_working_dir(working_dir: Path) -> Tuple[Dict[str, str], Dict[str, str], List[client.V1KeyToPath]]:
    """Split staged files into ConfigMap text data, base64 binary data and mount items."""
    data: Dict[str, str] = {}
    binary_data: Dict[str, str] = {}
    items: List[client.V1KeyToPath] = []
    for path in sorted(working_dir.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(working_dir).as_posix()
        key = _configmap_key(rel)
        raw = path.read_bytes()
        try:
            data[key] = raw.decode("utf-8")
        except UnicodeDecodeError:
            binary_data[key] = base64.b64encode(raw).decode("ascii")
        items.append(client.V1KeyToPath(key=key, path=rel))
    return data, binary_data, items


def build_job(
    job_name: str,
    namespace: str,
    image: str,
    command: List[str],
    env: Dict[str, str],
    runner_config: KubernetesRunnerConfig,
    configmap_name: Optional[str] = None,
    configmap_items: Optional[List[client.V1KeyToPath]] = None,
) -> client.V1Job:
    env_vars = [client.V1EnvVar(name=k, value=v) for k, v in env.items()]
    env_vars.append(client.V1EnvVar(name="WORKING_DIR", value=CONTAINER_WORKING_DIR))

    workdir_mount = client.V1VolumeMount(name='workdir', mount_path=CONTAINER_WORKING_DIR)
    volumes = [client.V1Volume(name='workdir', empty_dir=client.V1EmptyDirVolumeSource())]
    init_containers = None

    if configmap_name:
        volumes.append(
            client.V1Volume(
                name='staging',
                config_map=client.V1ConfigMapVolumeSource(name=configmap_name, items=configmap_items)
            )
        )
        init_containers = [
            client.V1Container(
                name='stage-files',
                image=image,
                command=["/bin/sh", "-c", f"cp -rL {STAGING_DIR}/. {CONTAINER_WORKING_DIR}/"],
                volume_mounts=[
                    workdir_mount,
                    client.V1VolumeMount(name='staging', mount_path=STAGING_DIR, read_only=True),
                ],
                image_pull_policy='IfNotPresent',
            )
        ]

    # command replaces the image entrypoint; args are not used
    container = client.V1Container(
        name='main',
        image=image,
        command=list(runner_config.entrypoint or []) + list(command),
        env=env_vars,
        working_dir=CONTAINER_WORKING_DIR,
        volume_mounts=[workdir_mount],
        image_pull_policy='IfNotPresent',
    )
    if runner_config.resources:
        container.resources = client.V1ResourceRequirements(
            limits=runner_config.resources.get('limits'),
            requests=runner_config.resources.get('requests'),
        )

    pod_spec = client.V1PodSpec(
        containers=[container],
        init_containers=init_containers,
        restart_policy='Never',
        service_account_name=runner_config.service_account,
        volumes=volumes,
    )

    return client.V1Job(
        api_version='batch/v1',
        kind='Job',
        metadata=client.V1ObjectMeta(name=job_name, namespace=namespace, labels=dict(LABELS)),
        spec=client.V1JobSpec(
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels={**LABELS, 'job-name': job_name}),
                spec=pod_spec,
            ),
            backoff_limit=0,
            active_deadline_seconds=runner_config.active_deadline_seconds,
        ),
    )


class KubernetesTaskRunner:
    def __init__(self, config: Optional[KubernetesRunnerConfig] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.config = config or KubernetesRunnerConfig(image=self.settings.default_image, entrypoint=[])

    def _job_pod_name(self, v1: client.CoreV1Api, namespace: str, job_name: str) -> Optional[str]:
        try:
            pods = v1.list_namespaced_pod(namespace, label_selector=f'job-name={job_name}')
        except ApiException as e:
            logger.warning(f"Failed to get pod for job {job_name}: {e}")
            return None
        if pods.items:
            return pods.items[0].metadata.name
        return None

    def _wait(self, batch_v1: client.BatchV1Api, namespace: str, job_name: str) -> bool:
        """Poll the Job until it finishes; True on success, False on failure."""
        deadline = time.monotonic() + self.config.active_deadline_seconds
        logger.info(f"Waiting for Job {job_name} (timeout: {self.config.active_deadline_seconds}s)")

        while True:
            if time.monotonic() > deadline:
                raise ExecutionError(
                    f"Job {job_name} timed out after {self.config.active_deadline_seconds} seconds",
                    kind=ErrorKind.TIMEOUT,
                )
            try:
                job = batch_v1.read_namespaced_job_status(job_name, namespace)
            except ApiException as e:
                if e.status == 404:
                    raise ExecutionError(f"Job {job_name} not found") from e
                logger.warning(f"Error checking job status: {e}")
            else:
                if job.status.succeeded:
                    return True
                if job.status.failed:
                    return False
            time.sleep(self.config.poll_interval)

    def _exit_code(self, v1: client.CoreV1Api, namespace: str, pod_name: str) -> Optional[int]:
        try:
            pod = v1.read_namespaced_pod(pod_name, namespace)
        except ApiException as e:
            logger.warning(f"Could not retrieve pod exit code: {e}")
            return None
        for status in pod.status.container_statuses or []:
            if status.state and status.state.terminated:
                return status.state.terminated.exit_code
        return None

    def _cleanup(self, batch_v1, v1, namespace: str, job_name: str, configmap_name: Optional[str]) -> None:
        try:
            batch_v1.delete_namespaced_job(job_name, namespace, propagation_policy='Background')
            logger.debug(f"Deleted Job {job_name}")
        except ApiException as e:
            if e.status != 404:
                logger.warning(f"Failed to delete Job {job_name}: {e}")
        if not configmap_name:
            return
        try:
            v1.delete_namespaced_config_map(configmap_name, namespace)
            logger.debug(f"Deleted ConfigMap {configmap_name}")
        except ApiException as e:
            if e.status != 404:
                logger.warning(f"Failed to delete ConfigMap {configmap_name}: {e}")

    def run(self, request: RunnerRequest) -> RunnerResult:
        if not self.config.image:
            raise ExecutionError("Kubernetes runner requires an image")

        namespace = self.config.namespace or self.settings.kubernetes_namespace
        suffix = uuid.uuid4().hex[:8]
        job_name = f"dataform-{suffix}"
        configmap_name = None
        consumer = LogConsumer(logger, warning_on_std_err=request.warning_on_std_err)

        working_dir = create_working_dir(self.settings)
        try:
            stage_input_files(working_dir, request.input_files)
            stage_namespace_files(working_dir, request.namespace_files, self.settings)
            data, binary_data, items = pack_working_dir(working_dir)
        except (OSError, ValueError) as e:
            raise ExecutionError(f"Kubernetes runner failed to stage files: {e}") from e
        finally:
            shutil.rmtree(working_dir, ignore_errors=True)

        load_cluster_config()
        v1 = client.CoreV1Api()
        batch_v1 = client.BatchV1Api()

        try:
            if data or binary_data:
                configmap_name = f"{job_name}-files"
                v1.create_namespaced_config_map(
                    namespace,
                    client.V1ConfigMap(
                        metadata=client.V1ObjectMeta(name=configmap_name, namespace=namespace, labels=dict(LABELS)),
                        data=data or None,
                        binary_data=binary_data or None,
                    ),
                )
                logger.info(f"Created ConfigMap {configmap_name} with {len(data) + len(binary_data)} files")

            job = build_job(
                job_name, namespace, self.config.image, request.commands, request.env,
                self.config, configmap_name, items,
            )
            batch_v1.create_namespaced_job(namespace, job)
            logger.info(f"Created Job {job_name} in namespace {namespace}")

            succeeded = self._wait(batch_v1, namespace, job_name)
            pod_name = self._job_pod_name(v1, namespace, job_name)
            exit_code = None
            if pod_name:
                logs = v1.read_namespaced_pod_log(pod_name, namespace, container='main')
                consumer.accept_text(logs)
                exit_code = self._exit_code(v1, namespace, pod_name)

            if exit_code is None:
                if not succeeded:
                    raise ExecutionError(f"Job {job_name} failed without a container exit code", vars=consumer.vars)
                exit_code = 0

            if request.output_files:
                logger.warning(f"Output files are not collected by the kubernetes runner: {request.output_files}")

            logger.info(f"Job {job_name} finished: exit_code={exit_code}")
            return RunnerResult(
                exit_code=exit_code,
                vars=dict(consumer.vars),
                std_out_line_count=consumer.std_out_count,
                std_err_line_count=consumer.std_err_count,
            )
        except ApiException as e:
            logger.error(f"Kubernetes API error: {e}")
            raise ExecutionError(f"Kubernetes API error: {e.reason}", vars=consumer.vars) from e
        finally:
            if self.config.cleanup:
                self._cleanup(batch_v1, v1, namespace, job_name, configmap_name)
