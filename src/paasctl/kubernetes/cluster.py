"""Cluster handle: the single connection to the Kubernetes control plane.

Every deployment unit, the installer and the staging trigger talk to the
cluster through this class. Calls never retry; failures surface as
RemoteAPIError subclasses and retrying is left to the wait helpers.
"""

from __future__ import annotations

import functools
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.stream import stream

from .. import durations
from ..errors import NotFoundError, NotOwnedError, RemoteAPIError, map_api_exception
from ..shared.logging import get_logger
from .wait import Condition, poll_until

if TYPE_CHECKING:
    from .platforms import Platform

logger = get_logger(__name__)

# Written on every namespace paasctl creates, checked before deleting one
OWNER_LABEL_KEY = "app.kubernetes.io/managed-by"
OWNER_LABEL_VALUE = "paasctl"


@contextmanager
def api_call(action: str) -> Iterator[None]:
    """Translate kubernetes client exceptions raised in the block."""
    try:
        yield
    except ApiException as e:
        raise map_api_exception(e, action) from e


class Cluster:
    """Connection to a Kubernetes cluster plus the detected platform."""

    def __init__(self, api_client: client.ApiClient, kubeconfig: str | None = None):
        """Initialize cluster handle.

        Args:
            api_client: Configured kubernetes ApiClient.
            kubeconfig: Path of the kubeconfig the client was built from, if any.
                Passed on to kubectl and helm.
        """
        self.api_client = api_client
        self.kubeconfig = kubeconfig
        self.core_v1 = client.CoreV1Api(api_client)
        self.batch_v1 = client.BatchV1Api(api_client)
        self.networking_v1 = client.NetworkingV1Api(api_client)
        # Untyped access for CRD-backed objects (pipeline runs, certificates)
        self.custom_objects = client.CustomObjectsApi(api_client)
        self._platform: Platform | None = None

    @classmethod
    def connect(cls, kubeconfig: str | None = None) -> Cluster:
        """Build a handle from a kubeconfig file, or the in-cluster service account.

        Args:
            kubeconfig: Path to kubeconfig (default: client library lookup).

        Returns:
            Connected Cluster.

        Raises:
            RemoteAPIError: No usable configuration was found.
        """
        configuration = client.Configuration()
        try:
            config.load_kube_config(config_file=kubeconfig, client_configuration=configuration)
        except (ConfigException, FileNotFoundError) as e:
            if kubeconfig:
                raise RemoteAPIError(message=f"cannot load kubeconfig {kubeconfig}: {e}") from e
            logger.debug("no kubeconfig found, trying in-cluster config")
            try:
                config.load_incluster_config(client_configuration=configuration)
            except ConfigException as incluster_error:
                raise RemoteAPIError(
                    message="no kubeconfig found and not running inside a cluster"
                ) from incluster_error
        return cls(client.ApiClient(configuration), kubeconfig=kubeconfig)

    @property
    def platform(self) -> Platform:
        """Detected platform, resolved on first access and cached."""
        if self._platform is None:
            from .platforms import detect_platform

            self._platform = detect_platform(self)
            logger.info("platform detected", platform=self._platform.name)
        return self._platform

    # ── Queries ──

    def server_version(self) -> str:
        with api_call("get server version"):
            info = client.VersionApi(self.api_client).get_code()
        return info.git_version

    def list_nodes(self) -> list[Any]:
        with api_call("list nodes"):
            return self.core_v1.list_node().items

    def list_pods(self, namespace: str, selector: str = "") -> list[Any]:
        """List pods in namespace, optionally filtered by a label selector."""
        with api_call(f"list pods in {namespace}"):
            if selector:
                return self.core_v1.list_namespaced_pod(namespace, label_selector=selector).items
            return self.core_v1.list_namespaced_pod(namespace).items

    def list_ingresses(self, namespace: str, selector: str = "") -> list[Any]:
        """List ingresses in namespace, optionally filtered by a label selector."""
        with api_call(f"list ingresses in {namespace}"):
            if selector:
                return self.networking_v1.list_namespaced_ingress(
                    namespace, label_selector=selector
                ).items
            return self.networking_v1.list_namespaced_ingress(namespace).items

    def get_secret(self, namespace: str, name: str) -> Any:
        with api_call(f"get secret {namespace}/{name}"):
            return self.core_v1.read_namespaced_secret(name, namespace)

    def namespace_exists(self, name: str) -> bool:
        try:
            with api_call(f"get namespace {name}"):
                self.core_v1.read_namespace(name)
        except NotFoundError:
            return False
        return True

    def namespace_exists_and_owned(self, name: str) -> bool:
        """Check that a namespace exists and carries the paasctl ownership label."""
        try:
            with api_call(f"get namespace {name}"):
                namespace = self.core_v1.read_namespace(name)
        except NotFoundError:
            return False
        labels = namespace.metadata.labels or {}
        return labels.get(OWNER_LABEL_KEY) == OWNER_LABEL_VALUE

    def find_load_balancer_ip(self, service_name: str) -> str:
        """Return the first load balancer address assigned to a service.

        The service is looked up by name across all namespaces.

        Raises:
            NotFoundError: No such service.
            RemoteAPIError: The service has no load balancer address yet.
        """
        with api_call(f"list services named {service_name}"):
            services = self.core_v1.list_service_for_all_namespaces(
                field_selector=f"metadata.name={service_name}"
            ).items
        if not services:
            raise NotFoundError(message=f"couldn't find the {service_name} service")

        load_balancer = services[0].status.load_balancer
        ingress = (load_balancer.ingress if load_balancer else None) or []
        if not ingress:
            raise RemoteAPIError(message=f"ingress list is empty in {service_name} service")
        return ingress[0].ip or ingress[0].hostname

    # ── Mutations ──

    def create_namespace(self, name: str, labels: dict[str, str] | None = None) -> None:
        """Create a namespace labelled as owned by paasctl."""
        body = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {
                "name": name,
                "labels": {**(labels or {}), OWNER_LABEL_KEY: OWNER_LABEL_VALUE},
            },
        }
        with api_call(f"create namespace {name}"):
            self.core_v1.create_namespace(body)

    def label_namespace(self, name: str, key: str, value: str) -> None:
        with api_call(f"label namespace {name}"):
            self.core_v1.patch_namespace(name, {"metadata": {"labels": {key: value}}})

    def delete_namespace(self, name: str) -> None:
        """Delete a namespace paasctl created.

        Raises:
            NotOwnedError: The namespace is missing or lacks the ownership
                label. Nothing is changed on the cluster.
        """
        if not self.namespace_exists_and_owned(name):
            raise NotOwnedError(
                message=f"namespace '{name}' is not owned by paasctl, refusing to delete it",
                data={"namespace": name},
            )
        with api_call(f"delete namespace {name}"):
            self.core_v1.delete_namespace(name)

    def create_secret(self, namespace: str, body: dict[str, Any]) -> None:
        with api_call(f"create secret {namespace}/{body['metadata']['name']}"):
            self.core_v1.create_namespaced_secret(namespace, body)

    def create_service_account(self, namespace: str, body: dict[str, Any]) -> None:
        with api_call(f"create service account {namespace}/{body['metadata']['name']}"):
            self.core_v1.create_namespaced_service_account(namespace, body)

    def create_job(self, namespace: str, body: dict[str, Any]) -> None:
        with api_call(f"create job {namespace}/{body['metadata']['name']}"):
            self.batch_v1.create_namespaced_job(namespace, body)

    def create_custom_object(
        self,
        group: str,
        version: str,
        plural: str,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Create a custom resource; cluster-scoped when namespace is None.

        Raises:
            AlreadyExistsError: An object with that name exists.
        """
        action = f"create {plural} {body['metadata']['name']}"
        with api_call(action):
            if namespace is None:
                return self.custom_objects.create_cluster_custom_object(group, version, plural, body)
            return self.custom_objects.create_namespaced_custom_object(
                group, version, namespace, plural, body
            )

    def exec_in_pod(
        self,
        namespace: str,
        pod: str,
        container: str,
        command: str,
        stdin: str | None = None,
    ) -> tuple[str, str]:
        """Run a shell command in a pod container.

        Args:
            namespace: Pod namespace.
            pod: Pod name.
            container: Container name.
            command: Shell command, run with `sh -c`.
            stdin: Data written to the command's standard input.

        Returns:
            Tuple of (stdout, stderr), surrounding whitespace trimmed.

        Raises:
            RemoteAPIError: The exec call failed or the command exited non-zero.
        """
        with api_call(f"exec in pod {namespace}/{pod}"):
            resp = stream(
                self.core_v1.connect_get_namespaced_pod_exec,
                pod,
                namespace,
                container=container,
                command=["sh", "-c", command],
                stdin=stdin is not None,
                stdout=True,
                stderr=True,
                tty=False,
                _preload_content=False,
            )

        stdout: list[str] = []
        stderr: list[str] = []
        try:
            if stdin is not None:
                resp.write_stdin(stdin)
            while resp.is_open():
                resp.update(timeout=1)
                if resp.peek_stdout():
                    stdout.append(resp.read_stdout())
                if resp.peek_stderr():
                    stderr.append(resp.read_stderr())
            returncode = resp.returncode
        finally:
            resp.close()

        out, err = "".join(stdout).strip(), "".join(stderr).strip()
        if returncode:
            raise RemoteAPIError(
                message=f"command in pod {namespace}/{pod} exited with {returncode}: {err}",
                data={"stdout": out, "stderr": err, "returncode": returncode},
            )
        return out, err

    # ── Conditions ──

    def pod_running(self, namespace: str, pod_name: str) -> Condition:
        """Condition: the pod's containers left waiting and it is Running/Succeeded.

        A Failed pod is reported as not yet running, so a crashed pod is
        only noticed when the wait times out.
        """

        def condition() -> bool:
            with api_call(f"get pod {namespace}/{pod_name}"):
                pod = self.core_v1.read_namespaced_pod(pod_name, namespace)

            for status in pod.status.container_statuses or []:
                if status.state.waiting is not None:
                    return False
            for status in pod.status.init_container_statuses or []:
                if status.state.waiting is not None or status.state.running is not None:
                    return False

            return pod.status.phase in ("Running", "Succeeded")

        return condition

    def pod_exists(self, namespace: str, selector: str) -> Condition:
        def condition() -> bool:
            return len(self.list_pods(namespace, selector)) > 0

        return condition

    def namespace_gone(self, name: str) -> Condition:
        """Condition: reading the namespace returns 404. Other errors abort."""

        def condition() -> bool:
            try:
                with api_call(f"get namespace {name}"):
                    self.core_v1.read_namespace(name)
            except NotFoundError:
                return True
            return False

        return condition

    def job_completed(self, namespace: str, job_name: str) -> Condition:
        def condition() -> bool:
            with api_call(f"get job {namespace}/{job_name}"):
                job = self.batch_v1.read_namespaced_job(job_name, namespace)
            completions = job.spec.completions or 1
            return (job.status.succeeded or 0) >= completions

        return condition

    # ── Waits ──

    def wait_for_pod_running(self, namespace: str, pod_name: str, timeout: float) -> None:
        poll_until(
            durations.poll_interval(),
            timeout,
            self.pod_running(namespace, pod_name),
            f"pod {namespace}/{pod_name} to be running",
        )

    def wait_until_pod_by_selector_exist(self, namespace: str, selector: str, timeout: float) -> None:
        poll_until(
            durations.poll_interval(),
            timeout,
            self.pod_exists(namespace, selector),
            f"pod {selector} to exist in {namespace}",
        )

    def wait_for_pod_by_selector_running(self, namespace: str, selector: str, timeout: float) -> None:
        """Wait for every pod matching selector to run.

        Raises:
            NotFoundError: No pod matches the selector.
        """
        pods = self.list_pods(namespace, selector)
        if not pods:
            raise NotFoundError(message=f"no pods in {namespace} with selector {selector}")

        for pod in pods:
            self.wait_for_pod_running(namespace, pod.metadata.name, timeout)

    def wait_for_namespace_gone(self, name: str, timeout: float) -> None:
        poll_until(
            durations.poll_interval(),
            timeout,
            self.namespace_gone(name),
            f"namespace {name} to be gone",
        )

    def wait_for_job_completed(self, namespace: str, job_name: str, timeout: float) -> None:
        poll_until(
            durations.poll_interval(),
            timeout,
            self.job_completed(namespace, job_name),
            f"job {namespace}/{job_name} to complete",
        )


@functools.lru_cache(maxsize=None)
def get_cluster(kubeconfig: str | None = None) -> Cluster:
    """Return the process-wide cluster handle for a kubeconfig."""
    return Cluster.connect(kubeconfig)
