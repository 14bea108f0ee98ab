"""Shared test fixtures for paasctl tests.

This module provides:
- FakeCluster: in-memory stand-in for paasctl.kubernetes.Cluster that
  records every mutation, so tests can assert nothing was changed
- ui / recorded_ui: UI instances that don't draw to the terminal
- tool_run: patched subprocess.run for kubectl/helm invocations
"""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from paasctl import durations
from paasctl.errors import AlreadyExistsError, NotFoundError, NotOwnedError, RemoteAPIError
from paasctl.kubernetes.cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE
from paasctl.kubernetes.platforms import Generic
from paasctl.termui import UI

# =============================================================================
# FakeCluster
# =============================================================================


@dataclass
class FakeCluster:
    """Duck-typed Cluster keeping namespaces, secrets and objects in memory."""

    kubeconfig: str | None = None
    namespaces: dict[str, dict[str, str]] = field(default_factory=dict)
    secrets: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    service_accounts: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    jobs: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    custom_objects: dict[tuple[str, str | None, str], dict[str, Any]] = field(default_factory=dict)
    pods: dict[str, list[SimpleNamespace]] = field(default_factory=dict)
    load_balancer_ip: str | None = None
    mutations: list[tuple[str, ...]] = field(default_factory=list)
    waits: list[tuple[str, ...]] = field(default_factory=list)
    execs: list[dict[str, Any]] = field(default_factory=list)
    # Namespaces a `kubectl apply` of a release bundle creates; tool_run is a no-op
    release_namespaces: set[str] = field(default_factory=lambda: {"tekton-pipelines", "cert-manager"})
    platform: Any = field(default_factory=Generic)

    # ── Queries ──

    def namespace_exists(self, name: str) -> bool:
        return name in self.namespaces

    def namespace_exists_and_owned(self, name: str) -> bool:
        return self.namespaces.get(name, {}).get(OWNER_LABEL_KEY) == OWNER_LABEL_VALUE

    def get_secret(self, namespace: str, name: str) -> SimpleNamespace:
        try:
            body = self.secrets[(namespace, name)]
        except KeyError:
            raise NotFoundError(message=f"get secret {namespace}/{name}: not found") from None
        data = dict(body.get("data") or {})
        for key, value in (body.get("stringData") or {}).items():
            data[key] = base64.b64encode(value.encode()).decode()
        return SimpleNamespace(type=body.get("type"), data=data)

    def list_pods(self, namespace: str, selector: str = "") -> list[SimpleNamespace]:
        return self.pods.get(namespace, [])

    def find_load_balancer_ip(self, service_name: str) -> str:
        if self.load_balancer_ip is None:
            raise RemoteAPIError(message=f"ingress list is empty in {service_name} service")
        return self.load_balancer_ip

    # ── Mutations ──

    def create_namespace(self, name: str, labels: dict[str, str] | None = None) -> None:
        if name in self.namespaces:
            raise AlreadyExistsError(message=f"create namespace {name}: already exists")
        self.namespaces[name] = {**(labels or {}), OWNER_LABEL_KEY: OWNER_LABEL_VALUE}
        self.mutations.append(("create_namespace", name))

    def label_namespace(self, name: str, key: str, value: str) -> None:
        if name not in self.namespaces:
            if name not in self.release_namespaces:
                raise NotFoundError(message=f"label namespace {name}: not found")
            self.namespaces[name] = {}
        self.namespaces[name][key] = value
        self.mutations.append(("label_namespace", name))

    def delete_namespace(self, name: str) -> None:
        if not self.namespace_exists_and_owned(name):
            raise NotOwnedError(message=f"namespace '{name}' is not owned by paasctl")
        del self.namespaces[name]
        self.mutations.append(("delete_namespace", name))

    def _create(self, store: dict, key: tuple, body: dict[str, Any], kind: str) -> None:
        if key in store:
            raise AlreadyExistsError(message=f"create {kind} {key}: already exists")
        store[key] = body
        self.mutations.append((f"create_{kind}",) + tuple(str(part) for part in key))

    def create_secret(self, namespace: str, body: dict[str, Any]) -> None:
        self._create(self.secrets, (namespace, body["metadata"]["name"]), body, "secret")

    def create_service_account(self, namespace: str, body: dict[str, Any]) -> None:
        self._create(self.service_accounts, (namespace, body["metadata"]["name"]), body, "service_account")

    def create_job(self, namespace: str, body: dict[str, Any]) -> None:
        self._create(self.jobs, (namespace, body["metadata"]["name"]), body, "job")

    def create_custom_object(
        self,
        group: str,
        version: str,
        plural: str,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        self._create(self.custom_objects, (plural, namespace, body["metadata"]["name"]), body, plural)
        return body

    def exec_in_pod(
        self, namespace: str, pod: str, container: str, command: str, stdin: str | None = None
    ) -> tuple[str, str]:
        self.execs.append(
            {"namespace": namespace, "pod": pod, "container": container, "command": command, "stdin": stdin}
        )
        return "", ""

    # ── Waits ──

    def wait_for_pod_running(self, namespace: str, pod_name: str, timeout: float) -> None:
        self.waits.append(("pod_running", namespace, pod_name))

    def wait_until_pod_by_selector_exist(self, namespace: str, selector: str, timeout: float) -> None:
        self.waits.append(("pod_exists", namespace, selector))

    def wait_for_pod_by_selector_running(self, namespace: str, selector: str, timeout: float) -> None:
        self.waits.append(("pods_running", namespace, selector))

    def wait_for_namespace_gone(self, name: str, timeout: float) -> None:
        # kubectl delete of a release bundle removes its namespace
        self.namespaces.pop(name, None)
        self.waits.append(("namespace_gone", name))

    def wait_for_job_completed(self, namespace: str, job_name: str, timeout: float) -> None:
        self.waits.append(("job_completed", namespace, job_name))

    # ── Helpers for tests ──

    def add_foreign_namespace(self, name: str) -> None:
        """A namespace paasctl didn't create."""
        self.namespaces[name] = {}

    def seed_credentials(self) -> None:
        """Credential secrets the gitea and registry units create."""
        self.namespaces.setdefault("gitea", {OWNER_LABEL_KEY: OWNER_LABEL_VALUE})
        self.namespaces.setdefault("paasctl-registry", {OWNER_LABEL_KEY: OWNER_LABEL_VALUE})
        self.secrets[("gitea", "gitea-creds")] = {
            "metadata": {"name": "gitea-creds"},
            "type": "kubernetes.io/basic-auth",
            "stringData": {"username": "dev", "password": "git-secret"},
        }
        self.secrets[("paasctl-registry", "registry-creds")] = {
            "metadata": {"name": "registry-creds"},
            "type": "kubernetes.io/basic-auth",
            "stringData": {"username": "admin", "password": "registry-secret"},
        }


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


# =============================================================================
# UI
# =============================================================================


@pytest.fixture
def ui() -> UI:
    """UI that only prints problems, into a buffer."""
    return UI(console=Console(file=io.StringIO()), quiet=True)


@pytest.fixture
def recorded_ui() -> UI:
    """UI printing everything into a buffer; read with ui.console.export_text()."""
    return UI(console=Console(file=io.StringIO(), record=True, width=200))


# =============================================================================
# Tools and timing
# =============================================================================


@pytest.fixture
def tool_run():
    """Patch subprocess.run so kubectl/helm calls succeed without running."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock_run


@pytest.fixture(autouse=True)
def reset_durations():
    """Undo timeout multipliers set by a test."""
    yield
    durations.set_multiplier(1)
