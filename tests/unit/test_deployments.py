"""Unit tests for the deployment units."""

from __future__ import annotations

import base64
import json
from types import SimpleNamespace

import pytest
import yaml

from paasctl.deployments import (
    CertManager,
    Gitea,
    Quarks,
    Registry,
    ServiceCatalog,
    Tekton,
    Traefik,
    Workloads,
    default_deployments,
    default_options,
)
from paasctl.errors import AlreadyPresentError, ValidationError
from paasctl.kubernetes.cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE
from paasctl.kubernetes.options import SYSTEM_DOMAIN, DefaultOptionsReader
from paasctl.kubernetes.platforms import Kind


def make_pod(name):
    return SimpleNamespace(metadata=SimpleNamespace(name=name))


@pytest.fixture
def options():
    populated = default_options().populate([DefaultOptionsReader()])
    populated.set(SYSTEM_DOMAIN, "10.0.0.1.omg.howdoi.website")
    return populated


def commands(tool_run):
    return [call.args[0] for call in tool_run.call_args_list]


class TestDefaults:
    """Tests for the default unit list and option set."""

    def test_install_order(self):
        ids = [unit.id() for unit in default_deployments()]
        assert ids == [
            "traefik",
            "quarks",
            "gitea",
            "registry",
            "workloads",
            "tekton",
            "service-catalog",
            "cert-manager",
        ]

    def test_timeout_is_passed_to_units(self):
        assert all(unit.timeout == 42 for unit in default_deployments(timeout=42))

    def test_option_prefixes_match_units(self):
        """Test every option is global or belongs to a known unit."""
        ids = {unit.id() for unit in default_deployments()}
        for option in default_options():
            if option.name == SYSTEM_DOMAIN:
                continue
            assert option.name.split(".", 1)[0] in ids, option.name

    def test_generated_passwords_differ(self):
        options = default_options().populate([DefaultOptionsReader()])
        assert options.value("gitea.admin_password")
        assert options.value("gitea.admin_password") != options.value("registry.password")


class TestTraefik:
    """Tests for the Traefik unit."""

    def test_deploy_creates_owned_namespace_and_waits(self, fake_cluster, ui, tool_run, options):
        """Test deploy creates the namespace, installs the chart and waits for it to run."""
        Traefik(timeout=5).deploy(fake_cluster, ui, options.for_deployment("traefik"))

        assert fake_cluster.namespace_exists_and_owned("traefik")
        assert commands(tool_run)[0][:3] == ["helm", "install", "traefik"]
        assert ("pods_running", "traefik", "app.kubernetes.io/name=traefik") in fake_cluster.waits

    def test_deploy_again_is_already_present(self, fake_cluster, ui, tool_run, options):
        """Test a second deploy fails without touching the cluster."""
        unit = Traefik(timeout=5)
        unit.deploy(fake_cluster, ui, options.for_deployment("traefik"))
        mutations = list(fake_cluster.mutations)
        tool_calls = tool_run.call_count

        with pytest.raises(AlreadyPresentError) as exc_info:
            unit.deploy(fake_cluster, ui, options.for_deployment("traefik"))

        assert exc_info.value.message == "Namespace traefik present already"
        assert fake_cluster.mutations == mutations
        assert tool_run.call_count == tool_calls

    def test_values_expose_node_ips_on_local_platforms(self, fake_cluster, ui, tool_run, options):
        platform = Kind()
        platform._external_ips = ["172.18.0.2"]
        fake_cluster.platform = platform

        Traefik(timeout=5).deploy(fake_cluster, ui, options.for_deployment("traefik"))

        values = yaml.safe_load(tool_run.call_args_list[0].kwargs["input"])
        assert values["service"]["spec"]["externalIPs"] == ["172.18.0.2"]

    def test_delete_skips_foreign_namespace(self, fake_cluster, recorded_ui, tool_run):
        fake_cluster.add_foreign_namespace("traefik")

        Traefik(timeout=5).delete(fake_cluster, recorded_ui)

        assert fake_cluster.mutations == []
        assert tool_run.call_count == 0
        assert "not owned by paasctl" in recorded_ui.console.export_text()

    def test_delete_removes_release_and_namespace(self, fake_cluster, ui, tool_run, options):
        unit = Traefik(timeout=5)
        unit.deploy(fake_cluster, ui, options.for_deployment("traefik"))

        unit.delete(fake_cluster, ui)

        assert not fake_cluster.namespace_exists("traefik")
        assert commands(tool_run)[-1][:3] == ["helm", "uninstall", "traefik"]

    def test_upgrade_skips_when_not_installed(self, fake_cluster, ui, tool_run, options):
        Traefik(timeout=5).upgrade(fake_cluster, ui, options.for_deployment("traefik"))
        assert tool_run.call_count == 0


class TestQuarks:
    """Tests for the Quarks unit."""

    def test_deploy(self, fake_cluster, ui, tool_run, options):
        Quarks(timeout=5).deploy(fake_cluster, ui, options.for_deployment("quarks"))

        assert fake_cluster.namespace_exists_and_owned("quarks")
        values = yaml.safe_load(tool_run.call_args.kwargs["input"])
        assert values["global"]["monitoredID"] == "quarks-secret"

    def test_upgrade_is_a_noop(self, fake_cluster, recorded_ui, tool_run, options):
        Quarks(timeout=5).upgrade(fake_cluster, recorded_ui, options.for_deployment("quarks"))

        assert fake_cluster.mutations == []
        assert "not supported" in recorded_ui.console.export_text()


class TestGitea:
    """Tests for the Gitea unit."""

    def test_requires_system_domain(self, fake_cluster, ui, tool_run, options):
        """Test a missing domain fails before anything is created."""
        options.set(SYSTEM_DOMAIN, "")

        with pytest.raises(ValidationError):
            Gitea(timeout=5).deploy(fake_cluster, ui, options.for_deployment("gitea"))

        assert fake_cluster.mutations == []
        assert tool_run.call_count == 0

    def test_deploy_creates_credentials_and_admin(self, fake_cluster, ui, tool_run, options):
        fake_cluster.pods["gitea"] = [make_pod("gitea-0")]
        password = options.value("gitea.admin_password")

        Gitea(timeout=5).deploy(fake_cluster, ui, options.for_deployment("gitea"))

        secret = fake_cluster.secrets[("gitea", "gitea-creds")]
        assert secret["stringData"] == {"username": "dev", "password": password}

        (exec_call,) = fake_cluster.execs
        assert exec_call["pod"] == "gitea-0"
        assert "gitea admin user create" in exec_call["command"]
        assert password not in exec_call["command"]
        assert exec_call["stdin"] == password + "\n"

    def test_ingress_host_uses_system_domain(self, fake_cluster, ui, tool_run, options):
        fake_cluster.pods["gitea"] = [make_pod("gitea-0")]

        Gitea(timeout=5).deploy(fake_cluster, ui, options.for_deployment("gitea"))

        values = yaml.safe_load(tool_run.call_args.kwargs["input"])
        assert values["ingress"]["hosts"][0]["host"] == "gitea.10.0.0.1.omg.howdoi.website"

    def test_no_pod_for_admin_creation(self, fake_cluster, ui, tool_run, options):
        with pytest.raises(ValidationError):
            Gitea(timeout=5).deploy(fake_cluster, ui, options.for_deployment("gitea"))

    def test_backup_and_restore_credentials(self, fake_cluster, ui, tmp_path):
        fake_cluster.seed_credentials()
        unit = Gitea(timeout=5)

        unit.backup(fake_cluster, ui, tmp_path / "gitea")
        saved = yaml.safe_load((tmp_path / "gitea" / "gitea-creds.yaml").read_text())
        assert base64.b64decode(saved["data"]["password"]).decode() == "git-secret"

        del fake_cluster.secrets[("gitea", "gitea-creds")]
        unit.restore(fake_cluster, ui, tmp_path / "gitea")

        restored = fake_cluster.get_secret("gitea", "gitea-creds")
        assert base64.b64decode(restored.data["password"]).decode() == "git-secret"

    def test_restore_keeps_existing_secret(self, fake_cluster, ui, tmp_path):
        fake_cluster.seed_credentials()
        unit = Gitea(timeout=5)
        unit.backup(fake_cluster, ui, tmp_path)
        mutations = list(fake_cluster.mutations)

        unit.restore(fake_cluster, ui, tmp_path)

        assert fake_cluster.mutations == mutations

    def test_backup_without_gitea(self, fake_cluster, recorded_ui, tmp_path):
        Gitea(timeout=5).backup(fake_cluster, recorded_ui, tmp_path / "gitea")

        assert not (tmp_path / "gitea").exists()
        assert "No Gitea credentials secret" in recorded_ui.console.export_text()

    def test_restore_without_backup(self, fake_cluster, recorded_ui, tmp_path):
        Gitea(timeout=5).restore(fake_cluster, recorded_ui, tmp_path)

        assert fake_cluster.mutations == []
        assert "No Gitea backup" in recorded_ui.console.export_text()


class TestRegistry:
    """Tests for the Registry unit."""

    def test_deploy(self, fake_cluster, ui, tool_run, options):
        Registry(timeout=5).deploy(fake_cluster, ui, options.for_deployment("registry"))

        assert fake_cluster.namespace_exists_and_owned("paasctl-registry")
        secret = fake_cluster.secrets[("paasctl-registry", "registry-creds")]
        assert secret["stringData"]["username"] == "admin"

        manifests = list(yaml.safe_load_all(tool_run.call_args.kwargs["input"]))
        service = next(m for m in manifests if m["kind"] == "Service")
        assert service["spec"]["ports"][0]["nodePort"] == 30500

    def test_delete_removes_namespace(self, fake_cluster, ui, tool_run, options):
        unit = Registry(timeout=5)
        unit.deploy(fake_cluster, ui, options.for_deployment("registry"))

        unit.delete(fake_cluster, ui)

        assert not fake_cluster.namespace_exists("paasctl-registry")
        assert ("namespace_gone", "paasctl-registry") in fake_cluster.waits


class TestWorkloads:
    """Tests for the Workloads unit."""

    def test_deploy_sets_up_namespace(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()

        Workloads(timeout=5).deploy(fake_cluster, ui, options.for_deployment("workloads"))

        labels = fake_cluster.namespaces["paasctl-workloads"]
        assert labels[OWNER_LABEL_KEY] == OWNER_LABEL_VALUE
        assert labels["quarks.cloudfoundry.org/monitored"] == "quarks-secret"

        git_secret = fake_cluster.secrets[("paasctl-workloads", "gitea-creds")]
        assert git_secret["stringData"] == {"username": "dev", "password": "git-secret"}

        registry_secret = fake_cluster.secrets[("paasctl-workloads", "registry-creds")]
        docker_config = json.loads(registry_secret["stringData"][".dockerconfigjson"])
        assert {entry["password"] for entry in docker_config["auths"].values()} == {"registry-secret"}

        account = fake_cluster.service_accounts[("paasctl-workloads", "paasctl-workloads")]
        assert account["automountServiceAccountToken"] is False
        assert {"name": "registry-creds"} in account["imagePullSecrets"]

        assert ("quarkssecrets", "paasctl-workloads", "ca-cert") in fake_cluster.custom_objects
        assert fake_cluster.namespace_exists_and_owned("app-ingress")
        assert ("job_completed", "paasctl-workloads", "buildpack-builder-warmup") in fake_cluster.waits

    def test_skip_warmup(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()
        options.set("workloads.skip_warmup", True)

        Workloads(timeout=5).deploy(fake_cluster, ui, options.for_deployment("workloads"))

        assert fake_cluster.jobs == {}

    def test_warmup_uses_builder_image(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()
        options.set("workloads.builder_image", "example.com/builder:tiny")

        Workloads(timeout=5).deploy(fake_cluster, ui, options.for_deployment("workloads"))

        job = fake_cluster.jobs[("paasctl-workloads", "buildpack-builder-warmup")]
        assert job["spec"]["template"]["spec"]["containers"][0]["image"] == "example.com/builder:tiny"

    def test_deploy_again_creates_no_duplicate_secrets(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()
        unit = Workloads(timeout=5)
        unit.deploy(fake_cluster, ui, options.for_deployment("workloads"))
        mutations = list(fake_cluster.mutations)

        with pytest.raises(AlreadyPresentError):
            unit.deploy(fake_cluster, ui, options.for_deployment("workloads"))

        assert fake_cluster.mutations == mutations

    def test_existing_app_ingress_namespace_is_left_alone(self, fake_cluster, ui, tool_run, options):
        """A user's app-ingress namespace is neither adopted nor deleted."""
        fake_cluster.seed_credentials()
        fake_cluster.add_foreign_namespace("app-ingress")
        mutations = list(fake_cluster.mutations)
        unit = Workloads(timeout=5)

        with pytest.raises(AlreadyPresentError, match="app-ingress"):
            unit.deploy(fake_cluster, ui, options.for_deployment("workloads"))

        assert fake_cluster.mutations == mutations
        assert tool_run.call_count == 0
        assert OWNER_LABEL_KEY not in fake_cluster.namespaces["app-ingress"]

        unit.delete(fake_cluster, ui)

        assert fake_cluster.namespace_exists("app-ingress")

    def test_app_ingress_namespace_created_owned(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()

        Workloads(timeout=5).deploy(fake_cluster, ui, options.for_deployment("workloads"))

        assert ("create_namespace", "app-ingress") in fake_cluster.mutations
        assert ("label_namespace", "app-ingress") not in fake_cluster.mutations
        assert fake_cluster.namespaces["app-ingress"]["name"] == "app-ingress"

    def test_delete_stops_when_workloads_namespace_not_owned(self, fake_cluster, ui):
        fake_cluster.add_foreign_namespace("paasctl-workloads")
        fake_cluster.namespaces["app-ingress"] = {OWNER_LABEL_KEY: OWNER_LABEL_VALUE}

        Workloads(timeout=5).delete(fake_cluster, ui)

        assert fake_cluster.mutations == []

    def test_delete_removes_both_namespaces(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()
        unit = Workloads(timeout=5)
        unit.deploy(fake_cluster, ui, options.for_deployment("workloads"))

        unit.delete(fake_cluster, ui)

        assert not fake_cluster.namespace_exists("paasctl-workloads")
        assert not fake_cluster.namespace_exists("app-ingress")


class TestTekton:
    """Tests for the Tekton unit."""

    def test_deploy(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()

        Tekton(timeout=5).deploy(fake_cluster, ui, options.for_deployment("tekton"))

        assert commands(tool_run)[0][-1].endswith("/release.yaml")
        assert fake_cluster.namespace_exists_and_owned("tekton-pipelines")
        assert fake_cluster.namespace_exists_and_owned("tekton-staging")
        assert ("tekton-staging", "registry-creds") in fake_cluster.secrets

        manifests = list(yaml.safe_load_all(tool_run.call_args.kwargs["input"]))
        names = {(m["kind"], m["metadata"]["name"]) for m in manifests}
        assert ("Pipeline", "staging-pipeline") in names
        assert ("ServiceAccount", "staging-triggers-admin") in names

    def test_upgrade_reapplies_release(self, fake_cluster, ui, tool_run, options):
        fake_cluster.namespaces["tekton-pipelines"] = {OWNER_LABEL_KEY: OWNER_LABEL_VALUE}

        Tekton(timeout=5).upgrade(fake_cluster, ui, options.for_deployment("tekton"))

        assert commands(tool_run)[0][-1].endswith("/release.yaml")

    def test_delete(self, fake_cluster, ui, tool_run, options):
        fake_cluster.seed_credentials()
        unit = Tekton(timeout=5)
        unit.deploy(fake_cluster, ui, options.for_deployment("tekton"))

        unit.delete(fake_cluster, ui)

        assert not fake_cluster.namespace_exists("tekton-staging")
        assert not fake_cluster.namespace_exists("tekton-pipelines")
        assert "delete" in commands(tool_run)[-1]


class TestServiceCatalog:
    """Tests for the ServiceCatalog unit."""

    def test_deploy_waits_for_both_components(self, fake_cluster, ui, tool_run, options):
        ServiceCatalog(timeout=5).deploy(fake_cluster, ui, options.for_deployment("service-catalog"))

        running = [wait for wait in fake_cluster.waits if wait[0] == "pods_running"]
        assert len(running) == 2


class TestCertManager:
    """Tests for the CertManager unit."""

    def test_deploy_creates_cluster_issuer(self, fake_cluster, ui, tool_run, options):
        options.set("cert-manager.email", "ops@example.com")

        CertManager(timeout=5).deploy(fake_cluster, ui, options.for_deployment("cert-manager"))

        issuer = fake_cluster.custom_objects[("clusterissuers", None, "letsencrypt-production")]
        assert issuer["spec"]["acme"]["email"] == "ops@example.com"
        assert fake_cluster.namespace_exists_and_owned("cert-manager")

    def test_existing_cluster_issuer_is_fine(self, fake_cluster, ui, tool_run, options):
        fake_cluster.custom_objects[("clusterissuers", None, "letsencrypt-production")] = {}

        CertManager(timeout=5).deploy(fake_cluster, ui, options.for_deployment("cert-manager"))

    def test_delete_skips_when_absent(self, fake_cluster, ui, tool_run):
        CertManager(timeout=5).delete(fake_cluster, ui)

        assert tool_run.call_count == 0
