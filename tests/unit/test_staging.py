"""Unit tests for application staging."""

from __future__ import annotations

import re

import pytest

from paasctl.errors import RemoteAPIError
from paasctl.staging import App, Stager, new_pipeline_run, uid


@pytest.fixture
def app():
    return App(
        name="foo",
        namespace="workspace",
        revision="6e2a1f0",
        git_url="http://gitea-http.gitea:3000/workspace/foo",
        image_url="registry.paasctl-registry:5000/apps/foo:6e2a1f0",
    )


class TestUid:
    """Tests for uid."""

    def test_sixteen_hex_characters(self):
        assert re.fullmatch(r"[0-9a-f]{16}", uid())

    def test_values_differ(self):
        assert len({uid() for _ in range(20)}) == 20


class TestPipelineRun:
    """Tests for new_pipeline_run."""

    def test_structure(self, app):
        run = new_pipeline_run("0123456789abcdef", app)

        assert run["metadata"]["name"] == "foo0123456789abcdef"
        assert run["metadata"]["namespace"] == "tekton-staging"
        assert run["metadata"]["labels"]["app.kubernetes.io/name"] == "foo"
        assert run["metadata"]["labels"]["app.kubernetes.io/part-of"] == "workspace"
        assert run["spec"]["serviceAccountName"] == "staging-triggers-admin"
        assert run["spec"]["pipelineRef"] == {"name": "staging-pipeline"}

        claim = run["spec"]["workspaces"][0]["volumeClaimTemplate"]["spec"]
        assert claim["accessModes"] == ["ReadWriteOnce"]
        assert claim["resources"]["requests"]["storage"] == "1Gi"

        resources = {r["name"]: r["resourceSpec"] for r in run["spec"]["resources"]}
        assert resources["source-repo"]["type"] == "git"
        assert {"name": "revision", "value": "6e2a1f0"} in resources["source-repo"]["params"]
        assert {"name": "url", "value": app.git_url} in resources["source-repo"]["params"]
        assert resources["image"]["params"] == [{"name": "url", "value": app.image_url}]


class TestStager:
    """Tests for Stager.stage."""

    def test_stage_twice(self, fake_cluster, app):
        """Test two stages get distinct runs and the second certificate is already there."""
        stager = Stager(fake_cluster, "10.0.0.1.omg.howdoi.website")

        first = stager.stage(app)
        second = stager.stage(app)

        assert first.pipeline_run_name != second.pipeline_run_name
        assert first.pipeline_run_name.startswith("foo")
        assert second.pipeline_run_name.startswith("foo")
        assert first.certificate_created is True
        assert second.certificate_created is False

        runs = [key for key in fake_cluster.custom_objects if key[0] == "pipelineruns"]
        assert len(runs) == 2

    def test_synthesized_domain_uses_local_certificate(self, fake_cluster, app):
        result = Stager(fake_cluster, "10.0.0.1.omg.howdoi.website").stage(app)

        certificate = fake_cluster.custom_objects[("quarkssecrets", "workspace", "foo")]
        request = certificate["spec"]["request"]["certificate"]
        assert result.certificate["kind"] == "QuarksSecret"
        assert request["CARef"]["name"] == "ca-cert"
        assert request["alternativeNames"] == ["foo.10.0.0.1.omg.howdoi.website"]
        assert certificate["spec"]["secretName"] == "foo-tls"

    def test_real_domain_uses_production_issuer(self, fake_cluster, app):
        Stager(fake_cluster, "paas.example.com").stage(app)

        certificate = fake_cluster.custom_objects[("certificates", "workspace", "foo")]
        assert certificate["spec"]["dnsNames"] == ["foo.paas.example.com"]
        assert certificate["spec"]["issuerRef"] == {
            "name": "letsencrypt-production",
            "kind": "ClusterIssuer",
        }
        assert certificate["spec"]["secretName"] == "foo-tls"

    def test_certificate_errors_propagate(self, fake_cluster, app):
        original = fake_cluster.create_custom_object

        def create(group, version, plural, body, namespace=None):
            if plural == "certificates":
                raise RemoteAPIError(message="create certificates foo failed: HTTP 403", status=403)
            return original(group, version, plural, body, namespace=namespace)

        fake_cluster.create_custom_object = create

        with pytest.raises(RemoteAPIError):
            Stager(fake_cluster, "paas.example.com").stage(app)
