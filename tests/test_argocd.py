import pytest
from kubernetes.client.rest import ApiException

from cd_homelab.k8s.argocd import ADMIN_SECRET, ArgoCDManager


@pytest.fixture
def argocd(runner, kube):
    return ArgoCDManager(runner, kube, namespace="argocd", port=8080)


def test_credentials(argocd, kube):
    kube.secret_values[("argocd", ADMIN_SECRET, "password")] = "s3cret"
    assert argocd.get_credentials() == {"username": "admin", "password": "s3cret"}


def test_credentials_when_secret_deleted(argocd):
    assert argocd.get_credentials()["password"] == "empty-password"


def test_credentials_on_api_error(argocd, kube, monkeypatch):
    def unauthorized(name, namespace, key):
        raise ApiException(status=401, reason="Unauthorized")

    monkeypatch.setattr(kube, "read_secret_value", unauthorized)
    assert argocd.get_credentials()["password"].startswith("unknown")


def test_install_uses_chart_values(argocd, runner, kube):
    assert argocd.install()
    assert "argocd" in kube.namespaces
    install = runner.commands[-1]
    assert install.startswith("helm upgrade --install argocd argo/argo-cd --namespace argocd")
    assert "--set applicationSet.enabled=true" in install
    assert install.endswith("--timeout 10m --wait")


def test_port_forward_command(runner, kube):
    argocd = ArgoCDManager(runner, kube, namespace="gitops", port=9090)
    assert argocd.port_forward_command() == [
        "kubectl", "port-forward", "svc/argocd-server", "-n", "gitops", "9090:443"
    ]


def test_apply_repository_requires_secret_store(argocd, runner, tmp_path):
    manifest = tmp_path / "repo.yaml"
    manifest.write_text("kind: ExternalSecret\n")

    assert not argocd.apply_repository(manifest)
    assert runner.calls == []


def test_apply_repository_requires_manifest(argocd, kube, runner, tmp_path):
    kube.cluster_objects.add(("clustersecretstores", "azure-keyvault-store"))
    assert not argocd.apply_repository(tmp_path / "missing.yaml")
    assert runner.calls == []


def test_apply_repository(argocd, kube, runner, tmp_path, no_sleep):
    kube.cluster_objects.add(("clustersecretstores", "azure-keyvault-store"))
    manifest = tmp_path / "repo.yaml"
    manifest.write_text("kind: ExternalSecret\n")

    assert argocd.apply_repository(manifest)

    assert runner.commands == [
        f"kubectl apply -f {manifest}",
        "kubectl get externalsecret -n argocd",
    ]
    assert no_sleep["now"] == 5


class TestChangePassword:
    def test_requires_new_password(self, argocd, runner):
        assert not argocd.change_password(None)
        assert not argocd.change_password("")
        assert runner.calls == []

    def test_requires_argocd_cli(self, argocd, runner):
        runner.missing.add("argocd")
        assert not argocd.change_password("new-pass")
        assert runner.calls == []

    def test_requires_initial_secret(self, argocd, runner):
        assert not argocd.change_password("new-pass")
        assert runner.spawned == []

    def test_logs_in_and_updates_through_port_forward(self, argocd, kube, runner):
        kube.secret_values[("argocd", ADMIN_SECRET, "password")] = "initial"

        assert argocd.change_password("new-pass")

        assert runner.commands == [
            "kubectl port-forward svc/argocd-server -n argocd 8080:443",
            "argocd login localhost:8080 --username admin --password initial --insecure",
            "argocd account update-password --current-password initial --new-password new-pass",
        ]
        assert runner.spawned[0].terminated

    def test_port_forward_stopped_on_failure(self, argocd, kube, runner):
        kube.secret_values[("argocd", ADMIN_SECRET, "password")] = "initial"
        runner.respond("argocd login", returncode=20, stderr="rpc error: Unauthenticated")

        assert not argocd.change_password("new-pass")

        assert not runner.ran("argocd account")
        assert runner.spawned[0].terminated
