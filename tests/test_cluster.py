import pytest

from cd_homelab.k8s.cluster import K3dCluster
from cd_homelab.runtime import PodmanManager


class FakeSealedSecrets:
    def __init__(self, keys=True, backup_ok=True):
        self.keys = keys
        self.backup_ok = backup_ok
        self.events = []

    def has_keys(self):
        return self.keys

    def backup(self, path):
        self.events.append("backup")
        if self.backup_ok:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("kind: List\nitems: []\n")
        return self.backup_ok

    def restore(self, path):
        self.events.append("restore")
        return True


@pytest.fixture
def cluster(runner, settings):
    return K3dCluster(runner, settings.cluster_name, settings.k3d_config)


def test_create_uses_config(cluster, runner, settings):
    assert cluster.create()
    assert runner.commands == [f"k3d cluster create --config {settings.k3d_config}"]


def test_create_requires_config(runner, tmp_path):
    cluster = K3dCluster(runner, "lab", tmp_path / "missing.yaml")
    assert not cluster.create()
    assert runner.calls == []


def test_delete_ignores_failure(cluster, runner):
    runner.respond("k3d cluster delete", returncode=1, stderr="No nodes found for cluster")
    assert cluster.delete()


def test_start_with_podman_restarts_serverlb(cluster, runner, no_sleep):
    runner.respond("k3d cluster start", returncode=1)

    assert cluster.start("podman", podman=PodmanManager(runner, "linux"))

    assert runner.commands == [
        "k3d cluster start homelab-nix",
        "podman start k3d-homelab-nix-serverlb",
        "kubectl wait --for=condition=Ready nodes --all --timeout=60s",
    ]
    assert no_sleep["now"] == 5


def test_start_with_docker_skips_serverlb(cluster, runner):
    assert cluster.start("docker")
    assert not runner.ran("podman")


def test_start_reports_unready_nodes(cluster, runner):
    runner.respond("kubectl wait", returncode=1, stderr="timed out waiting for the condition")
    assert not cluster.start("docker")


def test_merge_kubeconfig(cluster, runner):
    assert cluster.merge_kubeconfig()
    assert runner.commands == [
        "k3d kubeconfig merge homelab-nix --kubeconfig-merge-default --kubeconfig-switch-context"
    ]


def test_restart_preserves_sealed_secrets_keys(cluster, runner, tmp_path):
    sealed = FakeSealedSecrets(keys=True)
    backup = tmp_path / ".secrets" / "sealed-secrets-keys.yaml"

    assert cluster.restart(sealed, backup)

    assert sealed.events == ["backup", "restore"]
    assert runner.commands[0].startswith("k3d cluster delete")
    assert runner.commands[1].startswith("k3d cluster create")


def test_restart_without_keys_or_backup(cluster, runner, tmp_path):
    sealed = FakeSealedSecrets(keys=False)

    assert cluster.restart(sealed, tmp_path / "keys.yaml")

    assert sealed.events == []


def test_restart_refuses_when_backup_fails(cluster, runner, tmp_path):
    sealed = FakeSealedSecrets(keys=True, backup_ok=False)

    with pytest.raises(RuntimeError, match="backup failed"):
        cluster.restart(sealed, tmp_path / "keys.yaml")

    assert not runner.ran("k3d cluster delete")
