import logging
import os
from typing import Optional

from cd_homelab.config import HomelabSettings
from cd_homelab.k8s import (
    ArgoCDAppWaiter, ArgoCDManager, AzureKeyVault, Bootstrapper, ClusterInspector,
    ExternalSecretsManager, K3dCluster, KubeApi, NFSStorage, SealedSecretsManager
)
from cd_homelab.k8s.argocd import ADMIN_SECRET
from cd_homelab.runtime import (
    DOCKER, PODMAN, DockerManager, PodmanManager, detect_runtime, docker_env,
    podman_socket, runtime_hint
)
from cd_homelab.utils.commands import CommandRunner
from cd_homelab.utils.info import EnvironmentInfo

logger = logging.getLogger(__name__)


def _require(ok: bool, message: str) -> None:
    if not ok:
        raise RuntimeError(message)


class HomelabTasks:
    """One method per recipe of the homelab task runner.

    Composite recipes call their parts in order and stop at the first
    failure, raising RuntimeError.
    """

    def __init__(self, settings: HomelabSettings, runner: Optional[CommandRunner] = None,
                 kube: Optional[KubeApi] = None):
        self.settings = settings
        self.runner = runner or CommandRunner(kubeconfig=settings.kubeconfig)
        self.kube = kube or KubeApi(kubeconfig=settings.kubeconfig)
        self._k3d_runner = runner

        s = settings
        self.docker = DockerManager(self.runner, s.os_name)
        self.podman = PodmanManager(
            self.runner, s.os_name, cpus=s.podman_cpus, memory=s.podman_memory,
            disk=s.podman_disk, nfs_volume=s.nfs_volume
        )
        self.inspector = ClusterInspector(self.runner)
        self.argocd = ArgoCDManager(self.runner, self.kube, namespace=s.argocd_namespace, port=s.argocd_port)
        self.sealed_secrets = SealedSecretsManager(self.runner, self.kube, namespace=s.sealed_secrets_namespace)
        self.external_secrets = ExternalSecretsManager(self.runner, self.kube, namespace=s.external_secrets_namespace)
        self.nfs = NFSStorage(self.runner, self.kube, s.nfs_storageclass)
        self.azure = AzureKeyVault(
            self.runner, s.azure_credentials_manifest, s.azure_store_manifest,
            external_secrets_namespace=s.external_secrets_namespace,
            sealed_secrets_namespace=s.sealed_secrets_namespace
        )
        self.bootstrapper = Bootstrapper(
            self.runner, self.argocd, self.sealed_secrets, self.external_secrets,
            s.argocd_projects_manifest, s.root_app_manifest, argocd_url=s.argocd_url
        )
        self.info_provider = EnvironmentInfo(self.runner, s)
        self._cluster: Optional[K3dCluster] = None

    @property
    def cluster(self) -> K3dCluster:
        """k3d needs DOCKER_HOST pointed at the Podman socket, resolved on first use."""
        if self._cluster is None:
            runner = self._k3d_runner
            if runner is None:
                s = self.settings
                hint = runtime_hint(s.os_name, s.runtime_override)
                extra_env = docker_env(hint, podman_socket(self.runner, s.os_name)) if hint == PODMAN else {}
                runner = CommandRunner(kubeconfig=s.kubeconfig, extra_env=extra_env)
            self._cluster = K3dCluster(runner, self.settings.cluster_name, self.settings.k3d_config)
        return self._cluster

    def detected_runtime(self) -> str:
        return detect_runtime(self.runner, self.settings.os_name, self.settings.runtime_override)

    # Quick start

    def setup(self) -> None:
        self.runtime_start()
        self.cluster_create()
        self.kubeconfig()
        logger.info("Setup complete! Run 'homelab status' to verify.")

    def clean(self) -> None:
        self.cluster_delete()
        logger.info("Cluster deleted. Runtime preserved.")

    def clean_all(self) -> None:
        self.cluster_delete()
        if self.settings.is_macos:
            self.podman_rm()
        logger.warning("All resources deleted.")

    def init_podman(self) -> None:
        self.podman_init()
        if self.settings.is_macos:
            self.docker_context()
        logger.info("Podman initialized. Run 'homelab setup' to create the cluster.")

    def init_docker(self) -> None:
        _require(self.docker.verify(), "Docker is not running")

    # Lifecycle

    def start(self) -> None:
        self.runtime_start()
        self.cluster_start()
        logger.info(f"Homelab started. Runtime: {self.detected_runtime()}")

    def stop(self) -> None:
        self.cluster_stop()
        self.runtime_stop()
        logger.info("Homelab stopped.")

    def restart(self) -> None:
        self.stop()
        self.start()
        logger.info("Homelab restarted.")

    def status(self) -> None:
        self.runtime_status()
        self.cluster_status()
        self.nodes()
        print()
        print(f"Kubeconfig: {self.settings.kubeconfig_path}")

    # Runtime

    def runtime_start(self) -> None:
        runtime = self.detected_runtime()
        logger.info(f"OS: {self.settings.os_name} | Runtime: {runtime}")
        if runtime == DOCKER:
            self.docker_start()
        elif runtime == PODMAN:
            self.podman_start()
        elif self.settings.is_macos:
            raise RuntimeError("No runtime detected. Install Docker Desktop (recommended) or Podman.")
        else:
            logger.warning("For Podman: sudo dnf install podman && sudo systemctl enable --now podman.socket")
            raise RuntimeError("No runtime detected. Install Podman (recommended) or Docker.")

    def runtime_stop(self) -> None:
        runtime = self.detected_runtime()
        if runtime == DOCKER:
            self.docker_stop()
        elif runtime == PODMAN:
            self.podman_stop()

    def runtime_status(self) -> None:
        runtime = self.detected_runtime()
        logger.info(f"OS: {self.settings.os_name} | Runtime: {runtime}")
        if runtime == DOCKER:
            self.docker_status()
        elif runtime == PODMAN:
            self.podman_status()
        else:
            logger.error("No runtime detected.")

    # Podman

    def podman_init(self) -> None:
        _require(self.podman.init(), "Failed to initialize Podman")

    def podman_start(self) -> None:
        self.podman.start()

    def podman_stop(self) -> None:
        self.podman.stop()

    def podman_status(self) -> None:
        self.podman.status()

    def podman_rm(self) -> None:
        self.podman.remove()

    # Docker

    def docker_start(self) -> None:
        _require(self.docker.start(), "Failed to start Docker")

    def docker_stop(self) -> None:
        self.docker.stop()

    def docker_status(self) -> None:
        self.docker.status()

    def docker_context(self) -> None:
        _require(self.docker.use_default_context(), "Failed to switch Docker context")

    # Cluster

    def cluster_create(self) -> None:
        _require(self.cluster.create(), f"Failed to create cluster '{self.settings.cluster_name}'")

    def cluster_delete(self) -> None:
        self.cluster.delete()

    def cluster_start(self) -> None:
        ready = self.cluster.start(self.detected_runtime(), podman=self.podman)
        _require(ready, "Cluster nodes did not become ready")

    def cluster_stop(self) -> None:
        _require(self.cluster.stop(), f"Failed to stop cluster '{self.settings.cluster_name}'")

    def cluster_status(self) -> None:
        self.cluster.status()

    def cluster_restart(self) -> None:
        _require(
            self.cluster.restart(self.sealed_secrets, self.settings.sealed_secrets_backup),
            "Cluster restart did not complete"
        )

    # Kubeconfig

    def kubeconfig(self) -> None:
        _require(self.cluster.merge_kubeconfig(), "Failed to merge kubeconfig")

    def kubeconfig_show(self) -> None:
        print(self.settings.kubeconfig_path)

    # Storage

    def nfs_install(self) -> None:
        _require(self.nfs.install(), "Failed to install NFS CSI driver")
        logger.info("NFS CSI driver installed.")

    def nfs_storageclass(self) -> None:
        _require(self.nfs.apply_storageclass(), "Failed to apply NFS StorageClass")

    def nfs_status(self) -> None:
        self.nfs.status()

    def nfs_logs(self) -> None:
        self.nfs.logs()

    # Resources

    def nodes(self) -> None:
        self.inspector.nodes()

    def pods(self) -> None:
        self.inspector.pods()

    def services(self) -> None:
        self.inspector.services()

    def pvc(self) -> None:
        self.inspector.pvcs()

    def sc(self) -> None:
        self.inspector.storage_classes()

    def ingress(self) -> None:
        self.inspector.ingresses()

    def events(self) -> None:
        self.inspector.events()

    # Debugging

    def logs(self, pod: str, ns: str = "default") -> None:
        self.inspector.logs(pod, ns)

    def shell(self, pod: str, ns: str = "default") -> None:
        self.inspector.shell(pod, ns)

    def debug_pod(self) -> None:
        self.inspector.debug_pod()

    def top_nodes(self) -> None:
        self.inspector.top_nodes()

    def top_pods(self) -> None:
        self.inspector.top_pods()

    def describe(self, resource: str, ns: str = "default") -> None:
        self.inspector.describe(resource, ns)

    def ns_events(self, ns: str = "default") -> None:
        self.inspector.namespace_events(ns)

    # ArgoCD

    def argocd_install(self) -> None:
        _require(self.argocd.install(), "Failed to install ArgoCD")

    def argocd_uninstall(self) -> None:
        logger.warning("Uninstalling ArgoCD...")
        self.argocd.uninstall()

    def argocd_password(self) -> None:
        password = self.argocd.get_admin_password()
        _require(bool(password), f"Secret {ADMIN_SECRET} not found in namespace {self.argocd.namespace}")
        logger.info("ArgoCD admin password:")
        print(password)

    def argocd_port_forward(self) -> None:
        self.argocd.port_forward()

    def argocd_ui(self) -> None:
        self.argocd_password()
        self.argocd_port_forward()

    def argocd_status(self) -> None:
        self.argocd.status()

    def argocd_repo_apply(self) -> None:
        _require(
            self.argocd.apply_repository(self.settings.argocd_repo_manifest),
            "Failed to apply ArgoCD repository configuration"
        )

    def argocd_repo_status(self) -> None:
        self.argocd.repository_status()

    def argocd_change_password(self) -> None:
        _require(
            self.argocd.change_password(os.environ.get("ARGOCD_ADMIN_PASSWORD")),
            "Failed to change ArgoCD admin password"
        )

    def argocd_app_wait(self, app: str, timeout: int = 1200) -> None:
        waiter = ArgoCDAppWaiter(self.runner, namespace=self.settings.argocd_namespace)
        _require(waiter.wait_for_app_ready(app, timeout_seconds=timeout),
                 f"Application {app} did not become ready")

    # Sealed Secrets

    def sealed_secrets_install(self) -> None:
        logger.info("Installing Sealed Secrets...")
        _require(self.sealed_secrets.install(), "Failed to install Sealed Secrets")

    def sealed_secrets_uninstall(self) -> None:
        logger.warning("Uninstalling Sealed Secrets...")
        self.sealed_secrets.uninstall()

    def sealed_secrets_status(self) -> None:
        self.sealed_secrets.status()

    def sealed_secrets_cert(self, output: Optional[str] = None) -> None:
        logger.info("Fetching Sealed Secrets certificate...")
        pem = self.sealed_secrets.fetch_cert()
        _require(bool(pem), "Failed to fetch Sealed Secrets certificate")

        details = self.sealed_secrets.describe_cert(pem)
        logger.info(f"Subject: {details['subject']}")
        logger.info(f"Valid until: {details['not_after']:%Y-%m-%d %H:%M} UTC")
        if details["expired"]:
            logger.warning("Certificate has expired; the controller should have rotated its key")

        if output:
            path = self.settings.path(output)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(pem)
            logger.info(f"Certificate written to {path}")
        else:
            print(pem.rstrip())

    def sealed_secrets_backup(self) -> None:
        _require(self.sealed_secrets.backup(self.settings.sealed_secrets_backup),
                 "No Sealed Secrets keys were backed up")

    def sealed_secrets_restore(self) -> None:
        backup = self.settings.sealed_secrets_backup
        if not backup.exists():
            logger.warning(f"No backup found at {backup}")
            return
        _require(self.sealed_secrets.restore(backup), "Failed to restore Sealed Secrets keys")

    # External Secrets

    def external_secrets_install(self) -> None:
        logger.info("Installing External Secrets Operator...")
        _require(self.external_secrets.install(), "Failed to install External Secrets Operator")

    def external_secrets_uninstall(self) -> None:
        logger.warning("Uninstalling External Secrets Operator...")
        self.external_secrets.uninstall()

    def external_secrets_status(self) -> None:
        self.external_secrets.status()

    # Azure Key Vault

    def azure_credentials_create(self) -> None:
        _require(
            self.azure.create_credentials(os.environ.get("AZURE_CLIENT_ID"), os.environ.get("AZURE_CLIENT_SECRET")),
            "Failed to create Azure Key Vault credentials"
        )

    def azure_credentials_apply(self) -> None:
        _require(self.azure.apply_credentials(), "Failed to apply Azure Key Vault credentials")

    def azure_store_apply(self) -> None:
        _require(self.azure.apply_store(), "Failed to apply Azure Key Vault ClusterSecretStore")

    def azure_test(self) -> None:
        self.azure.test()

    # Bootstrap

    def bootstrap_secrets(self) -> None:
        _require(self.bootstrapper.install_secrets(), "Failed to install secrets management stack")

    def bootstrap_apps(self, wait: bool = False) -> None:
        _require(self.bootstrapper.apply_apps(wait=wait), "Failed to apply App of Apps")

    def bootstrap_all(self, wait: bool = False) -> None:
        _require(self.bootstrapper.bootstrap_all(wait=wait), "Bootstrap failed")

    def bootstrap_status(self) -> None:
        self.bootstrapper.status()

    # Info

    def info(self) -> None:
        print(self.info_provider.summary())

    def tailscale_ip(self) -> None:
        print(self.info_provider.tailscale_ip())

    def git_init(self) -> None:
        _require(self.info_provider.git_init(), "Failed to initialize git repository")
