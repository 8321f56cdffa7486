import logging
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from cd_homelab.k8s.secrets import SealedSecretsManager
from cd_homelab.runtime import PODMAN, PodmanManager
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

# Podman does not always bring the load balancer back with the cluster
SERVERLB_SETTLE_SECONDS = 5


class K3dCluster:
    """Lifecycle of the local k3d cluster."""

    def __init__(self, runner: CommandRunner, name: str, config_path: Path,
                 node_timeout: str = "60s"):
        """Initialize the cluster manager.

        Args:
            runner: Runner whose environment carries DOCKER_HOST for Podman
            name: k3d cluster name
            config_path: k3d cluster config file
            node_timeout: How long to wait for nodes after a start
        """
        self.runner = runner
        self.name = name
        self.config_path = config_path
        self.node_timeout = node_timeout

    def _run(self, cmd: List[str], action: str) -> bool:
        try:
            self.runner.run(cmd)
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to {action}: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error(f"{cmd[0]} command not found. Please ensure it is installed and in PATH")
            return False

    def _run_ignoring(self, cmd: List[str], action: str) -> None:
        try:
            self.runner.run(cmd)
        except subprocess.CalledProcessError as e:
            logger.warning(f"Ignoring failure to {action}: {error_output(e)}")
        except FileNotFoundError:
            logger.warning(f"Ignoring failure to {action}: {cmd[0]} not found")

    def create(self) -> bool:
        if not self.config_path.exists():
            logger.error(f"k3d config not found at {self.config_path}")
            return False
        logger.info(f"Creating k3d cluster '{self.name}'...")
        return self._run(["k3d", "cluster", "create", "--config", str(self.config_path)],
                         f"create cluster {self.name}")

    def delete(self) -> bool:
        logger.warning(f"Deleting k3d cluster '{self.name}'...")
        self._run_ignoring(["k3d", "cluster", "delete", self.name], f"delete cluster {self.name}")
        return True

    def start(self, runtime: str, podman: Optional[PodmanManager] = None) -> bool:
        """Start the cluster and wait until every node reports Ready."""
        logger.info(f"Starting k3d cluster '{self.name}'...")
        self._run_ignoring(["k3d", "cluster", "start", self.name], f"start cluster {self.name}")

        if runtime == PODMAN and podman is not None:
            logger.info("Ensuring serverlb is running (Podman workaround)...")
            podman.start_container(f"k3d-{self.name}-serverlb")
            time.sleep(SERVERLB_SETTLE_SECONDS)

        logger.info("Waiting for nodes to be ready...")
        if not self.wait_for_nodes():
            logger.warning("Some nodes not ready. Run 'homelab cluster-restart' if using Podman.")
            return False
        return True

    def wait_for_nodes(self) -> bool:
        try:
            self.runner.run([
                "kubectl", "wait", "--for=condition=Ready", "nodes", "--all",
                f"--timeout={self.node_timeout}"
            ])
            return True
        except subprocess.CalledProcessError as e:
            logger.debug(f"kubectl wait failed: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("kubectl command not found. Please ensure kubectl is installed and in PATH")
            return False

    def stop(self) -> bool:
        logger.info(f"Stopping k3d cluster '{self.name}'...")
        return self._run(["k3d", "cluster", "stop", self.name], f"stop cluster {self.name}")

    def status(self) -> bool:
        return self.runner.stream(["k3d", "cluster", "list"]) == 0

    def restart(self, sealed_secrets: SealedSecretsManager, backup_path: Path) -> bool:
        """Recreate the cluster, carrying the Sealed Secrets keys across."""
        logger.warning("Recreating cluster (preserves GitOps state via ArgoCD)...")
        if sealed_secrets.has_keys():
            if not sealed_secrets.backup(backup_path):
                raise RuntimeError("Refusing to delete the cluster: Sealed Secrets key backup failed")

        self.delete()
        if not self.create():
            return False

        if backup_path.exists():
            if not sealed_secrets.restore(backup_path):
                logger.error("Cluster recreated but keys were not restored. Retry with 'homelab sealed-secrets-restore'")
                return False

        logger.info("Cluster recreated. ArgoCD will resync automatically.")
        return True

    def merge_kubeconfig(self) -> bool:
        logger.info("Merging kubeconfig to ~/.kube/config...")
        merged = self._run([
            "k3d", "kubeconfig", "merge", self.name,
            "--kubeconfig-merge-default", "--kubeconfig-switch-context"
        ], "merge kubeconfig")
        if merged:
            logger.info(f"Context switched to k3d-{self.name}")
        return merged
