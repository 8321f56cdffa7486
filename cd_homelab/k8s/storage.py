import logging
import subprocess
from pathlib import Path

from cd_homelab.k8s.api import KubeApi
from cd_homelab.k8s.helm import CSI_DRIVER_NFS, HelmComponent
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

DRIVER_SELECTOR = "app.kubernetes.io/instance=csi-driver-nfs"


class NFSStorage(HelmComponent):
    """NFS CSI driver and the StorageClass backed by it."""

    def __init__(self, runner: CommandRunner, kube: KubeApi, storageclass: Path):
        super().__init__(CSI_DRIVER_NFS, runner, kube)
        self.storageclass = storageclass

    def install(self) -> bool:
        logger.info("Installing NFS CSI driver...")
        return super().install()

    def apply_storageclass(self) -> bool:
        logger.info("Applying NFS StorageClass...")
        if not self.storageclass.exists():
            logger.error(f"StorageClass manifest not found: {self.storageclass}")
            return False
        try:
            self.runner.run(["kubectl", "apply", "-f", str(self.storageclass)])
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to apply StorageClass: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("kubectl command not found. Please ensure kubectl is installed and in PATH")
            return False

    def status(self) -> bool:
        return self.runner.stream([
            "kubectl", "-n", self.namespace, "get", "pods", "-l", DRIVER_SELECTOR
        ]) == 0

    def logs(self, tail: int = 50) -> bool:
        return self.runner.stream([
            "kubectl", "-n", self.namespace, "logs", "-l", DRIVER_SELECTOR, f"--tail={tail}"
        ]) == 0
