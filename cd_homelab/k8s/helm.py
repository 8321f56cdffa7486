import logging
import subprocess
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

from cd_homelab.k8s.api import KubeApi
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HelmChart:
    """A Helm release the homelab installs directly, before ArgoCD takes over."""
    repo_name: str
    repo_url: str
    chart: str
    release: str
    namespace: str
    values: Dict[str, str] = field(default_factory=dict)
    version: Optional[str] = None
    timeout: Optional[str] = None
    wait: bool = False

    def in_namespace(self, namespace: str) -> 'HelmChart':
        return replace(self, namespace=namespace)


ARGO_CD = HelmChart(
    repo_name="argo",
    repo_url="https://argoproj.github.io/argo-helm",
    chart="argo/argo-cd",
    release="argocd",
    namespace="argocd",
    values={
        "server.service.type": "ClusterIP",
        "server.insecure": "true",
        "applicationSet.enabled": "true"
    },
    timeout="10m",
    wait=True
)

SEALED_SECRETS = HelmChart(
    repo_name="sealed-secrets",
    repo_url="https://bitnami-labs.github.io/sealed-secrets",
    chart="sealed-secrets/sealed-secrets",
    release="sealed-secrets",
    namespace="sealed-secrets",
    values={"fullnameOverride": "sealed-secrets"}
)

EXTERNAL_SECRETS = HelmChart(
    repo_name="external-secrets",
    repo_url="https://charts.external-secrets.io",
    chart="external-secrets/external-secrets",
    release="external-secrets",
    namespace="external-secrets",
    values={
        "installCRDs": "true",
        "fullnameOverride": "external-secrets"
    }
)

CSI_DRIVER_NFS = HelmChart(
    repo_name="csi-driver-nfs",
    repo_url="https://raw.githubusercontent.com/kubernetes-csi/csi-driver-nfs/master/charts",
    chart="csi-driver-nfs/csi-driver-nfs",
    release="csi-driver-nfs",
    namespace="kube-system",
    values={"externalSnapshotter.enabled": "false"}
)

CHARTS = {
    "argo-cd": ARGO_CD,
    "sealed-secrets": SEALED_SECRETS,
    "external-secrets": EXTERNAL_SECRETS,
    "csi-driver-nfs": CSI_DRIVER_NFS
}

# Namespaces that must survive an uninstall
PROTECTED_NAMESPACES = {"default", "kube-system", "kube-public", "kube-node-lease"}


class HelmOperations:
    def __init__(self, runner: CommandRunner):
        """Initialize Helm operations.

        Args:
            runner: Command runner carrying the kubeconfig environment
        """
        self.runner = runner

    def add_repo(self, name: str, url: str) -> bool:
        """Add a Helm repository."""
        try:
            self.runner.run(["helm", "repo", "add", name, url])
            return True
        except subprocess.CalledProcessError as e:
            if "already exists" in error_output(e):
                logger.info(f"Helm repo {name} already exists")
                return True
            logger.error(f"Failed to add Helm repo: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("helm command not found. Please ensure Helm is installed and in PATH")
            return False

    def update_repos(self) -> bool:
        """Update all Helm repositories."""
        try:
            self.runner.run(["helm", "repo", "update"])
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to update Helm repos: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("helm command not found. Please ensure Helm is installed and in PATH")
            return False

    def upgrade_install(
        self,
        release: str,
        chart: str,
        version: Optional[str] = None,
        namespace: str = "default",
        create_namespace: bool = False,
        values_file: Optional[Path] = None,
        set_values: Optional[Dict[str, str]] = None,
        timeout: Optional[str] = None,
        wait: bool = False
    ) -> bool:
        """Install or upgrade a Helm release."""
        cmd = self.upgrade_install_command(
            release, chart, version=version, namespace=namespace,
            create_namespace=create_namespace, values_file=values_file,
            set_values=set_values, timeout=timeout, wait=wait
        )

        try:
            self.runner.run(cmd)
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to install/upgrade Helm release: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("helm command not found. Please ensure Helm is installed and in PATH")
            return False

    @staticmethod
    def upgrade_install_command(
        release: str,
        chart: str,
        version: Optional[str] = None,
        namespace: str = "default",
        create_namespace: bool = False,
        values_file: Optional[Path] = None,
        set_values: Optional[Dict[str, str]] = None,
        timeout: Optional[str] = None,
        wait: bool = False
    ) -> List[str]:
        cmd = ["helm", "upgrade", "--install", release, chart, "--namespace", namespace]

        if version:
            cmd.extend(["--version", version])

        if create_namespace:
            cmd.append("--create-namespace")

        if values_file:
            cmd.extend(["-f", str(values_file)])

        for key, value in (set_values or {}).items():
            cmd.extend(["--set", f"{key}={value}"])

        if timeout:
            cmd.extend(["--timeout", timeout])

        if wait:
            cmd.append("--wait")

        return cmd

    def uninstall(self, release: str, namespace: str) -> bool:
        """Uninstall a Helm release. A missing release counts as success."""
        try:
            self.runner.run(["helm", "uninstall", release, "--namespace", namespace])
            return True
        except subprocess.CalledProcessError as e:
            if "not found" in error_output(e):
                logger.info(f"Helm release {release} not installed")
                return True
            logger.error(f"Failed to uninstall Helm release: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("helm command not found. Please ensure Helm is installed and in PATH")
            return False


class HelmComponent:
    """Install, remove and inspect one chart from the registry."""

    def __init__(self, chart: HelmChart, runner: CommandRunner, kube: KubeApi):
        self.chart = chart
        self.runner = runner
        self.kube = kube
        self.helm = HelmOperations(runner)

    @property
    def namespace(self) -> str:
        return self.chart.namespace

    def install(self) -> bool:
        chart = self.chart
        if not (self.helm.add_repo(chart.repo_name, chart.repo_url) and
                self.helm.update_repos()):
            return False

        if not self.kube.ensure_namespace(chart.namespace):
            return False

        success = self.helm.upgrade_install(
            release=chart.release,
            chart=chart.chart,
            version=chart.version,
            namespace=chart.namespace,
            set_values=chart.values,
            timeout=chart.timeout,
            wait=chart.wait
        )
        if success:
            logger.info(f"{chart.release} installed in namespace {chart.namespace}")
        return success

    def uninstall(self) -> bool:
        """Remove the release and its namespace, ignoring failures."""
        if not self.helm.uninstall(self.chart.release, self.chart.namespace):
            logger.warning(f"Continuing after failed uninstall of {self.chart.release}")

        if self.chart.namespace in PROTECTED_NAMESPACES:
            return True

        try:
            self.runner.run(["kubectl", "delete", "namespace", self.chart.namespace])
            logger.info(f"Deleted namespace {self.chart.namespace}")
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.warning(f"Ignoring failure to delete namespace {self.chart.namespace}: {e}")
        return True

    def status(self) -> bool:
        return self.runner.stream(["kubectl", "get", "pods", "-n", self.chart.namespace]) == 0
