import logging
import subprocess
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

from kubernetes.client.rest import ApiException

from cd_homelab.k8s.api import KubeApi
from cd_homelab.k8s.helm import ARGO_CD, HelmComponent
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

ADMIN_SECRET = "argocd-initial-admin-secret"
REPOSITORY_SECRET_LABEL = "argocd.argoproj.io/secret-type=repository"

# ClusterSecretStore the repository ExternalSecret reads from
SECRET_STORE_NAME = "azure-keyvault-store"
SECRET_STORE_GROUP = "external-secrets.io"
SECRET_STORE_VERSION = "v1beta1"
SECRET_STORE_PLURAL = "clustersecretstores"

PORT_FORWARD_SETTLE_SECONDS = 2
REPOSITORY_SYNC_SECONDS = 5


class ArgoCDManager(HelmComponent):
    def __init__(self, runner: CommandRunner, kube: KubeApi, namespace: str = "argocd", port: int = 8080):
        """Initialize the ArgoCD manager.

        Args:
            runner: Command runner carrying the kubeconfig environment
            kube: Kubernetes API wrapper
            namespace: Namespace ArgoCD is installed into
            port: Local port for the UI port-forward
        """
        super().__init__(ARGO_CD.in_namespace(namespace), runner, kube)
        self.port = port

    def install(self) -> bool:
        """Install ArgoCD via Helm.

        ApplicationSets are enabled so the root app can take over managing
        ArgoCD itself once bootstrapped.
        """
        logger.info("Installing ArgoCD...")
        success = super().install()
        if success:
            logger.info("ArgoCD installed. Run 'homelab argocd-password' to get admin password.")
        return success

    def get_admin_password(self) -> Optional[str]:
        """Read the initial admin password, or None if the secret is gone."""
        return self.kube.read_secret_value(ADMIN_SECRET, self.namespace, "password")

    def get_credentials(self) -> Dict[str, str]:
        """Get ArgoCD initial admin credentials.

        Returns:
            dict: A dictionary with 'username' and 'password' keys
        """
        try:
            password = self.get_admin_password()
        except ApiException as e:
            logger.error(f"Failed to get ArgoCD credentials: {e.reason}")
            return {
                "username": "admin",
                "password": "unknown - error retrieving password"
            }
        except Exception as e:
            logger.error(f"Error getting ArgoCD credentials: {str(e)}")
            return {
                "username": "admin",
                "password": "unknown - error processing password"
            }

        if not password:
            logger.warning("ArgoCD initial admin password is empty or was already deleted")
            return {
                "username": "admin",
                "password": "empty-password"
            }
        return {
            "username": "admin",
            "password": password
        }

    def port_forward_command(self):
        return [
            "kubectl", "port-forward", "svc/argocd-server",
            "-n", self.namespace, f"{self.port}:443"
        ]

    def port_forward(self) -> bool:
        """Forward the ArgoCD UI to localhost until interrupted."""
        logger.info(f"ArgoCD UI: http://localhost:{self.port}")
        logger.info("Username: admin")
        logger.info("Run 'homelab argocd-password' for password")
        return self.runner.stream(self.port_forward_command()) == 0

    @contextmanager
    def background_port_forward(self) -> Iterator[None]:
        logger.info("Starting port-forward in background...")
        process = self.runner.spawn(self.port_forward_command())
        try:
            time.sleep(PORT_FORWARD_SETTLE_SECONDS)
            yield
        finally:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()

    def status(self) -> bool:
        print("ArgoCD Pods:")
        pods = self.runner.stream(["kubectl", "get", "pods", "-n", self.namespace])
        print()
        print("ArgoCD Services:")
        services = self.runner.stream(["kubectl", "get", "svc", "-n", self.namespace])
        return pods == 0 and services == 0

    def secret_store_exists(self) -> bool:
        try:
            return self.kube.cluster_object_exists(
                SECRET_STORE_GROUP, SECRET_STORE_VERSION, SECRET_STORE_PLURAL, SECRET_STORE_NAME
            )
        except ApiException as e:
            logger.error(f"Failed to look up ClusterSecretStore: {e.reason}")
            return False

    def apply_repository(self, manifest: Path) -> bool:
        """Apply the ExternalSecret that materializes the Git repository credentials."""
        logger.info("Applying ArgoCD repository configuration...")
        if not self.secret_store_exists():
            logger.error(f"ClusterSecretStore '{SECRET_STORE_NAME}' not found.")
            logger.error("Run 'homelab azure-store-apply' first.")
            return False

        if not manifest.exists():
            logger.error(f"Repository manifest not found: {manifest}")
            return False

        try:
            self.runner.run(["kubectl", "apply", "-f", str(manifest)])
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to apply repository configuration: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("kubectl command not found. Please ensure kubectl is installed and in PATH")
            return False

        logger.info("Repository ExternalSecret applied. Waiting for sync...")
        time.sleep(REPOSITORY_SYNC_SECONDS)
        self.runner.stream(["kubectl", "get", "externalsecret", "-n", self.namespace])
        return True

    def repository_status(self) -> bool:
        print("ArgoCD Repositories:")
        secrets = self.runner.stream([
            "kubectl", "get", "secret", "-n", self.namespace, "-l", REPOSITORY_SECRET_LABEL
        ])
        print()
        print("ExternalSecrets:")
        try:
            result = self.runner.run(["kubectl", "get", "externalsecret", "-n", self.namespace])
            print(result.stdout.rstrip() or "No ExternalSecrets")
        except (subprocess.CalledProcessError, FileNotFoundError):
            print("No ExternalSecrets")
        return secrets == 0

    def change_password(self, new_password: Optional[str]) -> bool:
        """Replace the initial admin password through the argocd CLI."""
        logger.info("Changing ArgoCD admin password...")
        if not new_password:
            logger.error("ARGOCD_ADMIN_PASSWORD not set in .env")
            return False

        if not self.runner.which("argocd"):
            logger.error("argocd CLI not installed. Install with: brew install argocd")
            return False

        current_password = self.get_admin_password()
        if not current_password:
            logger.error(f"Secret {ADMIN_SECRET} not found in namespace {self.namespace}")
            return False

        with self.background_port_forward():
            try:
                logger.info("Logging in with current password...")
                self.runner.run([
                    "argocd", "login", f"localhost:{self.port}",
                    "--username", "admin",
                    "--password", current_password,
                    "--insecure"
                ])
                logger.info("Setting new password from .env...")
                self.runner.run([
                    "argocd", "account", "update-password",
                    "--current-password", current_password,
                    "--new-password", new_password
                ])
            except subprocess.CalledProcessError as e:
                logger.error(f"Failed to change ArgoCD password: {error_output(e)}")
                return False

        logger.info("Password changed successfully!")
        return True
