import base64
import logging
import subprocess
import time
from pathlib import Path
from typing import Optional

import yaml

from cd_homelab.k8s.argocd import SECRET_STORE_NAME
from cd_homelab.k8s.secrets import CONTROLLER_NAME
from cd_homelab.templates import render_template
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

CREDENTIALS_SECRET = "azure-keyvault-credentials"
SECRET_APPLY_SECONDS = 3


def _encode_base64(data: str) -> str:
    """Encode string to base64 as required by Kubernetes secrets."""
    return base64.b64encode(data.encode()).decode()


class AzureKeyVault:
    """Credentials and ClusterSecretStore for the Azure Key Vault backend of ESO."""

    def __init__(self, runner: CommandRunner, credentials_path: Path, store_path: Path,
                 external_secrets_namespace: str = "external-secrets",
                 sealed_secrets_namespace: str = "sealed-secrets"):
        self.runner = runner
        self.credentials_path = credentials_path
        self.store_path = store_path
        self.external_secrets_namespace = external_secrets_namespace
        self.sealed_secrets_namespace = sealed_secrets_namespace

    def render_credentials(self, client_id: str, client_secret: str) -> str:
        manifest = render_template(
            "azure_keyvault_credentials.yaml",
            secret_name=CREDENTIALS_SECRET,
            namespace=self.external_secrets_namespace,
            client_id=_encode_base64(client_id),
            client_secret=_encode_base64(client_secret)
        )
        # Fail here rather than inside kubeseal if the template is broken
        yaml.safe_load(manifest)
        return manifest

    def create_credentials(self, client_id: Optional[str], client_secret: Optional[str]) -> bool:
        """Seal the service principal credentials into a manifest safe for Git.

        The plaintext Secret is piped to kubeseal and never written to disk.
        """
        logger.info("Creating Azure Key Vault credentials secret...")
        if not client_id or not client_secret:
            logger.error("AZURE_CLIENT_ID and AZURE_CLIENT_SECRET required in .env")
            return False

        manifest = self.render_credentials(client_id, client_secret)

        logger.info("Sealing secret...")
        try:
            result = self.runner.run([
                "kubeseal",
                f"--controller-name={CONTROLLER_NAME}",
                f"--controller-namespace={self.sealed_secrets_namespace}",
                "--format=yaml",
                f"--namespace={self.external_secrets_namespace}"
            ], input=manifest)
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to seal credentials: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("kubeseal command not found. Please ensure kubeseal is installed and in PATH")
            return False

        self.credentials_path.parent.mkdir(parents=True, exist_ok=True)
        self.credentials_path.write_text(result.stdout)
        logger.info(f"Sealed secret created: {self.credentials_path}")
        return True

    def _apply(self, manifest: Path, missing_hint: str) -> bool:
        if not manifest.exists():
            logger.error(missing_hint)
            return False
        try:
            self.runner.run(["kubectl", "apply", "-f", str(manifest)])
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to apply {manifest}: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("kubectl command not found. Please ensure kubectl is installed and in PATH")
            return False

    def apply_credentials(self) -> bool:
        logger.info("Applying Azure credentials sealed secret...")
        if not self._apply(self.credentials_path, "Run 'homelab azure-credentials-create' first"):
            return False

        # The controller unseals asynchronously
        time.sleep(SECRET_APPLY_SECONDS)
        logger.info("Verifying secret was created:")
        return self.runner.stream([
            "kubectl", "get", "secret", CREDENTIALS_SECRET, "-n", self.external_secrets_namespace
        ]) == 0

    def apply_store(self) -> bool:
        logger.info("Applying Azure Key Vault ClusterSecretStore...")
        if not self._apply(self.store_path, f"{self.store_path} not found"):
            return False

        logger.info("Verifying ClusterSecretStore:")
        return self.runner.stream(["kubectl", "get", "clustersecretstore", SECRET_STORE_NAME]) == 0

    def test(self) -> bool:
        """Print the store's condition messages and recent operator logs."""
        logger.info("Testing Azure Key Vault connection...")
        print()
        print("ClusterSecretStore status:")
        connected = True
        try:
            result = self.runner.run([
                "kubectl", "get", "clustersecretstore", SECRET_STORE_NAME,
                "-o", "jsonpath={.status.conditions[*].message}"
            ])
            print(result.stdout.strip())
        except (subprocess.CalledProcessError, FileNotFoundError):
            print("Not found")
            connected = False

        print()
        print("External Secrets Operator logs (last 10 lines):")
        try:
            result = self.runner.run([
                "kubectl", "logs", "-n", self.external_secrets_namespace,
                "-l", "app.kubernetes.io/name=external-secrets", "--tail=10"
            ])
            print(result.stdout.rstrip() or "No logs")
        except (subprocess.CalledProcessError, FileNotFoundError):
            print("No logs")
        return connected
