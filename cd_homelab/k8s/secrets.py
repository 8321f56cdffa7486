import datetime
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from cryptography import x509
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException
from urllib3.exceptions import HTTPError

from cd_homelab.k8s.api import KubeApi
from cd_homelab.k8s.helm import EXTERNAL_SECRETS, SEALED_SECRETS, HelmComponent
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

SEALED_SECRETS_KEY_LABEL = "sealedsecrets.bitnami.com/sealed-secrets-key"
CONTROLLER_NAME = "sealed-secrets"

# Assigned by the API server; restoring them would conflict on a new cluster
SERVER_MANAGED_FIELDS = ("resourceVersion", "uid", "creationTimestamp", "managedFields", "selfLink")


def strip_server_fields(manifest: Dict[str, Any]) -> Dict[str, Any]:
    metadata = {
        key: value for key, value in (manifest.get("metadata") or {}).items()
        if key not in SERVER_MANAGED_FIELDS
    }
    return {**manifest, "metadata": metadata}


class SealedSecretsManager(HelmComponent):
    """Bitnami Sealed Secrets controller and its signing keys."""

    def __init__(self, runner: CommandRunner, kube: KubeApi, namespace: str = "sealed-secrets"):
        super().__init__(SEALED_SECRETS.in_namespace(namespace), runner, kube)

    def fetch_cert(self) -> Optional[str]:
        """Fetch the controller's public certificate in PEM form."""
        try:
            result = self.runner.run([
                "kubeseal", "--fetch-cert",
                f"--controller-name={CONTROLLER_NAME}",
                f"--controller-namespace={self.namespace}"
            ])
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to fetch Sealed Secrets certificate: {error_output(e)}")
            return None
        except FileNotFoundError:
            logger.error("kubeseal command not found. Please ensure kubeseal is installed and in PATH")
            return None
        return result.stdout

    @staticmethod
    def describe_cert(pem: str) -> Dict[str, Any]:
        """Summarize a PEM certificate.

        Args:
            pem: Certificate as returned by `kubeseal --fetch-cert`

        Returns:
            dict: subject, issuer, not_before, not_after and expired

        Raises:
            ValueError: If the PEM data cannot be parsed
        """
        cert = x509.load_pem_x509_certificate(pem.encode())
        not_before = cert.not_valid_before_utc
        not_after = cert.not_valid_after_utc
        now = datetime.datetime.now(datetime.timezone.utc)
        return {
            "subject": cert.subject.rfc4514_string(),
            "issuer": cert.issuer.rfc4514_string(),
            "not_before": not_before,
            "not_after": not_after,
            "expired": now > not_after
        }

    def list_keys(self) -> List[Dict[str, Any]]:
        return self.kube.list_secrets(self.namespace, SEALED_SECRETS_KEY_LABEL)

    def has_keys(self) -> bool:
        try:
            return bool(self.list_keys())
        except ApiException as e:
            logger.warning(f"Could not list Sealed Secrets keys: {e.reason}")
            return False
        except (HTTPError, ConfigException) as e:
            logger.warning(f"Cluster unreachable, skipping Sealed Secrets key lookup: {e}")
            return False

    def backup(self, path: Path) -> bool:
        """Write the controller's signing keys to a local file."""
        logger.info("Backing up Sealed Secrets keys...")
        try:
            keys = self.list_keys()
        except ApiException as e:
            logger.error(f"Failed to list Sealed Secrets keys: {e.reason}")
            return False

        if not keys:
            logger.warning(f"No Sealed Secrets keys found in namespace {self.namespace}")
            if path.exists():
                logger.warning(f"Keeping existing backup at {path}")
            return False

        backup = {
            "apiVersion": "v1",
            "kind": "List",
            "items": [strip_server_fields(key) for key in keys]
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(backup, f, default_flow_style=False)
        path.chmod(0o600)

        logger.info(f"Keys backed up to {path}")
        logger.warning("WARNING: This file contains private keys! Keep it out of version control.")
        return True

    def restore(self, path: Path) -> bool:
        """Load backed-up signing keys into the cluster."""
        if not path.exists():
            logger.warning(f"No backup found at {path}")
            return False

        logger.info("Restoring Sealed Secrets keys...")
        with open(path) as f:
            document = yaml.safe_load(f) or {}
        items = document.get("items", []) if document.get("kind") == "List" else [document]
        if not items:
            logger.warning(f"Backup at {path} contains no keys")
            return False

        if not self.kube.ensure_namespace(self.namespace):
            return False

        try:
            for item in items:
                secret = strip_server_fields(item)
                secret["metadata"].setdefault("namespace", self.namespace)
                self.kube.apply_secret(secret)
        except ApiException as e:
            logger.error(f"Failed to restore Sealed Secrets keys: {e.reason}")
            return False

        logger.info(f"Restored {len(items)} key(s). Now run 'homelab sealed-secrets-install'")
        return True


class ExternalSecretsManager(HelmComponent):
    """External Secrets Operator."""

    def __init__(self, runner: CommandRunner, kube: KubeApi, namespace: str = "external-secrets"):
        super().__init__(EXTERNAL_SECRETS.in_namespace(namespace), runner, kube)
