import base64
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class KubeApi:
    """Typed access to the cluster through the official kubernetes client."""

    def __init__(self, kubeconfig: Optional[Path] = None, core_api=None, custom_api=None):
        """Initialize the API wrapper.

        The kube config is loaded on first use, so constructing this class
        never touches the cluster.

        Args:
            kubeconfig: Path to kubeconfig file. Uses default if None.
            core_api: Preconfigured CoreV1Api (mainly for tests)
            custom_api: Preconfigured CustomObjectsApi (mainly for tests)
        """
        self.kubeconfig = kubeconfig
        self._core_api = core_api
        self._custom_api = custom_api
        self._loaded = core_api is not None or custom_api is not None

    def _load_config(self) -> None:
        if self._loaded:
            return
        from kubernetes import config

        if self.kubeconfig:
            config.load_kube_config(config_file=str(self.kubeconfig))
        else:
            config.load_kube_config()
        self._loaded = True

    @property
    def core(self):
        if self._core_api is None:
            from kubernetes import client

            self._load_config()
            self._core_api = client.CoreV1Api()
        return self._core_api

    @property
    def custom(self):
        if self._custom_api is None:
            from kubernetes import client

            self._load_config()
            self._custom_api = client.CustomObjectsApi()
        return self._custom_api

    def ensure_namespace(self, namespace: str) -> bool:
        """Create a Kubernetes namespace if it doesn't exist."""
        from kubernetes import client
        from kubernetes.client.rest import ApiException

        try:
            self.core.read_namespace(namespace)
            logger.debug(f"Namespace {namespace} already exists")
            return True
        except ApiException as e:
            if e.status != 404:
                logger.error(f"Error checking namespace {namespace}: {e.reason}")
                return False

        namespace_body = client.V1Namespace(
            metadata=client.V1ObjectMeta(name=namespace)
        )
        try:
            self.core.create_namespace(body=namespace_body)
            logger.info(f"Created namespace {namespace}")
            return True
        except ApiException as e:
            if e.status == 409:
                return True
            logger.error(f"Error creating namespace {namespace}: {e.reason}")
            return False

    def list_secrets(self, namespace: str, label_selector: str) -> List[Dict[str, Any]]:
        """List secrets as plain manifests, ready to be dumped to YAML.

        Raises:
            kubernetes.client.rest.ApiException: On API errors other than 404
        """
        from kubernetes import client
        from kubernetes.client.rest import ApiException

        try:
            secrets = self.core.list_namespaced_secret(namespace, label_selector=label_selector)
        except ApiException as e:
            if e.status == 404:
                return []
            raise

        serializer = client.ApiClient()
        items = []
        for secret in secrets.items:
            manifest = serializer.sanitize_for_serialization(secret)
            manifest.setdefault("apiVersion", "v1")
            manifest.setdefault("kind", "Secret")
            items.append(manifest)
        return items

    def read_secret_value(self, name: str, namespace: str, key: str) -> Optional[str]:
        """Read and base64-decode a single key of a secret.

        Returns:
            The decoded value, or None if the secret or key does not exist
        """
        from kubernetes.client.rest import ApiException

        try:
            secret = self.core.read_namespaced_secret(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

        encoded = (secret.data or {}).get(key)
        if not encoded:
            return None
        return base64.b64decode(encoded).decode()

    def cluster_object_exists(self, group: str, version: str, plural: str, name: str) -> bool:
        """Check whether a cluster-scoped custom resource exists."""
        from kubernetes.client.rest import ApiException

        try:
            self.custom.get_cluster_custom_object(group, version, plural, name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def apply_secret(self, body: Dict[str, Any]) -> bool:
        """Create a secret, replacing it if it already exists."""
        from kubernetes.client.rest import ApiException

        metadata = body.get("metadata", {})
        name = metadata["name"]
        namespace = metadata.get("namespace", "default")
        try:
            self.core.create_namespaced_secret(namespace=namespace, body=body)
            logger.info(f"Created secret {namespace}/{name}")
        except ApiException as e:
            if e.status != 409:
                raise
            self.core.replace_namespaced_secret(name=name, namespace=namespace, body=body)
            logger.info(f"Updated secret {namespace}/{name}")
        return True
