import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import yaml

DEFAULT_CLUSTER_NAME = "homelab"

# Paths inside the homelab repository, relative to its root
ARGOCD_PROJECTS_MANIFEST = "bootstrap/argocd-projects.yaml"
ROOT_APP_MANIFEST = "bootstrap/root-app.yaml"
ARGOCD_REPO_MANIFEST = "extras/local/argocd/repo-cd-homelab.yaml"
AZURE_CREDENTIALS_MANIFEST = "extras/local/external-secrets/azure-keyvault-credentials.yaml"
AZURE_STORE_MANIFEST = "extras/local/external-secrets/azure-keyvault-store.yaml"
SEALED_SECRETS_BACKUP = ".secrets/sealed-secrets-keys.yaml"


def detect_os(system: Optional[str] = None) -> str:
    """Map platform.system() to the names the recipes branch on."""
    system = system or platform.system()
    if system == "Darwin":
        return "macos"
    return "linux"


def read_cluster_name(config_path: Path) -> Optional[str]:
    """Read metadata.name from a k3d cluster config file."""
    if not config_path.exists():
        return None
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    name = (data.get("metadata") or {}).get("name")
    return str(name) if name else None


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class HomelabSettings:
    root: Path
    os_name: str
    k3d_config: Path
    cluster_name: str
    kubeconfig_path: Path
    nfs_storageclass: Path
    nfs_volume: str
    podman_cpus: int = 6
    podman_memory: int = 12288
    podman_disk: int = 50
    argocd_namespace: str = "argocd"
    argocd_port: int = 8080
    argocd_url: Optional[str] = None
    sealed_secrets_namespace: str = "sealed-secrets"
    external_secrets_namespace: str = "external-secrets"
    runtime_override: Optional[str] = None
    kubeconfig: Optional[Path] = None

    @classmethod
    def from_env(cls, root: Path, environ: Optional[Mapping[str, str]] = None,
                 system: Optional[str] = None, kubeconfig: Optional[Path] = None) -> 'HomelabSettings':
        """Build settings from environment variables, falling back to per-OS defaults."""
        env = os.environ if environ is None else environ
        root = Path(root).resolve()
        os_name = detect_os(system)
        is_macos = os_name == "macos"

        default_config = "k3d/config.yaml" if is_macos else "k3d/config-linux.yaml"
        k3d_config = _resolve(root, env.get("K3D_CONFIG") or default_config)

        cluster_name = env.get("CLUSTER_NAME") or read_cluster_name(k3d_config) or DEFAULT_CLUSTER_NAME

        kubeconfig_path = env.get("KUBECONFIG_PATH") or f"~/.config/k3d/kubeconfig-{cluster_name}.yaml"

        return cls(
            root=root,
            os_name=os_name,
            k3d_config=k3d_config,
            cluster_name=cluster_name,
            kubeconfig_path=Path(kubeconfig_path).expanduser(),
            nfs_storageclass=_resolve(root, env.get("NFS_STORAGECLASS") or "extras/nfs/storageclass-nfs.yaml"),
            nfs_volume=env.get("NFS_VOLUME") or ("/private/nfs/k8s-volumes" if is_macos else "/mnt/k8s-volumes"),
            podman_cpus=_int_setting(env, "PODMAN_CPUS", 6),
            podman_memory=_int_setting(env, "PODMAN_MEMORY", 12288),
            podman_disk=_int_setting(env, "PODMAN_DISK", 50),
            argocd_namespace=env.get("ARGOCD_NAMESPACE") or "argocd",
            argocd_port=_int_setting(env, "ARGOCD_PORT", 8080),
            argocd_url=env.get("ARGOCD_URL") or None,
            sealed_secrets_namespace=env.get("SEALED_SECRETS_NAMESPACE") or "sealed-secrets",
            external_secrets_namespace=env.get("EXTERNAL_SECRETS_NAMESPACE") or "external-secrets",
            runtime_override=env.get("RUNTIME") or None,
            kubeconfig=kubeconfig
        )

    @property
    def is_macos(self) -> bool:
        return self.os_name == "macos"

    def path(self, relative: str) -> Path:
        return _resolve(self.root, relative)

    @property
    def argocd_projects_manifest(self) -> Path:
        return self.path(ARGOCD_PROJECTS_MANIFEST)

    @property
    def root_app_manifest(self) -> Path:
        return self.path(ROOT_APP_MANIFEST)

    @property
    def argocd_repo_manifest(self) -> Path:
        return self.path(ARGOCD_REPO_MANIFEST)

    @property
    def azure_credentials_manifest(self) -> Path:
        return self.path(AZURE_CREDENTIALS_MANIFEST)

    @property
    def azure_store_manifest(self) -> Path:
        return self.path(AZURE_STORE_MANIFEST)

    @property
    def sealed_secrets_backup(self) -> Path:
        return self.path(SEALED_SECRETS_BACKUP)


def _resolve(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path
