import logging
import subprocess
from pathlib import Path
from typing import Optional

from cd_homelab.k8s.argocd import ArgoCDManager
from cd_homelab.k8s.secrets import ExternalSecretsManager, SealedSecretsManager
from cd_homelab.k8s.wait import ArgoCDAppWaiter, read_app_name
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

NEXT_STEPS = [
    ("homelab argocd-password", "Get admin password"),
    ("homelab azure-credentials-create", "Create Azure KV credentials"),
    ("homelab azure-credentials-apply", "Apply credentials"),
    ("homelab azure-store-apply", "Apply ClusterSecretStore"),
    ("homelab argocd-repo-apply", "Configure Git repository"),
]


class Bootstrapper:
    """Hands the cluster over to ArgoCD: controllers first, then the App of Apps."""

    def __init__(self, runner: CommandRunner, argocd: ArgoCDManager,
                 sealed_secrets: SealedSecretsManager, external_secrets: ExternalSecretsManager,
                 projects_manifest: Path, root_app_manifest: Path,
                 argocd_url: Optional[str] = None):
        self.runner = runner
        self.argocd = argocd
        self.sealed_secrets = sealed_secrets
        self.external_secrets = external_secrets
        self.projects_manifest = projects_manifest
        self.root_app_manifest = root_app_manifest
        self.argocd_url = argocd_url

    def install_secrets(self) -> bool:
        logger.info("Installing Sealed Secrets...")
        if not self.sealed_secrets.install():
            return False
        logger.info("Installing External Secrets Operator...")
        if not self.external_secrets.install():
            return False
        logger.info("Secrets management stack installed.")
        logger.info("Next: Create Azure credentials with 'homelab azure-credentials-create'")
        return True

    def apply_apps(self, wait: bool = False, timeout_seconds: int = 1200) -> bool:
        """Apply the AppProjects and the root Application.

        Args:
            wait: Block until the root application is synced and healthy
            timeout_seconds: Overall wait budget
        """
        logger.info("Applying App of Apps...")
        for manifest in (self.projects_manifest, self.root_app_manifest):
            if not manifest.exists():
                logger.error(f"Bootstrap manifest not found: {manifest}")
                return False
            try:
                self.runner.run(["kubectl", "apply", "-f", str(manifest)])
            except subprocess.CalledProcessError as e:
                logger.error(f"Failed to apply {manifest}: {error_output(e)}")
                return False
            except FileNotFoundError:
                logger.error("kubectl command not found. Please ensure kubectl is installed and in PATH")
                return False

        logger.info("Root application applied. ArgoCD will now manage all ApplicationSets.")
        logger.info("Note: ArgoCD ApplicationSet will take over managing ArgoCD itself.")

        if not wait:
            return True

        app_name = read_app_name(self.root_app_manifest)
        if not app_name:
            logger.error(f"No Application found in {self.root_app_manifest}")
            return False
        waiter = ArgoCDAppWaiter(self.runner, namespace=self.argocd.namespace)
        return waiter.wait_for_app_ready(app_name, timeout_seconds=timeout_seconds)

    def bootstrap_all(self, wait: bool = False) -> bool:
        if not self.argocd.install():
            return False
        if not self.install_secrets():
            return False
        if not self.apply_apps(wait=wait):
            return False

        logger.info("Bootstrap complete!")
        print()
        print("Next steps:")
        for number, (command, description) in enumerate(NEXT_STEPS, start=1):
            print(f"  {number}. {command:<34}# {description}")
        print()
        if self.argocd_url:
            print(f"ArgoCD will be available at: {self.argocd_url}")
        return True

    def status(self) -> bool:
        results = [
            self.argocd.status(),
            self.sealed_secrets.status(),
            self.external_secrets.status(),
            self.argocd.repository_status()
        ]
        return all(results)
