import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from cd_homelab import __version__
from cd_homelab.config import load_settings
from cd_homelab.tasks import HomelabTasks
from cd_homelab.utils.logger import setup_logger

logger = logging.getLogger(__name__)

# (group, command, help); the command name maps to the HomelabTasks method
COMMANDS = [
    ("quick-start", "setup", "Full setup: start runtime, create cluster, configure kubeconfig"),
    ("quick-start", "clean", "Delete cluster (keeps runtime)"),
    ("quick-start", "clean-all", "Delete everything (cluster + Podman machine on macOS)"),
    ("quick-start", "init-podman", "Initialize Podman (macOS: VM setup, Linux: verify native install)"),
    ("quick-start", "init-docker", "Initialize Docker (verify it's running)"),
    ("lifecycle", "start", "Start everything (runtime + cluster)"),
    ("lifecycle", "stop", "Stop everything (cluster + runtime)"),
    ("lifecycle", "restart", "Restart everything"),
    ("lifecycle", "status", "Show full status (runtime, cluster, nodes)"),
    ("runtime", "runtime-start", "Start detected runtime (Docker or Podman)"),
    ("runtime", "runtime-stop", "Stop detected runtime"),
    ("runtime", "runtime-status", "Show runtime status"),
    ("podman", "podman-init", "Initialize Podman machine (macOS only - Linux runs native)"),
    ("podman", "podman-start", "Start Podman (macOS: start machine, Linux: ensure socket is running)"),
    ("podman", "podman-stop", "Stop Podman (macOS: stop machine, Linux: stop socket)"),
    ("podman", "podman-status", "Show Podman status"),
    ("podman", "podman-rm", "Remove Podman machine (macOS only)"),
    ("docker", "docker-start", "Ensure Docker is running"),
    ("docker", "docker-stop", "Stop Docker (macOS: manual, Linux: systemctl)"),
    ("docker", "docker-status", "Show Docker status"),
    ("docker", "docker-context", "Switch Docker context to default"),
    ("cluster", "cluster-create", "Create k3d cluster"),
    ("cluster", "cluster-delete", "Delete k3d cluster"),
    ("cluster", "cluster-start", "Start k3d cluster"),
    ("cluster", "cluster-stop", "Stop k3d cluster"),
    ("cluster", "cluster-status", "Show k3d cluster status"),
    ("cluster", "cluster-restart", "Full cluster recreate (preserves Sealed Secrets keys)"),
    ("kubeconfig", "kubeconfig", "Merge kubeconfig to ~/.kube/config"),
    ("kubeconfig", "kubeconfig-show", "Show kubeconfig path"),
    ("storage", "nfs-install", "Install NFS CSI driver via Helm"),
    ("storage", "nfs-storageclass", "Apply NFS StorageClass"),
    ("storage", "nfs-status", "Show NFS CSI driver status"),
    ("storage", "nfs-logs", "Show NFS CSI driver logs"),
    ("k8s-resources", "nodes", "List cluster nodes"),
    ("k8s-resources", "pods", "List all pods"),
    ("k8s-resources", "services", "List all services"),
    ("k8s-resources", "pvc", "List all PersistentVolumeClaims"),
    ("k8s-resources", "sc", "List StorageClasses"),
    ("k8s-resources", "ingress", "List all Ingresses"),
    ("k8s-resources", "events", "Show recent cluster events"),
    ("debug", "logs", "Show logs for a pod"),
    ("debug", "shell", "Open shell in a pod"),
    ("debug", "debug-pod", "Run a debug pod with common tools"),
    ("debug", "top-nodes", "Show node resource usage"),
    ("debug", "top-pods", "Show pod resource usage"),
    ("debug", "describe", "Describe a resource"),
    ("debug", "ns-events", "Get events for a namespace"),
    ("argocd", "argocd-install", "Install ArgoCD via Helm"),
    ("argocd", "argocd-uninstall", "Uninstall ArgoCD"),
    ("argocd", "argocd-password", "Get ArgoCD admin password"),
    ("argocd", "argocd-port-forward", "Port-forward ArgoCD UI to localhost"),
    ("argocd", "argocd-ui", "Show password and start port-forward"),
    ("argocd", "argocd-status", "Show ArgoCD status"),
    ("argocd", "argocd-repo-apply", "Apply ArgoCD repository configuration"),
    ("argocd", "argocd-repo-status", "Show ArgoCD repository status"),
    ("argocd", "argocd-change-password", "Change ArgoCD admin password (uses ARGOCD_ADMIN_PASSWORD)"),
    ("argocd", "argocd-app-wait", "Wait for an ArgoCD application to be synced and healthy"),
    ("sealed-secrets", "sealed-secrets-install", "Install Sealed Secrets via Helm"),
    ("sealed-secrets", "sealed-secrets-uninstall", "Uninstall Sealed Secrets"),
    ("sealed-secrets", "sealed-secrets-status", "Show Sealed Secrets status"),
    ("sealed-secrets", "sealed-secrets-cert", "Get Sealed Secrets public certificate"),
    ("sealed-secrets", "sealed-secrets-backup", "Backup Sealed Secrets keys"),
    ("sealed-secrets", "sealed-secrets-restore", "Restore Sealed Secrets keys"),
    ("external-secrets", "external-secrets-install", "Install External Secrets Operator via Helm"),
    ("external-secrets", "external-secrets-uninstall", "Uninstall External Secrets Operator"),
    ("external-secrets", "external-secrets-status", "Show External Secrets Operator status"),
    ("azure", "azure-credentials-create", "Create sealed secret for Azure Key Vault credentials"),
    ("azure", "azure-credentials-apply", "Apply Azure Key Vault credentials sealed secret"),
    ("azure", "azure-store-apply", "Apply Azure Key Vault ClusterSecretStore"),
    ("azure", "azure-test", "Test Azure Key Vault connection"),
    ("bootstrap", "bootstrap-secrets", "Install both Sealed Secrets and External Secrets"),
    ("bootstrap", "bootstrap-apps", "Apply App of Apps (root application that manages all ApplicationSets)"),
    ("bootstrap", "bootstrap-all", "Full bootstrap: ArgoCD + Secrets management + App of Apps"),
    ("bootstrap", "bootstrap-status", "Show status of all bootstrap components"),
    ("info", "info", "Show environment info"),
    ("info", "tailscale-ip", "Show Tailscale IP"),
    ("info", "git-init", "Initialize git repository"),
]

QUICK_START = [
    ("setup", "Full setup: start runtime, create cluster"),
    ("start", "Start everything (runtime + cluster)"),
    ("stop", "Stop everything (cluster + runtime)"),
    ("status", "Show full status"),
]

COMMON_WORKFLOWS = [
    ("bootstrap-all", "Install ArgoCD + Sealed Secrets + External Secrets"),
    ("argocd-ui", "Port-forward ArgoCD UI + show password"),
]


def method_name(command: str) -> str:
    return command.replace("-", "_")


def _add_arguments(command: str, parser: argparse.ArgumentParser) -> None:
    if command in ("logs", "shell"):
        parser.add_argument("pod", help="Pod name")
        parser.add_argument("ns", nargs="?", default="default", help="Namespace (default: default)")
    elif command == "describe":
        parser.add_argument("resource", help="Resource, e.g. pod/my-pod")
        parser.add_argument("ns", nargs="?", default="default", help="Namespace (default: default)")
    elif command == "ns-events":
        parser.add_argument("ns", nargs="?", default="default", help="Namespace (default: default)")
    elif command == "argocd-app-wait":
        parser.add_argument("app", help="ArgoCD application name")
        parser.add_argument("--timeout", type=int, default=1200,
                            help="Seconds to wait for sync and health combined")
    elif command in ("bootstrap-apps", "bootstrap-all"):
        parser.add_argument("--wait", action="store_true",
                            help="Wait for the root application to be synced and healthy")
    elif command == "sealed-secrets-cert":
        parser.add_argument("--output", help="Write the certificate to this file instead of stdout")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="homelab", description="cd-homelab - Kubernetes Homelab Management")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--root", type=Path, default=Path("."),
                        help="Path to the homelab repository (default: current directory)")
    parser.add_argument("--env-file", type=Path, default=None,
                        help="Path to dotenv file (default: <root>/.env)")
    parser.add_argument("--kubeconfig", type=Path, default=None,
                        help="Path to kubeconfig file passed to every tool")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.add_parser("help", help="Show grouped help")
    for _group, command, help_text in COMMANDS:
        sub = subparsers.add_parser(command, help=help_text, description=help_text)
        _add_arguments(command, sub)
    return parser


def print_help() -> None:
    print("cd-homelab - Kubernetes Homelab Management")
    print()
    print("Usage: homelab <command> [args]")
    print()
    print("Quick Start:")
    for command, description in QUICK_START:
        print(f"  homelab {command:<16}{description}")
    print()
    print("Common Workflows:")
    for command, description in COMMON_WORKFLOWS:
        print(f"  homelab {command:<16}{description}")
    print()
    print("Run 'homelab --help' for all available commands")


def command_kwargs(args: argparse.Namespace) -> dict:
    """Collect the subcommand's own arguments, dropping the global options."""
    global_options = {"command", "root", "env_file", "kubeconfig", "debug"}
    return {key: value for key, value in vars(args).items() if key not in global_options}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(debug=args.debug)

    if args.command in (None, "help"):
        print_help()
        return 0

    try:
        settings = load_settings(args.root, env_file=args.env_file, kubeconfig=args.kubeconfig)
        tasks = HomelabTasks(settings)
        recipe: Callable[..., None] = getattr(tasks, method_name(args.command))
        recipe(**command_kwargs(args))
        return 0
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.error(f"{args.command} failed: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
