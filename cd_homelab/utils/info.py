import logging
import subprocess
from typing import List, Tuple

from cd_homelab.config import HomelabSettings
from cd_homelab.runtime import detect_runtime
from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

TOOL_VERSIONS: List[Tuple[str, List[str]]] = [
    ("Podman", ["podman", "--version"]),
    ("Docker", ["docker", "--version"]),
    ("k3d", ["k3d", "--version"]),
    ("kubectl", ["kubectl", "version", "--client"]),
    ("helm", ["helm", "version", "--short"]),
]


class EnvironmentInfo:
    def __init__(self, runner: CommandRunner, settings: HomelabSettings):
        self.runner = runner
        self.settings = settings

    def tool_version(self, cmd: List[str]) -> str:
        try:
            return self.runner.run(cmd).stdout.strip()
        except (subprocess.CalledProcessError, FileNotFoundError):
            return "  Not installed"

    def summary(self) -> str:
        s = self.settings
        runtime = detect_runtime(self.runner, s.os_name, s.runtime_override)
        lines = [
            f"OS:               {s.os_name}",
            f"Runtime:          {runtime}",
            f"Cluster Name:     {s.cluster_name}",
            f"K3D Config:       {s.k3d_config}",
            f"Kubeconfig:       {s.kubeconfig_path}",
            f"NFS StorageClass: {s.nfs_storageclass}",
        ]
        for label, cmd in TOOL_VERSIONS:
            lines.extend(["", f"{label}:", self.tool_version(cmd)])
        return "\n".join(lines)

    def tailscale_ip(self) -> str:
        try:
            return self.runner.run(["tailscale", "ip", "-4"]).stdout.strip()
        except (subprocess.CalledProcessError, FileNotFoundError):
            return "Tailscale not running"

    def git_init(self) -> bool:
        logger.info("Initializing git repository...")
        root = str(self.settings.root)
        try:
            self.runner.run(["git", "-C", root, "init"])
            self.runner.run(["git", "-C", root, "add", "."])
            self.runner.run(["git", "-C", root, "commit", "-m", "Initial commit: homelab k3d setup"])
        except subprocess.CalledProcessError as e:
            logger.error(f"Git operation failed: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("git command not found. Please ensure git is installed and in PATH")
            return False
        logger.info("Git repository initialized.")
        return True
