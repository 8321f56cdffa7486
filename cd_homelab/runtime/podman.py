import logging
import re
import subprocess
from typing import List

from cd_homelab.utils.commands import CommandRunner, error_output
from cd_homelab.runtime.detect import ROOTFUL_PODMAN_SOCKET

logger = logging.getLogger(__name__)

INFO_LINES = re.compile(r"^  (version|rootless|cgroupVersion)")


class PodmanManager:
    """Podman machine on macOS, the rootful podman.socket on Linux."""

    def __init__(self, runner: CommandRunner, os_name: str, cpus: int = 6,
                 memory: int = 12288, disk: int = 50, nfs_volume: str = "/private/nfs/k8s-volumes"):
        self.runner = runner
        self.os_name = os_name
        self.cpus = cpus
        self.memory = memory
        self.disk = disk
        self.nfs_volume = nfs_volume

    @property
    def is_macos(self) -> bool:
        return self.os_name == "macos"

    def _run(self, cmd: List[str], action: str) -> bool:
        try:
            self.runner.run(cmd)
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to {action}: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error(f"{cmd[0]} command not found. Please ensure it is installed and in PATH")
            return False

    def _run_ignoring(self, cmd: List[str], action: str) -> None:
        try:
            self.runner.run(cmd)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.warning(f"Ignoring failure to {action}: {e}")

    def socket_state(self) -> str:
        try:
            result = self.runner.run(["systemctl", "is-active", "podman.socket"], check=False)
        except FileNotFoundError:
            return "unknown"
        return result.stdout.strip() or "inactive"

    def socket_active(self) -> bool:
        return self.runner.succeeds(["systemctl", "is-active", "--quiet", "podman.socket"])

    def init(self) -> bool:
        """Create the Podman machine (macOS) or enable the socket (Linux)."""
        if self.is_macos:
            logger.info("Initializing Podman machine (macOS)...")
            created = self._run([
                "podman", "machine", "init",
                "--cpus", str(self.cpus),
                "--memory", str(self.memory),
                "--disk-size", str(self.disk),
                "--volume", f"{self.nfs_volume}:{self.nfs_volume}",
                "--rootful"
            ], "initialize Podman machine")
            if not created:
                return False
            logger.info("Starting Podman machine...")
            if not self._run(["podman", "machine", "start"], "start Podman machine"):
                return False
            logger.info("Podman machine initialized and running in rootful mode.")
            return True

        logger.info("Linux detected - Podman runs natively (rootful mode), no machine needed.")
        if self.socket_active():
            logger.info("Podman socket is active.")
            return True

        logger.info("Enabling podman.socket...")
        if not self._run(["sudo", "systemctl", "enable", "--now", "podman.socket"], "enable podman.socket"):
            logger.warning("Run: sudo systemctl enable --now podman.socket")
        return True

    def start(self) -> bool:
        if self.is_macos:
            logger.info("Starting Podman machine...")
            self._run_ignoring(["podman", "machine", "start"], "start Podman machine")
            return True

        logger.info("Linux: Ensuring Podman socket is running (rootful mode)...")
        if not self.socket_active():
            self._run(["sudo", "systemctl", "start", "podman.socket"], "start podman.socket")
        logger.info(f"Podman socket: {self.socket_state()}")
        return True

    def stop(self) -> bool:
        if self.is_macos:
            logger.info("Stopping Podman machine...")
            self._run_ignoring(["podman", "machine", "stop"], "stop Podman machine")
        else:
            logger.info("Linux: Stopping Podman socket...")
            self._run_ignoring(["sudo", "systemctl", "stop", "podman.socket"], "stop podman.socket")
        return True

    def status(self) -> bool:
        if self.is_macos:
            return self.runner.stream(["podman", "machine", "list"]) == 0

        print(f"Socket status: {self.socket_state()}")
        print(f"Socket path:   {ROOTFUL_PODMAN_SOCKET}")
        print()
        try:
            info = self.runner.run(["podman", "info"], check=False).stdout or ""
        except FileNotFoundError:
            info = ""
        lines = [line for line in info.splitlines() if INFO_LINES.match(line)]
        if not lines:
            print("Podman not running or not installed")
            return False
        print("\n".join(lines))
        return True

    def remove(self) -> bool:
        """Remove the Podman machine. There is nothing to remove on Linux."""
        self.stop()
        if not self.is_macos:
            logger.info("Linux: Podman runs natively - nothing to remove.")
            return True
        logger.warning("Removing Podman machine...")
        self._run_ignoring(["podman", "machine", "rm", "-f"], "remove Podman machine")
        return True

    def start_container(self, name: str) -> None:
        self._run_ignoring(["podman", "start", name], f"start container {name}")
