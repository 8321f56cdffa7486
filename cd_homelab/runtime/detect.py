import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Mapping, Optional

from cd_homelab.utils.commands import CommandRunner

logger = logging.getLogger(__name__)

DOCKER = "docker"
PODMAN = "podman"
NONE = "none"

ROOTFUL_PODMAN_SOCKET = "/run/podman/podman.sock"


def detect_runtime(runner: CommandRunner, os_name: str, override: Optional[str] = None) -> str:
    """Detect which container runtime is currently usable.

    macOS prefers Docker Desktop and falls back to a running Podman machine.
    Linux prefers native Podman and falls back to the Docker daemon.

    Args:
        runner: Command runner used for the probes
        os_name: "macos" or "linux"
        override: Value of RUNTIME, which always wins

    Returns:
        str: "docker", "podman" or "none"
    """
    if override:
        return override

    if os_name == "macos":
        if "Operating System: Docker Desktop" in _output(runner, [DOCKER, "info"]):
            return DOCKER
        if "Currently running" in _output(runner, [PODMAN, "machine", "list"]):
            return PODMAN
        return NONE

    if runner.succeeds([PODMAN, "info"]):
        return PODMAN
    if runner.succeeds([DOCKER, "info"]):
        return DOCKER
    return NONE


def runtime_hint(os_name: str, override: Optional[str] = None) -> str:
    """Static runtime assumption used for DOCKER_HOST exports."""
    if override:
        return override
    return DOCKER if os_name == "macos" else PODMAN


def podman_socket(runner: CommandRunner, os_name: str,
                  environ: Optional[Mapping[str, str]] = None) -> str:
    """Locate the Podman API socket, preferring rootful over rootless on Linux."""
    if os_name == "macos":
        return _output(runner, [
            PODMAN, "machine", "inspect",
            "--format", "{{.ConnectionInfo.PodmanSocket.Path}}"
        ]).strip()

    if Path(ROOTFUL_PODMAN_SOCKET).is_socket():
        return ROOTFUL_PODMAN_SOCKET

    env = os.environ if environ is None else environ
    runtime_dir = env.get("XDG_RUNTIME_DIR") or f"/run/user/{os.getuid()}"
    rootless = Path(runtime_dir) / "podman" / "podman.sock"
    if rootless.is_socket():
        return str(rootless)
    return ""


def docker_env(hint: str, socket: str) -> Dict[str, str]:
    """Variables that point k3d at the Podman socket."""
    if hint != PODMAN or not socket:
        return {}
    return {
        "DOCKER_HOST": f"unix://{socket}",
        "DOCKER_SOCK": socket
    }


def _output(runner: CommandRunner, cmd) -> str:
    try:
        return runner.run(cmd, check=False).stdout or ""
    except FileNotFoundError:
        logger.debug(f"{cmd[0]} not installed")
        return ""
    except subprocess.SubprocessError as e:
        logger.debug(f"Probe {' '.join(cmd)} failed: {e}")
        return ""
