import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Optional, Sequence

logger = logging.getLogger(__name__)

# Checked before PATH so sudo-stripped environments still find the tools
COMMON_BIN_DIRS = [
    "/usr/bin",
    "/usr/local/bin",
    "/opt/homebrew/bin",
    "/snap/bin"
]


class CommandRunner:
    """Runs external tools (k3d, kubectl, helm, ...) with a shared environment."""

    def __init__(self, kubeconfig: Optional[Path] = None, extra_env: Optional[Dict[str, str]] = None):
        """Initialize the runner.

        Args:
            kubeconfig: Path to kubeconfig file. Uses default if None.
            extra_env: Additional variables exported to every command
        """
        # Start with current environment
        self.env = os.environ.copy()

        # Add kubeconfig if provided
        if kubeconfig:
            self.env["KUBECONFIG"] = str(kubeconfig)
            logger.debug(f"Using kubeconfig: {kubeconfig}")

        if extra_env:
            self.env.update(extra_env)

    def which(self, tool: str) -> Optional[str]:
        """Find a tool in common locations or the PATH."""
        for directory in COMMON_BIN_DIRS:
            path = os.path.join(directory, tool)
            if os.path.exists(path) and os.access(path, os.X_OK):
                logger.debug(f"Found {tool} at: {path}")
                return path

        path = shutil.which(tool, path=self.env.get("PATH"))
        if path:
            logger.debug(f"Found {tool} in PATH: {path}")
        return path

    def run(self, cmd: Sequence[str], check: bool = True,
            input: Optional[str] = None) -> subprocess.CompletedProcess:
        """Run a command and capture its output as text.

        Raises:
            subprocess.CalledProcessError: If check is set and the command fails
            FileNotFoundError: If the executable does not exist
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.run(
            list(cmd),
            env=self.env,
            check=check,
            capture_output=True,
            text=True,
            input=input
        )

    def succeeds(self, cmd: Sequence[str]) -> bool:
        """Return True if the command exits with status 0."""
        try:
            return self.run(cmd, check=False).returncode == 0
        except FileNotFoundError:
            return False

    def stream(self, cmd: Sequence[str]) -> int:
        """Run a command attached to the terminal and return its exit code."""
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(list(cmd), env=self.env).returncode
        except FileNotFoundError:
            logger.error(f"{cmd[0]} command not found. Please ensure it is installed and in PATH")
            return 127

    def spawn(self, cmd: Sequence[str]) -> subprocess.Popen:
        """Start a command in the background with its output discarded."""
        logger.debug(f"Spawning: {' '.join(cmd)}")
        return subprocess.Popen(
            list(cmd),
            env=self.env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL
        )


def error_output(error: subprocess.CalledProcessError) -> str:
    """Best-effort text of a failed command's stderr."""
    output = error.stderr or error.stdout or ""
    if isinstance(output, bytes):
        output = output.decode(errors="replace")
    return output.strip() or f"exit status {error.returncode}"
