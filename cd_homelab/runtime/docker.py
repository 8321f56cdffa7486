import logging
import re
import subprocess
import time

from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)

STATUS_LINES = re.compile(r"Operating System|Server Version|CPUs|Total Memory")


class DockerManager:
    """Docker Desktop on macOS, the Docker daemon on Linux."""

    def __init__(self, runner: CommandRunner, os_name: str, start_timeout: int = 60):
        self.runner = runner
        self.os_name = os_name
        self.start_timeout = start_timeout

    @property
    def is_macos(self) -> bool:
        return self.os_name == "macos"

    def is_running(self) -> bool:
        return self.runner.succeeds(["docker", "info"])

    def start(self) -> bool:
        """Ensure Docker is running, starting it if needed."""
        if self.is_macos:
            logger.info("Checking Docker Desktop (macOS)...")
            if self.is_running():
                logger.info("Docker Desktop is running.")
                return True

            logger.info("Starting Docker Desktop...")
            try:
                self.runner.run(["open", "-a", "Docker"])
            except (subprocess.CalledProcessError, FileNotFoundError) as e:
                logger.error(f"Failed to launch Docker Desktop: {e}")
                return False

            logger.info(f"Waiting for Docker to start (up to {self.start_timeout}s)...")
            for _ in range(self.start_timeout):
                if self.is_running():
                    logger.info("Docker Desktop started.")
                    return True
                time.sleep(1)
            logger.error(f"Docker Desktop did not start within {self.start_timeout}s")
            return False

        logger.info("Checking Docker daemon (Linux)...")
        if self.is_running():
            logger.info("Docker daemon is running.")
            return True

        logger.info("Starting Docker daemon...")
        try:
            self.runner.run(["sudo", "systemctl", "start", "docker"])
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to start Docker: {error_output(e)}")
        except FileNotFoundError:
            logger.error("systemctl not found")
        logger.error("Try: sudo systemctl start docker")
        return False

    def stop(self) -> bool:
        if self.is_macos:
            logger.info("Note: Docker Desktop runs as a background app. Quit from menu bar if needed.")
            return True

        logger.info("Stopping Docker daemon...")
        try:
            self.runner.run(["sudo", "systemctl", "stop", "docker"])
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.warning(f"Ignoring failure to stop Docker: {e}")
        return True

    def status(self) -> bool:
        """Print the interesting lines of `docker info`."""
        try:
            result = self.runner.run(["docker", "info"])
        except (subprocess.CalledProcessError, FileNotFoundError):
            print("Docker not running")
            return False

        lines = [line for line in result.stdout.splitlines() if STATUS_LINES.search(line)]
        if not lines:
            print("Docker not running")
            return False
        print("\n".join(lines))
        return True

    def verify(self) -> bool:
        """Check that Docker is up without trying to start it."""
        if self.is_macos:
            logger.info("Checking Docker Desktop (macOS)...")
            try:
                info = self.runner.run(["docker", "info"], check=False).stdout or ""
            except FileNotFoundError:
                info = ""
            if "Docker Desktop" in info:
                logger.info("Docker Desktop is running.")
                return True
            logger.error("Docker Desktop not running. Please start it from Applications.")
            return False

        logger.info("Checking Docker daemon (Linux)...")
        if self.is_running():
            logger.info("Docker daemon is running.")
            return True
        logger.error("Docker not running. Start with: sudo systemctl start docker")
        return False

    def use_default_context(self) -> bool:
        logger.info("Switching Docker context to default...")
        try:
            self.runner.run(["docker", "context", "use", "default"])
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to switch Docker context: {error_output(e)}")
            return False
        except FileNotFoundError:
            logger.error("docker command not found. Please ensure Docker is installed and in PATH")
            return False
        print()
        self.runner.stream(["docker", "context", "list"])
        return True
