import json
import logging
import subprocess
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from cd_homelab.utils.commands import CommandRunner, error_output

logger = logging.getLogger(__name__)


def read_app_name(manifest: Path) -> Optional[str]:
    """Return metadata.name of the first Application in a manifest file."""
    if not manifest.exists():
        return None
    with open(manifest) as f:
        for document in yaml.safe_load_all(f):
            if document and document.get("kind") == "Application":
                return (document.get("metadata") or {}).get("name")
    return None


class ArgoCDAppWaiter:
    """Class for waiting on ArgoCD application status."""

    def __init__(self, runner: CommandRunner, namespace: str = "argocd"):
        self.runner = runner
        self.namespace = namespace

    def get_app_status(self, app_name: str) -> Dict[str, Any]:
        """Get the current status of an ArgoCD application.

        Args:
            app_name: Name of the ArgoCD application

        Returns:
            dict: Application as a dictionary, empty if it cannot be read
        """
        try:
            result = self.runner.run(
                ["kubectl", "get", "application", app_name, "-n", self.namespace, "-o", "json"]
            )
            return json.loads(result.stdout)
        except subprocess.CalledProcessError as e:
            logger.debug(f"Failed to get application status: {error_output(e)}")
            return {}
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse application status: {str(e)}")
            return {}
        except FileNotFoundError:
            logger.error("kubectl command not found. Please ensure kubectl is installed and in PATH")
            return {}

    @staticmethod
    def sync_status(app: Dict[str, Any]) -> Optional[str]:
        return app.get("status", {}).get("sync", {}).get("status")

    @staticmethod
    def health_status(app: Dict[str, Any]) -> Optional[str]:
        return app.get("status", {}).get("health", {}).get("status")

    def is_app_synced(self, app_name: str) -> bool:
        sync = self.sync_status(self.get_app_status(app_name))
        if sync != "Synced":
            logger.info(f"Application {app_name} sync status: {sync}")
        return sync == "Synced"

    def is_app_healthy(self, app_name: str) -> bool:
        health = self.health_status(self.get_app_status(app_name))
        if health != "Healthy":
            logger.info(f"Application {app_name} health status: {health}")
        return health == "Healthy"

    def _wait(self, check: Callable[[str], bool], app_name: str, state: str,
              timeout_seconds: int, interval_seconds: int) -> bool:
        logger.info(f"Waiting for application {app_name} to be {state} (timeout: {timeout_seconds}s)...")

        start_time = time.monotonic()
        while time.monotonic() - start_time < timeout_seconds:
            if check(app_name):
                logger.info(f"Application {app_name} is {state}")
                return True

            elapsed = int(time.monotonic() - start_time)
            logger.info(f"Still waiting for {app_name}... ({elapsed}s elapsed, {timeout_seconds - elapsed}s remaining)")
            time.sleep(interval_seconds)

        logger.error(f"Timeout waiting for application {app_name} to be {state}")
        self._log_app_status(app_name)
        return False

    def wait_for_app_sync(self, app_name: str, timeout_seconds: int = 600,
                          interval_seconds: int = 10) -> bool:
        return self._wait(self.is_app_synced, app_name, "synced", timeout_seconds, interval_seconds)

    def wait_for_app_health(self, app_name: str, timeout_seconds: int = 600,
                            interval_seconds: int = 10) -> bool:
        return self._wait(self.is_app_healthy, app_name, "healthy", timeout_seconds, interval_seconds)

    def wait_for_app_ready(self, app_name: str, timeout_seconds: int = 1200,
                           interval_seconds: int = 10) -> bool:
        """Wait for an application to be both synced and healthy.

        The timeout is split evenly between the sync and health phases.
        """
        sync_timeout = timeout_seconds // 2
        health_timeout = timeout_seconds - sync_timeout

        if not self.wait_for_app_sync(app_name, sync_timeout, interval_seconds):
            return False

        return self.wait_for_app_health(app_name, health_timeout, interval_seconds)

    def _log_app_status(self, app_name: str) -> None:
        app = self.get_app_status(app_name)
        if not app:
            logger.error(f"Could not get status for application {app_name}")
            return

        logger.error(
            f"Application {app_name} status: Sync={self.sync_status(app) or 'Unknown'}, "
            f"Health={self.health_status(app) or 'Unknown'}"
        )
        resources: List[Dict[str, Any]] = app.get("status", {}).get("resources", [])
        if resources:
            logger.error("Application resources:")
        for resource in resources:
            kind = resource.get("kind", "Unknown")
            name = resource.get("name", "Unknown")
            health = resource.get("health", {}).get("status", "Unknown")
            sync = resource.get("status", "Unknown")
            logger.error(f"  {kind}/{name}: Health={health}, Sync={sync}")
