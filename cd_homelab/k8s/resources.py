import subprocess
from typing import List

from cd_homelab.utils.commands import CommandRunner

DEBUG_IMAGE = "nicolaka/netshoot"


class ClusterInspector:
    """Read-only views of the cluster plus a few interactive debug helpers.

    Output goes straight to the terminal; methods return True when kubectl
    exited cleanly.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def _kubectl(self, *args: str) -> bool:
        return self.runner.stream(["kubectl", *args]) == 0

    def nodes(self) -> bool:
        return self._kubectl("get", "nodes", "-o", "wide")

    def pods(self) -> bool:
        return self._kubectl("get", "pods", "-A")

    def services(self) -> bool:
        return self._kubectl("get", "svc", "-A")

    def pvcs(self) -> bool:
        return self._kubectl("get", "pvc", "-A")

    def storage_classes(self) -> bool:
        return self._kubectl("get", "storageclass")

    def ingresses(self) -> bool:
        return self._kubectl("get", "ingress", "-A")

    def events(self, limit: int = 20) -> bool:
        """Print the most recent events across all namespaces."""
        try:
            result = self.runner.run([
                "kubectl", "get", "events", "-A", "--sort-by=.lastTimestamp"
            ])
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            print(f"Failed to get events: {e}")
            return False
        lines: List[str] = result.stdout.splitlines()
        print("\n".join(lines[-limit:]))
        return True

    def logs(self, pod: str, namespace: str = "default", tail: int = 100) -> bool:
        return self._kubectl("logs", "-n", namespace, pod, f"--tail={tail}")

    def shell(self, pod: str, namespace: str = "default") -> bool:
        return self._kubectl("exec", "-it", "-n", namespace, pod, "--", "/bin/sh")

    def debug_pod(self) -> bool:
        return self._kubectl("run", "debug", "--rm", "-it", f"--image={DEBUG_IMAGE}", "--", "/bin/bash")

    def top_nodes(self) -> bool:
        return self._kubectl("top", "nodes")

    def top_pods(self) -> bool:
        return self._kubectl("top", "pods", "-A")

    def describe(self, resource: str, namespace: str = "default") -> bool:
        return self._kubectl("describe", "-n", namespace, resource)

    def namespace_events(self, namespace: str = "default") -> bool:
        return self._kubectl("get", "events", "-n", namespace, "--sort-by=.lastTimestamp")
