import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from cd_homelab.config import HomelabSettings


class FakeProcess:
    def __init__(self, cmd):
        self.cmd = cmd
        self.terminated = False

    def terminate(self):
        self.terminated = True

    def wait(self, timeout=None):
        return 0

    def kill(self):
        self.terminated = True


class FakeRunner:
    """Records commands instead of running them.

    Responses are matched on the longest command-line prefix; anything
    unmatched succeeds with empty output.
    """

    def __init__(self):
        self.env: Dict[str, str] = {}
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.responses: Dict[str, List[Tuple[int, str, str]]] = {}
        self.missing = set()
        self.spawned: List[FakeProcess] = []

    def respond(self, prefix: str, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.responses.setdefault(prefix, []).append((returncode, stdout, stderr))

    def _lookup(self, cmd) -> Tuple[int, str, str]:
        line = " ".join(cmd)
        matches = [prefix for prefix in self.responses if line.startswith(prefix)]
        if not matches:
            return 0, "", ""
        queue = self.responses[max(matches, key=len)]
        # Keep the last response sticky so polling loops see a stable answer
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def _record(self, cmd, input=None):
        self.calls.append(list(cmd))
        self.inputs.append(input)
        if cmd[0] in self.missing:
            raise FileNotFoundError(cmd[0])

    def run(self, cmd, check=True, input=None):
        self._record(cmd, input)
        returncode, stdout, stderr = self._lookup(cmd)
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, list(cmd), output=stdout, stderr=stderr)
        return subprocess.CompletedProcess(list(cmd), returncode, stdout, stderr)

    def succeeds(self, cmd):
        try:
            return self.run(cmd, check=False).returncode == 0
        except FileNotFoundError:
            return False

    def stream(self, cmd):
        try:
            self._record(cmd)
        except FileNotFoundError:
            return 127
        return self._lookup(cmd)[0]

    def spawn(self, cmd):
        self._record(cmd)
        process = FakeProcess(list(cmd))
        self.spawned.append(process)
        return process

    def which(self, tool):
        return None if tool in self.missing else f"/usr/bin/{tool}"

    @property
    def commands(self) -> List[str]:
        return [" ".join(cmd) for cmd in self.calls]

    def ran(self, prefix: str) -> bool:
        return any(command.startswith(prefix) for command in self.commands)


class FakeKube:
    """In-memory stand-in for KubeApi."""

    def __init__(self):
        self.namespaces = set()
        self.secrets: Dict[Tuple[str, str], dict] = {}
        self.secret_values: Dict[Tuple[str, str, str], str] = {}
        self.cluster_objects = set()
        self.applied: List[dict] = []

    def ensure_namespace(self, namespace):
        self.namespaces.add(namespace)
        return True

    def list_secrets(self, namespace, label_selector):
        return [
            secret for (ns, _name), secret in self.secrets.items()
            if ns == namespace and label_selector in (secret["metadata"].get("labels") or {})
        ]

    def read_secret_value(self, name, namespace, key):
        return self.secret_values.get((namespace, name, key))

    def cluster_object_exists(self, group, version, plural, name):
        return (plural, name) in self.cluster_objects

    def apply_secret(self, body):
        self.applied.append(body)
        metadata = body["metadata"]
        self.secrets[(metadata["namespace"], metadata["name"])] = body
        return True


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Make every sleep instant while still advancing the monotonic clock."""
    clock = {"now": 0.0}

    def fake_sleep(seconds):
        clock["now"] += seconds

    monkeypatch.setattr(time, "sleep", fake_sleep)
    monkeypatch.setattr(time, "monotonic", lambda: clock["now"])
    return clock


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def kube():
    return FakeKube()


@pytest.fixture
def homelab_root(tmp_path: Path) -> Path:
    (tmp_path / "k3d").mkdir()
    (tmp_path / "k3d" / "config-linux.yaml").write_text(
        "apiVersion: k3d.io/v1alpha5\nkind: Simple\nmetadata:\n  name: homelab-nix\n"
    )
    (tmp_path / "k3d" / "config.yaml").write_text(
        "apiVersion: k3d.io/v1alpha5\nkind: Simple\nmetadata:\n  name: homelab\n"
    )
    return tmp_path


@pytest.fixture
def settings(homelab_root: Path) -> HomelabSettings:
    return HomelabSettings.from_env(homelab_root, environ={}, system="Linux")


@pytest.fixture
def macos_settings(homelab_root: Path) -> HomelabSettings:
    return HomelabSettings.from_env(homelab_root, environ={}, system="Darwin")
