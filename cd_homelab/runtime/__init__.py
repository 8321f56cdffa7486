from .detect import detect_runtime, runtime_hint, podman_socket, docker_env, DOCKER, PODMAN, NONE
from .docker import DockerManager
from .podman import PodmanManager

__all__ = ['detect_runtime', 'runtime_hint', 'podman_socket', 'docker_env',
           'DOCKER', 'PODMAN', 'NONE', 'DockerManager', 'PodmanManager']
