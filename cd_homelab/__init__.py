"""Task runner for a k3d-based GitOps homelab."""

__version__ = "0.3.0"
