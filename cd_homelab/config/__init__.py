from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .settings import HomelabSettings, detect_os, read_cluster_name

def load_settings(root: Path, env_file: Optional[Path] = None,
                  kubeconfig: Optional[Path] = None) -> HomelabSettings:
    """Load the .env file (without overriding the environment) and build settings.
    
    Args:
        root: Homelab repository root
        env_file: Explicit dotenv file. Defaults to <root>/.env
        kubeconfig: Optional kubeconfig passed to every tool
        
    Returns:
        HomelabSettings: Resolved settings
    """
    dotenv_path = env_file or Path(root) / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path=str(dotenv_path), override=False)
    return HomelabSettings.from_env(root, kubeconfig=kubeconfig)

__all__ = ['HomelabSettings', 'detect_os', 'read_cluster_name', 'load_settings']
