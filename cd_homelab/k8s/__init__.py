from .api import KubeApi
from .helm import HelmOperations, HelmChart, HelmComponent, CHARTS
from .argocd import ArgoCDManager
from .wait import ArgoCDAppWaiter
from .cluster import K3dCluster
from .secrets import SealedSecretsManager, ExternalSecretsManager
from .azure import AzureKeyVault
from .storage import NFSStorage
from .resources import ClusterInspector
from .bootstrap import Bootstrapper

__all__ = ['KubeApi', 'HelmOperations', 'HelmChart', 'HelmComponent', 'CHARTS',
           'ArgoCDManager', 'ArgoCDAppWaiter', 'K3dCluster', 'SealedSecretsManager',
           'ExternalSecretsManager', 'AzureKeyVault', 'NFSStorage', 'ClusterInspector',
           'Bootstrapper']
