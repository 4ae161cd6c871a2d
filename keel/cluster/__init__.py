"""Cluster layer - the only code that talks to the cluster."""

from keel.cluster.base import ClusterClient
from keel.cluster.k8s import K8sClusterClient
from keel.cluster.ssh import SshServiceController

__all__ = [
    "ClusterClient",
    "K8sClusterClient",
    "SshServiceController",
]
