"""
CDK Constructs Package

This package contains reusable CDK constructs for the EKS cluster stack.
"""

from .vpc.cluster_vpc import ClusterVpc
from .eks.eks_cluster import EksCluster
from .eks.service_account_role import ServiceAccountRole
from .eks.helm_addon import HelmAddon

__all__ = [
    'ClusterVpc',
    'EksCluster',
    'ServiceAccountRole',
    'HelmAddon',
]
