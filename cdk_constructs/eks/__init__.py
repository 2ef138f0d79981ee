"""
EKS Constructs

Cluster, IRSA bindings and Helm add-ons, plus helper functions shared by them.
"""

from .eks_cluster import EksCluster
from .service_account_role import ServiceAccountRole
from .helm_addon import HelmAddon
from .eks_utils import (
    create_standard_admin_access_entry,
    oidc_issuer_from_provider_arn,
    web_identity_trust_principal,
)

__all__ = [
    'EksCluster',
    'ServiceAccountRole',
    'HelmAddon',
    'create_standard_admin_access_entry',
    'oidc_issuer_from_provider_arn',
    'web_identity_trust_principal',
]
