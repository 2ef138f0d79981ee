"""
EKS Utility Functions

This module contains reusable functions for EKS operations that can be used
across different CDK constructs and stacks.
"""

from aws_cdk import (
    aws_eks as eks,
    aws_iam as iam,
    Fn,
)
from typing import Optional
from constructs import Construct

CLUSTER_ADMIN_POLICY_ARN = "arn:aws:eks::aws:cluster-access-policy/AmazonEKSClusterAdminPolicy"
STS_AUDIENCE = "sts.amazonaws.com"


def create_standard_admin_access_entry(
    scope: Construct,
    id: str,
    cluster_name: str,
    principal_arn: str,
    cluster_dependency: Optional[eks.CfnCluster] = None
) -> eks.CfnAccessEntry:
    """
    Grant a principal cluster-wide admin through an EKS access entry.

    Example:
        ```python
        kubectl_access = create_standard_admin_access_entry(
            scope=self,
            id="KubectlAccessEntry",
            cluster_name="BasicEksCluster",
            principal_arn=kubectl_role.role_arn,
            cluster_dependency=cluster,
        )
        ```
    """

    access_entry = eks.CfnAccessEntry(
        scope, id,
        cluster_name=cluster_name,
        principal_arn=principal_arn,
        access_policies=[
            eks.CfnAccessEntry.AccessPolicyProperty(
                access_scope=eks.CfnAccessEntry.AccessScopeProperty(type="cluster"),
                policy_arn=CLUSTER_ADMIN_POLICY_ARN
            )
        ],
        type="STANDARD"
    )

    if cluster_dependency:
        access_entry.add_dependency(cluster_dependency)

    return access_entry


def oidc_issuer_from_provider_arn(provider_arn: str) -> str:
    """
    Issuer host/path of an IAM OIDC provider, as used in trust policy condition keys.

    ``arn:aws:iam::123456789012:oidc-provider/oidc.eks.us-west-2.amazonaws.com/id/ABC``
    becomes ``oidc.eks.us-west-2.amazonaws.com/id/ABC``.
    """
    return Fn.select(1, Fn.split(":oidc-provider/", provider_arn))


def web_identity_trust_principal(
    provider_arn: str,
    issuer_conditions: object,
) -> iam.WebIdentityPrincipal:
    """Federated principal for IRSA, restricted by StringEquals on the issuer claims."""
    return iam.WebIdentityPrincipal(
        provider_arn,
        conditions={"StringEquals": issuer_conditions},
    )
