import logging

from aws_cdk import (
    aws_eks as eks,
    aws_iam as iam,
    CfnJson,
)
from constructs import Construct
from config.base_config import ServiceAccountConfig
from .eks_cluster import EksCluster
from .eks_utils import STS_AUDIENCE, oidc_issuer_from_provider_arn, web_identity_trust_principal

logger = logging.getLogger(__name__)

ROLE_ARN_ANNOTATION = "eks.amazonaws.com/role-arn"


class ServiceAccountRole(Construct):
    """
    IAM role bound to one Kubernetes service account (IRSA).

    The trust policy allows ``sts:AssumeRoleWithWebIdentity`` from the
    cluster's own OIDC provider only, for tokens whose audience is STS and
    whose subject is ``system:serviceaccount:<namespace>:<name>``.
    """

    def __init__(self, scope: Construct, id: str,
                 cluster: EksCluster,
                 service_account: ServiceAccountConfig) -> None:
        if cluster.oidc_provider is None:
            raise ValueError(
                f"cluster {cluster.cluster_name} has no OIDC provider, "
                f"call add_open_id_connect_provider() before binding {service_account.subject}"
            )
        super().__init__(scope, id)

        self.cluster = cluster
        self.service_account = service_account
        self.oidc_provider = cluster.oidc_provider

        logger.info("Binding IAM role to service account %s", service_account.subject)
        self.role = self._create_role()
        self.manifest = None
        if service_account.create_kubernetes_resource:
            self.manifest = self._create_service_account_manifest()

    @property
    def role_arn(self) -> str:
        return self.role.role_arn

    def _create_role(self) -> iam.Role:
        """Create the IAM role assumed by pods running as the service account."""
        issuer = oidc_issuer_from_provider_arn(self.oidc_provider.attr_arn)

        # Condition keys embed the issuer, a token, so they must be resolved by CloudFormation
        conditions = CfnJson(
            self, "ConditionJson",
            value={
                f"{issuer}:aud": STS_AUDIENCE,
                f"{issuer}:sub": self.service_account.subject,
            }
        )

        role = iam.Role(
            self, "Role",
            assumed_by=web_identity_trust_principal(self.oidc_provider.attr_arn, conditions),
            description=f"IRSA role for {self.service_account.subject}",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(policy_name)
                for policy_name in self.service_account.managed_policies
            ],
        )

        return role

    def _create_service_account_manifest(self) -> eks.KubernetesManifest:
        """Apply the Kubernetes ServiceAccount annotated with the role ARN."""
        manifest = eks.KubernetesManifest(
            self, "Manifest",
            cluster=self.cluster.kubectl_cluster,
            manifest=[{
                "apiVersion": "v1",
                "kind": "ServiceAccount",
                "metadata": {
                    "name": self.service_account.name,
                    "namespace": self.service_account.namespace,
                    "labels": {
                        "app.kubernetes.io/name": self.service_account.name,
                    },
                    "annotations": {
                        ROLE_ARN_ANNOTATION: self.role.role_arn,
                    },
                },
            }],
        )
        self.cluster.add_kubernetes_dependencies(manifest)

        return manifest
