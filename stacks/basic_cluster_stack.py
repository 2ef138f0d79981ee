import logging
from typing import List

from aws_cdk import Stack, CfnOutput
from constructs import Construct
from cdk_constructs.vpc.cluster_vpc import ClusterVpc
from cdk_constructs.eks.eks_cluster import EksCluster
from cdk_constructs.eks.service_account_role import ServiceAccountRole
from cdk_constructs.eks.helm_addon import HelmAddon
from config.base_config import InfrastructureConfig

logger = logging.getLogger(__name__)


class BasicClusterStack(Stack):
    """
    VPC plus EKS cluster with a managed node group.

    Resources are declared in dependency order:
    network, cluster (and its OIDC provider), service account roles and
    Helm add-ons, then the stack outputs.
    """

    def __init__(self, scope: Construct, construct_id: str, config: InfrastructureConfig, **kwargs) -> None:
        kwargs.setdefault("description", config.description)
        super().__init__(scope, construct_id, **kwargs)
        self.config = config

        self.network = ClusterVpc(self, "EksVpc", config=config)

        self.cluster = EksCluster(
            self,
            "Cluster",
            network=self.network,
            config=config,
        )
        self.oidc_provider = self.cluster.add_open_id_connect_provider()

        self.service_account_roles: List[ServiceAccountRole] = [
            ServiceAccountRole(
                self,
                service_account.construct_id,
                cluster=self.cluster,
                service_account=service_account,
            )
            for service_account in config.service_accounts
        ]

        self.addons: List[HelmAddon] = [
            HelmAddon(
                self,
                chart.construct_id,
                cluster=self.cluster,
                chart=chart,
            )
            for chart in config.helm_charts
        ]

        self._create_outputs()

        # Global tags for the stack
        self.config.add_stack_global_tags(self)
        logger.info("Stack %s assembled", construct_id)

    @property
    def kubeconfig_command(self) -> str:
        return (
            f"aws eks update-kubeconfig --region {self.config.aws.region_str} "
            f"--name {self.cluster.cluster_name}"
        )

    def _create_outputs(self):
        """Create CloudFormation outputs for operators."""

        CfnOutput(
            self, "ClusterName",
            value=self.cluster.eks_cluster.ref,
            description="EKS Cluster Name",
            export_name=self.config.prefix("cluster-name")
        )

        CfnOutput(
            self, "ConfigCommand",
            value=self.kubeconfig_command,
            description="Command to configure kubectl",
        )

        CfnOutput(
            self, "ClusterEndpoint",
            value=self.cluster.cluster_endpoint,
            description="EKS Cluster Endpoint URL",
            export_name=self.config.prefix("cluster-endpoint")
        )

        CfnOutput(
            self, "OIDCProviderArn",
            value=self.oidc_provider.attr_arn,
            description="OIDC Provider ARN for IRSA",
            export_name=self.config.prefix("oidc-provider-arn")
        )

        CfnOutput(
            self, "VpcId",
            value=self.network.vpc_id,
            description="VPC ID where cluster is deployed",
            export_name=self.config.prefix("vpc-id")
        )
