import logging
from typing import List, Optional

from aws_cdk import (
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_eks as eks,
    Tags,
)
from aws_cdk.lambda_layer_kubectl_v28 import KubectlV28Layer
from config.base_config import InfrastructureConfig
from constructs import Construct, IConstruct
from cdk_constructs.vpc.cluster_vpc import ClusterVpc
from .eks_utils import STS_AUDIENCE, create_standard_admin_access_entry

logger = logging.getLogger(__name__)


class EksCluster(Construct):
    """
    EKS Cluster construct.

    Creates the control plane with low-level constructs, placed in private
    subnets of the given network, and a default managed node group.
    The IAM OIDC provider used for IRSA is added explicitly with
    ``add_open_id_connect_provider``. Kubernetes objects (Helm charts,
    service accounts) go through ``kubectl_cluster``, which runs kubectl as
    a dedicated role registered with an access entry.
    """

    def __init__(self, scope: Construct, id: str,
                 network: ClusterVpc,
                 config: InfrastructureConfig,
                 placement_subnets: Optional[List[ec2.ISubnet]] = None) -> None:
        super().__init__(scope, id)

        self.network = network
        self.config = config
        self.cluster_name = self.config.eks.cluster_name
        self.placement_subnets = self._resolve_placement(placement_subnets)

        self.oidc_provider: Optional[iam.CfnOIDCProvider] = None
        self._kubectl_cluster: Optional[eks.ICluster] = None

        logger.info(
            "Defining EKS cluster %s (Kubernetes %s) in %d private subnets",
            self.cluster_name, self.config.eks.cluster_version_str, len(self.placement_subnets),
        )

        # Create IAM roles first
        self.cluster_role = self._create_cluster_role()
        self.node_role = self._create_node_role()

        self._tags_subnets()

        self.eks_cluster = self._create_eks_cluster()
        self.node_group = self._create_node_group()

        # kubectl identity for Kubernetes-side resources
        self.kubectl_role = self._create_kubectl_role()
        self.kubectl_access_entry = create_standard_admin_access_entry(
            scope=self,
            id="KubectlAccessEntry",
            cluster_name=self.eks_cluster.ref,
            principal_arn=self.kubectl_role.role_arn,
            cluster_dependency=self.eks_cluster
        )

    @property
    def cluster_endpoint(self) -> str:
        return self.eks_cluster.attr_endpoint

    @property
    def cluster_arn(self) -> str:
        return self.eks_cluster.attr_arn

    def _resolve_placement(self, placement_subnets: Optional[List[ec2.ISubnet]]) -> List[ec2.ISubnet]:
        """Placement defaults to every private subnet and may never leave them."""
        private_subnets = self.network.private_subnets
        if placement_subnets is None:
            return list(private_subnets)

        if not placement_subnets:
            raise ValueError(f"cluster {self.config.eks.cluster_name} needs at least one placement subnet")

        private_paths = {subnet.node.path for subnet in private_subnets}
        foreign = [subnet.node.path for subnet in placement_subnets if subnet.node.path not in private_paths]
        if foreign:
            raise ValueError(
                f"placement subnets are not private subnets of {self.network.node.path}: {', '.join(foreign)}"
            )
        return list(placement_subnets)

    def _create_cluster_role(self) -> iam.CfnRole:
        """Create IAM role for EKS cluster."""
        trust_policy = iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    principals=[
                        iam.ServicePrincipal("eks.amazonaws.com")
                    ],
                    actions=[
                        "sts:AssumeRole",
                        "sts:TagSession"
                    ]
                )
            ]
        )
        role = iam.CfnRole(
            self, "EksClusterRole",
            role_name=self.config.prefix("eks-cluster-role"),
            assume_role_policy_document=trust_policy,
            description="IAM role for EKS cluster",
            managed_policy_arns=[
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEKSClusterPolicy").managed_policy_arn,
            ]
        )

        return role

    def _create_node_role(self) -> iam.Role:
        """Create IAM role for EKS nodes."""
        role = iam.Role(
            self, "EksNodeRole",
            role_name=self.config.prefix("eks-node-role"),
            assumed_by=iam.ServicePrincipal("ec2.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEKSWorkerNodePolicy"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEKS_CNI_Policy"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEC2ContainerRegistryReadOnly"),
            ],
            description="IAM role for EKS worker nodes",
        )

        return role

    def _create_kubectl_role(self) -> iam.Role:
        """Create IAM role assumed by the kubectl handler."""
        role = iam.Role(
            self, "KubectlRole",
            assumed_by=iam.AccountRootPrincipal(),
            description="IAM role used by CDK to apply Kubernetes resources",
        )
        role.add_to_policy(iam.PolicyStatement(
            effect=iam.Effect.ALLOW,
            actions=["eks:DescribeCluster"],
            resources=[self.cluster_arn]
        ))

        return role

    def _tags_subnets(self):
        """Tags subnets so that the cluster and its load balancers discover them"""

        for subnet in self.placement_subnets + self.network.public_subnets:
            Tags.of(subnet).add("kubernetes.io/cluster/" + self.cluster_name, "owned")

    def _create_eks_cluster(self) -> eks.CfnCluster:
        """Create EKS cluster using low-level constructs."""

        endpoint_access = self.config.eks.endpoint_access

        cluster = eks.CfnCluster(
            self, "EksCluster",
            name=self.cluster_name,
            version=self.config.eks.cluster_version_str,
            access_config=eks.CfnCluster.AccessConfigProperty(
                authentication_mode="API_AND_CONFIG_MAP",
                bootstrap_cluster_creator_admin_permissions=True,
            ),
            role_arn=self.cluster_role.attr_arn,
            resources_vpc_config=eks.CfnCluster.ResourcesVpcConfigProperty(
                subnet_ids=[subnet.subnet_id for subnet in self.placement_subnets],
                endpoint_private_access=endpoint_access.private_access,
                endpoint_public_access=endpoint_access.public_access
            ),
            logging=eks.CfnCluster.LoggingProperty(
                cluster_logging=eks.CfnCluster.ClusterLoggingProperty(
                    enabled_types=[
                        eks.CfnCluster.LoggingTypeConfigProperty(type=logging_type.value)
                        for logging_type in self.config.eks.cluster_logging
                    ]
                )
            ),
        )

        return cluster

    def _create_node_group(self) -> eks.CfnNodegroup:
        """Create the default managed node group."""
        node_group_config = self.config.eks.node_group

        node_group = eks.CfnNodegroup(
            self, "EksNodeGroup",
            cluster_name=self.eks_cluster.ref,
            nodegroup_name=self.config.prefix("eks-nodegroup"),
            node_role=self.node_role.role_arn,
            subnets=[subnet.subnet_id for subnet in self.placement_subnets],
            ami_type=node_group_config.ami_type,
            capacity_type="ON_DEMAND",
            instance_types=[node_group_config.instance_type],
            scaling_config=eks.CfnNodegroup.ScalingConfigProperty(
                min_size=node_group_config.min_size,
                max_size=node_group_config.max_size,
                desired_size=node_group_config.desired_size
            ),
            update_config=eks.CfnNodegroup.UpdateConfigProperty(
                max_unavailable=1
            ),
            labels={
                "node.kubernetes.io/role": "worker",
            },
            tags={
                "kubernetes.io/cluster/" + self.cluster_name: "owned",
            }
        )

        logger.debug(
            "Default node group: %d x %s",
            node_group_config.desired_size, node_group_config.instance_type,
        )
        return node_group

    def add_open_id_connect_provider(self) -> iam.CfnOIDCProvider:
        """Create IAM OIDC provider. Required before binding service accounts (IRSA)."""
        if self.oidc_provider is None:
            self.oidc_provider = iam.CfnOIDCProvider(
                self, "OidcProvider",
                url=self.eks_cluster.attr_open_id_connect_issuer_url,
                client_id_list=[STS_AUDIENCE],
            )
            logger.debug("OIDC provider added to cluster %s", self.cluster_name)
        return self.oidc_provider

    @property
    def kubectl_cluster(self) -> eks.ICluster:
        """Cluster handle able to apply manifests and Helm charts through kubectl."""
        if self._kubectl_cluster is None:
            attributes = dict(
                cluster_name=self.eks_cluster.ref,
                kubectl_role_arn=self.kubectl_role.role_arn,
                kubectl_layer=KubectlV28Layer(self, "KubectlLayer"),
            )
            if not self.config.eks.endpoint_access.public_access:
                # A private-only endpoint is reachable from inside the VPC only
                attributes.update(
                    vpc=self.network.vpc,
                    kubectl_private_subnet_ids=[subnet.subnet_id for subnet in self.placement_subnets],
                    kubectl_security_group_id=self.eks_cluster.attr_cluster_security_group_id,
                )
            self._kubectl_cluster = eks.Cluster.from_cluster_attributes(
                self, "KubectlCluster", **attributes
            )
        return self._kubectl_cluster

    def add_kubernetes_dependencies(self, construct: IConstruct) -> None:
        """Kubernetes objects need kubectl access and schedulable nodes."""
        construct.node.add_dependency(self.kubectl_access_entry)
        construct.node.add_dependency(self.node_group)
