import logging
from typing import List

from aws_cdk import aws_ec2 as ec2
from constructs import Construct
from aws_cdk import Tags
from config.base_config import InfrastructureConfig
from aws_cdk import aws_logs as logs
from aws_cdk import aws_iam as iam
from aws_cdk import RemovalPolicy

logger = logging.getLogger(__name__)

PUBLIC_SUBNET_GROUP = "Public"
PRIVATE_SUBNET_GROUP = "Private"

# Load balancer subnet discovery tags read by Kubernetes
PUBLIC_ELB_TAG = "kubernetes.io/role/elb"
INTERNAL_ELB_TAG = "kubernetes.io/role/internal-elb"


class ClusterVpc(Construct):
    """
    VPC for the EKS cluster.

    One public subnet (external load balancers) and one private subnet with
    egress (nodes, control plane ENIs, internal load balancers) per zone,
    sharing ``config.vpc.nat_gateways`` NAT gateways.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: InfrastructureConfig,
    ) -> None:
        super().__init__(scope, construct_id)
        self.config = config
        self.subnet_configuration = [
            ec2.SubnetConfiguration(
                name=PUBLIC_SUBNET_GROUP,
                subnet_type=ec2.SubnetType.PUBLIC,
                cidr_mask=self.config.vpc.cidr_mask,
            ),
            ec2.SubnetConfiguration(
                name=PRIVATE_SUBNET_GROUP,
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                cidr_mask=self.config.vpc.cidr_mask,
            ),
        ]

        logger.info(
            "Defining VPC %s with %d zones and %d NAT gateway(s)",
            self.config.vpc.cidr, self.config.vpc.max_azs, self.config.vpc.nat_gateways,
        )
        self.vpc = self._create_vpc()
        self._validate_zone_layout()
        self._tag_subnets_route_tables()
        self._tag_other_vpc_resources()
        if self.config.vpc.flow_logs:
            self._setup_flow_logs()

    @property
    def vpc_id(self) -> str:
        return self.vpc.vpc_id

    @property
    def public_subnets(self) -> List[ec2.ISubnet]:
        return self.vpc.public_subnets

    @property
    def private_subnets(self) -> List[ec2.ISubnet]:
        return self.vpc.private_subnets

    def _create_vpc(self) -> ec2.Vpc:
        """
        Create the VPC with the specified configuration.

        Explicit availability zones take precedence over ``max_azs``.

        Returns:
            Instance of the created VPC
        """
        zone_kwargs = {}
        if self.config.vpc.selected_availability_zones is not None:
            zone_kwargs["availability_zones"] = self.config.vpc.selected_availability_zones
        else:
            zone_kwargs["max_azs"] = self.config.vpc.max_azs

        vpc = ec2.Vpc(
            self, "Vpc",
            vpc_name=self.config.prefix("vpc"),
            ip_addresses=ec2.IpAddresses.cidr(self.config.vpc.cidr),
            nat_gateways=self.config.vpc.nat_gateways,
            subnet_configuration=self.subnet_configuration,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            **zone_kwargs,
        )

        return vpc

    def _validate_zone_layout(self) -> None:
        """Each zone must get exactly one public and one private subnet."""
        expected = self.config.vpc.max_azs
        public_count = len(self.public_subnets)
        private_count = len(self.private_subnets)
        if public_count != expected or private_count != expected:
            raise ValueError(
                f"VPC spans {public_count} public and {private_count} private subnets, "
                f"expected {expected} of each; set CDK_DEFAULT_ACCOUNT/CDK_DEFAULT_REGION "
                f"or vpc.availability_zones so that {expected} zones can be resolved"
            )

    def _tag_subnets_route_tables(self) -> None:
        """
        Add Name tags and load balancer discovery tags to the subnets of the VPC.
        """
        discovery_tags = {
            PUBLIC_SUBNET_GROUP: PUBLIC_ELB_TAG,
            PRIVATE_SUBNET_GROUP: INTERNAL_ELB_TAG,
        }
        for subnet_configuration in self.subnet_configuration:
            selected = self.vpc.select_subnets(subnet_group_name=subnet_configuration.name).subnets
            prefix_shared = self.config.prefix(subnet_configuration.name.lower())
            for i, subnet in enumerate(selected):
                Tags.of(subnet).add("Name", f"{prefix_shared}-subnet-az{i+1}")
                Tags.of(subnet).add(discovery_tags[subnet_configuration.name], "1")
                for child in subnet.node.children:
                    if isinstance(child, ec2.CfnRouteTable):
                        Tags.of(child).add("Name", f"{prefix_shared}-route-table-{i+1}")

    def _tag_other_vpc_resources(self) -> None:
        """
        Add Name tags to the gateways and elastic IPs of the VPC.
        """
        resource_names = (
            (ec2.CfnNatGateway, "nat-gateway"),
            (ec2.CfnInternetGateway, "igw"),
            (ec2.CfnEIP, "eip"),
        )
        all_resources = self.vpc.node.find_all()
        for resource_type, name in resource_names:
            matching = [child for child in all_resources if isinstance(child, resource_type)]
            for index, resource in enumerate(matching):
                Tags.of(resource).add("Name", self.config.prefix(f"{name}-{index+1}"))

    def _setup_flow_logs(self) -> None:
        """
        Configure VPC Flow Logs for the VPC.
        """
        log_group_name = f"/{self.config.project_name}/{self.config.env_name_str}/vpc/{self.config.prefix('vpc')}/flow-logs"
        log_group = logs.LogGroup(
            self, "VpcFlowLogs",
            log_group_name=log_group_name,
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY
        )

        flow_logs_role = iam.Role(
            self, "VpcFlowLogsRole",
            assumed_by=iam.ServicePrincipal("vpc-flow-logs.amazonaws.com"),
            role_name=self.config.prefix("vpc-flow-logs-role")
        )

        flow_logs_role.add_to_policy(
            iam.PolicyStatement(
                actions=[
                    "logs:CreateLogStream",
                    "logs:PutLogEvents",
                    "logs:DescribeLogGroups",
                    "logs:DescribeLogStreams"
                ],
                resources=[log_group.log_group_arn]
            )
        )

        self.vpc.add_flow_log(
            "VpcFlowLogs",
            destination=ec2.FlowLogDestination.to_cloud_watch_logs(log_group, flow_logs_role),
            traffic_type=ec2.FlowLogTrafficType.ALL,
        )
        logger.debug("VPC flow logs enabled in %s", log_group_name)
