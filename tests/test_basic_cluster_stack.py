"""
Template tests for BasicClusterStack with the default dev configuration
(3 zones, 1 NAT gateway, BasicEksCluster on Kubernetes 1.28).
"""

import pytest
from aws_cdk.assertions import Match, Template

from config.base_config import VpcConfig
from conftest import build_config, build_stack, subnet_ids_by_group, web_identity_roles


class TestNetwork:

    def test_vpc_is_created_with_correct_configuration(self, template):
        template.resource_count_is("AWS::EC2::VPC", 1)
        # 3 AZs * 2 types = 6
        template.resource_count_is("AWS::EC2::Subnet", 6)
        template.resource_count_is("AWS::EC2::NatGateway", 1)
        template.resource_count_is("AWS::EC2::InternetGateway", 1)

    def test_vpc_cidr(self, template):
        template.has_resource_properties("AWS::EC2::VPC", {
            "CidrBlock": "10.0.0.0/16",
            "EnableDnsHostnames": True,
            "EnableDnsSupport": True,
        })

    def test_public_subnets_tagged_for_external_load_balancers(self, template):
        subnets = template.find_resources("AWS::EC2::Subnet")
        public_ids = subnet_ids_by_group(template)["Public"]
        assert len(public_ids) == 3
        for logical_id in public_ids:
            tags = {t["Key"]: t["Value"] for t in subnets[logical_id]["Properties"]["Tags"]}
            assert tags["kubernetes.io/role/elb"] == "1"
            assert "kubernetes.io/role/internal-elb" not in tags

    def test_private_subnets_tagged_for_internal_load_balancers(self, template):
        subnets = template.find_resources("AWS::EC2::Subnet")
        private_ids = subnet_ids_by_group(template)["Private"]
        assert len(private_ids) == 3
        for logical_id in private_ids:
            tags = {t["Key"]: t["Value"] for t in subnets[logical_id]["Properties"]["Tags"]}
            assert tags["kubernetes.io/role/internal-elb"] == "1"
            assert tags["kubernetes.io/cluster/BasicEksCluster"] == "owned"
            assert "kubernetes.io/role/elb" not in tags

    def test_no_flow_logs_by_default(self, template):
        template.resource_count_is("AWS::EC2::FlowLog", 0)

    @pytest.mark.parametrize("zones,nat_gateways", [(1, 1), (2, 1), (2, 2), (3, 3)])
    def test_subnet_and_gateway_counts_follow_zones(self, zones, nat_gateways):
        config = build_config(vpc=VpcConfig(max_azs=zones, nat_gateways=nat_gateways))
        template = Template.from_stack(build_stack(config))

        template.resource_count_is("AWS::EC2::Subnet", 2 * zones)
        template.resource_count_is("AWS::EC2::NatGateway", nat_gateways)
        template.resource_count_is("AWS::EC2::InternetGateway", 1)


class TestCluster:

    def test_eks_cluster_created(self, template):
        template.resource_count_is("AWS::EKS::Cluster", 1)
        template.has_resource_properties("AWS::EKS::Cluster", {
            "Version": "1.28",
        })

    def test_cluster_has_correct_name(self, template):
        template.has_resource_properties("AWS::EKS::Cluster", {
            "Name": "BasicEksCluster",
        })

    def test_cloudwatch_logging_is_enabled(self, template):
        template.has_resource_properties("AWS::EKS::Cluster", {
            "Logging": {
                "ClusterLogging": {
                    "EnabledTypes": [
                        {"Type": "api"},
                        {"Type": "audit"},
                        {"Type": "authenticator"},
                    ],
                },
            },
        })

    def test_endpoint_is_public_and_private(self, template):
        template.has_resource_properties("AWS::EKS::Cluster", {
            "ResourcesVpcConfig": {
                "EndpointPublicAccess": True,
                "EndpointPrivateAccess": True,
            },
        })

    def test_cluster_placed_in_private_subnets_only(self, template):
        groups = subnet_ids_by_group(template)
        cluster = next(iter(template.find_resources("AWS::EKS::Cluster").values()))
        placement = {ref["Ref"] for ref in cluster["Properties"]["ResourcesVpcConfig"]["SubnetIds"]}

        assert placement
        assert placement <= set(groups["Private"])
        assert not placement & set(groups["Public"])

    def test_resources_are_tagged_correctly(self, template):
        for key, value in [
            ("Environment", "Development"),
            ("Project", "EKS-Learning"),
            ("ManagedBy", "CDK"),
        ]:
            template.has_resource_properties("AWS::EKS::Cluster", {
                "Tags": Match.array_with([{"Key": key, "Value": value}]),
            })

    def test_managed_node_group_is_created(self, template):
        template.resource_count_is("AWS::EKS::Nodegroup", 1)
        template.has_resource_properties("AWS::EKS::Nodegroup", {
            "InstanceTypes": ["t3.medium"],
            "AmiType": "AL2_x86_64",
            "ScalingConfig": {"MinSize": 2, "MaxSize": 2, "DesiredSize": 2},
        })

    def test_node_group_uses_cluster_placement(self, template):
        groups = subnet_ids_by_group(template)
        node_group = next(iter(template.find_resources("AWS::EKS::Nodegroup").values()))
        subnets = {ref["Ref"] for ref in node_group["Properties"]["Subnets"]}
        assert subnets == set(groups["Private"])

    def test_kubectl_role_has_cluster_admin_access_entry(self, stack, template):
        template.resource_count_is("AWS::EKS::AccessEntry", 1)
        template.has_resource_properties("AWS::EKS::AccessEntry", {
            "PrincipalArn": {
                "Fn::GetAtt": [stack.get_logical_id(stack.cluster.kubectl_role.node.default_child), "Arn"],
            },
            "AccessPolicies": [{
                "AccessScope": {"Type": "cluster"},
                "PolicyArn": "arn:aws:eks::aws:cluster-access-policy/AmazonEKSClusterAdminPolicy",
            }],
        })


class TestIdentityBinding:

    def test_oidc_provider_is_created_for_irsa(self, stack, template):
        template.resource_count_is("AWS::IAM::OIDCProvider", 1)
        template.has_resource_properties("AWS::IAM::OIDCProvider", {
            "ClientIdList": ["sts.amazonaws.com"],
            "Url": {
                "Fn::GetAtt": [stack.get_logical_id(stack.cluster.eks_cluster), "OpenIdConnectIssuerUrl"],
            },
        })

    def test_service_account_with_iam_role_is_created(self, template):
        template.has_resource_properties("AWS::IAM::Role", {
            "AssumeRolePolicyDocument": {
                "Statement": [{
                    "Action": "sts:AssumeRoleWithWebIdentity",
                    "Effect": "Allow",
                }],
            },
        })

    def test_one_role_per_service_account(self, template):
        assert len(web_identity_roles(template)) == 1

    def test_role_trusts_only_the_cluster_provider(self, stack, template):
        provider_id = stack.get_logical_id(stack.oidc_provider)
        (role,) = web_identity_roles(template).values()
        (statement,) = role["Properties"]["AssumeRolePolicyDocument"]["Statement"]

        assert statement["Principal"] == {"Federated": {"Fn::GetAtt": [provider_id, "Arn"]}}
        assert "StringEquals" in statement["Condition"]

    def test_role_has_s3_read_only_policy(self, template):
        (role,) = web_identity_roles(template).values()
        policy_arns = role["Properties"]["ManagedPolicyArns"]
        assert len(policy_arns) == 1
        assert "AmazonS3ReadOnlyAccess" in str(policy_arns[0])

    def test_service_account_manifest_is_applied(self, template):
        template.resource_count_is("Custom::AWSCDK-EKS-KubernetesResource", 1)


class TestAddon:

    def test_metrics_server_chart_installed(self, template):
        template.resource_count_is("Custom::AWSCDK-EKS-HelmChart", 1)
        template.has_resource_properties("Custom::AWSCDK-EKS-HelmChart", {
            "Chart": "metrics-server",
            "Repository": "https://kubernetes-sigs.github.io/metrics-server/",
            "Namespace": "kube-system",
            "Values": Match.serialized_json({
                "args": ["--kubelet-preferred-address-types=InternalIP"],
            }),
        })

    def test_chart_waits_for_node_group_and_kubectl_access(self, stack, template):
        (chart,) = template.find_resources("Custom::AWSCDK-EKS-HelmChart").values()
        depends_on = chart["DependsOn"]
        assert stack.get_logical_id(stack.cluster.node_group) in depends_on
        assert stack.get_logical_id(stack.cluster.kubectl_access_entry) in depends_on


class TestOutputs:

    def test_stack_outputs_are_defined(self, template):
        outputs = template.find_outputs("*")

        for key in ("ClusterName", "ConfigCommand", "ClusterEndpoint", "OIDCProviderArn", "VpcId"):
            assert key in outputs

    def test_config_command_contains_cluster_name_and_region(self, template):
        template.has_output("ConfigCommand", {
            "Value": "aws eks update-kubeconfig --region us-west-2 --name BasicEksCluster",
        })

    def test_cluster_name_output_references_cluster(self, stack, template):
        template.has_output("ClusterName", {
            "Value": {"Ref": stack.get_logical_id(stack.cluster.eks_cluster)},
            "Export": {"Name": "eks-learning-dev-cluster-name"},
        })

    def test_oidc_output_references_provider(self, stack, template):
        template.has_output("OIDCProviderArn", {
            "Value": {"Fn::GetAtt": [stack.get_logical_id(stack.oidc_provider), "Arn"]},
        })


def test_stack_description(template):
    assert template.to_json()["Description"] == "Basic EKS cluster with managed node group"


def test_synthesis_is_deterministic():
    first = Template.from_stack(build_stack(build_config())).to_json()
    second = Template.from_stack(build_stack(build_config())).to_json()

    assert first == second
