import pytest
from aws_cdk import App, Environment
from aws_cdk.assertions import Template

from config.base_config import AwsConfig, InfrastructureConfig
from stacks.basic_cluster_stack import BasicClusterStack

TEST_ACCOUNT = "123456789012"
TEST_REGION = "us-west-2"


def build_config(**overrides) -> InfrastructureConfig:
    """Default dev configuration pinned to a test account and region."""
    values = {
        "env_name": "dev",
        "project_name": "eks-learning",
        "aws": AwsConfig(account=TEST_ACCOUNT, region=TEST_REGION),
    }
    values.update(overrides)
    return InfrastructureConfig(**values)


def build_stack(config: InfrastructureConfig) -> BasicClusterStack:
    app = App()
    return BasicClusterStack(
        app,
        "TestStack",
        env=Environment(account=config.aws.account, region=config.aws.region_str),
        config=config,
    )


@pytest.fixture
def config_factory():
    return build_config


@pytest.fixture
def stack_factory():
    return build_stack


@pytest.fixture(scope="module")
def stack() -> BasicClusterStack:
    return build_stack(build_config())


@pytest.fixture(scope="module")
def template(stack) -> Template:
    return Template.from_stack(stack)


def subnet_ids_by_group(template: Template) -> dict:
    """Logical ids of subnets keyed by their CDK subnet group name."""
    groups = {}
    for logical_id, resource in template.find_resources("AWS::EC2::Subnet").items():
        tags = {tag["Key"]: tag["Value"] for tag in resource["Properties"]["Tags"]}
        groups.setdefault(tags["aws-cdk:subnet-name"], []).append(logical_id)
    return groups


def web_identity_roles(template: Template) -> dict:
    """Roles whose trust policy allows AssumeRoleWithWebIdentity."""
    roles = {}
    for logical_id, resource in template.find_resources("AWS::IAM::Role").items():
        statements = resource["Properties"]["AssumeRolePolicyDocument"]["Statement"]
        if any(s.get("Action") == "sts:AssumeRoleWithWebIdentity" for s in statements):
            roles[logical_id] = resource
    return roles
