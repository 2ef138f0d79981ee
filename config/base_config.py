"""
Configuration Management Module

This module defines the configuration structure for the basic EKS cluster stack.
It uses Pydantic for data validation, so an invalid configuration aborts
synthesis before any construct is created.

Structure:
- BaseConfig: Base class with common functionality (prefix, global tags)
- AWS Configuration: AwsConfig, VpcConfig
- Cluster Configuration: EksConfig, NodeGroupConfig
- Workload Configuration: ServiceAccountConfig, HelmChartConfig

Configurations can be overridden via YAML files per environment.
Example file structure:
```
config/
  └── environments/
      ├── dev.yaml
      ├── staging.yaml
      └── prod.yaml

```
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from aws_cdk import Tags, Stack
from .enums import (
    AwsRegion,
    ClusterLoggingType,
    EndpointAccess,
    EnvironmentName,
    KubernetesVersion,
)

# RFC 1123 label (namespaces) and subdomain (service accounts)
DNS_LABEL_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"
DNS_SUBDOMAIN_PATTERN = r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$"

DEFAULT_TAGS = {
    "Environment": "Development",
    "Project": "EKS-Learning",
    "ManagedBy": "CDK",
}


def _pascal_case(value: str) -> str:
    return "".join(part.capitalize() for part in value.replace(".", "-").split("-") if part)


class BaseConfig(BaseModel):
    """
    Base configuration with common methods.

    This class provides basic functionality like tag management
    and resource prefix generation.

    Attributes:
        env_name: Deployment environment (dev, prod, etc.)
        project_name: Project name
        tags: Tags applied uniformly to every resource of the stack
    """
    env_name: EnvironmentName
    project_name: str = Field(min_length=1)
    tags: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_TAGS))

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, tags: Dict[str, str]) -> Dict[str, str]:
        """Rejects empty tag keys, which CloudFormation refuses."""
        for key in tags:
            if not key.strip():
                raise ValueError("tag keys must not be empty")
        return tags

    @property
    def env_name_str(self) -> str:
        """Returns the environment name as a string."""
        return self.env_name.value

    def prefix(self, base: str) -> str:
        """Generates a standardized prefix for resources."""
        return f"{self.project_name}-{self.env_name_str}-{base}"

    def add_stack_global_tags(self, stack: Stack):
        """Adds global tags to every resource of the stack."""
        for key, value in self.tags.items():
            Tags.of(stack).add(key, value)


class AwsConfig(BaseModel):
    """
    Base AWS configuration.

    Defines fundamental parameters for AWS access. The account may be left
    unset, in which case the stack is account-agnostic.

    Attributes:
        account: AWS account ID
        region: AWS deployment region (default: us-west-2)
    """
    account: Optional[str] = Field(default=None, pattern=r"^\d{12}$")
    region: AwsRegion = AwsRegion.US_WEST_2

    @property
    def region_str(self) -> str:
        """Returns the region as a string."""
        return self.region.value


class VpcConfig(BaseModel):
    """
    VPC network configuration.

    Defines parameters for the private virtual network.

    Attributes:
        cidr: IP address range (default: "10.0.0.0/16")
        max_azs: Number of availability zones, one public and one private subnet each (default: 3)
        nat_gateways: Number of NAT Gateways (default: 1)
        cidr_mask: Subnet size (default: 24)
        availability_zones: Explicit zone names, the first max_azs are used (optional)
        flow_logs: Enable VPC Flow Logs to CloudWatch (default: False)
    """
    cidr: str = "10.0.0.0/16"
    max_azs: int = Field(default=3, ge=1)
    nat_gateways: int = Field(default=1, ge=1)
    cidr_mask: int = Field(default=24, ge=16, le=28)
    availability_zones: Optional[List[str]] = None
    flow_logs: bool = False

    @model_validator(mode='after')
    def validate_nat_gateways(self) -> 'VpcConfig':
        """Validates that there are not more NAT gateways than zones."""
        if self.nat_gateways > self.max_azs:
            raise ValueError(
                f"nat_gateways ({self.nat_gateways}) "
                f"must be less than or equal to max_azs ({self.max_azs})"
            )
        if self.availability_zones is not None and len(self.availability_zones) < self.max_azs:
            raise ValueError(
                f"availability_zones lists {len(self.availability_zones)} zones "
                f"but max_azs is {self.max_azs}"
            )
        return self

    @property
    def selected_availability_zones(self) -> Optional[List[str]]:
        if self.availability_zones is None:
            return None
        return self.availability_zones[:self.max_azs]


class NodeGroupConfig(BaseModel):
    """
    Default managed node group configuration.
    """

    instance_type: str = "t3.medium"
    ami_type: str = "AL2_x86_64"
    min_size: int = Field(default=2, ge=0)
    max_size: int = Field(default=2, ge=1)
    desired_size: int = Field(default=2, ge=0)

    @model_validator(mode='after')
    def validate_scaling(self) -> 'NodeGroupConfig':
        """Validates that desired size lies between min and max size."""
        if not self.min_size <= self.desired_size <= self.max_size:
            raise ValueError(
                f"desired_size ({self.desired_size}) must be between "
                f"min_size ({self.min_size}) and max_size ({self.max_size})"
            )
        return self


class EksConfig(BaseModel):
    """
    EKS cluster configuration.

    Attributes:
        cluster_name: EKS cluster name, unique within account and region (default: "BasicEksCluster")
        cluster_version: EKS cluster version (default: "1.28")
        endpoint_access: API endpoint exposure (default: PUBLIC_AND_PRIVATE)
        cluster_logging: Control plane log types sent to CloudWatch
        node_group: Node group configuration (default: NodeGroupConfig())
    """
    cluster_name: str = Field(
        default="BasicEksCluster",
        pattern=r"^[0-9A-Za-z][A-Za-z0-9\-_]{0,99}$",
    )
    cluster_version: KubernetesVersion = KubernetesVersion.V1_28
    endpoint_access: EndpointAccess = EndpointAccess.PUBLIC_AND_PRIVATE
    cluster_logging: List[ClusterLoggingType] = Field(
        default_factory=lambda: [
            ClusterLoggingType.API,
            ClusterLoggingType.AUDIT,
            ClusterLoggingType.AUTHENTICATOR,
        ]
    )
    node_group: NodeGroupConfig = NodeGroupConfig()

    @property
    def cluster_version_str(self) -> str:
        return self.cluster_version.value


class ServiceAccountConfig(BaseModel):
    """
    Kubernetes service account bound to an IAM role (IRSA).

    Attributes:
        name: Service account name
        namespace: Kubernetes namespace of the service account
        managed_policies: AWS managed policy names attached to the role
        create_kubernetes_resource: Also apply the annotated ServiceAccount object
    """
    name: str = Field(default="my-app", max_length=253, pattern=DNS_SUBDOMAIN_PATTERN)
    namespace: str = Field(default="default", max_length=63, pattern=DNS_LABEL_PATTERN)
    managed_policies: List[str] = Field(default_factory=lambda: ["AmazonS3ReadOnlyAccess"])
    create_kubernetes_resource: bool = True

    @property
    def subject(self) -> str:
        """Subject claim of the projected service account token."""
        return f"system:serviceaccount:{self.namespace}:{self.name}"

    @property
    def construct_id(self) -> str:
        return f"{_pascal_case(self.namespace)}{_pascal_case(self.name)}ServiceAccount"


class HelmChartConfig(BaseModel):
    """
    Helm chart installed into the cluster.

    Attributes:
        construct_id: Construct id of the chart, unique within the stack
        chart: Chart name
        repository: Chart repository URL
        version: Chart version (optional, latest when unset)
        release: Helm release name (optional)
        namespace: Target namespace
        create_namespace: Create the namespace if it does not exist
        values: Override values
    """
    construct_id: str = Field(default="MetricsServer", pattern=r"^[A-Za-z][A-Za-z0-9]*$")
    chart: str = Field(default="metrics-server", min_length=1)
    repository: Optional[str] = "https://kubernetes-sigs.github.io/metrics-server/"
    version: Optional[str] = None
    release: Optional[str] = None
    namespace: str = Field(default="kube-system", max_length=63, pattern=DNS_LABEL_PATTERN)
    create_namespace: bool = True
    values: Dict[str, Any] = Field(
        default_factory=lambda: {"args": ["--kubelet-preferred-address-types=InternalIP"]}
    )


class InfrastructureConfig(BaseConfig):
    """
    Complete infrastructure configuration.

    This class groups all configurations needed to deploy
    the cluster stack.

    Attributes:
        description: CloudFormation stack description
        aws: Base AWS configuration
        vpc: VPC network configuration
        eks: EKS cluster configuration
        service_accounts: IRSA bindings, one role each
        helm_charts: Helm charts installed as add-ons

    Example:
        ```yaml
        # config/environments/dev.yaml
        tags:
          Environment: Development
          Project: EKS-Learning
          ManagedBy: CDK

        aws:
          region: us-west-2

        vpc:
          max_azs: 3
          nat_gateways: 1

        eks:
          cluster_name: BasicEksCluster
          cluster_version: "1.28"
          node_group:
            instance_type: t3.medium
            desired_size: 2

        service_accounts:
          - name: my-app
            namespace: default
            managed_policies:
              - AmazonS3ReadOnlyAccess

        helm_charts:
          - construct_id: MetricsServer
            chart: metrics-server
            repository: https://kubernetes-sigs.github.io/metrics-server/
            namespace: kube-system
        ```
    """
    description: str = "Basic EKS cluster with managed node group"
    aws: AwsConfig = AwsConfig()
    vpc: VpcConfig = VpcConfig()
    eks: EksConfig = EksConfig()
    service_accounts: List[ServiceAccountConfig] = Field(
        default_factory=lambda: [ServiceAccountConfig()]
    )
    helm_charts: List[HelmChartConfig] = Field(
        default_factory=lambda: [HelmChartConfig()]
    )

    @model_validator(mode='after')
    def validate_unique_identities(self) -> 'InfrastructureConfig':
        """Validates that each service account and chart is declared once."""
        subjects = [sa.subject for sa in self.service_accounts]
        duplicates = sorted({s for s in subjects if subjects.count(s) > 1})
        if duplicates:
            raise ValueError(f"service accounts declared more than once: {', '.join(duplicates)}")

        # my-app and my.app share a construct id
        binding_ids = {}
        for sa in self.service_accounts:
            binding_ids.setdefault(sa.construct_id, []).append(sa.subject)
        clashes = sorted(ids for ids, owners in binding_ids.items() if len(owners) > 1)
        if clashes:
            raise ValueError(
                "service accounts share a construct id: "
                + "; ".join(f"{c} ({', '.join(binding_ids[c])})" for c in clashes)
            )

        chart_ids = [chart.construct_id for chart in self.helm_charts]
        duplicates = sorted({c for c in chart_ids if chart_ids.count(c) > 1})
        if duplicates:
            raise ValueError(f"helm chart ids declared more than once: {', '.join(duplicates)}")
        return self
