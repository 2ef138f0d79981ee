# config/loader.py
import logging
import os
from typing import Dict, Any, Optional

import yaml

from .base_config import (
    InfrastructureConfig,
    AwsConfig,
    VpcConfig,
    EksConfig,
    ServiceAccountConfig,
    HelmChartConfig,
)
from .enums import AwsRegion

logger = logging.getLogger(__name__)

DEFAULT_REGION = AwsRegion.US_WEST_2.value


class ConfigLoader:
    def __init__(self, env_name: str, project_name: str, base_path: Optional[str] = None):
        self.env_name = env_name
        self.project_name = project_name
        self.base_path = base_path or os.path.dirname(os.path.abspath(__file__))

    def load_environment_config(self) -> Dict[str, Any]:
        """Load the configuration from the YAML file."""
        config_path = os.path.join(self.base_path, 'environments', f'{self.env_name}.yaml')
        if not os.path.exists(config_path):
            raise ValueError(f"no configuration file for environment '{self.env_name}': {config_path}")
        logger.info("Loading environment configuration from %s", config_path)
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def resolve_aws_environment(self, aws_config: Dict[str, Any]) -> Dict[str, Any]:
        """Account and region come from the CDK CLI environment first, then YAML."""
        resolved = dict(aws_config)
        account = os.environ.get('CDK_DEFAULT_ACCOUNT') or aws_config.get('account')
        region = os.environ.get('CDK_DEFAULT_REGION') or aws_config.get('region') or DEFAULT_REGION
        if account:
            resolved['account'] = str(account)
        else:
            resolved.pop('account', None)
            logger.warning("No AWS account configured, synthesizing an account-agnostic stack")
        resolved['region'] = region
        return resolved

    def create_config(self) -> InfrastructureConfig:
        """Create the complete configuration."""
        env_config = self.load_environment_config()

        config = {
            'env_name': self.env_name,
            'project_name': self.project_name,
            'aws': AwsConfig(**self.resolve_aws_environment(env_config.get('aws') or {})),
            'vpc': VpcConfig(**(env_config.get('vpc') or {})),
            'eks': EksConfig(**(env_config.get('eks') or {})),
        }
        if 'tags' in env_config:
            config['tags'] = env_config['tags']
        if 'description' in env_config:
            config['description'] = env_config['description']
        if 'service_accounts' in env_config:
            config['service_accounts'] = [
                ServiceAccountConfig(**sa) for sa in env_config['service_accounts'] or []
            ]
        if 'helm_charts' in env_config:
            config['helm_charts'] = [
                HelmChartConfig(**chart) for chart in env_config['helm_charts'] or []
            ]

        infrastructure_config = InfrastructureConfig(**config)
        logger.info(
            "Loaded configuration for %s in %s",
            infrastructure_config.eks.cluster_name,
            infrastructure_config.aws.region_str,
        )
        return infrastructure_config
