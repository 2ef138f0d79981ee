#!/usr/bin/env python3
import logging
import os

from aws_cdk import App, Environment
from stacks.basic_cluster_stack import BasicClusterStack
from config.loader import ConfigLoader

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

app = App()

env_name = app.node.try_get_context('env') or 'dev'
project_name = app.node.try_get_context('project') or 'eks-learning'
# Load configuration
config_loader = ConfigLoader(env_name, project_name)
config = config_loader.create_config()

BasicClusterStack(
    app,
    "BasicClusterStack",
    env=Environment(
        account=config.aws.account,
        region=config.aws.region_str
    ),
    description=config.description,
    config=config
)

app.synth()
