import logging

from aws_cdk import aws_eks as eks
from constructs import Construct
from config.base_config import HelmChartConfig
from .eks_cluster import EksCluster

logger = logging.getLogger(__name__)


class HelmAddon(Construct):
    """Helm chart installed into the cluster once kubectl access and nodes exist."""

    def __init__(self, scope: Construct, id: str,
                 cluster: EksCluster,
                 chart: HelmChartConfig) -> None:
        if not chart.chart.strip():
            raise ValueError(f"helm add-on {id} needs a chart reference")
        super().__init__(scope, id)

        self.cluster = cluster
        self.chart_config = chart

        logger.info(
            "Installing chart %s from %s into namespace %s",
            chart.chart, chart.repository or "<local>", chart.namespace,
        )
        self.chart = eks.HelmChart(
            self, "Chart",
            cluster=cluster.kubectl_cluster,
            chart=chart.chart,
            repository=chart.repository,
            version=chart.version,
            release=chart.release,
            namespace=chart.namespace,
            create_namespace=chart.create_namespace,
            values=chart.values or None,
        )
        cluster.add_kubernetes_dependencies(self.chart)
