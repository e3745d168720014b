# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
ECS Cluster entity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import GetAtt, Ref
from troposphere.ecs import Cluster as EcsCluster
from troposphere.ecs import ClusterSetting

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.ecs_cluster.ecs_cluster_params import (
    FARGATE_PROVIDERS,
    get_default_strategy,
)
from ecs_topology.vpc.vpc_network import Network


class Cluster(TopologyEntity):
    """
    Class to represent the ECS Cluster. Services of the cluster run in its network.

    :ivar Network network:
    :ivar troposphere.ecs.Cluster cluster:
    """

    kind = "Cluster"

    def __init__(
        self,
        name: str,
        topology: Topology,
        network: Network,
        container_insights: bool = True,
        use_spot: bool = False,
    ):
        super().__init__(name, topology)
        self.network = expect_kind(network, Network, "network", self)
        self.use_spot = use_spot
        self.cluster_name = generate_resource_name(
            self.project, self.environment, name, max_length=255
        )
        self.cluster = EcsCluster(
            self.resource_title("Resource"),
            ClusterName=self.cluster_name,
            ClusterSettings=[
                ClusterSetting(
                    Name="containerInsights",
                    Value="enabled" if container_insights else "disabled",
                )
            ],
            CapacityProviders=FARGATE_PROVIDERS,
            DefaultCapacityProviderStrategy=get_default_strategy(use_spot),
        )
        self.resources.append(self.cluster)
        self.add_output("Name", self.name_ref)

    @property
    def dependencies(self):
        return [self.network]

    @property
    def name_ref(self) -> Ref:
        return Ref(self.cluster)

    @property
    def arn(self) -> GetAtt:
        return GetAtt(self.cluster, "Arn")
