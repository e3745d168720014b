# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Application Load Balancer entity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import GetAtt, Ref
from troposphere.elasticloadbalancingv2 import LoadBalancer as Elbv2LoadBalancer
from troposphere.elasticloadbalancingv2 import LoadBalancerAttributes

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.exceptions import ConstraintViolation, CrossNetworkReference
from ecs_topology.elbv2.elbv2_params import (
    INTERNAL,
    INTERNET_FACING,
    LB_NAME_MAX_LENGTH,
)
from ecs_topology.vpc.security_groups import SecurityGroup
from ecs_topology.vpc.vpc_network import Network


def handle_timeout_seconds(timeout_seconds) -> LoadBalancerAttributes:
    """
    Handles the idle timeout attribute.
    """
    if 1 <= int(timeout_seconds) <= 4000:
        return LoadBalancerAttributes(
            Key="idle_timeout.timeout_seconds",
            Value=str(timeout_seconds).lower(),
        )
    else:
        raise ConstraintViolation(
            "idle_timeout.timeout_seconds must be set between 1 and 4000 seconds. Got",
            timeout_seconds,
        )


class LoadBalancer(TopologyEntity):
    """
    Class to represent an application load balancer.
    Internet facing load balancers are placed in the public subnets, internal ones in the private subnets.

    :ivar Network network:
    :ivar list[SecurityGroup] security_groups:
    :ivar bool internet_facing:
    """

    kind = "LoadBalancer"

    def __init__(
        self,
        name: str,
        topology: Topology,
        network: Network,
        security_groups: list,
        internet_facing: bool = True,
        idle_timeout: int = 60,
    ):
        super().__init__(name, topology)
        self.network = expect_kind(network, Network, "network", self)
        if not security_groups:
            raise ConstraintViolation(f"{self!r} - at least one security group is required")
        self.security_groups = [
            expect_kind(group, SecurityGroup, "security_groups", self)
            for group in security_groups
        ]
        for group in self.security_groups:
            if group.network is not network:
                raise CrossNetworkReference(
                    f"{self!r} is in {network!r} whereas {group!r} is in {group.network!r}"
                )
        self.internet_facing = internet_facing
        self.lb_name = generate_resource_name(
            self.project, self.environment, name, max_length=LB_NAME_MAX_LENGTH
        )
        self.load_balancer = Elbv2LoadBalancer(
            self.resource_title("Resource"),
            Name=self.lb_name,
            Type="application",
            Scheme=INTERNET_FACING if internet_facing else INTERNAL,
            Subnets=network.subnets(public=internet_facing),
            SecurityGroups=[group.group_id for group in self.security_groups],
            LoadBalancerAttributes=[handle_timeout_seconds(idle_timeout)],
        )
        self.resources.append(self.load_balancer)
        self.add_output("DnsName", self.dns_name)

    @property
    def dependencies(self):
        return [self.network] + self.security_groups

    @property
    def arn(self) -> Ref:
        return Ref(self.load_balancer)

    @property
    def dns_name(self) -> GetAtt:
        return GetAtt(self.load_balancer, "DNSName")
