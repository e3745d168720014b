# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Network entity: the VPC and its core resources.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import Join, Ref, Tags
from troposphere.ec2 import VPC as VPCType
from troposphere.ec2 import InternetGateway, VPCGatewayAttachment

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity
from ecs_topology.common.logging import LOG
from ecs_topology.vpc.vpc_maths import get_az_index, get_subnet_layers
from ecs_topology.vpc.vpc_params import (
    DEFAULT_SUBNET_MASK,
    IGW_T,
    PRIVATE_LAYER,
    PUBLIC_LAYER,
    VPC_T,
)
from ecs_topology.vpc.vpc_subnets import add_private_subnets, add_public_subnets


class Network(TopologyEntity):
    """
    Class to represent the VPC of the topology, with one public and one private subnet per AZ.

    :ivar troposphere.ec2.VPC vpc:
    :ivar list[troposphere.ec2.Subnet] public_subnets:
    :ivar list[troposphere.ec2.Subnet] private_subnets:
    :ivar list[troposphere.ec2.NatGateway] nat_gateways:
    """

    kind = "Network"

    def __init__(
        self,
        name: str,
        topology: Topology,
        cidr: str,
        az_count: int,
        subnet_mask: int = DEFAULT_SUBNET_MASK,
        single_nat: bool = False,
    ):
        super().__init__(name, topology)
        self.cidr = cidr
        self.az_count = az_count
        self.subnet_mask = subnet_mask
        self.single_nat = single_nat
        self.layers = get_subnet_layers(cidr, az_count, subnet_mask)
        self.az_index = get_az_index(az_count)
        self.physical_name = generate_resource_name(self.project, self.environment, name)
        self.vpc = VPCType(
            self.resource_title(VPC_T),
            CidrBlock=cidr,
            EnableDnsHostnames=True,
            EnableDnsSupport=True,
            Tags=Tags(Name=self.physical_name, EnvironmentName=self.environment),
        )
        self.igw = InternetGateway(
            self.resource_title(IGW_T), Tags=Tags(Name=self.physical_name)
        )
        attachment = VPCGatewayAttachment(
            self.resource_title("GatewayAttachment"),
            InternetGatewayId=Ref(self.igw),
            VpcId=Ref(self.vpc),
        )
        self.resources += [self.vpc, self.igw, attachment]
        self.public_subnets, self.nat_gateways = add_public_subnets(
            self, self.az_index, self.layers[PUBLIC_LAYER], self.igw, single_nat
        )
        self.private_subnets = add_private_subnets(
            self, self.az_index, self.layers[PRIVATE_LAYER], self.nat_gateways
        )
        self.add_output("VpcId", Ref(self.vpc))
        self.add_output(
            "PublicSubnets", Join(",", [Ref(subnet) for subnet in self.public_subnets])
        )
        self.add_output(
            "PrivateSubnets",
            Join(",", [Ref(subnet) for subnet in self.private_subnets]),
        )
        LOG.debug(f"{self!r} - {self.cidr} layers: {self.layers}")

    @property
    def vpc_id(self) -> Ref:
        return Ref(self.vpc)

    def subnets(self, public: bool) -> list:
        """
        Returns the Ref() to the public or private subnets

        :param bool public:
        :rtype: list[Ref]
        """
        if public:
            return [Ref(subnet) for subnet in self.public_subnets]
        return [Ref(subnet) for subnet in self.private_subnets]
