#  -*- coding: utf-8 -*-
# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2021 John Mille <john@compose-x.io>

"""
Functions to add the two VPC layer type subnets:

* Public
* Private

RTB -> Route Table

Public subnet type: All subnets use the same RTB, route to 0.0.0.0/0 via InternetGateway
Private subnet type: Each subnet has its own RTB, each RTB points to a NAT Gateway, in its
respective AZ unless a single NAT is used.

"""

from troposphere import GetAtt, Ref, Sub, Tags
from troposphere.ec2 import (
    EIP,
    NatGateway,
    Route,
    RouteTable,
    Subnet,
    SubnetRouteTableAssociation,
)

from ecs_topology.vpc.vpc_params import ALL_IPS, PRIVATE_LAYER, PUBLIC_LAYER
from ecs_topology.vpc.vpc_params import TAG_DELIM as DELIM


def add_public_subnets(network, az_index, cidrs, igw, single_nat):
    """
    Function to add public subnets for the VPC

    :param ecs_topology.vpc.vpc_network.Network network: the network to add the subnets to
    :param list az_index: AZ letters (a,b,c..)
    :param list cidrs: CIDRs of the public subnets, one per AZ
    :param igw: internet gateway to route to
    :type igw: troposphere.ec2.InternetGateway
    :param bool single_nat: whether we should have a single NAT Gateway

    :return: tuple() list of subnets, list of nats
    """
    rtb = RouteTable(
        network.resource_title("PublicRtb"),
        VpcId=Ref(network.vpc),
        Tags=Tags(Name=f"{network.physical_name}-public")
        + Tags({f"vpc{DELIM}usage": PUBLIC_LAYER}),
    )
    route = Route(
        network.resource_title("PublicDefaultRoute"),
        GatewayId=Ref(igw),
        RouteTableId=Ref(rtb),
        DestinationCidrBlock=ALL_IPS,
        DependsOn=[network.resource_title("GatewayAttachment")],
    )
    network.resources += [rtb, route]
    subnets = []
    nats = []
    for index, subnet_cidr in zip(az_index, cidrs):
        subnet = Subnet(
            network.resource_title(f"PublicSubnet{index.upper()}"),
            CidrBlock=subnet_cidr,
            VpcId=Ref(network.vpc),
            AvailabilityZone=Sub(f"${{AWS::Region}}{index}"),
            MapPublicIpOnLaunch=True,
            Tags=Tags(Name=f"{network.physical_name}-public-{index}")
            + Tags({f"vpc{DELIM}usage": PUBLIC_LAYER}),
        )
        if (single_nat and not nats) or not single_nat:
            eip = EIP(
                network.resource_title(f"NatGatewayEip{index.upper()}"), Domain="vpc"
            )
            nat = NatGateway(
                network.resource_title(f"NatGatewayAz{index.upper()}"),
                AllocationId=GetAtt(eip, "AllocationId"),
                SubnetId=Ref(subnet),
            )
            network.resources += [eip, nat]
            nats.append(nat)
        assoc = SubnetRouteTableAssociation(
            network.resource_title(f"PublicSubnetRtbAssoc{index.upper()}"),
            RouteTableId=Ref(rtb),
            SubnetId=Ref(subnet),
        )
        network.resources += [subnet, assoc]
        subnets.append(subnet)
    return subnets, nats


def add_private_subnets(network, az_index, cidrs, nats):
    """
    Function to add private subnets to the VPC, where the services run.

    :param ecs_topology.vpc.vpc_network.Network network: the network to add the subnets to
    :param list az_index: AZ letters (a,b,c..)
    :param list cidrs: CIDRs of the private subnets, one per AZ
    :param list nats: list of NatGateway()

    :returns: list of subnets
    """
    subnets = []
    if len(nats) < len(az_index):
        nats = [nats[0] for _ in az_index]
    for index, subnet_cidr, nat in zip(az_index, cidrs, nats):
        suffix = index.upper()
        subnet = Subnet(
            network.resource_title(f"PrivateSubnet{suffix}"),
            CidrBlock=subnet_cidr,
            VpcId=Ref(network.vpc),
            AvailabilityZone=Sub(f"${{AWS::Region}}{index}"),
            Tags=Tags(Name=f"{network.physical_name}-private-{index}")
            + Tags({f"vpc{DELIM}usage": PRIVATE_LAYER}),
        )
        rtb = RouteTable(
            network.resource_title(f"PrivateRtb{suffix}"),
            VpcId=Ref(network.vpc),
            Tags=Tags(Name=f"{network.physical_name}-private-{index}"),
        )
        route = Route(
            network.resource_title(f"PrivateRoute{suffix}"),
            NatGatewayId=Ref(nat),
            RouteTableId=Ref(rtb),
            DestinationCidrBlock=ALL_IPS,
        )
        assoc = SubnetRouteTableAssociation(
            network.resource_title(f"PrivateSubnetRtbAssoc{suffix}"),
            RouteTableId=Ref(rtb),
            SubnetId=Ref(subnet),
        )
        network.resources += [subnet, rtb, route, assoc]
        subnets.append(subnet)
    return subnets
