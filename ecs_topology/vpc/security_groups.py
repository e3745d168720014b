# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Security groups and the ingress rules between them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

import ipaddress

from compose_x_common.compose_x_common import set_else_none
from troposphere import GetAtt, Tags
from troposphere.ec2 import SecurityGroup as Ec2SecurityGroup
from troposphere.ec2 import SecurityGroupIngress, SecurityGroupRule

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.exceptions import ConstraintViolation, CrossNetworkReference
from ecs_topology.vpc.vpc_network import Network
from ecs_topology.vpc.vpc_params import ALL_IPS

ALLOWED_PROTOCOLS = ["tcp", "udp", "icmp", "-1"]


def validate_port(port, owner) -> int:
    if not isinstance(port, int) or not 0 <= port <= 65535:
        raise ConstraintViolation(f"{owner!r} - port {port} is not a valid port")
    return port


def validate_protocol(protocol, owner) -> str:
    protocol = str(protocol).lower()
    if protocol not in ALLOWED_PROTOCOLS:
        raise ConstraintViolation(
            f"{owner!r} - protocol {protocol} must be one of {ALLOWED_PROTOCOLS}"
        )
    return protocol


def generate_cidr_ingress(rule: dict, owner) -> SecurityGroupRule:
    """
    Generates an ingress rule from a CIDR definition

    :param dict rule: the rule definition, with Cidr, Port and optionally ToPort, Protocol, Description
    :param owner: the security group, for error messages
    :rtype: troposphere.ec2.SecurityGroupRule
    """
    cidr = set_else_none("Cidr", rule, ALL_IPS)
    try:
        ipaddress.IPv4Network(cidr)
    except ValueError as error:
        raise ConstraintViolation(f"{owner!r} - CIDR {cidr} is invalid: {error}")
    if "Port" not in rule:
        raise ConstraintViolation(f"{owner!r} - ingress rule {rule} has no Port")
    from_port = validate_port(rule["Port"], owner)
    to_port = validate_port(set_else_none("ToPort", rule, from_port), owner)
    if to_port < from_port:
        raise ConstraintViolation(
            f"{owner!r} - ToPort {to_port} is lower than Port {from_port}"
        )
    return SecurityGroupRule(
        CidrIp=cidr,
        FromPort=from_port,
        ToPort=to_port,
        IpProtocol=validate_protocol(set_else_none("Protocol", rule, "tcp"), owner),
        Description=set_else_none(
            "Description", rule, f"From {cidr} on {from_port}-{to_port}"
        ),
    )


class SecurityGroup(TopologyEntity):
    """
    Class to represent an EC2 security group, always attached to a network.

    :ivar Network network:
    :ivar troposphere.ec2.SecurityGroup security_group:
    """

    kind = "SecurityGroup"

    def __init__(
        self,
        name: str,
        topology: Topology,
        network: Network,
        description: str = None,
        ingress: list = None,
        allow_all_outbound: bool = True,
    ):
        super().__init__(name, topology)
        self.network = expect_kind(network, Network, "network", self)
        self.physical_name = generate_resource_name(
            self.project, self.environment, name, max_length=255
        )
        self.ingress = [generate_cidr_ingress(rule, self) for rule in ingress or []]
        if allow_all_outbound:
            egress = [
                SecurityGroupRule(
                    CidrIp=ALL_IPS,
                    IpProtocol="-1",
                    Description="Allow all outbound traffic by default",
                )
            ]
        else:
            egress = [
                SecurityGroupRule(
                    CidrIp="255.255.255.255/32",
                    IpProtocol="icmp",
                    FromPort=252,
                    ToPort=86,
                    Description="Disallow all traffic",
                )
            ]
        props = {
            "GroupName": self.physical_name,
            "GroupDescription": description
            if description
            else f"{self.physical_name} security group",
            "VpcId": network.vpc_id,
            "SecurityGroupEgress": egress,
            "Tags": Tags(Name=self.physical_name),
        }
        if self.ingress:
            props["SecurityGroupIngress"] = self.ingress
        self.security_group = Ec2SecurityGroup(self.resource_title("Resource"), **props)
        self.resources.append(self.security_group)
        self.add_output("GroupId", self.group_id)

    @property
    def dependencies(self):
        return [self.network]

    @property
    def group_id(self) -> GetAtt:
        return GetAtt(self.security_group, "GroupId")

    @property
    def admits_internet(self) -> bool:
        return any(rule.properties.get("CidrIp") == ALL_IPS for rule in self.ingress)


class SecurityGroupIngressRule(TopologyEntity):
    """
    Class to represent an "allow" edge from one security group to another.
    Both groups must belong to the same network.

    :ivar SecurityGroup group: the group receiving the traffic
    :ivar SecurityGroup source: the group the traffic comes from
    """

    kind = "SecurityGroupIngress"

    def __init__(
        self,
        topology: Topology,
        group: SecurityGroup,
        source: SecurityGroup,
        port: int,
        protocol: str = "tcp",
        to_port: int = None,
        description: str = None,
    ):
        self.group = group
        self.source = source
        expect_kind(group, SecurityGroup, "group", self)
        expect_kind(source, SecurityGroup, "source", self)
        self.port = validate_port(port, self)
        self.to_port = validate_port(to_port if to_port is not None else port, self)
        self.protocol = validate_protocol(protocol, self)
        super().__init__(
            f"{group.name}-from-{source.name}-{self.protocol}-{port}", topology
        )
        self.validate_same_network()
        self.rule = SecurityGroupIngress(
            self.resource_title("Resource"),
            GroupId=group.group_id,
            SourceSecurityGroupId=source.group_id,
            FromPort=self.port,
            ToPort=self.to_port,
            IpProtocol=self.protocol,
            Description=description
            if description
            else f"From {source.physical_name} to {group.physical_name} on {self.port}",
        )
        self.resources.append(self.rule)

    def __repr__(self):
        return f"{self.kind}({getattr(self.source, 'name', self.source)} -> {getattr(self.group, 'name', self.group)})"

    @property
    def dependencies(self):
        return [self.group, self.source]

    def validate_same_network(self):
        if self.group.network is not self.source.network:
            raise CrossNetworkReference(
                f"{self!r} - {self.group!r} is in {self.group.network!r}"
                f" whereas {self.source!r} is in {self.source.network!r}"
            )

    def validate(self, topology: Topology) -> None:
        self.validate_same_network()
