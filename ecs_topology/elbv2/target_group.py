# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Target Group entity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import GetAtt, Ref
from troposphere.elasticloadbalancingv2 import Matcher
from troposphere.elasticloadbalancingv2 import TargetGroup as Elbv2TargetGroup
from troposphere.elasticloadbalancingv2 import TargetGroupAttribute

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.exceptions import ConstraintViolation
from ecs_topology.elbv2.elbv2_params import (
    HTTP_PROTOCOLS,
    TARGET_GROUP_PROTOCOLS,
    TARGET_TYPES,
    TG_NAME_MAX_LENGTH,
)
from ecs_topology.vpc.security_groups import validate_port
from ecs_topology.vpc.vpc_network import Network


class TargetGroup(TopologyEntity):
    """
    Class to represent a target group, health-checked independently.

    :ivar Network network:
    :ivar str protocol:
    :ivar int port:
    :ivar str target_type: ip for services using awsvpc networking
    :ivar str health_check_path: only for HTTP/HTTPS target groups
    """

    kind = "TargetGroup"

    def __init__(
        self,
        name: str,
        topology: Topology,
        network: Network,
        port: int,
        protocol: str = "HTTP",
        target_type: str = "ip",
        health_check_path: str = "/",
        healthy_http_codes: str = "200",
        deregistration_delay: int = 30,
    ):
        super().__init__(name, topology)
        self.network = expect_kind(network, Network, "network", self)
        self.port = validate_port(port, self)
        self.protocol = str(protocol).upper()
        if self.protocol not in TARGET_GROUP_PROTOCOLS:
            raise ConstraintViolation(
                f"{self!r} - protocol {protocol} must be one of {TARGET_GROUP_PROTOCOLS}"
            )
        if target_type not in TARGET_TYPES:
            raise ConstraintViolation(
                f"{self!r} - target type {target_type} must be one of {TARGET_TYPES}"
            )
        self.target_type = target_type
        self.health_check_path = None
        self.tg_name = generate_resource_name(
            self.project, self.environment, name, max_length=TG_NAME_MAX_LENGTH
        )
        props = {
            "Name": self.tg_name,
            "Port": self.port,
            "Protocol": self.protocol,
            "TargetType": target_type,
            "VpcId": network.vpc_id,
            "TargetGroupAttributes": [
                TargetGroupAttribute(
                    Key="deregistration_delay.timeout_seconds",
                    Value=str(deregistration_delay),
                )
            ],
        }
        if self.protocol in HTTP_PROTOCOLS:
            if not health_check_path or not health_check_path.startswith("/"):
                raise ConstraintViolation(
                    f"{self!r} - health check path {health_check_path} must start with /"
                )
            self.health_check_path = health_check_path
            props.update(
                {
                    "HealthCheckEnabled": True,
                    "HealthCheckPath": health_check_path,
                    "HealthCheckProtocol": self.protocol,
                    "Matcher": Matcher(HttpCode=healthy_http_codes),
                }
            )
        self.target_group = Elbv2TargetGroup(self.resource_title("Resource"), **props)
        self.resources.append(self.target_group)
        self.add_output("Arn", self.arn)

    @property
    def dependencies(self):
        return [self.network]

    @property
    def arn(self) -> Ref:
        return Ref(self.target_group)

    @property
    def full_name(self) -> GetAtt:
        return GetAtt(self.target_group, "TargetGroupName")
