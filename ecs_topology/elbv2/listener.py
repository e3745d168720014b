# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Listener entity. Forwards the traffic it receives to its target groups.

With one target group, all traffic goes to it.
With several, the first one (blue) gets all the weight and the others (green) are registered with no weight,
so that an external deployment tool can shift the traffic between them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import Ref
from troposphere.ec2 import SecurityGroupIngress
from troposphere.elasticloadbalancingv2 import Action, Certificate, ForwardConfig
from troposphere.elasticloadbalancingv2 import Listener as Elbv2Listener
from troposphere.elasticloadbalancingv2 import TargetGroupTuple

from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.exceptions import (
    ConstraintViolation,
    CrossNetworkReference,
    DuplicateEntity,
)
from ecs_topology.elbv2.elbv2_params import BLUE_WEIGHT, GREEN_WEIGHT, HTTP_PROTOCOLS
from ecs_topology.elbv2.load_balancer import LoadBalancer
from ecs_topology.elbv2.target_group import TargetGroup
from ecs_topology.vpc.security_groups import validate_port
from ecs_topology.vpc.vpc_params import ALL_IPS


def define_forward_action(target_groups: list) -> Action:
    """
    Creates the default forward action of the listener

    :param list[TargetGroup] target_groups:
    :rtype: troposphere.elasticloadbalancingv2.Action
    """
    if len(target_groups) == 1:
        return Action(Type="forward", TargetGroupArn=target_groups[0].arn)
    return Action(
        Type="forward",
        ForwardConfig=ForwardConfig(
            TargetGroups=[
                TargetGroupTuple(
                    TargetGroupArn=target_group.arn,
                    Weight=BLUE_WEIGHT if index == 0 else GREEN_WEIGHT,
                )
                for index, target_group in enumerate(target_groups)
            ]
        ),
    )


class Listener(TopologyEntity):
    """
    Class to represent a load balancer listener.

    :ivar LoadBalancer load_balancer:
    :ivar int port:
    :ivar list[TargetGroup] target_groups: the first one receives the traffic
    :ivar bool open_ingress: whether the load balancer security groups admit 0.0.0.0/0 on the port
    """

    kind = "Listener"

    def __init__(
        self,
        name: str,
        topology: Topology,
        load_balancer: LoadBalancer,
        port: int,
        target_groups: list,
        open_ingress: bool = True,
        protocol: str = "HTTP",
        certificate_arn: str = None,
    ):
        super().__init__(name, topology)
        self.load_balancer = expect_kind(
            load_balancer, LoadBalancer, "load_balancer", self
        )
        self.port = validate_port(port, self)
        self.protocol = str(protocol).upper()
        if self.protocol not in HTTP_PROTOCOLS:
            raise ConstraintViolation(
                f"{self!r} - protocol {protocol} must be one of {HTTP_PROTOCOLS}"
            )
        if self.protocol == "HTTPS" and not certificate_arn:
            raise ConstraintViolation(f"{self!r} - HTTPS requires a certificate ARN")
        if not target_groups:
            raise ConstraintViolation(f"{self!r} - at least one target group is required")
        self.target_groups = []
        for target_group in target_groups:
            expect_kind(target_group, TargetGroup, "target_groups", self)
            if any(target_group is known for known in self.target_groups):
                raise DuplicateEntity(
                    f"{self!r} - {target_group!r} is listed more than once"
                )
            if target_group.network is not load_balancer.network:
                raise CrossNetworkReference(
                    f"{self!r} - {target_group!r} is in {target_group.network!r}"
                    f" whereas {load_balancer!r} is in {load_balancer.network!r}"
                )
            if target_group.protocol not in HTTP_PROTOCOLS:
                raise ConstraintViolation(
                    f"{self!r} - {target_group!r} uses {target_group.protocol}."
                    f" Application load balancers only forward to {HTTP_PROTOCOLS}"
                )
            self.target_groups.append(target_group)
        self.open_ingress = open_ingress
        props = {
            "LoadBalancerArn": load_balancer.arn,
            "Port": self.port,
            "Protocol": self.protocol,
            "DefaultActions": [define_forward_action(self.target_groups)],
        }
        if certificate_arn:
            props["Certificates"] = [Certificate(CertificateArn=certificate_arn)]
        self.listener = Elbv2Listener(self.resource_title("Resource"), **props)
        self.resources.append(self.listener)
        if open_ingress:
            for group in load_balancer.security_groups:
                self.resources.append(
                    SecurityGroupIngress(
                        self.resource_title(f"OpenFrom{group.title}"),
                        GroupId=group.group_id,
                        CidrIp=ALL_IPS,
                        FromPort=self.port,
                        ToPort=self.port,
                        IpProtocol="tcp",
                        Description=f"Allow from anyone on port {self.port}",
                    )
                )

    @property
    def dependencies(self):
        return [self.load_balancer] + self.target_groups

    @property
    def arn(self) -> Ref:
        return Ref(self.listener)

    @property
    def blue(self) -> TargetGroup:
        return self.target_groups[0]

    @property
    def green(self) -> TargetGroup:
        if len(self.target_groups) < 2:
            return None
        return self.target_groups[1]

    def forwards_to(self, target_group: TargetGroup) -> bool:
        return any(target_group is known for known in self.target_groups)
