# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
ECS Service entity.

A rolling service is updated by ECS itself. A blue/green service hands its updates over to CodeDeploy,
which shifts the traffic from the blue target group (attached to the service) to the green one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import GetAtt, Ref
from troposphere.ecs import (
    AwsvpcConfiguration,
    DeploymentCircuitBreaker,
    DeploymentConfiguration,
    DeploymentController,
)
from troposphere.ecs import LoadBalancer as EcsLoadBalancer
from troposphere.ecs import NetworkConfiguration
from troposphere.ecs import Service as EcsService

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.common.logging import LOG
from ecs_topology.ecs.ecs_params import BLUE_GREEN, DEPLOYMENT_CONTROLLERS, ROLLING
from ecs_topology.ecs.task_definition import TaskDefinition
from ecs_topology.ecs_cluster import Cluster
from ecs_topology.ecs_cluster.ecs_cluster_params import get_default_strategy
from ecs_topology.elbv2.listener import Listener
from ecs_topology.elbv2.target_group import TargetGroup
from ecs_topology.exceptions import (
    BlueGreenConfigurationError,
    ConstraintViolation,
    CrossNetworkReference,
)
from ecs_topology.iam import CODEDEPLOY_PRINCIPAL, validate_trust_principal
from ecs_topology.iam.iam_roles import Role
from ecs_topology.vpc.security_groups import SecurityGroup, SecurityGroupIngressRule


def define_deployment_options(controller: str, props: dict) -> None:
    """
    Function to define the DeploymentController and DeploymentConfiguration.
    Rolling updates have the Rollback and CircuitBreaker on. CodeDeploy does not support the circuit breaker.

    :param str controller: rolling or blue_green
    :param dict props: the troposphere.ecs.Service properties definition to update with deployment config.
    """
    props["DeploymentController"] = DeploymentController(
        Type=DEPLOYMENT_CONTROLLERS[controller]
    )
    if controller == ROLLING:
        props["DeploymentConfiguration"] = DeploymentConfiguration(
            MaximumPercent=200,
            MinimumHealthyPercent=100,
            DeploymentCircuitBreaker=DeploymentCircuitBreaker(
                Enable=True, Rollback=True
            ),
        )


class Service(TopologyEntity):
    """
    Class to represent an ECS Service running a task definition on Fargate.

    :ivar Cluster cluster:
    :ivar TaskDefinition task_definition:
    :ivar list[SecurityGroup] security_groups:
    :ivar str deployment_controller: rolling or blue_green
    :ivar TargetGroup target_group: the target group the service registers its tasks to, if any
    :ivar Listener listener: the listener forwarding to the target group
    :ivar Role codedeploy_role: the role CodeDeploy uses for blue/green deployments
    """

    kind = "Service"

    def __init__(
        self,
        name: str,
        topology: Topology,
        cluster: Cluster,
        task_definition: TaskDefinition,
        security_groups: list,
        deployment_controller: str = ROLLING,
        desired_count: int = 1,
        assign_public_ip: bool = False,
        target_group: TargetGroup = None,
        listener: Listener = None,
        container_port: int = None,
        codedeploy_role: Role = None,
        health_check_grace_period: int = 60,
    ):
        super().__init__(name, topology)
        self.cluster = expect_kind(cluster, Cluster, "cluster", self)
        self.task_definition = expect_kind(
            task_definition, TaskDefinition, "task_definition", self
        )
        if deployment_controller not in DEPLOYMENT_CONTROLLERS:
            raise ConstraintViolation(
                f"{self!r} - deployment controller {deployment_controller} must be one of"
                f" {list(DEPLOYMENT_CONTROLLERS.keys())}"
            )
        self.deployment_controller = deployment_controller
        if not isinstance(desired_count, int) or desired_count < 0:
            raise ConstraintViolation(
                f"{self!r} - desired count must be a positive integer. Got {desired_count}"
            )
        self.desired_count = desired_count
        self.assign_public_ip = assign_public_ip
        if not security_groups:
            raise ConstraintViolation(
                f"{self!r} - at least one security group is required"
            )
        self.security_groups = [
            expect_kind(group, SecurityGroup, "security_groups", self)
            for group in security_groups
        ]
        self.target_group = None
        self.listener = None
        self.container_port = None
        self.set_load_balancing(topology, target_group, listener, container_port)
        self.codedeploy_role = None
        if codedeploy_role is not None:
            self.codedeploy_role = expect_kind(
                codedeploy_role, Role, "codedeploy_role", self
            )
        self.validate_network()
        if self.is_blue_green:
            self.validate_blue_green()
        elif self.codedeploy_role:
            LOG.warning(
                f"{self!r} - {self.codedeploy_role!r} is set but the service uses rolling updates."
            )

        self.service_name = generate_resource_name(
            self.project, self.environment, name, max_length=255
        )
        props = {
            "ServiceName": self.service_name,
            "Cluster": cluster.name_ref,
            "TaskDefinition": task_definition.arn,
            "DesiredCount": desired_count,
            "EnableECSManagedTags": True,
            "PropagateTags": "SERVICE",
            "NetworkConfiguration": NetworkConfiguration(
                AwsvpcConfiguration=AwsvpcConfiguration(
                    Subnets=cluster.network.subnets(public=assign_public_ip),
                    SecurityGroups=[group.group_id for group in self.security_groups],
                    AssignPublicIp="ENABLED" if assign_public_ip else "DISABLED",
                )
            ),
        }
        if cluster.use_spot:
            props["CapacityProviderStrategy"] = get_default_strategy(True)
        else:
            props["LaunchType"] = "FARGATE"
        define_deployment_options(deployment_controller, props)
        if self.target_group:
            props["LoadBalancers"] = [
                EcsLoadBalancer(
                    ContainerName=task_definition.container_name,
                    ContainerPort=self.container_port,
                    TargetGroupArn=self.target_group.arn,
                )
            ]
            props["HealthCheckGracePeriodSeconds"] = health_check_grace_period
            props["DependsOn"] = [self.listener.listener.title]
        else:
            LOG.warning(
                f"{self!r} - no target group attached."
                " The service runs but is not reachable through a load balancer."
            )
        self.service = EcsService(self.resource_title("Resource"), **props)
        self.resources.append(self.service)
        self.add_output("Name", self.name_att)

    def set_load_balancing(
        self,
        topology: Topology,
        target_group: TargetGroup,
        listener: Listener,
        container_port: int,
    ) -> None:
        """
        Sets the target group, listener and container port the service is registered with.
        Without a listener, the one forwarding to the target group is looked up in the topology.
        Without a target group, the blue target group of the listener is used.
        """
        if target_group is None and listener is None:
            return
        if listener is not None:
            self.listener = expect_kind(listener, Listener, "listener", self)
        if target_group is None:
            target_group = self.listener.blue
            LOG.info(f"{self!r} - using {target_group!r} of {self.listener!r}")
        self.target_group = expect_kind(target_group, TargetGroup, "target_group", self)
        if self.target_group.target_type != "ip":
            raise ConstraintViolation(
                f"{self!r} - {self.target_group!r} target type must be ip for awsvpc tasks."
                f" Got {self.target_group.target_type}"
            )
        if self.listener is None:
            listeners = topology.listeners_for(self.target_group)
            if not listeners:
                raise ConstraintViolation(
                    f"{self!r} - {self.target_group!r} is not forwarded to by any listener"
                )
            if len(listeners) > 1:
                raise ConstraintViolation(
                    f"{self!r} - {self.target_group!r} is forwarded to by {listeners}."
                    " The listener must be set explicitly"
                )
            self.listener = listeners[0]
        elif not self.listener.forwards_to(self.target_group):
            raise ConstraintViolation(
                f"{self!r} - {self.listener!r} does not forward to {self.target_group!r}"
            )
        ports = self.task_definition.container_ports
        if container_port is None:
            if not ports:
                raise ConstraintViolation(
                    f"{self!r} - {self.task_definition!r} has no port mapping"
                    f" to register with {self.target_group!r}"
                )
            container_port = ports[0]
        elif container_port not in ports:
            raise ConstraintViolation(
                f"{self!r} - container port {container_port} is not one of"
                f" {self.task_definition!r} ports {ports}"
            )
        self.container_port = container_port
        if not self.is_blue_green and self.target_group is not self.listener.blue:
            LOG.warning(
                f"{self!r} - {self.target_group!r} has no weight on {self.listener!r}."
                " The service receives no traffic"
            )

    def validate_network(self) -> None:
        """
        The security groups and the target group must be in the network of the cluster
        """
        network = self.cluster.network
        for group in self.security_groups:
            if group.network is not network:
                raise CrossNetworkReference(
                    f"{self!r} - {group!r} is in {group.network!r}"
                    f" whereas {self.cluster!r} is in {network!r}"
                )
        if self.target_group and self.target_group.network is not network:
            raise CrossNetworkReference(
                f"{self!r} - {self.target_group!r} is in {self.target_group.network!r}"
                f" whereas {self.cluster!r} is in {network!r}"
            )

    def validate_blue_green(self) -> None:
        """
        A blue/green service needs its listener to forward to exactly two target groups,
        the service one being the blue, and a CodeDeploy role able to pass the task roles.

        :raises: BlueGreenConfigurationError
        :raises: InvalidTrustPrincipal
        :raises: MissingPassRole
        """
        if not self.target_group:
            raise BlueGreenConfigurationError(
                f"{self!r} - blue/green deployments require a target group and a listener"
            )
        if len(self.listener.target_groups) != 2:
            raise BlueGreenConfigurationError(
                f"{self!r} - {self.listener!r} must forward to exactly two target groups"
                f" for blue/green deployments. Got {self.listener.target_groups}"
            )
        if self.listener.blue is not self.target_group:
            raise BlueGreenConfigurationError(
                f"{self!r} - {self.target_group!r} must be the first (blue) target group of"
                f" {self.listener!r}. Got {self.listener.blue!r}"
            )
        if not self.codedeploy_role:
            raise BlueGreenConfigurationError(
                f"{self!r} - blue/green deployments require a CodeDeploy role"
            )
        validate_trust_principal(self.codedeploy_role, CODEDEPLOY_PRINCIPAL, self)
        self.codedeploy_role.require_pass_roles(self.task_definition.roles, self)

    @property
    def is_blue_green(self) -> bool:
        return self.deployment_controller == BLUE_GREEN

    @property
    def reachable(self) -> bool:
        """
        Whether a listener forwards traffic to the service
        """
        return self.target_group is not None

    @property
    def dependencies(self):
        dependencies = [self.cluster, self.task_definition] + self.security_groups
        if self.target_group:
            dependencies += [self.target_group, self.listener]
        if self.codedeploy_role:
            dependencies.append(self.codedeploy_role)
        return dependencies

    @property
    def name_att(self) -> GetAtt:
        return GetAtt(self.service, "Name")

    @property
    def arn(self) -> Ref:
        return Ref(self.service)

    def validate(self, topology: Topology) -> None:
        self.validate_network()
        if self.is_blue_green:
            self.validate_blue_green()
        if not self.target_group:
            return
        ingress_rules = [
            entity
            for entity in topology.entities.values()
            if isinstance(entity, SecurityGroupIngressRule)
        ]
        lb_groups = self.listener.load_balancer.security_groups
        if not any(
            any(rule.source is group for group in lb_groups)
            and any(rule.group is group for group in self.security_groups)
            for rule in ingress_rules
        ):
            LOG.warning(
                f"{self!r} - no ingress rule allows {self.listener.load_balancer!r}"
                f" security groups to reach the service on port {self.container_port}"
            )
