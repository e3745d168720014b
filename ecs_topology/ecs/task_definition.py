# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Task Definition entity: the compute unit, its container and its logging.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

import re

from compose_x_common.compose_x_common import set_else_none
from troposphere import AWS_REGION, Ref
from troposphere.ecs import ContainerDefinition, Environment, LogConfiguration
from troposphere.ecs import PortMapping
from troposphere.ecs import TaskDefinition as EcsTaskDefinition
from troposphere.logs import LogGroup

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.common.logging import LOG
from ecs_topology.ecr import ImageRepository
from ecs_topology.ecs.docker_tools import (
    MINIMUM_SUPPORTED,
    find_closest_fargate_configuration,
    is_valid_fargate_configuration,
    set_memory_to_mb,
)
from ecs_topology.ecs.ecs_params import (
    DEFAULT_LOG_RETENTION,
    FARGATE_MODES,
    LOG_GROUP_RETENTION_VALUES,
)
from ecs_topology.exceptions import (
    ConstraintViolation,
    InvalidFargateConfiguration,
    MemoryReservationError,
)
from ecs_topology.iam import ECS_TASKS_PRINCIPAL, validate_trust_principal
from ecs_topology.iam.iam_roles import Role
from ecs_topology.vpc.security_groups import validate_port

ENV_VAR_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def get_closest_valid_log_retention_period(set_expiry):
    return min(
        LOG_GROUP_RETENTION_VALUES,
        key=lambda x: abs(x - max([set_expiry])),
    )


def define_port_mappings(port_mappings: list, owner) -> list:
    """
    Defines the container port mappings. With awsvpc networking, the host port is the container port.

    :param list port_mappings: list of ports, or of dict with ContainerPort and Protocol
    :param owner: the task definition, for error messages
    :rtype: list[troposphere.ecs.PortMapping]
    """
    mappings = []
    for mapping in port_mappings:
        if isinstance(mapping, dict):
            port = set_else_none("ContainerPort", mapping)
            protocol = set_else_none("Protocol", mapping, "tcp")
        else:
            port = mapping
            protocol = "tcp"
        if protocol not in ["tcp", "udp"]:
            raise ConstraintViolation(f"{owner!r} - protocol {protocol} is not valid")
        mappings.append(
            PortMapping(ContainerPort=validate_port(port, owner), Protocol=protocol)
        )
    return mappings


def define_environment(environment: dict, owner) -> list:
    """
    Defines the container environment variables. Values are all rendered as strings.

    :param dict environment:
    :param owner: the task definition, for error messages
    :rtype: list[troposphere.ecs.Environment]
    """
    variables = []
    for name, value in environment.items():
        if not ENV_VAR_NAME_RE.match(name):
            raise ConstraintViolation(
                f"{owner!r} - environment variable {name} must match {ENV_VAR_NAME_RE.pattern}"
            )
        if isinstance(value, bool):
            value = str(value).lower()
        variables.append(Environment(Name=name, Value=str(value)))
    return variables


class TaskDefinition(TopologyEntity):
    """
    Class to represent a Fargate Task Definition with its main container.

    :ivar int cpu: CPU units of the task
    :ivar int memory: memory of the task, in MB
    :ivar int container_memory: hard memory limit of the container, in MB
    :ivar int memory_reservation: soft memory limit of the container, in MB
    :ivar Role execution_role:
    :ivar Role task_role:
    :ivar ImageRepository repository: set when the image comes from a repository of the topology
    """

    kind = "TaskDefinition"

    def __init__(
        self,
        name: str,
        topology: Topology,
        cpu: int,
        memory,
        image,
        execution_role: Role,
        task_role: Role = None,
        image_tag: str = "latest",
        port_mappings: list = None,
        environment: dict = None,
        memory_reservation=None,
        container_memory=None,
        container_name: str = None,
        log_retention_days: int = DEFAULT_LOG_RETENTION,
    ):
        super().__init__(name, topology)
        self.cpu = cpu
        self.memory = set_memory_to_mb(memory)
        self.set_compute()
        self.execution_role = expect_kind(execution_role, Role, "execution_role", self)
        validate_trust_principal(execution_role, ECS_TASKS_PRINCIPAL, self)
        self.task_role = None
        if task_role is not None:
            self.task_role = expect_kind(task_role, Role, "task_role", self)
            validate_trust_principal(task_role, ECS_TASKS_PRINCIPAL, self)
        self.repository = None
        if isinstance(image, ImageRepository):
            self.repository = image
            self.image = image.image(image_tag)
        elif isinstance(image, str) and image:
            self.image = image
        else:
            raise ConstraintViolation(
                f"{self!r} - image must be a registry URI or a {ImageRepository.kind}. Got {image}"
            )
        self.container_memory = (
            set_memory_to_mb(container_memory) if container_memory else None
        )
        self.memory_reservation = (
            set_memory_to_mb(memory_reservation) if memory_reservation else None
        )
        self.validate_memory()
        self.family = generate_resource_name(
            self.project, self.environment, name, max_length=255
        )
        self.container_name = container_name if container_name else name
        self.port_mappings = define_port_mappings(port_mappings or [], self)
        self.log_group = LogGroup(
            self.resource_title("LogGroup"),
            LogGroupName=f"/ecs/{self.family}",
            RetentionInDays=get_closest_valid_log_retention_period(log_retention_days),
        )
        container_props = {
            "Name": self.container_name,
            "Image": self.image,
            "Essential": True,
            "PortMappings": self.port_mappings,
            "Environment": define_environment(environment or {}, self),
            "LogConfiguration": LogConfiguration(
                LogDriver="awslogs",
                Options={
                    "awslogs-group": Ref(self.log_group),
                    "awslogs-region": Ref(AWS_REGION),
                    "awslogs-stream-prefix": self.container_name,
                },
            ),
        }
        if self.container_memory:
            container_props["Memory"] = self.container_memory
        if self.memory_reservation:
            container_props["MemoryReservation"] = self.memory_reservation
        task_props = {
            "Family": self.family,
            "Cpu": str(self.cpu),
            "Memory": str(self.memory),
            "NetworkMode": "awsvpc",
            "RequiresCompatibilities": ["FARGATE"],
            "ExecutionRoleArn": execution_role.arn,
            "ContainerDefinitions": [ContainerDefinition(**container_props)],
        }
        if self.task_role:
            task_props["TaskRoleArn"] = self.task_role.arn
        self.task_definition = EcsTaskDefinition(
            self.resource_title("Resource"), **task_props
        )
        self.resources += [self.log_group, self.task_definition]
        self.add_output("Arn", self.arn)

    def set_compute(self):
        """
        Validates the CPU / RAM combination against the Fargate supported modes
        """
        if not isinstance(self.cpu, int) or not is_valid_fargate_configuration(
            self.cpu, self.memory
        ):
            closest = (
                find_closest_fargate_configuration(self.cpu, self.memory, True)
                if isinstance(self.cpu, int) and self.cpu > 0 and self.memory > 0
                else None
            )
            raise InvalidFargateConfiguration(
                f"{self!r} - {self.cpu} CPU / {self.memory}MB is not a valid Fargate configuration."
                f" Valid CPU values are {list(FARGATE_MODES.keys())}. Closest valid (cpu!ram): {closest}"
            )

    def validate_memory(self):
        """
        The container memory limit cannot exceed the task memory,
        and the memory reservation cannot exceed the memory limit.
        """
        if self.container_memory and self.container_memory > self.memory:
            raise MemoryReservationError(
                f"{self!r} - container memory limit {self.container_memory}MB"
                f" exceeds the task memory {self.memory}MB"
            )
        limit = self.container_memory if self.container_memory else self.memory
        if self.memory_reservation is None:
            return
        if self.memory_reservation < MINIMUM_SUPPORTED:
            raise MemoryReservationError(
                f"{self!r} - memory reservation must be at least {MINIMUM_SUPPORTED}MB"
            )
        if self.memory_reservation > limit:
            raise MemoryReservationError(
                f"{self!r} - memory reservation {self.memory_reservation}MB"
                f" exceeds the memory limit {limit}MB"
            )
        LOG.debug(
            f"{self!r} - reserves {self.memory_reservation}MB out of {limit}MB"
        )

    @property
    def dependencies(self):
        dependencies = [self.execution_role]
        if self.task_role:
            dependencies.append(self.task_role)
        if self.repository:
            dependencies.append(self.repository)
        return dependencies

    @property
    def roles(self) -> list:
        """
        The roles a deployment tool needs to pass to run this task definition
        """
        return [role for role in [self.task_role, self.execution_role] if role]

    @property
    def arn(self) -> Ref:
        return Ref(self.task_definition)

    @property
    def container_ports(self) -> list:
        return [mapping.ContainerPort for mapping in self.port_mappings]

    def validate(self, topology: Topology) -> None:
        self.validate_memory()
