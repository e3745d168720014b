# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
The Topology: the graph of the entities of one deployment, and the CloudFormation template they render into.

Entities must be declared before the entities referencing them. Each reference is resolved when the entity
is added, and must point to the very entity declared in this topology.
Nothing is added to the template if the entity fails to resolve or to validate.
"""

from __future__ import annotations

from troposphere import Template

from ecs_topology.codedeploy import DeploymentGroup
from ecs_topology.common import TOPOLOGY_NAME_RE
from ecs_topology.common.entities import TopologyEntity
from ecs_topology.common.logging import LOG
from ecs_topology.ecr import ImageRepository
from ecs_topology.ecs.ecs_params import ROLLING
from ecs_topology.ecs.ecs_scaling import ScalableTarget
from ecs_topology.ecs.ecs_service import Service
from ecs_topology.ecs.task_definition import TaskDefinition
from ecs_topology.ecs_cluster import Cluster
from ecs_topology.elbv2.listener import Listener
from ecs_topology.elbv2.load_balancer import LoadBalancer
from ecs_topology.elbv2.target_group import TargetGroup
from ecs_topology.exceptions import (
    ConstraintViolation,
    CyclicDependency,
    DanglingReference,
    DuplicateEntity,
    WrongKindReference,
)
from ecs_topology.iam import CODEDEPLOY_PRINCIPAL, ECS_TASKS_PRINCIPAL
from ecs_topology.iam.iam_roles import (
    CODEDEPLOY_ECS_POLICY,
    EXECUTION_ROLE_ACTIONS,
    Role,
)
from ecs_topology.vpc.security_groups import SecurityGroup, SecurityGroupIngressRule
from ecs_topology.vpc.vpc_network import Network
from ecs_topology.vpc.vpc_params import DEFAULT_SUBNET_MASK

FORMATS = ["json", "yaml"]


class Topology:
    """
    Class to represent the deployment topology of an ECS application.

    :ivar str name: the name of the application, prefix of all the generated resource names
    :ivar str environment: the deployment identifier, so that several environments can live in one account
    :ivar bool strict_permissions: whether statements on all resources (*) are fatal
    :ivar troposphere.Template template: the CloudFormation template
    :ivar dict entities: the declared entities, by title, in declaration order
    :ivar dict edges: the titles of the entities each entity references
    """

    def __init__(
        self,
        name: str,
        environment: str = "dev",
        description: str = None,
        strict_permissions: bool = False,
    ):
        for value, field in [(name, "name"), (environment, "environment")]:
            if not isinstance(value, str) or not TOPOLOGY_NAME_RE.match(value):
                raise ConstraintViolation(
                    f"Topology {field} {value} is invalid. Must match",
                    TOPOLOGY_NAME_RE.pattern,
                )
        self.name = name
        self.environment = environment
        self.strict_permissions = strict_permissions
        self.template = Template(
            Description=description
            if description
            else f"ECS Topology {name} - {environment}"
        )
        self.entities: dict[str, TopologyEntity] = {}
        self.edges: dict[str, list[str]] = {}

    def __repr__(self):
        return f"Topology({self.name}-{self.environment})"

    def resolve(self, entity: TopologyEntity, reference) -> TopologyEntity:
        """
        Ensures a reference of an entity points to an entity declared in this topology.

        :param TopologyEntity entity: the entity holding the reference
        :param reference: the referenced entity
        :raises: WrongKindReference if the reference is not an entity
        :raises: DanglingReference if the reference is not declared in this topology
        """
        if not isinstance(reference, TopologyEntity):
            raise WrongKindReference(
                f"{entity!r} - references {reference!r} which is not a topology entity"
            )
        if self.entities.get(reference.title) is not reference:
            raise DanglingReference(
                f"{entity!r} - references {reference!r} which is not declared in {self!r}"
            )
        return reference

    def add(self, entity: TopologyEntity) -> TopologyEntity:
        """
        Adds an entity to the topology, once all its references are resolved.

        :param TopologyEntity entity:
        :return: the entity
        :raises: DuplicateEntity
        :raises: DanglingReference
        """
        if entity.title in self.entities:
            raise DuplicateEntity(
                f"{entity!r} - {self.entities[entity.title]!r} is already declared as {entity.title}"
            )
        for resource in entity.resources:
            if resource.title in self.template.resources:
                raise DuplicateEntity(
                    f"{entity!r} - resource {resource.title} is already declared"
                )
        for output in entity.outputs:
            if output.title in self.template.outputs:
                raise DuplicateEntity(
                    f"{entity!r} - output {output.title} is already declared"
                )
        edges = []
        for dependency in entity.dependencies:
            self.resolve(entity, dependency)
            if dependency.title not in edges:
                edges.append(dependency.title)
        for resource in entity.resources:
            self.template.add_resource(resource)
        for output in entity.outputs:
            self.template.add_output(output)
        self.entities[entity.title] = entity
        self.edges[entity.title] = edges
        LOG.info(
            f"{self!r} - added {entity!r}"
            + (f", depending on {', '.join(edges)}" if edges else "")
        )
        return entity

    def build_order(self) -> list[str]:
        """
        Deterministic topological order of the entities: an entity always comes after the ones it references.
        Ties are broken by declaration order.

        :rtype: list[str]
        :raises: CyclicDependency
        """
        in_degree = {title: 0 for title in self.entities}
        dependents = {title: [] for title in self.entities}
        for title, edges in self.edges.items():
            for dependency in edges:
                in_degree[title] += 1
                dependents[dependency].append(title)
        ready = [title for title in self.entities if in_degree[title] == 0]
        order = []
        while ready:
            title = ready.pop(0)
            order.append(title)
            for dependent in dependents[title]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)
        if len(order) != len(self.entities):
            cycle = [title for title in self.entities if title not in order]
            raise CyclicDependency(f"{self!r} - no build order exists for {cycle}")
        return order

    def validate(self) -> list[str]:
        """
        Validates the whole topology: every reference is closed, the graph is acyclic,
        and every entity invariant still holds.

        :return: the build order
        :rtype: list[str]
        """
        for entity in self.entities.values():
            for dependency in entity.dependencies:
                self.resolve(entity, dependency)
        order = self.build_order()
        for title in order:
            self.entities[title].validate(self)
        deployed = [group.service for group in self.entities_of(DeploymentGroup)]
        for service in self.entities_of(Service):
            if service.is_blue_green and not any(service is known for known in deployed):
                LOG.warning(
                    f"{service!r} - blue/green service without a CodeDeploy deployment group."
                    " Deployments need to be driven by an external tool"
                )
        LOG.info(f"{self!r} - {len(order)} entities validated")
        return order

    def render(self, file_format: str = "json") -> str:
        """
        Validates the topology and renders the CloudFormation template

        :param str file_format: json or yaml
        :rtype: str
        """
        if file_format not in FORMATS:
            raise ValueError(f"Format {file_format} must be one of", FORMATS)
        self.validate()
        if file_format == "yaml":
            return self.template.to_yaml()
        return self.template.to_json()

    def get(self, name: str, entity_class) -> TopologyEntity:
        """
        Returns the entity of the given class and name

        :param str name: the name the entity was declared with
        :param type entity_class:
        :raises: DanglingReference
        """
        for entity in self.entities.values():
            if isinstance(entity, entity_class) and entity.name == name:
                return entity
        raise DanglingReference(f"{self!r} - no {entity_class.kind} named {name}")

    def entities_of(self, entity_class) -> list:
        return [
            entity
            for entity in self.entities.values()
            if isinstance(entity, entity_class)
        ]

    def listeners_for(self, target_group: TargetGroup) -> list[Listener]:
        """
        Returns the listeners forwarding to the target group
        """
        return [
            listener
            for listener in self.entities_of(Listener)
            if listener.forwards_to(target_group)
        ]

    def declare_repository(self, name: str, scan_on_push: bool = True):
        return self.add(ImageRepository(name, self, scan_on_push=scan_on_push))

    def declare_network(
        self,
        name: str,
        cidr: str,
        az_count: int,
        subnet_mask: int = DEFAULT_SUBNET_MASK,
        single_nat: bool = False,
    ):
        return self.add(
            Network(
                name,
                self,
                cidr,
                az_count,
                subnet_mask=subnet_mask,
                single_nat=single_nat,
            )
        )

    def declare_security_group(
        self,
        name: str,
        network: Network,
        description: str = None,
        ingress: list = None,
        allow_all_outbound: bool = True,
    ):
        return self.add(
            SecurityGroup(
                name,
                self,
                network,
                description=description,
                ingress=ingress,
                allow_all_outbound=allow_all_outbound,
            )
        )

    def allow_ingress(
        self,
        group: SecurityGroup,
        source: SecurityGroup,
        port: int,
        protocol: str = "tcp",
        to_port: int = None,
        description: str = None,
    ):
        return self.add(
            SecurityGroupIngressRule(
                self,
                group,
                source,
                port,
                protocol=protocol,
                to_port=to_port,
                description=description,
            )
        )

    def declare_load_balancer(
        self,
        name: str,
        network: Network,
        security_groups: list,
        internet_facing: bool = True,
        idle_timeout: int = 60,
    ):
        return self.add(
            LoadBalancer(
                name,
                self,
                network,
                security_groups,
                internet_facing=internet_facing,
                idle_timeout=idle_timeout,
            )
        )

    def declare_target_group(
        self,
        name: str,
        network: Network,
        port: int,
        protocol: str = "HTTP",
        target_type: str = "ip",
        health_check_path: str = "/",
        healthy_http_codes: str = "200",
        deregistration_delay: int = 30,
    ):
        return self.add(
            TargetGroup(
                name,
                self,
                network,
                port,
                protocol=protocol,
                target_type=target_type,
                health_check_path=health_check_path,
                healthy_http_codes=healthy_http_codes,
                deregistration_delay=deregistration_delay,
            )
        )

    def declare_listener(
        self,
        name: str,
        load_balancer: LoadBalancer,
        port: int,
        target_groups: list,
        open_ingress: bool = True,
        protocol: str = "HTTP",
        certificate_arn: str = None,
    ):
        listener = Listener(
            name,
            self,
            load_balancer,
            port,
            target_groups,
            open_ingress=open_ingress,
            protocol=protocol,
            certificate_arn=certificate_arn,
        )
        ports = [
            known.port
            for known in self.entities_of(Listener)
            if known.load_balancer is load_balancer
        ]
        if listener.port in ports:
            raise ConstraintViolation(
                f"{listener!r} - {load_balancer!r} already has a listener on port {listener.port}"
            )
        return self.add(listener)

    def declare_role(
        self,
        name: str,
        principal: str,
        actions: list = None,
        resources: list = None,
        managed_policies: list = None,
        pass_roles: list = None,
    ):
        return self.add(
            Role(
                name,
                self,
                principal,
                actions=actions,
                resources=resources,
                managed_policies=managed_policies,
                pass_roles=pass_roles,
                strict=self.strict_permissions,
            )
        )

    def declare_execution_role(
        self, name: str, resources: list = None, managed_policies: list = None
    ):
        """
        Role used by ECS to pull the images and send the logs
        """
        return self.declare_role(
            name,
            ECS_TASKS_PRINCIPAL,
            actions=EXECUTION_ROLE_ACTIONS,
            resources=resources,
            managed_policies=managed_policies,
        )

    def declare_task_role(
        self,
        name: str,
        actions: list = None,
        resources: list = None,
        managed_policies: list = None,
    ):
        """
        Role assumed by the application running in the containers
        """
        return self.declare_role(
            name,
            ECS_TASKS_PRINCIPAL,
            actions=actions,
            resources=resources,
            managed_policies=managed_policies,
        )

    def declare_codedeploy_role(self, name: str, pass_roles: list = None):
        """
        Role used by CodeDeploy to shift the traffic of blue/green services.
        It must be able to pass the task and execution roles of the services it deploys.
        """
        return self.declare_role(
            name,
            CODEDEPLOY_PRINCIPAL,
            managed_policies=[CODEDEPLOY_ECS_POLICY],
            pass_roles=pass_roles,
        )

    def declare_cluster(
        self,
        name: str,
        network: Network,
        container_insights: bool = True,
        use_spot: bool = False,
    ):
        return self.add(
            Cluster(
                name,
                self,
                network,
                container_insights=container_insights,
                use_spot=use_spot,
            )
        )

    def declare_task_definition(
        self,
        name: str,
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
        log_retention_days: int = 14,
    ):
        return self.add(
            TaskDefinition(
                name,
                self,
                cpu,
                memory,
                image,
                execution_role,
                task_role=task_role,
                image_tag=image_tag,
                port_mappings=port_mappings,
                environment=environment,
                memory_reservation=memory_reservation,
                container_memory=container_memory,
                container_name=container_name,
                log_retention_days=log_retention_days,
            )
        )

    def declare_service(
        self,
        name: str,
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
        return self.add(
            Service(
                name,
                self,
                cluster,
                task_definition,
                security_groups,
                deployment_controller=deployment_controller,
                desired_count=desired_count,
                assign_public_ip=assign_public_ip,
                target_group=target_group,
                listener=listener,
                container_port=container_port,
                codedeploy_role=codedeploy_role,
                health_check_grace_period=health_check_grace_period,
            )
        )

    def attach_autoscaling(
        self,
        service: Service,
        min_capacity: int,
        max_capacity: int,
        cpu_target=None,
        memory_target=None,
        scale_in_cooldown: int = 300,
        scale_out_cooldown: int = 60,
        disable_scale_in: bool = False,
    ):
        return self.add(
            ScalableTarget(
                self,
                service,
                min_capacity,
                max_capacity,
                cpu_target=cpu_target,
                memory_target=memory_target,
                scale_in_cooldown=scale_in_cooldown,
                scale_out_cooldown=scale_out_cooldown,
                disable_scale_in=disable_scale_in,
            )
        )

    def declare_deployment_group(
        self,
        service: Service,
        deployment_config: str = "CodeDeployDefault.ECSAllAtOnce",
        termination_wait_minutes: int = 5,
        auto_rollback: bool = True,
    ):
        return self.add(
            DeploymentGroup(
                self,
                service,
                deployment_config=deployment_config,
                termination_wait_minutes=termination_wait_minutes,
                auto_rollback=auto_rollback,
            )
        )
