# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Main module to generate the topology out of the topology file definition.
Sections are processed in dependency order, references are by name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.common.settings import TopologySettings

from compose_x_common.compose_x_common import keyisset, keypresent, set_else_none

from ecs_topology.common.logging import LOG
from ecs_topology.ecr import RES_KEY as ECR_KEY
from ecs_topology.ecr import ImageRepository
from ecs_topology.ecs.ecs_params import ROLLING, SERVICES_KEY, TASKS_KEY
from ecs_topology.ecs.ecs_service import Service
from ecs_topology.ecs.task_definition import TaskDefinition
from ecs_topology.ecs_cluster import Cluster
from ecs_topology.ecs_cluster.ecs_cluster_params import RES_KEY as CLUSTER_KEY
from ecs_topology.elbv2.elbv2_params import RES_KEY as ELBV2_KEY
from ecs_topology.elbv2.listener import Listener
from ecs_topology.elbv2.target_group import TargetGroup
from ecs_topology.exceptions import CyclicDependency
from ecs_topology.iam import RES_KEY as IAM_KEY
from ecs_topology.iam.iam_roles import Role
from ecs_topology.topology import Topology
from ecs_topology.vpc.security_groups import SecurityGroup
from ecs_topology.vpc.vpc_network import Network
from ecs_topology.vpc.vpc_params import (
    DEFAULT_AZ_COUNT,
    DEFAULT_SUBNET_MASK,
    DEFAULT_VPC_CIDR,
)
from ecs_topology.vpc.vpc_params import RES_KEY as NETWORK_KEY
from ecs_topology.vpc.vpc_params import SG_RES_KEY

EXECUTION_ROLE_TYPE = "execution"
TASK_ROLE_TYPE = "task"
CODEDEPLOY_ROLE_TYPE = "codedeploy"


def add_repositories(topology: Topology, content: dict) -> None:
    for name, definition in set_else_none(ECR_KEY, content, {}).items():
        definition = definition if definition else {}
        topology.declare_repository(
            name,
            scan_on_push=set_else_none(
                "ScanOnPush", definition, True, eval_bool=True
            ),
        )


def add_networks(topology: Topology, content: dict, single_nat: bool) -> None:
    for name, definition in set_else_none(NETWORK_KEY, content, {}).items():
        topology.declare_network(
            name,
            set_else_none("Cidr", definition, DEFAULT_VPC_CIDR),
            set_else_none("AzCount", definition, DEFAULT_AZ_COUNT),
            subnet_mask=set_else_none("SubnetMask", definition, DEFAULT_SUBNET_MASK),
            single_nat=set_else_none(
                "SingleNat", definition, single_nat, eval_bool=True
            ),
        )


def add_security_groups(topology: Topology, content: dict) -> None:
    """
    Declares the security groups, then the ingress rules between them,
    so that a group can allow traffic from a group declared after it.
    """
    groups = set_else_none(SG_RES_KEY, content, {})
    for name, definition in groups.items():
        topology.declare_security_group(
            name,
            topology.get(definition["Network"], Network),
            description=set_else_none("Description", definition),
            ingress=[
                rule
                for rule in set_else_none("Ingress", definition, [])
                if not keyisset("Source", rule)
            ],
            allow_all_outbound=set_else_none(
                "AllowAllOutbound", definition, True, eval_bool=True
            ),
        )
    for name, definition in groups.items():
        for rule in set_else_none("Ingress", definition, []):
            if not keyisset("Source", rule):
                continue
            topology.allow_ingress(
                topology.get(name, SecurityGroup),
                topology.get(rule["Source"], SecurityGroup),
                rule["Port"],
                protocol=set_else_none("Protocol", rule, "tcp"),
                to_port=set_else_none("ToPort", rule),
                description=set_else_none("Description", rule),
            )


def order_roles(roles: dict) -> list:
    """
    Orders the roles so that a role comes after the roles it passes.
    Ties are broken by declaration order. Unknown role names are left for the topology to report.

    :param dict roles: the x-iam definitions
    :return: the role names
    :rtype: list[str]
    :raises: CyclicDependency
    """
    in_degree = {name: 0 for name in roles}
    dependents = {name: [] for name in roles}
    for name, definition in roles.items():
        for passed in set(set_else_none("PassRoles", definition, [])):
            if passed in roles:
                in_degree[name] += 1
                dependents[passed].append(name)
    ready = [name for name in roles if in_degree[name] == 0]
    ordered = []
    while ready:
        name = ready.pop(0)
        ordered.append(name)
        for dependent in dependents[name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                ready.append(dependent)
    if len(ordered) != len(roles):
        cycle = [name for name in roles if name not in ordered]
        raise CyclicDependency(f"{IAM_KEY} - roles passing each other: {cycle}")
    return ordered


def add_roles(topology: Topology, content: dict) -> None:
    """
    Declares the IAM roles, each after the roles it passes.
    """
    roles = set_else_none(IAM_KEY, content, {})
    for name in order_roles(roles):
        definition = roles[name]
        role_type = set_else_none("Type", definition)
        pass_roles = [
            topology.get(role_name, Role)
            for role_name in set_else_none("PassRoles", definition, [])
        ]
        if role_type == EXECUTION_ROLE_TYPE:
            topology.declare_execution_role(
                name,
                resources=set_else_none("Resources", definition),
                managed_policies=set_else_none("ManagedPolicies", definition),
            )
        elif role_type == TASK_ROLE_TYPE:
            topology.declare_task_role(
                name,
                actions=set_else_none("Actions", definition),
                resources=set_else_none("Resources", definition),
                managed_policies=set_else_none("ManagedPolicies", definition),
            )
        elif role_type == CODEDEPLOY_ROLE_TYPE:
            topology.declare_codedeploy_role(name, pass_roles=pass_roles)
        else:
            topology.declare_role(
                name,
                definition["Principal"],
                actions=set_else_none("Actions", definition),
                resources=set_else_none("Resources", definition),
                managed_policies=set_else_none("ManagedPolicies", definition),
                pass_roles=pass_roles,
            )


def add_load_balancing(topology: Topology, content: dict) -> None:
    """
    Declares the target groups, then the load balancers and their listeners
    """
    elbv2 = set_else_none(ELBV2_KEY, content, {})
    for name, definition in set_else_none("TargetGroups", elbv2, {}).items():
        topology.declare_target_group(
            name,
            topology.get(definition["Network"], Network),
            definition["Port"],
            protocol=set_else_none("Protocol", definition, "HTTP"),
            target_type=set_else_none("TargetType", definition, "ip"),
            health_check_path=set_else_none("HealthCheckPath", definition, "/"),
            healthy_http_codes=str(
                set_else_none("HealthyHttpCodes", definition, "200")
            ),
            deregistration_delay=set_else_none(
                "DeregistrationDelay", definition, 30, eval_bool=True
            ),
        )
    for name, definition in set_else_none("LoadBalancers", elbv2, {}).items():
        load_balancer = topology.declare_load_balancer(
            name,
            topology.get(definition["Network"], Network),
            [
                topology.get(group_name, SecurityGroup)
                for group_name in definition["SecurityGroups"]
            ],
            internet_facing=set_else_none(
                "InternetFacing", definition, True, eval_bool=True
            ),
            idle_timeout=set_else_none("IdleTimeout", definition, 60),
        )
        for listener_name, listener_def in set_else_none(
            "Listeners", definition, {}
        ).items():
            topology.declare_listener(
                listener_name,
                load_balancer,
                listener_def["Port"],
                [
                    topology.get(tg_name, TargetGroup)
                    for tg_name in listener_def["TargetGroups"]
                ],
                open_ingress=set_else_none(
                    "OpenIngress", listener_def, True, eval_bool=True
                ),
                protocol=set_else_none("Protocol", listener_def, "HTTP"),
                certificate_arn=set_else_none("CertificateArn", listener_def),
            )


def add_clusters(topology: Topology, content: dict) -> None:
    for name, definition in set_else_none(CLUSTER_KEY, content, {}).items():
        topology.declare_cluster(
            name,
            topology.get(definition["Network"], Network),
            container_insights=set_else_none(
                "ContainerInsights", definition, True, eval_bool=True
            ),
            use_spot=keyisset("UseSpot", definition),
        )


def define_image(topology: Topology, image) -> tuple:
    """
    The image is either a registry URI, or a repository of the topology and a tag

    :return: the image and its tag
    :rtype: tuple
    """
    if isinstance(image, str):
        return image, None
    return (
        topology.get(image["Repository"], ImageRepository),
        set_else_none("Tag", image, "latest"),
    )


def add_task_definitions(topology: Topology, content: dict) -> None:
    for name, definition in set_else_none(TASKS_KEY, content, {}).items():
        image, tag = define_image(topology, definition["Image"])
        task_role = (
            topology.get(definition["TaskRole"], Role)
            if keyisset("TaskRole", definition)
            else None
        )
        topology.declare_task_definition(
            name,
            definition["Cpu"],
            definition["Memory"],
            image,
            topology.get(definition["ExecutionRole"], Role),
            task_role=task_role,
            image_tag=tag if tag else "latest",
            port_mappings=set_else_none("Ports", definition),
            environment=set_else_none("Environment", definition),
            memory_reservation=set_else_none("MemoryReservation", definition),
            container_memory=set_else_none("ContainerMemory", definition),
            container_name=set_else_none("ContainerName", definition),
            log_retention_days=set_else_none("LogRetentionDays", definition, 14),
        )


def add_service_scaling(topology: Topology, service: Service, scaling: dict) -> None:
    topology.attach_autoscaling(
        service,
        scaling["MinCapacity"],
        scaling["MaxCapacity"],
        cpu_target=set_else_none("CpuTarget", scaling),
        memory_target=set_else_none("MemoryTarget", scaling),
        scale_in_cooldown=set_else_none(
            "ScaleInCooldown", scaling, 300, eval_bool=True
        ),
        scale_out_cooldown=set_else_none(
            "ScaleOutCooldown", scaling, 60, eval_bool=True
        ),
        disable_scale_in=keyisset("DisableScaleIn", scaling),
    )


def add_services(topology: Topology, content: dict) -> None:
    for name, definition in set_else_none(SERVICES_KEY, content, {}).items():
        service = topology.declare_service(
            name,
            topology.get(definition["Cluster"], Cluster),
            topology.get(definition["TaskDefinition"], TaskDefinition),
            [
                topology.get(group_name, SecurityGroup)
                for group_name in definition["SecurityGroups"]
            ],
            deployment_controller=set_else_none(
                "DeploymentController", definition, ROLLING
            ),
            desired_count=set_else_none("DesiredCount", definition, 1, eval_bool=True),
            assign_public_ip=keyisset("AssignPublicIp", definition),
            target_group=topology.get(definition["TargetGroup"], TargetGroup)
            if keyisset("TargetGroup", definition)
            else None,
            listener=topology.get(definition["Listener"], Listener)
            if keyisset("Listener", definition)
            else None,
            container_port=set_else_none("ContainerPort", definition),
            codedeploy_role=topology.get(definition["CodeDeployRole"], Role)
            if keyisset("CodeDeployRole", definition)
            else None,
            health_check_grace_period=set_else_none(
                "HealthCheckGracePeriod", definition, 60
            ),
        )
        if keyisset("Scaling", definition):
            add_service_scaling(topology, service, definition["Scaling"])
        if keypresent("CodeDeploy", definition):
            codedeploy = set_else_none("CodeDeploy", definition, {}) or {}
            topology.declare_deployment_group(
                service,
                deployment_config=set_else_none(
                    "DeploymentConfig",
                    codedeploy,
                    "CodeDeployDefault.ECSAllAtOnce",
                ),
                termination_wait_minutes=set_else_none(
                    "TerminationWaitMinutes", codedeploy, 5, eval_bool=True
                ),
                auto_rollback=set_else_none(
                    "AutoRollback", codedeploy, True, eval_bool=True
                ),
            )


def generate_topology(settings: TopologySettings) -> Topology:
    """
    Function generating the topology from the settings content

    :param ecs_topology.common.settings.TopologySettings settings: The settings for the execution
    :return: the validated topology
    :rtype: ecs_topology.topology.Topology
    """
    content = settings.topology_content
    topology = Topology(
        settings.name,
        environment=settings.environment,
        description=set_else_none("Description", settings.topology_configs),
        strict_permissions=settings.strict_permissions,
    )
    LOG.info(f"Generating {topology!r} from {settings.input_files}")
    add_repositories(topology, content)
    add_networks(topology, content, settings.single_nat)
    add_security_groups(topology, content)
    add_roles(topology, content)
    add_load_balancing(topology, content)
    add_clusters(topology, content)
    add_task_definitions(topology, content)
    add_services(topology, content)
    topology.validate()
    return topology
