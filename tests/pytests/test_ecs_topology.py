# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to test generating the topologies of the use-cases files.
"""

import json
import logging
from os import path

from pytest import raises

from ecs_topology.codedeploy import DeploymentGroup
from ecs_topology.common.settings import TopologySettings
from ecs_topology.ecs.ecs_scaling import ScalableTarget
from ecs_topology.ecs.ecs_service import Service
from ecs_topology.ecs_topology import generate_topology, order_roles
from ecs_topology.exceptions import (
    CrossNetworkReference,
    CyclicDependency,
    DanglingReference,
    MissingPassRole,
    OverScopedPermission,
)
from ecs_topology.iam.iam_roles import Role
from ecs_topology.vpc.security_groups import SecurityGroupIngressRule

HERE = path.abspath(path.dirname(__file__))


def get_settings(*files, content: dict = None) -> TopologySettings:
    return TopologySettings(
        content=content,
        **{
            TopologySettings.name_arg: "test",
            TopologySettings.command_arg: TopologySettings.render_arg,
            TopologySettings.input_file_arg: [
                path.abspath(f"{HERE}/../../use-cases/{file_name}")
                for file_name in files
            ],
        },
    )


def test_plain_service(caplog):
    with caplog.at_level(logging.WARNING):
        topology = generate_topology(get_settings("plain.yml"))
    service = topology.get("app", Service)
    assert not service.reachable
    assert "not reachable" in caplog.text
    assert service.task_definition.repository is not None
    assert service.cluster.network.single_nat
    assert len(service.cluster.network.nat_gateways) == 1
    template = json.loads(topology.render())
    container = template["Resources"]["AppTaskDefinitionResource"]["Properties"][
        "ContainerDefinitions"
    ][0]
    assert {"Name": "WORKERS", "Value": "2"} in container["Environment"]
    assert container["MemoryReservation"] == 256


def test_load_balanced_service():
    topology = generate_topology(get_settings("load-balanced.yml"))
    service = topology.get("app", Service)
    assert service.reachable
    assert service.listener.port == 80
    assert service.desired_count == 2
    assert topology.entities_of(SecurityGroupIngressRule)
    assert topology.build_order()[-1] == service.title
    assert service.task_definition.container_memory == 768


def test_autoscaled_service():
    topology = generate_topology(get_settings("autoscaled.yml"))
    assert topology.environment == "staging"
    scaling = topology.entities_of(ScalableTarget)[0]
    assert scaling.min_capacity == 2
    assert scaling.max_capacity == 3
    assert len(scaling.scaling_policies) == 2
    properties = json.loads(topology.render())["Resources"]["AppServiceResource"][
        "Properties"
    ]
    assert "LaunchType" not in properties
    assert properties["CapacityProviderStrategy"][0]["CapacityProvider"] == "FARGATE_SPOT"


def test_blue_green_service():
    topology = generate_topology(get_settings("blue-green.yml"))
    service = topology.get("app", Service)
    assert service.is_blue_green
    group = topology.entities_of(DeploymentGroup)[0]
    assert group.service is service
    deployment = topology.template.resources[group.deployment_group.title]
    assert (
        deployment.DeploymentConfigName
        == "CodeDeployDefault.ECSCanary10Percent5Minutes"
    )
    codedeploy = topology.get("codedeploy", Role)
    assert all(codedeploy.can_pass(role) for role in service.task_definition.roles)
    order = topology.build_order()
    assert order.index(codedeploy.title) > order.index(topology.get("app", Role).title)


def test_blue_green_missing_pass_role():
    with raises(MissingPassRole):
        generate_topology(get_settings("blue-green.yml", "blue-green-no-pass-role.yml"))


def test_cross_network():
    with raises(CrossNetworkReference):
        generate_topology(get_settings("cross-network.yml"))


def test_undeclared_reference():
    with raises(DanglingReference):
        generate_topology(
            get_settings(
                "plain.yml",
                content={
                    "x-services": {
                        "other": {
                            "Cluster": "main",
                            "TaskDefinition": "app",
                            "SecurityGroups": ["undeclared"],
                        }
                    }
                },
            )
        )


def test_strict_permissions():
    with raises(OverScopedPermission):
        generate_topology(
            get_settings(
                "load-balanced.yml",
                content={"x-configs": {"topology": {"StrictPermissions": True}}},
            )
        )


def test_roles_passing_roles():
    roles = {
        "orchestrator": {
            "Type": "custom",
            "Principal": "codedeploy",
            "PassRoles": ["deployer"],
        },
        "deployer": {
            "Type": "custom",
            "Principal": "codedeploy",
            "PassRoles": ["execution"],
        },
    }
    topology = generate_topology(get_settings("plain.yml", content={"x-iam": roles}))
    orchestrator = topology.get("orchestrator", Role)
    deployer = topology.get("deployer", Role)
    assert orchestrator.can_pass(deployer)
    assert deployer.can_pass(topology.get("execution", Role))
    order = topology.build_order()
    assert order.index(deployer.title) < order.index(orchestrator.title)


def test_roles_order():
    assert order_roles(
        {
            "a": {"PassRoles": ["c"]},
            "b": {},
            "c": {"PassRoles": ["b", "b"]},
            "d": {"PassRoles": ["unknown"]},
        }
    ) == ["b", "d", "c", "a"]
    with raises(CyclicDependency):
        order_roles({"a": {"PassRoles": ["b"]}, "b": {"PassRoles": ["a"]}})
    with raises(CyclicDependency):
        order_roles({"a": {"PassRoles": ["a"]}})
