# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to test the ECS services: load balancing, networks, blue/green requirements,
scaling and CodeDeploy deployment groups.
"""

import json
import logging

from pytest import fixture, raises

from ecs_topology.ecs.ecs_params import BLUE_GREEN
from ecs_topology.exceptions import (
    BlueGreenConfigurationError,
    ConstraintViolation,
    CrossNetworkReference,
    DuplicateEntity,
    InvalidTrustPrincipal,
    MissingPassRole,
)
from ecs_topology.topology import Topology


@fixture
def topology():
    return Topology("test", environment="dev")


def declare_stack(topology: Topology, target_groups: int = 1) -> dict:
    """
    Declares a network, a load balancer with one listener forwarding to the target groups,
    and everything a service needs to run.
    """
    stack = {"network": topology.declare_network("main", "10.0.0.0/16", 2)}
    stack["alb_sg"] = topology.declare_security_group("alb", stack["network"])
    stack["app_sg"] = topology.declare_security_group("app", stack["network"])
    stack["execution"] = topology.declare_execution_role(
        "execution", resources=["arn:aws:logs:eu-west-1:123456789012:*"]
    )
    stack["task_role"] = topology.declare_task_role("app")
    stack["target_groups"] = [
        topology.declare_target_group(color, stack["network"], 8080)
        for color in ["blue", "green"][:target_groups]
    ]
    stack["load_balancer"] = topology.declare_load_balancer(
        "public", stack["network"], [stack["alb_sg"]]
    )
    stack["listener"] = topology.declare_listener(
        "http", stack["load_balancer"], 80, stack["target_groups"]
    )
    stack["cluster"] = topology.declare_cluster("main", stack["network"])
    stack["task"] = topology.declare_task_definition(
        "app",
        256,
        512,
        "nginx:latest",
        stack["execution"],
        task_role=stack["task_role"],
        port_mappings=[8080],
    )
    return stack


def test_unreachable_service(topology, caplog):
    """
    A service with no target group is valid, and warned about
    """
    stack = declare_stack(topology)
    with caplog.at_level(logging.WARNING):
        service = topology.declare_service(
            "worker", stack["cluster"], stack["task"], [stack["app_sg"]]
        )
    assert not service.reachable
    assert "not reachable" in caplog.text
    properties = json.loads(topology.render())["Resources"]["WorkerServiceResource"][
        "Properties"
    ]
    assert "LoadBalancers" not in properties
    assert properties["NetworkConfiguration"]["AwsvpcConfiguration"][
        "AssignPublicIp"
    ] == "DISABLED"


def test_load_balanced_service(topology, caplog):
    stack = declare_stack(topology)
    with caplog.at_level(logging.WARNING):
        service = topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            target_group=stack["target_groups"][0],
            desired_count=2,
        )
        topology.validate()
    assert service.reachable
    assert service.listener is stack["listener"]
    assert service.container_port == 8080
    assert "no ingress rule allows" in caplog.text
    resource = topology.template.resources["AppServiceResource"].to_dict()
    assert resource["DependsOn"] == ["HttpListenerResource"]
    assert resource["Properties"]["LoadBalancers"][0]["ContainerPort"] == 8080
    assert resource["Properties"]["HealthCheckGracePeriodSeconds"] == 60

    caplog.clear()
    topology.allow_ingress(stack["app_sg"], stack["alb_sg"], 8080)
    with caplog.at_level(logging.WARNING):
        topology.validate()
    assert "no ingress rule allows" not in caplog.text


def test_rolling_service_on_green_target_group(topology, caplog):
    stack = declare_stack(topology, target_groups=2)
    with caplog.at_level(logging.WARNING):
        service = topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            target_group=stack["target_groups"][1],
        )
    assert service.reachable
    assert "receives no traffic" in caplog.text


def test_listener_lookup(topology):
    stack = declare_stack(topology)
    orphan = topology.declare_target_group("orphan", stack["network"], 8080)
    with raises(ConstraintViolation):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            target_group=orphan,
        )
    topology.declare_listener(
        "admin", stack["load_balancer"], 8080, [stack["target_groups"][0]]
    )
    with raises(ConstraintViolation):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            target_group=stack["target_groups"][0],
        )
    service = topology.declare_service(
        "app",
        stack["cluster"],
        stack["task"],
        [stack["app_sg"]],
        listener=stack["listener"],
    )
    assert service.target_group is stack["target_groups"][0]


def test_listener_settings(topology):
    stack = declare_stack(topology)
    with raises(ConstraintViolation):
        topology.declare_listener(
            "other", stack["load_balancer"], 80, stack["target_groups"]
        )
    with raises(ConstraintViolation):
        topology.declare_listener(
            "secure", stack["load_balancer"], 443, stack["target_groups"], protocol="HTTPS"
        )
    with raises(DuplicateEntity):
        topology.declare_listener(
            "twice",
            stack["load_balancer"],
            81,
            stack["target_groups"] + stack["target_groups"],
        )
    assert "HttpListenerOpenFromAlbSecurityGroup" in topology.template.resources
    closed = topology.declare_listener(
        "closed", stack["load_balancer"], 8443, stack["target_groups"], open_ingress=False
    )
    assert len(closed.resources) == 1


def test_invalid_container_port(topology):
    stack = declare_stack(topology)
    with raises(ConstraintViolation):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            target_group=stack["target_groups"][0],
            container_port=9090,
        )


def test_cross_network_service(topology):
    stack = declare_stack(topology)
    other = topology.declare_network("other", "10.1.0.0/16", 2)
    other_sg = topology.declare_security_group("other", other)
    other_cluster = topology.declare_cluster("other", other)
    with raises(CrossNetworkReference):
        topology.declare_service("app", stack["cluster"], stack["task"], [other_sg])
    with raises(CrossNetworkReference):
        topology.declare_service(
            "app",
            other_cluster,
            stack["task"],
            [other_sg],
            target_group=stack["target_groups"][0],
        )
    other_tg = topology.declare_target_group("other", other, 80)
    with raises(CrossNetworkReference):
        topology.declare_listener(
            "other", stack["load_balancer"], 8081, [other_tg]
        )


def test_blue_green_service(topology):
    stack = declare_stack(topology, target_groups=2)
    codedeploy = topology.declare_codedeploy_role(
        "codedeploy", pass_roles=[stack["task_role"], stack["execution"]]
    )
    service = topology.declare_service(
        "app",
        stack["cluster"],
        stack["task"],
        [stack["app_sg"]],
        deployment_controller=BLUE_GREEN,
        target_group=stack["target_groups"][0],
        listener=stack["listener"],
        codedeploy_role=codedeploy,
    )
    assert service.is_blue_green
    properties = topology.template.resources["AppServiceResource"].to_dict()[
        "Properties"
    ]
    assert properties["DeploymentController"] == {"Type": "CODE_DEPLOY"}
    assert "DeploymentConfiguration" not in properties
    listener = topology.template.resources["HttpListenerResource"].to_dict()
    forward = listener["Properties"]["DefaultActions"][0]["ForwardConfig"]
    assert [group["Weight"] for group in forward["TargetGroups"]] == [100, 0]

    group = topology.declare_deployment_group(
        service, deployment_config="CodeDeployDefault.ECSCanary10Percent5Minutes"
    )
    assert topology.build_order()[-1] == group.title
    deployment = topology.template.resources["AppDeploymentGroupResource"].to_dict()
    properties = deployment["Properties"]
    assert properties["DeploymentStyle"] == {
        "DeploymentOption": "WITH_TRAFFIC_CONTROL",
        "DeploymentType": "BLUE_GREEN",
    }
    pair = properties["LoadBalancerInfo"]["TargetGroupPairInfoList"][0]
    assert len(pair["TargetGroups"]) == 2
    assert pair["ProdTrafficRoute"]["ListenerArns"] == [
        {"Ref": "HttpListenerResource"}
    ]
    assert "AppDeploymentGroupApplication" in topology.template.resources
    topology.render()


def test_blue_green_requirements(topology):
    stack = declare_stack(topology, target_groups=2)
    codedeploy = topology.declare_codedeploy_role(
        "codedeploy", pass_roles=[stack["task_role"], stack["execution"]]
    )
    settings = {
        "deployment_controller": BLUE_GREEN,
        "target_group": stack["target_groups"][0],
        "listener": stack["listener"],
        "codedeploy_role": codedeploy,
    }
    with raises(BlueGreenConfigurationError):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            **dict(settings, codedeploy_role=None),
        )
    with raises(BlueGreenConfigurationError):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            **dict(settings, target_group=stack["target_groups"][1]),
        )
    with raises(BlueGreenConfigurationError):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            deployment_controller=BLUE_GREEN,
            codedeploy_role=codedeploy,
        )
    with raises(InvalidTrustPrincipal):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            **dict(settings, codedeploy_role=stack["task_role"]),
        )
    single = topology.declare_target_group("single", stack["network"], 8080)
    single_listener = topology.declare_listener(
        "single", stack["load_balancer"], 8080, [single]
    )
    with raises(BlueGreenConfigurationError):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            **dict(settings, target_group=single, listener=single_listener),
        )


def test_blue_green_missing_pass_role(topology):
    stack = declare_stack(topology, target_groups=2)
    codedeploy = topology.declare_codedeploy_role(
        "codedeploy", pass_roles=[stack["task_role"]]
    )
    with raises(MissingPassRole):
        topology.declare_service(
            "app",
            stack["cluster"],
            stack["task"],
            [stack["app_sg"]],
            deployment_controller=BLUE_GREEN,
            target_group=stack["target_groups"][0],
            listener=stack["listener"],
            codedeploy_role=codedeploy,
        )
    assert "AppServiceResource" not in topology.template.resources


def test_deployment_group_requires_blue_green(topology):
    stack = declare_stack(topology)
    service = topology.declare_service(
        "app",
        stack["cluster"],
        stack["task"],
        [stack["app_sg"]],
        target_group=stack["target_groups"][0],
    )
    with raises(BlueGreenConfigurationError):
        topology.declare_deployment_group(service)


def test_blue_green_without_deployment_group(topology, caplog):
    stack = declare_stack(topology, target_groups=2)
    codedeploy = topology.declare_codedeploy_role(
        "codedeploy", pass_roles=[stack["task_role"], stack["execution"]]
    )
    service = topology.declare_service(
        "app",
        stack["cluster"],
        stack["task"],
        [stack["app_sg"]],
        deployment_controller=BLUE_GREEN,
        listener=stack["listener"],
        codedeploy_role=codedeploy,
    )
    with caplog.at_level(logging.WARNING):
        topology.validate()
    assert "without a CodeDeploy deployment group" in caplog.text
    with raises(ConstraintViolation):
        topology.declare_deployment_group(service, deployment_config="Everything")
    with raises(ConstraintViolation):
        topology.declare_deployment_group(service, termination_wait_minutes=3000)


def test_service_scaling(topology, caplog):
    """
    CPU and memory targets each get a policy, both sharing the scalable target bounds
    """
    stack = declare_stack(topology)
    service = topology.declare_service(
        "app",
        stack["cluster"],
        stack["task"],
        [stack["app_sg"]],
        target_group=stack["target_groups"][0],
        desired_count=2,
    )
    scaling = topology.attach_autoscaling(
        service, 2, 3, cpu_target=50, memory_target=50
    )
    assert len(scaling.scaling_policies) == 2
    template = json.loads(topology.render())
    target = template["Resources"]["AppScalingScalableTargetResource"]["Properties"]
    assert target["MinCapacity"] == 2
    assert target["MaxCapacity"] == 3
    assert target["ScalableDimension"] == "ecs:service:DesiredCount"
    for label, metric in [
        ("Cpu", "ECSServiceAverageCPUUtilization"),
        ("Memory", "ECSServiceAverageMemoryUtilization"),
    ]:
        policy = template["Resources"][f"AppScalingScalableTarget{label}TrackingPolicy"]
        configuration = policy["Properties"]["TargetTrackingScalingPolicyConfiguration"]
        assert policy["Properties"]["ScalingTargetId"] == {
            "Ref": "AppScalingScalableTargetResource"
        }
        assert configuration["TargetValue"] == 50.0
        assert (
            configuration["PredefinedMetricSpecification"]["PredefinedMetricType"]
            == metric
        )
    with raises(DuplicateEntity):
        topology.attach_autoscaling(service, 1, 4, cpu_target=70)


def test_invalid_scaling(topology, caplog):
    stack = declare_stack(topology)
    service = topology.declare_service(
        "app", stack["cluster"], stack["task"], [stack["app_sg"]], desired_count=5
    )
    for bounds, targets in [
        ((3, 2), {"cpu_target": 50}),
        ((-1, 2), {"cpu_target": 50}),
        ((1, 2), {}),
        ((1, 2), {"cpu_target": 0}),
        ((1, 2), {"memory_target": 150}),
        ((1, 2), {"memory_target": True}),
    ]:
        with raises(ConstraintViolation):
            topology.attach_autoscaling(service, *bounds, **targets)
    with caplog.at_level(logging.WARNING):
        topology.attach_autoscaling(service, 1, 3, cpu_target=75.5)
    assert "outside of" in caplog.text
