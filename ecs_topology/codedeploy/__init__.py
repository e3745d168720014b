# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
CodeDeploy application and deployment group of a blue/green service.

This only declares the handshake with CodeDeploy: which service, listener and target groups it
works with, and the role it uses. Shifting the traffic is done by CodeDeploy when a deployment is created.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import Ref
from troposphere.codedeploy import Application, AutoRollbackConfiguration
from troposphere.codedeploy import (
    BlueGreenDeploymentConfiguration,
    BlueInstanceTerminationOption,
)
from troposphere.codedeploy import DeploymentGroup as CodeDeployDeploymentGroup
from troposphere.codedeploy import (
    DeploymentReadyOption,
    DeploymentStyle,
    ECSService,
    LoadBalancerInfo,
    TargetGroupInfo,
    TargetGroupPairInfo,
    TrafficRoute,
)

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.ecs.ecs_service import Service
from ecs_topology.exceptions import BlueGreenConfigurationError, ConstraintViolation

DEFAULT_DEPLOYMENT_CONFIG = "CodeDeployDefault.ECSAllAtOnce"
DEPLOYMENT_CONFIGS = [
    DEFAULT_DEPLOYMENT_CONFIG,
    "CodeDeployDefault.ECSLinear10PercentEvery1Minutes",
    "CodeDeployDefault.ECSLinear10PercentEvery3Minutes",
    "CodeDeployDefault.ECSCanary10Percent5Minutes",
    "CodeDeployDefault.ECSCanary10Percent15Minutes",
]
ROLLBACK_EVENTS = ["DEPLOYMENT_FAILURE", "DEPLOYMENT_STOP_ON_REQUEST"]
MAX_TERMINATION_WAIT = 2880


class DeploymentGroup(TopologyEntity):
    """
    Class to represent the CodeDeploy ECS application and deployment group of a blue/green service.

    :ivar Service service:
    """

    kind = "DeploymentGroup"

    def __init__(
        self,
        topology: Topology,
        service: Service,
        deployment_config: str = DEFAULT_DEPLOYMENT_CONFIG,
        termination_wait_minutes: int = 5,
        auto_rollback: bool = True,
    ):
        self.service = service
        expect_kind(service, Service, "service", self)
        super().__init__(service.name, topology)
        if not service.is_blue_green:
            raise BlueGreenConfigurationError(
                f"{self!r} - {service!r} uses {service.deployment_controller} deployments."
                " Only blue/green services can have a CodeDeploy deployment group"
            )
        if deployment_config not in DEPLOYMENT_CONFIGS:
            raise ConstraintViolation(
                f"{self!r} - deployment config {deployment_config} must be one of {DEPLOYMENT_CONFIGS}"
            )
        if (
            not isinstance(termination_wait_minutes, int)
            or not 0 <= termination_wait_minutes <= MAX_TERMINATION_WAIT
        ):
            raise ConstraintViolation(
                f"{self!r} - termination wait must be between 0 and {MAX_TERMINATION_WAIT} minutes."
                f" Got {termination_wait_minutes}"
            )
        self.application_name = generate_resource_name(
            self.project, self.environment, service.name, max_length=100
        )
        self.application = Application(
            self.resource_title("Application"),
            ApplicationName=self.application_name,
            ComputePlatform="ECS",
        )
        self.deployment_group = CodeDeployDeploymentGroup(
            self.resource_title("Resource"),
            ApplicationName=Ref(self.application),
            DeploymentGroupName=self.application_name,
            DeploymentConfigName=deployment_config,
            ServiceRoleArn=service.codedeploy_role.arn,
            DeploymentStyle=DeploymentStyle(
                DeploymentType="BLUE_GREEN",
                DeploymentOption="WITH_TRAFFIC_CONTROL",
            ),
            BlueGreenDeploymentConfiguration=BlueGreenDeploymentConfiguration(
                DeploymentReadyOption=DeploymentReadyOption(
                    ActionOnTimeout="CONTINUE_DEPLOYMENT"
                ),
                TerminateBlueInstancesOnDeploymentSuccess=BlueInstanceTerminationOption(
                    Action="TERMINATE",
                    TerminationWaitTimeInMinutes=termination_wait_minutes,
                ),
            ),
            AutoRollbackConfiguration=AutoRollbackConfiguration(
                Enabled=auto_rollback,
                Events=ROLLBACK_EVENTS,
            ),
            ECSServices=[
                ECSService(
                    ClusterName=service.cluster.name_ref,
                    ServiceName=service.name_att,
                )
            ],
            LoadBalancerInfo=LoadBalancerInfo(
                TargetGroupPairInfoList=[
                    TargetGroupPairInfo(
                        ProdTrafficRoute=TrafficRoute(
                            ListenerArns=[service.listener.arn]
                        ),
                        TargetGroups=[
                            TargetGroupInfo(Name=target_group.full_name)
                            for target_group in service.listener.target_groups
                        ],
                    )
                ]
            ),
        )
        self.resources += [self.application, self.deployment_group]
        self.add_output("Name", Ref(self.deployment_group))

    def __repr__(self):
        return f"{self.kind}({getattr(self.service, 'name', self.service)})"

    @property
    def dependencies(self):
        return [self.service, self.service.codedeploy_role, self.service.listener]

    def validate(self, topology: Topology) -> None:
        self.service.validate_blue_green()
