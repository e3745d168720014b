# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to generate the Scalable Target of a service and its target tracking scaling policies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import (
    AWS_ACCOUNT_ID,
    AWS_PARTITION,
    AWS_URL_SUFFIX,
    Ref,
    Sub,
    applicationautoscaling,
)

from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.common.logging import LOG
from ecs_topology.ecs.ecs_params import (
    DEFAULT_SCALE_IN_COOLDOWN,
    DEFAULT_SCALE_OUT_COOLDOWN,
    SCALING_DIMENSION,
)
from ecs_topology.ecs.ecs_service import Service
from ecs_topology.exceptions import ConstraintViolation

TRACKING_SETTINGS = {
    "cpu": {
        "key": "CpuTarget",
        "property": "ECSServiceAverageCPUUtilization",
    },
    "memory": {
        "key": "MemoryTarget",
        "property": "ECSServiceAverageMemoryUtilization",
    },
}


def define_tracking_target_configuration(target_scaling_config, config_key):
    """
    Function to create the configuration for target tracking scaling

    :param dict target_scaling_config:
    :param str config_key: cpu or memory
    :return:
    """
    if config_key not in TRACKING_SETTINGS.keys():
        raise KeyError(
            config_key, "Is invalid. Expected one of", TRACKING_SETTINGS.keys()
        )
    specification = applicationautoscaling.PredefinedMetricSpecification(
        PredefinedMetricType=TRACKING_SETTINGS[config_key]["property"]
    )

    return applicationautoscaling.TargetTrackingScalingPolicyConfiguration(
        DisableScaleIn=target_scaling_config["DisableScaleIn"],
        ScaleInCooldown=target_scaling_config["ScaleInCooldown"],
        ScaleOutCooldown=target_scaling_config["ScaleOutCooldown"],
        TargetValue=float(target_scaling_config[TRACKING_SETTINGS[config_key]["key"]]),
        PredefinedMetricSpecification=specification,
    )


def validate_utilization_target(value, owner) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConstraintViolation(
            f"{owner!r} - utilization target must be a number. Got {value}"
        )
    if not 0 < value <= 100:
        raise ConstraintViolation(
            f"{owner!r} - utilization target must be within ]0, 100]. Got {value}"
        )


class ScalableTarget(TopologyEntity):
    """
    Class to represent the scaling configuration of a service.
    Each utilization target gets its own tracking policy. All policies share the capacity bounds.

    :ivar Service service:
    :ivar int min_capacity:
    :ivar int max_capacity:
    :ivar dict target_scaling: the tracking configuration
    :ivar list[troposphere.applicationautoscaling.ScalingPolicy] scaling_policies:
    """

    kind = "ScalableTarget"

    def __init__(
        self,
        topology: Topology,
        service: Service,
        min_capacity: int,
        max_capacity: int,
        cpu_target=None,
        memory_target=None,
        scale_in_cooldown: int = DEFAULT_SCALE_IN_COOLDOWN,
        scale_out_cooldown: int = DEFAULT_SCALE_OUT_COOLDOWN,
        disable_scale_in: bool = False,
    ):
        self.service = service
        expect_kind(service, Service, "service", self)
        super().__init__(f"{service.name}-scaling", topology)
        for capacity in [min_capacity, max_capacity]:
            if not isinstance(capacity, int) or capacity < 0:
                raise ConstraintViolation(
                    f"{self!r} - capacity must be a positive integer. Got {capacity}"
                )
        if min_capacity > max_capacity:
            raise ConstraintViolation(
                f"{self!r} - min capacity {min_capacity} is greater than max capacity {max_capacity}"
            )
        if cpu_target is None and memory_target is None:
            raise ConstraintViolation(
                f"{self!r} - at least one of CPU or memory utilization target is required"
            )
        self.min_capacity = min_capacity
        self.max_capacity = max_capacity
        self.target_scaling = {
            "DisableScaleIn": disable_scale_in,
            "ScaleInCooldown": scale_in_cooldown,
            "ScaleOutCooldown": scale_out_cooldown,
        }
        if cpu_target is not None:
            validate_utilization_target(cpu_target, self)
            self.target_scaling["CpuTarget"] = cpu_target
        if memory_target is not None:
            validate_utilization_target(memory_target, self)
            self.target_scaling["MemoryTarget"] = memory_target
        if not min_capacity <= service.desired_count <= max_capacity:
            LOG.warning(
                f"{self!r} - {service!r} desired count {service.desired_count} is outside of"
                f" [{min_capacity}, {max_capacity}]. Application Auto Scaling will adjust it."
            )
        self.scalable_target = applicationautoscaling.ScalableTarget(
            self.resource_title("Resource"),
            MaxCapacity=max_capacity,
            MinCapacity=min_capacity,
            ScalableDimension=SCALING_DIMENSION,
            ServiceNamespace="ecs",
            RoleARN=Sub(
                f"arn:${{{AWS_PARTITION}}}:iam::${{{AWS_ACCOUNT_ID}}}:role/"
                f"ecs.application-autoscaling.${{{AWS_URL_SUFFIX}}}/"
                "AWSServiceRoleForApplicationAutoScaling_ECSService"
            ),
            ResourceId=Sub(
                f"service/${{{service.cluster.cluster.title}}}/"
                f"${{{service.service.title}.Name}}"
            ),
            SuspendedState=applicationautoscaling.SuspendedState(
                DynamicScalingInSuspended=False
            ),
        )
        self.resources.append(self.scalable_target)
        self.scaling_policies = []
        self.add_target_scaling()

    def __repr__(self):
        return f"{self.kind}({getattr(self.service, 'name', self.service)})"

    def add_target_scaling(self) -> None:
        """
        Adds one independent target tracking policy per utilization target
        """
        for config_key, settings in TRACKING_SETTINGS.items():
            if settings["key"] not in self.target_scaling:
                continue
            label = config_key.capitalize()
            policy = applicationautoscaling.ScalingPolicy(
                self.resource_title(f"{label}TrackingPolicy"),
                ScalingTargetId=Ref(self.scalable_target),
                PolicyName=f"{self.service.service_name}-{config_key}-tracking",
                PolicyType="TargetTrackingScaling",
                TargetTrackingScalingPolicyConfiguration=define_tracking_target_configuration(
                    self.target_scaling, config_key
                ),
            )
            self.scaling_policies.append(policy)
            self.resources.append(policy)

    @property
    def dependencies(self):
        return [self.service]
