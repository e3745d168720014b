#  -*- coding: utf-8 -*-
# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

from pytest import raises

from ecs_topology.ecs.ecs_scaling import define_tracking_target_configuration


def test_tracking_configuration():
    """
    Function to test the target tracking configuration for each metric
    :return:
    """
    config = {
        "DisableScaleIn": False,
        "ScaleInCooldown": 300,
        "ScaleOutCooldown": 60,
        "CpuTarget": 75,
        "MemoryTarget": 80.5,
    }
    cpu = define_tracking_target_configuration(config, "cpu")
    assert cpu.TargetValue == 75.0
    assert (
        cpu.PredefinedMetricSpecification.PredefinedMetricType
        == "ECSServiceAverageCPUUtilization"
    )
    memory = define_tracking_target_configuration(config, "memory")
    assert memory.TargetValue == 80.5
    assert memory.ScaleInCooldown == 300

    with raises(KeyError):
        define_tracking_target_configuration(config, "requests")
    with raises(KeyError):
        define_tracking_target_configuration({"CpuTarget": 50}, "cpu")
