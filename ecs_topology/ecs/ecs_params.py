# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Parameters and constants for ECS resources.
"""

TASKS_KEY = "x-tasks"
SERVICES_KEY = "x-services"

ROLLING = "rolling"
BLUE_GREEN = "blue_green"
DEPLOYMENT_CONTROLLERS = {ROLLING: "ECS", BLUE_GREEN: "CODE_DEPLOY"}

FARGATE_MODES = {
    256: [2**i for i in [9, 10, 11]],
    512: [(2**10) * i for i in range(1, 5)],
    1024: [(2**10) * i for i in range(2, 9)],
    2048: [(2**10) * i for i in range(4, 17)],
    4096: [(2**10) * i for i in range(8, 31)],
    8192: [(2**10) * i for i in range(16, 61, 4)],
    16384: [(2**10) * i for i in range(32, 121, 8)],
}

LOG_GROUP_RETENTION_VALUES = [
    1,
    3,
    5,
    7,
    14,
    30,
    60,
    90,
    120,
    150,
    180,
    365,
    400,
    545,
    731,
    1827,
    3653,
]
DEFAULT_LOG_RETENTION = 14

SCALING_DIMENSION = "ecs:service:DesiredCount"
DEFAULT_SCALE_IN_COOLDOWN = 300
DEFAULT_SCALE_OUT_COOLDOWN = 60
