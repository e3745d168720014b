#  -*- coding: utf-8 -*-
# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Conversion of docker-like values (memory units) and Fargate compute combinations.
"""

import re
from bisect import bisect_left

from ecs_topology.common import clpow2, nxtpow2
from ecs_topology.common.logging import LOG
from ecs_topology.ecs.ecs_params import FARGATE_MODES

MINIMUM_SUPPORTED = 4
MEMORY_RE = re.compile(r"^(?P<amount>[0-9]+(?:\.[0-9]+)?)\s*(?P<unit>[bkmg]?)b?$", re.I)
UNITS_TO_MB = {
    "b": 1 / pow(2, 20),
    "k": 1 / pow(2, 10),
    "": 1,
    "m": 1,
    "g": pow(2, 10),
}


def set_memory_to_mb(value):
    """
    Returns the value in MB. Values without a unit are MB.
    Values under MINIMUM_SUPPORTED MB are raised to it.

    :param value: int or str, i.e. 512, "512", "512MB", "1GB", "524288kB"
    :rtype: int
    :raises: ValueError if the value cannot be parsed
    """
    if isinstance(value, int):
        return value
    parts = MEMORY_RE.match(str(value).strip())
    if not parts:
        raise ValueError(f"Could not parse {value} to units")
    amount = float(parts.group("amount")) * UNITS_TO_MB[parts.group("unit").lower()]
    if amount < MINIMUM_SUPPORTED:
        LOG.warning(
            f"{value} is lower than {MINIMUM_SUPPORTED}MB. Setting to minimum supported"
        )
        return MINIMUM_SUPPORTED
    LOG.debug(f"{value} results into {int(amount)}MB")
    return int(amount)


def find_closest_ram_config(ram, ram_range):
    """Smallest value of the sorted ram_range fitting ram, capped to the largest"""
    return ram_range[min(bisect_left(ram_range, ram), len(ram_range) - 1)]


def find_closest_fargate_configuration(cpu, ram, as_param_string=False):
    """
    Function to get the closest Fargate CPU / RAM Configuration out of a CPU and RAM combination.

    :param int cpu: CPU units for the Task Definition
    :param int ram: RAM in MB for the Task Definition
    :param bool as_param_string: Returns the value as a cpu!ram string.
    :return: (cpu, ram) or "cpu!ram"
    """
    fargate_cpus = sorted(FARGATE_MODES.keys())
    fargate_cpu = clpow2(cpu)
    if fargate_cpu < cpu:
        fargate_cpu = nxtpow2(cpu)
    fargate_cpu = max(fargate_cpus[0], min(fargate_cpu, fargate_cpus[-1]))
    fargate_ram = find_closest_ram_config(ram, FARGATE_MODES[fargate_cpu])
    if as_param_string:
        return f"{fargate_cpu}!{fargate_ram}"
    return fargate_cpu, fargate_ram


def is_valid_fargate_configuration(cpu, ram) -> bool:
    return cpu in FARGATE_MODES and ram in FARGATE_MODES[cpu]
