# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Most commonly used functions shared across all modules.
"""

from __future__ import annotations

import re
from math import ceil, log

from ecs_topology.exceptions import ConstraintViolation

NONALPHANUM = re.compile(r"([^a-zA-Z\d]+)")
TOPOLOGY_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d-]*$")


def clpow2(x):
    """
    Function to return the closest power of two from given x

    :param x: Number to look the closest power of two for

    :returns: int() closest power of two
    """
    return pow(2, int(log(x, 2) + 0.5))


def nxtpow2(x):
    """Function to find the next power of two from given x number

    :param x: number to look for the next power of two

    :returns: next power of two number
    """
    return int(pow(2, ceil(log(x, 2))))


def to_logical_id(*parts: str) -> str:
    """
    Generates a CloudFormation logical ID out of the given name parts.
    `to_logical_id("blue-tg", "TargetGroup")` gives `BlueTgTargetGroup`

    :param str parts: the words to join
    :return: the alphanumerical CamelCase ID
    :rtype: str
    """
    words = []
    for part in parts:
        words += NONALPHANUM.sub(" ", str(part)).split()
    if not words:
        raise ValueError("Cannot generate a logical ID out of", parts)
    return "".join(word[0].upper() + word[1:] for word in words)


def generate_resource_name(
    project: str, environment: str, suffix: str, max_length: int = None
) -> str:
    """
    Generates the physical name of a resource from the project and environment names, so that the same
    topology can be deployed in several environments of the same account without names colliding.

    :param str project: the topology name
    :param str environment: the environment / deployment identifier
    :param str suffix: what distinguishes this resource
    :param int max_length: the maximum length AWS allows for this resource name
    :return: the resource name
    :rtype: str
    """
    name = NONALPHANUM.sub("-", f"{project}-{environment}-{suffix}").strip("-").lower()
    if max_length and len(name) > max_length:
        raise ConstraintViolation(
            f"Generated name {name} is {len(name)} characters long."
            f" The maximum for this resource is {max_length}"
        )
    return name
