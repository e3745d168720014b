# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
2 Layers subnets calculator: one public and one private subnet per AZ
"""

import ipaddress
from string import ascii_lowercase

from ecs_topology.exceptions import ConstraintViolation, SubnetCapacityError
from ecs_topology.vpc.vpc_params import (
    MAX_AZS,
    MAX_PREFIX,
    MIN_PREFIX,
    PRIVATE_LAYER,
    PUBLIC_LAYER,
)


def get_az_index(azs):
    """
    Returns the AZ letters to use, a, b, c..

    :param int azs: number of AZs
    :rtype: list[str]
    """
    if not isinstance(azs, int) or not 1 <= azs <= MAX_AZS:
        raise ConstraintViolation(
            f"The number of AZs must be between 1 and {MAX_AZS}. Got {azs}"
        )
    return list(ascii_lowercase[:azs])


def get_vpc_network(cidr):
    """
    Parses and checks the VPC CIDR

    :param str cidr: the VPC CIDR, i.e. 10.0.0.0/16
    :rtype: ipaddress.IPv4Network
    """
    try:
        vpc_net = ipaddress.IPv4Network(f"{cidr}")
    except ValueError as error:
        raise ConstraintViolation(f"VPC CIDR {cidr} is invalid: {error}")
    if not MIN_PREFIX <= vpc_net.prefixlen <= MAX_PREFIX:
        raise ConstraintViolation(
            f"VPC CIDR {cidr} - prefix must be between /{MIN_PREFIX} and /{MAX_PREFIX}"
        )
    return vpc_net


def get_subnet_layers(cidr, azs, subnet_mask):
    """
    Cuts the VPC CIDR in subnets of the given mask. The first `azs` subnets are public, the next `azs` are private.

    :param str cidr: the VPC CIDR
    :param int azs: number of AZs
    :param int subnet_mask: prefix length of each subnet, i.e. 24
    :returns: dict with the list of CIDRs for each layer
    :rtype: dict
    :raises: SubnetCapacityError if the CIDR does not admit the subnets
    """
    vpc_net = get_vpc_network(cidr)
    get_az_index(azs)
    if not isinstance(subnet_mask, int) or not (
        vpc_net.prefixlen <= subnet_mask <= MAX_PREFIX
    ):
        raise SubnetCapacityError(
            f"Subnet mask /{subnet_mask} is invalid for {cidr}."
            f" Must be between /{vpc_net.prefixlen} and /{MAX_PREFIX}"
        )
    required = 2 * azs
    available = pow(2, subnet_mask - vpc_net.prefixlen)
    if required > available:
        raise SubnetCapacityError(
            f"{cidr} can hold {available} /{subnet_mask} subnets."
            f" {required} are needed for {azs} AZs"
        )
    subnets = vpc_net.subnets(new_prefix=subnet_mask)
    cidrs = [str(next(subnets)) for _ in range(required)]
    return {PUBLIC_LAYER: cidrs[:azs], PRIVATE_LAYER: cidrs[azs:]}
