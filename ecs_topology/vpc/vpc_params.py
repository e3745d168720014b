# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Parameters and defaults related to the network settings.
"""

RES_KEY = "x-network"
SG_RES_KEY = "x-security-groups"

DEFAULT_VPC_CIDR = "10.0.0.0/16"
DEFAULT_AZ_COUNT = 2
DEFAULT_SUBNET_MASK = 24

MAX_AZS = 6
MIN_PREFIX = 16
MAX_PREFIX = 28

PUBLIC_LAYER = "public"
PRIVATE_LAYER = "private"

TAG_DELIM = "::"
ALL_IPS = "0.0.0.0/0"

VPC_T = "Vpc"
IGW_T = "InternetGateway"
