# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Parameters and constants for the ELBv2 resources.
"""

RES_KEY = "x-elbv2"

LB_NAME_MAX_LENGTH = 32
TG_NAME_MAX_LENGTH = 32

INTERNET_FACING = "internet-facing"
INTERNAL = "internal"

HTTP_PROTOCOLS = ["HTTP", "HTTPS"]
TARGET_GROUP_PROTOCOLS = HTTP_PROTOCOLS + ["TCP", "TLS", "UDP", "TCP_UDP"]
TARGET_TYPES = ["ip", "instance"]

BLUE_WEIGHT = 100
GREEN_WEIGHT = 0
