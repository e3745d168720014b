# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Elastic Load Balancing v2 entities: load balancers, target groups and listeners.
"""
