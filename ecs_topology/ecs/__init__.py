# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Core ECS module: Task Definitions, Services and their scaling.

* TaskDefinition: compute, container, environment, logging, roles
* Service: cluster, networking, load balancing, deployment controller
* ScalableTarget: capacity range and target tracking policies
"""
