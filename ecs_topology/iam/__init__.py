# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
IAM helpers: trust policies, managed policies, permissions checks.
"""

import re

from troposphere import Sub

from ecs_topology.common.logging import LOG
from ecs_topology.exceptions import ConstraintViolation, InvalidTrustPrincipal

RES_KEY = "x-iam"

ECS_TASKS_PRINCIPAL = "ecs-tasks"
CODEDEPLOY_PRINCIPAL = "codedeploy"
PRINCIPAL_RE = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")

PASS_ROLE_ACTION = "iam:PassRole"
WILDCARD = "*"

POLICY_RE = re.compile(
    r"((^([a-zA-Z0-9-_./]+)$)|(^(arn:aws:iam::(aws|\d{12}):policy/)[a-zA-Z0-9-_./]+$))"
)


def service_role_trust_policy(service_name: str) -> dict:
    """
    Simple function to format the trust relationship for a Role and an AWS Service
    used from lambda-my-aws/ozone

    :param str service_name: name of the service principal, without the URL suffix, i.e. ecs-tasks
    :return: policy document
    :rtype: dict
    """
    if not PRINCIPAL_RE.match(service_name):
        raise InvalidTrustPrincipal(
            f"Service principal {service_name} is invalid. Must match", PRINCIPAL_RE.pattern
        )
    statement = {
        "Effect": "Allow",
        "Principal": {"Service": [Sub(f"{service_name}.${{AWS::URLSuffix}}")]},
        "Action": ["sts:AssumeRole"],
    }
    policy_doc = {"Version": "2012-10-17", "Statement": [statement]}
    return policy_doc


def define_managed_policy_arn(policy: str):
    """
    From input, determines if the policy string is the full ARN or just the name of the policy.
    If just the name, assumes it is an AWS Managed policy, and adds the necessary ARN prefix.

    :param str policy:
    :return: the policy ARN
    :rtype: str or troposphere.Sub
    :raises: ConstraintViolation
    """
    if not POLICY_RE.match(policy):
        raise ConstraintViolation(
            f"policy name {policy} does not match expected regexp",
            POLICY_RE.pattern,
        )
    if not policy.startswith("arn:aws:iam::"):
        return Sub(f"arn:${{AWS::Partition}}:iam::aws:policy/{policy}")
    LOG.debug(f"policy {policy} is already an ARN")
    return policy


def validate_trust_principal(role, principal: str, owner) -> None:
    """
    Ensures the role can be assumed by the expected service principal

    :param ecs_topology.iam.iam_roles.Role role:
    :param str principal: the expected principal, i.e. ecs-tasks
    :param owner: the entity using the role, for the error message
    :raises: InvalidTrustPrincipal
    """
    if role.principal != principal:
        raise InvalidTrustPrincipal(
            f"{owner!r} - {role!r} is assumed by {role.principal}.amazonaws.com"
            f" but must be assumed by {principal}.amazonaws.com"
        )
