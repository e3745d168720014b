# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
IAM Role entity, and the presets for the roles an ECS blue/green deployment needs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import GetAtt, Ref
from troposphere.iam import Policy
from troposphere.iam import Role as IamRole

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity, expect_kind
from ecs_topology.common.logging import LOG
from ecs_topology.exceptions import MissingPassRole, OverScopedPermission
from ecs_topology.iam import (
    PASS_ROLE_ACTION,
    WILDCARD,
    define_managed_policy_arn,
    service_role_trust_policy,
)

EXECUTION_ROLE_ACTIONS = [
    "ecr:GetAuthorizationToken",
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
    "logs:CreateLogStream",
    "logs:PutLogEvents",
]
CODEDEPLOY_ECS_POLICY = "AWSCodeDeployRoleForECS"

PASS_ROLE_ACTIONS = [PASS_ROLE_ACTION, "iam:*", WILDCARD]


def is_wildcard(resources: list) -> bool:
    return any(
        isinstance(resource, str) and resource == WILDCARD for resource in resources
    )


class Role(TopologyEntity):
    """
    Class to represent an IAM Role. All the statements are Allow.

    :ivar str principal: the service allowed to assume the role, i.e. ecs-tasks
    :ivar list[dict] statements: the inline policy statements
    :ivar list[Role] pass_roles: the roles this role is allowed to pass
    :ivar troposphere.iam.Role role:
    """

    kind = "Role"

    def __init__(
        self,
        name: str,
        topology: Topology,
        principal: str,
        actions: list = None,
        resources: list = None,
        managed_policies: list = None,
        pass_roles: list = None,
        strict: bool = False,
    ):
        super().__init__(name, topology)
        self.principal = principal
        self.role_name = generate_resource_name(
            self.project, self.environment, name, max_length=64
        )
        self.statements = []
        self.pass_roles = [
            expect_kind(role, Role, "pass_roles", self) for role in pass_roles or []
        ]
        if actions:
            resources = resources if resources else [WILDCARD]
            if is_wildcard(resources):
                if strict:
                    raise OverScopedPermission(
                        f"{self!r} - {actions} are granted on all resources (*)."
                    )
                LOG.warning(
                    f"{self!r} - {actions} are granted on all resources (*)."
                    " Restrict the resources before using this role for anything sensitive."
                )
            self.statements.append(
                {
                    "Sid": "AllowedActions",
                    "Effect": "Allow",
                    "Action": list(actions),
                    "Resource": list(resources),
                }
            )
        if self.pass_roles:
            self.statements.append(
                {
                    "Sid": "AllowPassRoles",
                    "Effect": "Allow",
                    "Action": [PASS_ROLE_ACTION],
                    "Resource": [role.arn for role in self.pass_roles],
                }
            )
        self.managed_policies = list(managed_policies or [])
        props = {
            "RoleName": self.role_name,
            "AssumeRolePolicyDocument": service_role_trust_policy(principal),
        }
        if self.managed_policies:
            props["ManagedPolicyArns"] = [
                define_managed_policy_arn(policy) for policy in self.managed_policies
            ]
        if self.statements:
            props["Policies"] = [
                Policy(
                    PolicyName=f"{self.role_name}-policy",
                    PolicyDocument={
                        "Version": "2012-10-17",
                        "Statement": self.statements,
                    },
                )
            ]
        self.role = IamRole(self.resource_title("Resource"), **props)
        self.resources.append(self.role)
        self.add_output("Arn", self.arn)

    @property
    def dependencies(self):
        return list(self.pass_roles)

    @property
    def arn(self) -> GetAtt:
        return GetAtt(self.role, "Arn")

    @property
    def name_ref(self) -> Ref:
        return Ref(self.role)

    @property
    def over_scoped(self) -> bool:
        """
        Whether any of the statements applies to all resources
        """
        return any(is_wildcard(statement["Resource"]) for statement in self.statements)

    def can_pass(self, role: Role) -> bool:
        """
        Whether this role is allowed to pass the given role, explicitly or via a wildcard statement.

        :param Role role:
        :rtype: bool
        """
        if any(role is pass_role for pass_role in self.pass_roles):
            return True
        for statement in self.statements:
            if is_wildcard(statement["Resource"]) and any(
                action in PASS_ROLE_ACTIONS for action in statement["Action"]
            ):
                LOG.warning(
                    f"{self!r} can pass {role!r} only through a wildcard statement"
                )
                return True
        return False

    def require_pass_roles(self, roles: list, owner) -> None:
        """
        Ensures this role can pass each of the given roles

        :param list[Role] roles:
        :param owner: the entity needing the permission, for the error message
        :raises: MissingPassRole
        """
        missing = [role for role in roles if not self.can_pass(role)]
        if missing:
            raise MissingPassRole(
                f"{owner!r} - {self!r} has no {PASS_ROLE_ACTION} permission on {missing}"
            )
