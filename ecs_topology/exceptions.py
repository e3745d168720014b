#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Custom exceptions for ecs-topology.

Structural errors are about the shape of the graph: references to entities that were
not declared, of the wrong kind, or living in another network.
Constraint violations are about the values of a single entity or a group of entities.
None of them is recoverable: the topology must not be rendered.
"""


class TopologyBaseException(Exception):
    """
    Top class for ECS Topology Exceptions
    """

    def __init__(self, msg, *args):
        super().__init__(msg, *args)


class StructuralError(TopologyBaseException):
    """
    A reference in the graph is invalid
    """


class DuplicateEntity(StructuralError):
    """
    An entity (or one of its resources) with the same logical ID is already declared
    """


class DanglingReference(StructuralError):
    """
    An entity references another entity which is not declared in the same topology
    """


class WrongKindReference(StructuralError):
    """
    An entity references another entity of an unexpected kind, i.e. a Network where a Cluster is expected
    """


class CrossNetworkReference(StructuralError):
    """
    Two entities which must live in the same network do not
    """


class CyclicDependency(StructuralError):
    """
    The dependency graph has no topological order
    """


class ConstraintViolation(TopologyBaseException):
    """
    A value breaks one of the rules of the resource it configures
    """


class SubnetCapacityError(ConstraintViolation):
    """
    The network CIDR cannot hold the requested subnets
    """


class MemoryReservationError(ConstraintViolation):
    """
    Memory reservation is higher than the memory limit
    """


class InvalidFargateConfiguration(ConstraintViolation):
    """
    The CPU / RAM combination is not supported by AWS Fargate
    """


class InvalidTrustPrincipal(ConstraintViolation):
    """
    A role is not assumable by the service that needs it
    """


class MissingPassRole(ConstraintViolation):
    """
    A role cannot pass another role it must hand over
    """


class BlueGreenConfigurationError(ConstraintViolation):
    """
    A blue/green service is missing one of its requirements
    """


class OverScopedPermission(ConstraintViolation):
    """
    A policy statement grants access to all resources. Only raised in strict mode.
    """
