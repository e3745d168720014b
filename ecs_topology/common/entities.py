# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Base class for the entities declared in a topology.

An entity groups the troposphere resources making one logical element of the topology
(i.e. a Network is a VPC, subnets, route tables etc.) and exposes the other entities it references.
The references are resolved by the Topology when the entity is added to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

from troposphere import AWSObject, Output

from ecs_topology.common import to_logical_id
from ecs_topology.exceptions import WrongKindReference


def expect_kind(value, expected, field: str, owner: TopologyEntity):
    """
    Ensures that a reference is of the expected entity class.

    :param value: the referenced object
    :param type expected: the entity class expected
    :param str field: name of the field holding the reference, for the error message
    :param TopologyEntity owner: the entity holding the reference
    :raises: WrongKindReference
    """
    if not isinstance(value, expected):
        raise WrongKindReference(
            f"{owner!r} - {field} must be a {expected.kind}. Got {value!r}"
        )
    return value


class TopologyEntity:
    """
    Class to represent one entity of the topology.

    :cvar str kind: the kind of entity, used in logs and errors
    :ivar str name: the name of the entity, as given by the caller
    :ivar str title: the logical ID of the entity, unique within the topology
    :ivar list[troposphere.AWSObject] resources: the CFN resources of the entity
    :ivar list[troposphere.Output] outputs: the CFN outputs of the entity
    """

    kind = "entity"

    def __init__(self, name: str, topology: Topology):
        if not isinstance(name, str) or not name:
            raise TypeError(f"{self.kind} name must be a non-empty string. Got", name)
        self.name = name
        self.title = to_logical_id(name, self.kind)
        self.project = topology.name
        self.environment = topology.environment
        self.resources: list[AWSObject] = []
        self.outputs: list[Output] = []

    def __repr__(self):
        return f"{self.kind}({self.name})"

    @property
    def dependencies(self) -> list[TopologyEntity]:
        """
        The entities this entity references. Default to none.
        """
        return []

    def resource_title(self, suffix: str) -> str:
        return f"{self.title}{suffix}"

    def add_output(self, suffix: str, value, description: str = None) -> Output:
        output = Output(self.resource_title(suffix), Value=value)
        if description:
            output.Description = description
        self.outputs.append(output)
        return output

    def validate(self, topology: Topology) -> None:
        """
        Re-evaluates the invariants of the entity once the whole topology is declared.
        Default to nothing to check.
        """
