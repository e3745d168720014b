# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
ECR Repository entity, where the service images are pushed to.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.topology import Topology

import re

from troposphere import GetAtt, Sub
from troposphere.ecr import ImageScanningConfiguration, Repository

from ecs_topology.common import generate_resource_name
from ecs_topology.common.entities import TopologyEntity
from ecs_topology.exceptions import ConstraintViolation

RES_KEY = "x-repositories"
IMAGE_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")


class ImageRepository(TopologyEntity):
    """
    Class to represent an ECR repository

    :ivar troposphere.ecr.Repository repository:
    """

    kind = "Repository"

    def __init__(self, name: str, topology: Topology, scan_on_push: bool = True):
        super().__init__(name, topology)
        self.repository_name = generate_resource_name(
            self.project, self.environment, name, max_length=256
        )
        self.repository = Repository(
            self.resource_title("Resource"),
            RepositoryName=self.repository_name,
            ImageScanningConfiguration=ImageScanningConfiguration(
                ScanOnPush=scan_on_push
            ),
        )
        self.resources.append(self.repository)
        self.add_output("Uri", self.uri)

    @property
    def uri(self) -> GetAtt:
        return GetAtt(self.repository, "RepositoryUri")

    def image(self, tag: str = "latest") -> Sub:
        """
        Returns the image URI for a given tag of this repository

        :param str tag:
        :rtype: troposphere.Sub
        """
        if not isinstance(tag, str) or not IMAGE_TAG_RE.match(tag):
            raise ConstraintViolation(
                f"{self!r} - image tag {tag} is invalid. Must match {IMAGE_TAG_RE.pattern}"
            )
        return Sub(f"${{{self.repository.title}.RepositoryUri}}:{tag}")
