# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module for the TopologySettings class
"""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime as dt
from datetime import timezone
from json import loads

import boto3
import jsonschema
import yaml
from cfn_flip.yaml_dumper import LongCleanDumper
from compose_x_common.compose_x_common import keyisset, set_else_none
from importlib_resources import files as pkg_files

from ecs_topology import __version__
from ecs_topology.common import TOPOLOGY_NAME_RE
from ecs_topology.common.envsubst import interpolate_content
from ecs_topology.common.logging import LOG

CONFIGS_KEY = "x-configs"
TOPOLOGY_CONFIG_KEY = "topology"


def merge_definitions(source: dict, override: dict) -> dict:
    """
    Merges two topology definitions. Mappings are merged recursively, anything else is replaced by the override.

    :param dict source:
    :param dict override:
    :return: the merged definition
    :rtype: dict
    """
    merged = deepcopy(source)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_definitions(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def load_topology_files(files: list, content: dict = None) -> dict:
    """
    Loads the topology files in order, each one overriding the previous ones.

    :param list[str] files: paths to the YAML files
    :param dict content: content to start from
    :rtype: dict
    """
    definition = deepcopy(content) if content else {}
    for file_path in files:
        with open(file_path) as file_fd:
            file_content = yaml.safe_load(file_fd.read())
        if not isinstance(file_content, dict):
            raise TypeError(
                f"{file_path} content must be a mapping. Got", type(file_content)
            )
        LOG.debug(f"Loaded {file_path}")
        definition = merge_definitions(definition, file_content)
    return definition


class TopologySettings:
    """
    Class to handle the settings of an ecs-topology execution.

    :ivar dict topology_content: the interpolated and validated topology definition
    :ivar dict original_content: the definition as loaded from the files
    :ivar str environment: the deployment identifier, from the CLI or x-configs
    """

    name_arg = "Name"
    environment_arg = "Environment"
    region_arg = "RegionName"
    bucket_arg = "BucketName"
    input_file_arg = "TopologyFile"
    output_dir_arg = "OutputDirectory"
    format_arg = "TemplateFormat"
    command_arg = "command"

    render_arg = "render"
    create_arg = "create"
    validate_arg = "validate"
    config_render_arg = "config"
    version_arg = "version"

    default_format = "json"
    allowed_formats = ["json", "yaml"]
    default_environment = "dev"
    default_output_dir = (
        f"/tmp/ecs-topology-{int(dt.now(timezone.utc).timestamp())}"
    )

    active_commands = [
        {
            "name": render_arg,
            "help": "Generates & Validates the CFN template locally. No upload to S3",
        },
        {
            "name": create_arg,
            "help": "Generates the CFN template, uploads it to S3 and validates it with CFN",
        },
    ]
    validation_commands = [
        {
            "name": validate_arg,
            "help": "Builds and validates the topology, prints the build order",
        },
        {
            "name": config_render_arg,
            "help": "Merges and interpolates the topology files to provide the final content",
        },
    ]
    neutral_commands = [{"name": version_arg, "help": "ECS Topology Version"}]
    all_commands = active_commands + validation_commands + neutral_commands

    def __init__(self, content: dict = None, session=None, **kwargs):
        """
        Class to init the configuration
        """
        self.command = set_else_none(self.command_arg, kwargs, self.render_arg)
        command_names = [cmd["name"] for cmd in self.all_commands]
        if self.command not in command_names:
            raise ValueError(
                f"Command {self.command} is invalid. Must be one of", command_names
            )
        self.aws_region = set_else_none(self.region_arg, kwargs)
        self.session = (
            session if session else boto3.session.Session(region_name=self.aws_region)
        )
        self.bucket_name = set_else_none(self.bucket_arg, kwargs)
        self.no_upload = self.command != self.create_arg
        self.upload = not self.no_upload
        self.input_files = set_else_none(self.input_file_arg, kwargs, [])
        if isinstance(self.input_files, str):
            self.input_files = [self.input_files]
        self.original_content: dict = {}
        self.topology_content: dict = {}
        self.set_content(content)
        self.set_output_settings(kwargs)
        self.name = set_else_none(self.name_arg, kwargs)
        if self.name is not None and not TOPOLOGY_NAME_RE.match(self.name):
            raise ValueError(
                f"Name {self.name} is invalid. Must match", TOPOLOGY_NAME_RE.pattern
            )
        self.environment = set_else_none(
            self.environment_arg,
            kwargs,
            set_else_none(
                "Environment", self.topology_configs, self.default_environment
            ),
        )
        if not isinstance(self.environment, str) or not TOPOLOGY_NAME_RE.match(
            self.environment
        ):
            raise ValueError(
                f"Environment {self.environment} is invalid. Must match",
                TOPOLOGY_NAME_RE.pattern,
            )
        self.strict_permissions = keyisset("StrictPermissions", self.topology_configs)
        self.single_nat = keyisset("SingleNat", self.topology_configs)
        if self.upload and not self.bucket_name:
            raise ValueError(
                f"The {self.create_arg} command requires a bucket name to upload the template to"
            )

    def __repr__(self):
        return f"TopologySettings({self.name}-{self.environment}@{self.command})"

    @property
    def topology_configs(self) -> dict:
        """
        The x-configs.topology settings of the topology files
        """
        configs = set_else_none(CONFIGS_KEY, self.topology_content, {})
        return set_else_none(TOPOLOGY_CONFIG_KEY, configs, {})

    def set_content(self, content: dict = None):
        """
        Method to initialize the topology content: loads the files, interpolates the environment variables,
        and validates the result against the input schema.

        :param dict content: content to use on top of, or instead of, the input files
        """
        LOG.debug(f"Input files: {self.input_files}")
        self.original_content = load_topology_files(self.input_files, content)
        self.topology_content = interpolate_content(self.original_content)
        source = pkg_files("ecs_topology").joinpath("specs/ecs-topology.spec.json")
        LOG.info(f"Validating against input schema {source}")
        jsonschema.validate(self.topology_content, loads(source.read_text()))

    def set_output_settings(self, kwargs):
        """
        Method to set the output settings based on kwargs
        """
        self.format = self.default_format
        if (
            keyisset(self.format_arg, kwargs)
            and kwargs[self.format_arg] in self.allowed_formats
        ):
            self.format = kwargs[self.format_arg]

        self.output_dir = (
            kwargs[self.output_dir_arg]
            if keyisset(self.output_dir_arg, kwargs)
            else self.default_output_dir
        )

    def render_config(self) -> str:
        """
        Returns the interpolated topology content as YAML
        """
        return yaml.dump(self.topology_content, Dumper=LongCleanDumper)

    @staticmethod
    def version() -> str:
        return f"ECS Topology {__version__}"
