# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Console script for ecs_topology.
"""

import argparse
import sys

from botocore.exceptions import ClientError
from jsonschema.exceptions import ValidationError

from ecs_topology.common.files import FileArtifact
from ecs_topology.common.logging import LOG, set_log_level
from ecs_topology.common.settings import TopologySettings
from ecs_topology.ecs_topology import generate_topology
from ecs_topology.exceptions import TopologyBaseException


class ArgparseHelper(argparse._HelpAction):
    """
    Used to help print top level '--help' arguments from argparse
    when used with subparsers
    """

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_help()
        print()
        subparsers_actions = [
            action
            for action in parser._actions
            if isinstance(action, argparse._SubParsersAction)
        ]
        for subparsers_action in subparsers_actions:
            for choice, subparser in list(subparsers_action.choices.items()):
                if choice in [
                    cmd["name"] for cmd in TopologySettings.active_commands
                ] or choice in [
                    cmd["name"] for cmd in TopologySettings.validation_commands
                ]:
                    print(f"Command '{choice}'")
                    print(subparser.format_usage())
        parser.exit()


def main_parser():
    """
    Console script for ecs_topology.
    """
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-h",
        "--help",
        action=ArgparseHelper,
        help="show this help message and exit",
    )

    cmd_parsers = parser.add_subparsers(
        dest=TopologySettings.command_arg, help="Command to execute."
    )
    base_command_parser = argparse.ArgumentParser(add_help=False)
    files_parser = argparse.ArgumentParser(add_help=False)
    files_parser.add_argument(
        "-f",
        "--topology-file",
        dest=TopologySettings.input_file_arg,
        required=True,
        help="Path to the topology file. Later files override the previous ones",
        action="append",
    )
    files_parser.add_argument(
        "--loglevel", type=str, help="Log level. Defaults to INFO", required=False
    )
    base_command_parser.add_argument(
        "-d",
        "--output-dir",
        required=False,
        help="Output directory to write the template to.",
        type=str,
        dest=TopologySettings.output_dir_arg,
        default=TopologySettings.default_output_dir,
    )
    base_command_parser.add_argument(
        "-n",
        "-p",
        "--name",
        help="Name of your application. Prefix of all the resources names",
        required=True,
        type=str,
        dest=TopologySettings.name_arg,
    )
    base_command_parser.add_argument(
        "-e",
        "--environment",
        help="Name of the environment / deployment. Overrides x-configs.topology.Environment",
        required=False,
        type=str,
        dest=TopologySettings.environment_arg,
    )
    base_command_parser.add_argument(
        "--format",
        help="Defines the format you want to use.",
        type=str,
        dest=TopologySettings.format_arg,
        choices=TopologySettings.allowed_formats,
        default=TopologySettings.default_format,
    )
    base_command_parser.add_argument(
        "--region",
        required=False,
        dest=TopologySettings.region_arg,
        help="Specify the region you want to validate the template in."
        " Defaults to the region from config or environment vars",
    )
    base_command_parser.add_argument(
        "-b",
        "--bucket-name",
        type=str,
        required=False,
        help="Bucket name to upload the template to",
        dest=TopologySettings.bucket_arg,
    )
    for command in TopologySettings.active_commands:
        cmd_parsers.add_parser(
            name=command["name"],
            help=command["help"],
            parents=[base_command_parser, files_parser],
        )
    for command in TopologySettings.validation_commands:
        cmd_parsers.add_parser(
            name=command["name"],
            help=command["help"],
            parents=[base_command_parser, files_parser]
            if command["name"] == TopologySettings.validate_arg
            else [files_parser],
        )

    for command in TopologySettings.neutral_commands:
        cmd_parsers.add_parser(name=command["name"], help=command["help"])
    return parser


def main(argv: list = None):
    """
    Main entry point for CLI
    :return: status code
    """
    parser = main_parser()
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    if args.command == TopologySettings.version_arg:
        print(TopologySettings.version())
        return 0
    if getattr(args, "loglevel", None):
        set_log_level(args.loglevel)
    LOG.debug(args)
    try:
        settings = TopologySettings(**vars(args))
    except (ValidationError, ValueError, TypeError, OSError) as error:
        LOG.error(error)
        return 1
    LOG.debug(settings)
    if settings.command == TopologySettings.config_render_arg:
        print(settings.render_config())
        return 0
    try:
        topology = generate_topology(settings)
    except TopologyBaseException as error:
        LOG.error(error)
        return 1
    if settings.command == TopologySettings.validate_arg:
        for title in topology.build_order():
            print(title)
        return 0
    template = FileArtifact(
        f"{settings.name}-{settings.environment}",
        topology.render(settings.format),
        settings,
    )
    template.write(settings)
    if settings.upload:
        try:
            template.upload(settings)
            template.validate(settings)
        except ClientError:
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())  # pragma: no cover
