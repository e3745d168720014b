#  -*- coding: utf-8 -*-
# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

import json
from os import path

from behave import given, then, when

from ecs_topology import exceptions
from ecs_topology.common.settings import TopologySettings
from ecs_topology.ecs.ecs_service import Service
from ecs_topology.ecs_topology import generate_topology
from ecs_topology.exceptions import TopologyBaseException


def here():
    return path.abspath(path.dirname(__file__))


def get_settings(files: list) -> TopologySettings:
    return TopologySettings(
        **{
            TopologySettings.name_arg: "test",
            TopologySettings.command_arg: TopologySettings.render_arg,
            TopologySettings.input_file_arg: [
                path.abspath(f"{here()}/../../../{file_path}") for file_path in files
            ],
        },
    )


@given("I use {file_path} as my topology file")
def step_impl(context, file_path):
    """
    Function to load the topology file from use-cases.

    :param context:
    :param str file_path:
    :return:
    """
    context.settings = get_settings([file_path])


@given("I use {file_path} as my topology file and {override_file} as override file")
def step_impl(context, file_path, override_file):
    """
    Function to load the topology file from use-cases, and a file overriding it.

    :param context:
    :param str file_path:
    :param str override_file:
    :return:
    """
    context.settings = get_settings([file_path, override_file])


@given("I want to deploy to the {environment} environment")
def step_impl(context, environment):
    context.settings.environment = environment


@when("I generate the topology")
def step_impl(context):
    try:
        context.topology = generate_topology(context.settings)
    except TopologyBaseException as error:
        context.error = error


@then("the topology renders to {file_format}")
def step_impl(context, file_format):
    assert not hasattr(context, "error"), context.error
    template = context.topology.render(file_format)
    if file_format == "json":
        assert json.loads(template)["Resources"]
    else:
        assert "Resources:" in template


@then("the build order ends with {title}")
def step_impl(context, title):
    assert context.topology.build_order()[-1] == title


@then("the service {name} is named {service_name}")
def step_impl(context, name, service_name):
    assert context.topology.get(name, Service).service_name == service_name


@then("generating the topology fails with {error_name}")
def step_impl(context, error_name):
    assert hasattr(context, "error"), "The topology was generated"
    assert isinstance(context.error, getattr(exceptions, error_name))
    assert not hasattr(context, "topology")
