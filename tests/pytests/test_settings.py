# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to test the settings: files loading, overrides, interpolation and input validation.
"""

from os import path

import yaml
from jsonschema.exceptions import ValidationError
from pytest import fixture, raises

from ecs_topology.common.settings import (
    TopologySettings,
    load_topology_files,
    merge_definitions,
)

HERE = path.abspath(path.dirname(__file__))


def use_case(file_name: str) -> str:
    return path.abspath(f"{HERE}/../../use-cases/{file_name}")


@fixture
def env_setup(monkeypatch):
    monkeypatch.setenv("IMAGE_TAG", "v1.0.0")


def get_settings(*files, **kwargs) -> TopologySettings:
    settings_args = {
        TopologySettings.name_arg: "test",
        TopologySettings.command_arg: TopologySettings.render_arg,
        TopologySettings.input_file_arg: [use_case(file_name) for file_name in files],
        TopologySettings.format_arg: "yaml",
    }
    settings_args.update(kwargs)
    return TopologySettings(**settings_args)


def test_merge_definitions():
    source = {
        "x-iam": {"codedeploy": {"Type": "codedeploy", "PassRoles": ["a", "b"]}},
        "x-network": {"main": {"Cidr": "10.0.0.0/16"}},
    }
    override = {"x-iam": {"codedeploy": {"PassRoles": ["a"]}}, "x-cluster": {}}
    merged = merge_definitions(source, override)
    assert merged == {
        "x-iam": {"codedeploy": {"Type": "codedeploy", "PassRoles": ["a"]}},
        "x-network": {"main": {"Cidr": "10.0.0.0/16"}},
        "x-cluster": {},
    }
    assert source["x-iam"]["codedeploy"]["PassRoles"] == ["a", "b"]


def test_settings_from_files(env_setup):
    settings = get_settings("plain.yml")
    assert settings.name == "test"
    assert settings.environment == "dev"
    assert settings.format == "yaml"
    assert settings.no_upload
    assert not settings.strict_permissions
    task = settings.topology_content["x-tasks"]["app"]
    assert task["Image"]["Tag"] == "v1.0.0"
    assert (
        settings.original_content["x-tasks"]["app"]["Image"]["Tag"]
        == "${IMAGE_TAG:-latest}"
    )
    assert "x-services" in yaml.safe_load(settings.render_config())


def test_environment_precedence():
    assert get_settings("autoscaled.yml").environment == "staging"
    assert (
        get_settings(
            "autoscaled.yml", **{TopologySettings.environment_arg: "prod"}
        ).environment
        == "prod"
    )
    assert get_settings("load-balanced.yml").environment == "dev"


def test_override_files():
    settings = get_settings("blue-green.yml", "blue-green-no-pass-role.yml")
    roles = settings.topology_content["x-iam"]
    assert roles["codedeploy"]["PassRoles"] == ["app"]
    assert roles["execution"] == {"Type": "execution"}


def test_invalid_settings():
    with raises(ValueError):
        get_settings("plain.yml", **{TopologySettings.command_arg: "deploy"})
    with raises(ValueError):
        get_settings("plain.yml", **{TopologySettings.name_arg: "not_valid"})
    with raises(ValueError):
        get_settings("plain.yml", **{TopologySettings.environment_arg: "prod_eu"})
    with raises(ValueError):
        get_settings("plain.yml", **{TopologySettings.command_arg: "create"})
    settings = get_settings(
        "plain.yml",
        **{
            TopologySettings.command_arg: "create",
            TopologySettings.bucket_arg: "my-bucket",
            TopologySettings.region_arg: "eu-west-1",
        },
    )
    assert settings.upload
    assert settings.session.region_name == "eu-west-1"


def test_input_validation():
    with raises(ValidationError):
        TopologySettings(content={"x-services": {"app": {"Cluster": "main"}}})
    with raises(ValidationError):
        TopologySettings(content={"services": {}})
    with raises(ValidationError):
        TopologySettings(
            content={"x-iam": {"app": {"Actions": ["s3:GetObject"]}}},
        )
    with raises(ValidationError):
        TopologySettings(
            content={
                "x-services": {
                    "app": {
                        "Cluster": "main",
                        "TaskDefinition": "app",
                        "SecurityGroups": ["app"],
                        "DeploymentController": "canary",
                    }
                }
            }
        )
    settings = TopologySettings(
        content={"x-iam": {"app": {"Principal": "lambda", "Actions": ["s3:*"]}}}
    )
    assert settings.name is None
    assert settings.input_files == []


def test_invalid_files(tmp_path):
    list_file = tmp_path / "list.yml"
    list_file.write_text("- not\n- a mapping\n")
    with raises(TypeError):
        load_topology_files([str(list_file)])
    with raises(OSError):
        load_topology_files([str(tmp_path / "missing.yml")])
